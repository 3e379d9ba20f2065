import os
from unittest.mock import MagicMock

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from codegen_versions.clients.neon import NeonClient
from codegen_versions.clients.sandbox import SandboxGateway
from codegen_versions.clients.threads import ThreadClient
from codegen_versions.database import init_db
from codegen_versions.models.neon import Branch, NeonAuth
from codegen_versions.repositories.project_repository import ProjectRepository
from codegen_versions.services.dev_server import DevServerService
from codegen_versions.services.secrets_codec import SecretsCodec
from codegen_versions.services.steps import VersionSteps
from codegen_versions.services.task_service import TaskService
from codegen_versions.services.workflows import VersionWorkflows


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'versions.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def codec():
    return SecretsCodec(os.urandom(32).hex())


@pytest.fixture
async def project(db_session):
    return await ProjectRepository(db_session).create_project(
        name="demo",
        repo_id="repo_1",
        backend_type="neon",
        backend_project_id="proj_1",
        thread_id="thread_1",
        user_id="user_1",
    )


@pytest.fixture
def neon():
    client = MagicMock(spec=NeonClient)
    client.require_production_branch.return_value = Branch(id="br_main", name="main")
    client.get_production_branch.return_value = Branch(id="br_main", name="main")
    client.init_neon_auth.return_value = NeonAuth(
        auth_provider="stack",
        auth_provider_project_id="stack_1",
        pub_client_key="pk_1",
        secret_server_key="sk_1",
    )
    client.get_connection_uri.return_value = "postgresql://neondb_owner@ep-1/neondb"
    client.create_snapshot.return_value = "snap_1"
    client.apply_snapshot.return_value = {}
    return client


@pytest.fixture
def sandbox():
    gateway = MagicMock(spec=SandboxGateway)
    gateway.get_latest_commit.return_value = "abc123"
    return gateway


@pytest.fixture
def threads():
    return MagicMock(spec=ThreadClient)


@pytest.fixture
def dev_servers():
    return MagicMock(spec=DevServerService)


@pytest.fixture
async def task_service():
    service = TaskService()
    yield service
    await service.shutdown()


@pytest.fixture
def steps(session_factory, codec, neon, sandbox, threads, dev_servers, task_service):
    return VersionSteps(
        session_factory=session_factory,
        codec=codec,
        neon=neon,
        sandbox=sandbox,
        threads=threads,
        dev_servers=dev_servers,
        task_service=task_service,
    )


@pytest.fixture
def workflows(steps):
    return VersionWorkflows(steps)
