from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.requests import HTTPConnection

from codegen_versions.clients.neon import NeonClient
from codegen_versions.clients.sandbox import SandboxGateway
from codegen_versions.clients.threads import ThreadClient
from codegen_versions.config import Settings
from codegen_versions.repositories.project_repository import ProjectRepository
from codegen_versions.services.deploy import DeploymentService
from codegen_versions.services.dev_server import DevServerService
from codegen_versions.services.project_service import ProjectService
from codegen_versions.services.restore import VersionRestoreService
from codegen_versions.services.secrets_codec import SecretsCodec
from codegen_versions.services.steps import VersionSteps
from codegen_versions.services.task_service import TaskService
from codegen_versions.services.workflows import VersionWorkflows


@dataclass(slots=True)
class Services:
    """Process-wide collaborators created once at startup."""

    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    task_service: TaskService
    neon: NeonClient
    sandbox: SandboxGateway
    threads: ThreadClient
    codec: SecretsCodec
    workflows: VersionWorkflows
    restore_service: VersionRestoreService
    deployments: DeploymentService

    async def shutdown(self) -> None:
        await self.task_service.shutdown()
        await self.neon.aclose()
        await self.sandbox.aclose()
        await self.threads.aclose()


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
) -> Services:
    task_service = TaskService()
    neon = NeonClient(
        settings.neon_api_key,
        base_url=settings.neon_base_url,
        timeout=settings.http_timeout,
        poll_interval=settings.operation_poll_interval,
        operation_timeout=settings.operation_timeout,
    )
    sandbox = SandboxGateway(settings.sandbox_api_key, base_url=settings.sandbox_base_url)
    threads = ThreadClient(
        settings.assistant_api_key,
        base_url=settings.assistant_base_url,
        timeout=settings.http_timeout,
    )
    codec = SecretsCodec(settings.encryption_key)
    dev_servers = DevServerService(sandbox, neon, codec, session_factory)
    steps = VersionSteps(
        session_factory=session_factory,
        codec=codec,
        neon=neon,
        sandbox=sandbox,
        threads=threads,
        dev_servers=dev_servers,
        task_service=task_service,
    )
    return Services(
        settings=settings,
        session_factory=session_factory,
        task_service=task_service,
        neon=neon,
        sandbox=sandbox,
        threads=threads,
        codec=codec,
        workflows=VersionWorkflows(steps),
        restore_service=VersionRestoreService(session_factory, codec, neon, sandbox, dev_servers),
        deployments=DeploymentService(
            neon,
            sandbox,
            dev_servers,
            task_service,
            git_base_url=settings.git_base_url,
            domain_suffix=settings.deploy_domain_suffix,
        ),
    )


def get_services(connection: HTTPConnection) -> Services:
    return connection.app.state.services


ServicesDep = Annotated[Services, Depends(get_services)]


async def get_db(services: ServicesDep) -> AsyncIterator[AsyncSession]:
    """Dependency for getting database session."""
    async with services.session_factory() as session:
        yield session


AsyncDBSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> str:
    """Caller identity as forwarded by the authenticating gateway."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id


CurrentUserId = Annotated[str, Depends(get_current_user_id)]


def get_project_repository(db: AsyncDBSession) -> ProjectRepository:
    return ProjectRepository(db)


def get_project_service(
    repository: Annotated[ProjectRepository, Depends(get_project_repository)],
    services: ServicesDep,
) -> ProjectService:
    return ProjectService(
        repository=repository,
        workflows=services.workflows,
        restore_service=services.restore_service,
        task_service=services.task_service,
        neon=services.neon,
        sandbox=services.sandbox,
        threads=services.threads,
        deployments=services.deployments,
        template_repo_url=services.settings.template_repo_url,
    )


ProjectServiceDep = Annotated[ProjectService, Depends(get_project_service)]
