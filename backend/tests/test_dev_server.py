from unittest.mock import MagicMock

import pytest

from codegen_versions.clients.sandbox import DevServer
from codegen_versions.errors import ConfigurationError, SecretsNotFoundError
from codegen_versions.repositories.project_repository import ProjectRepository
from codegen_versions.services.dev_server import DevServerService


@pytest.fixture
def service(sandbox, neon, codec, session_factory):
    dev_server = MagicMock(spec=DevServer)
    dev_server.origin = "https://abc.dev.example"
    dev_server.ephemeral_url = "https://abc.dev.example/"
    dev_server.is_new = True
    sandbox.request_dev_server.return_value = dev_server
    return DevServerService(sandbox, neon, codec, session_factory)


async def project_with_secrets(project, session_factory, codec, secrets):
    async with session_factory() as session:
        repo = ProjectRepository(session)
        version = await repo.insert_version(
            project_id=project.id,
            git_commit_hash="abc123",
            snapshot_id="snap_1",
            summary="Initial project setup",
        )
        await repo.insert_secrets(version.id, codec.encrypt_bundle(secrets))
        await repo.update_project_pointer(project.id, version.id)
        return await repo.get_project(project.id)


@pytest.mark.asyncio
async def test_uses_current_version_secrets_and_allow_lists_origin(
    service, project, session_factory, codec, sandbox, neon
):
    current = await project_with_secrets(project, session_factory, codec, {"DATABASE_URL": "pg://1"})

    dev_server = await service.request_dev_server(current)

    sandbox.request_dev_server.assert_awaited_once_with("repo_1", {"DATABASE_URL": "pg://1"})
    neon.add_auth_domain.assert_awaited_once_with("proj_1", "https://abc.dev.example")
    assert dev_server.origin == "https://abc.dev.example"


@pytest.mark.asyncio
async def test_explicit_environment_overrides_stored_secrets(service, project, sandbox):
    await service.request_dev_server(project, {"DATABASE_URL": "pg://restored"})

    sandbox.request_dev_server.assert_awaited_once_with("repo_1", {"DATABASE_URL": "pg://restored"})


@pytest.mark.asyncio
async def test_project_without_current_version_cannot_start(service, project, sandbox):
    with pytest.raises(ConfigurationError):
        await service.request_dev_server(project)
    sandbox.request_dev_server.assert_not_awaited()


@pytest.mark.asyncio
async def test_current_version_without_secrets(service, project, session_factory, sandbox):
    async with session_factory() as session:
        repo = ProjectRepository(session)
        version = await repo.insert_version(
            project_id=project.id,
            git_commit_hash="abc123",
            snapshot_id="snap_1",
            summary="Initial project setup",
        )
        await repo.update_project_pointer(project.id, version.id)
        current = await repo.get_project(project.id)

    with pytest.raises(SecretsNotFoundError):
        await service.request_dev_server(current)
    sandbox.request_dev_server.assert_not_awaited()


@pytest.mark.asyncio
async def test_neon_project_without_identity_fails_before_any_call(service, project, sandbox, neon):
    unbound = project.model_copy(update={"backend_project_id": None})

    with pytest.raises(ConfigurationError):
        await service.request_dev_server(unbound, {"DATABASE_URL": "pg://"})
    sandbox.request_dev_server.assert_not_awaited()
    neon.add_auth_domain.assert_not_awaited()
