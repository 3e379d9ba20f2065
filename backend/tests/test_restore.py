from unittest.mock import MagicMock

import pytest

from codegen_versions.clients.sandbox import DevServer, DevServerProcess
from codegen_versions.errors import (
    ExternalServiceError,
    RollbackError,
    SecretsNotFoundError,
    UnsupportedBackendError,
    ValidationError,
    VersionNotFoundError,
)
from codegen_versions.repositories.project_repository import ProjectRepository
from codegen_versions.services.restore import VersionRestoreService

OLD_SECRETS = {"DATABASE_URL": "postgresql://owner@ep-1/neondb", "STACK_SECRET_SERVER_KEY": "sk_0"}


@pytest.fixture
def dev_server():
    server = MagicMock(spec=DevServer)
    server.process = MagicMock(spec=DevServerProcess)
    return server


@pytest.fixture
def restore_service(session_factory, codec, neon, sandbox, dev_servers, dev_server):
    dev_servers.request_dev_server.return_value = dev_server
    return VersionRestoreService(session_factory, codec, neon, sandbox, dev_servers)


@pytest.fixture
async def history(project, session_factory, codec):
    """Two versions with secrets; the pointer is on the newer one."""
    async with session_factory() as session:
        repo = ProjectRepository(session)
        old = await repo.insert_version(
            project_id=project.id,
            git_commit_hash="0a0b0c0",
            snapshot_id="snap_old",
            summary="Initial project setup",
        )
        new = await repo.insert_version(
            project_id=project.id,
            git_commit_hash="abc123f",
            snapshot_id="snap_new",
            summary="Manual checkpoint",
        )
        await repo.insert_secrets(old.id, codec.encrypt_bundle(OLD_SECRETS))
        await repo.insert_secrets(new.id, codec.encrypt_bundle({"DATABASE_URL": "new"}))
        await repo.update_project_pointer(project.id, new.id)
        current = await repo.get_project(project.id)
    return current, old, new


async def pointer(session_factory, project_id):
    async with session_factory() as session:
        return (await ProjectRepository(session).get_project(project_id)).current_dev_version_id


@pytest.mark.asyncio
async def test_restore_resets_code_then_database_then_moves_pointer(
    restore_service, history, session_factory, neon, sandbox, dev_servers, dev_server
):
    project, old, _ = history
    calls = []
    dev_servers.request_dev_server.side_effect = lambda *a, **k: calls.append("dev_server") or dev_server
    sandbox.reset_to_commit.side_effect = lambda *a, **k: calls.append("reset")
    neon.apply_snapshot.side_effect = lambda *a, **k: calls.append("apply_snapshot") or {}

    restored = await restore_service.restore(project, old.id)

    assert restored.id == old.id
    assert calls == ["dev_server", "reset", "apply_snapshot"]
    dev_servers.request_dev_server.assert_awaited_once_with(project, OLD_SECRETS)
    sandbox.reset_to_commit.assert_awaited_once_with(dev_server.process, "0a0b0c0")
    neon.apply_snapshot.assert_awaited_once_with("proj_1", "snap_old", "br_main")
    assert await pointer(session_factory, project.id) == old.id


@pytest.mark.asyncio
async def test_rollback_failure_leaves_pointer_unchanged(
    restore_service, history, session_factory, neon
):
    project, old, new = history
    neon.apply_snapshot.side_effect = ExternalServiceError("neon", "apply_snapshot", 500, "boom")

    with pytest.raises(RollbackError):
        await restore_service.restore(project, old.id)

    assert await pointer(session_factory, project.id) == new.id


@pytest.mark.asyncio
async def test_git_reset_failure_skips_database_restore(
    restore_service, history, session_factory, neon, sandbox
):
    project, old, new = history
    sandbox.reset_to_commit.side_effect = ExternalServiceError("sandbox", "reset", detail="fatal")

    with pytest.raises(ExternalServiceError):
        await restore_service.restore(project, old.id)

    neon.apply_snapshot.assert_not_awaited()
    assert await pointer(session_factory, project.id) == new.id


@pytest.mark.asyncio
async def test_version_of_another_project_is_not_found(
    restore_service, history, db_session, session_factory, sandbox
):
    project, _, new = history
    other = await ProjectRepository(db_session).create_project(
        name="other",
        repo_id="repo_2",
        backend_type="neon",
        backend_project_id="proj_2",
        thread_id="thread_2",
        user_id="user_2",
    )
    foreign = await ProjectRepository(db_session).insert_version(
        project_id=other.id,
        git_commit_hash="abc1234",
        snapshot_id="snap_x",
        summary="Initial project setup",
    )

    with pytest.raises(VersionNotFoundError):
        await restore_service.restore(project, foreign.id)

    sandbox.reset_to_commit.assert_not_awaited()
    assert await pointer(session_factory, project.id) == new.id


@pytest.mark.asyncio
async def test_version_without_secrets_cannot_be_restored(
    restore_service, project, session_factory, dev_servers
):
    async with session_factory() as session:
        version = await ProjectRepository(session).insert_version(
            project_id=project.id,
            git_commit_hash="abc1234",
            snapshot_id="snap_1",
            summary="Initial project setup",
        )

    with pytest.raises(SecretsNotFoundError):
        await restore_service.restore(project, version.id)
    dev_servers.request_dev_server.assert_not_awaited()


@pytest.mark.asyncio
async def test_backend_checks_run_before_touching_anything(restore_service, history, dev_servers):
    project, old, _ = history

    with pytest.raises(UnsupportedBackendError):
        await restore_service.restore(project.model_copy(update={"backend_type": "aws"}), old.id)
    with pytest.raises(ValidationError):
        await restore_service.restore(project.model_copy(update={"backend_project_id": None}), old.id)

    dev_servers.request_dev_server.assert_not_awaited()
