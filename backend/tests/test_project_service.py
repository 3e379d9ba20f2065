import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from codegen_versions.errors import ProjectNotFoundError, ValidationError
from codegen_versions.models.neon import CreatedProject
from codegen_versions.models.project import WorkflowResult
from codegen_versions.repositories.project_repository import ProjectRepository
from codegen_versions.services.deploy import DeploymentService
from codegen_versions.services.project_service import ProjectService
from codegen_versions.services.restore import VersionRestoreService
from codegen_versions.services.workflows import VersionWorkflows


@pytest.fixture
def workflows_mock():
    mock = MagicMock(spec=VersionWorkflows)
    mock.initialize_first_version.return_value = WorkflowResult(success=True, version_id="v0")
    mock.create_manual_checkpoint.return_value = WorkflowResult(success=True, version_id="v1")
    return mock


@pytest.fixture
def service(db_session, workflows_mock, task_service, neon, sandbox, threads):
    neon.create_project.return_value = CreatedProject(
        backend_project_id="proj_new", database_url="postgresql://owner@ep-new/neondb"
    )
    sandbox.create_repo.return_value = "repo_new"
    threads.create_thread.return_value = "thread_new"
    return ProjectService(
        repository=ProjectRepository(db_session),
        workflows=workflows_mock,
        restore_service=MagicMock(spec=VersionRestoreService),
        task_service=task_service,
        neon=neon,
        sandbox=sandbox,
        threads=threads,
        deployments=MagicMock(spec=DeploymentService),
        template_repo_url="https://git.example/template",
    )


@pytest.mark.asyncio
async def test_create_project(service, db_session, workflows_mock, sandbox, neon, threads):
    project, task = await service.create_project("user1", "Todo app")

    assert project.repo_id == "repo_new"
    assert project.backend_type == "neon"
    assert project.backend_project_id == "proj_new"
    assert project.thread_id == "thread_new"
    assert project.current_dev_version_id is None

    # Verify it's in DB
    saved = await ProjectRepository(db_session).get_project(project.id, "user1")
    assert saved.id == project.id

    assert (await task).version_id == "v0"
    workflows_mock.initialize_first_version.assert_awaited_once_with(project)
    sandbox.create_repo.assert_awaited_once_with("Todo app", "https://git.example/template")
    neon.create_project.assert_awaited_once_with("Todo app")
    threads.create_thread.assert_awaited_once_with("user1", "Todo app")


@pytest.mark.asyncio
async def test_create_project_from_custom_source(service, sandbox):
    await service.create_project("user1", "Fork", "https://git.example/mine")

    sandbox.create_repo.assert_awaited_once_with("Fork", "https://git.example/mine")


@pytest.mark.asyncio
async def test_projects_are_scoped_to_their_owner(service, project):
    assert (await service.get_project(project.id, "user_1")).id == project.id
    with pytest.raises(ProjectNotFoundError):
        await service.get_project(project.id, "someone_else")


@pytest.mark.asyncio
async def test_checkpoint_requires_a_current_version(service, project, workflows_mock):
    with pytest.raises(ValidationError):
        await service.request_checkpoint(project.id, "user_1")
    workflows_mock.create_manual_checkpoint.assert_not_called()


@pytest.mark.asyncio
async def test_checkpoint_runs_in_background_from_current_version(
    service, project, db_session, workflows_mock
):
    repo = ProjectRepository(db_session)
    version = await repo.insert_version(
        project_id=project.id,
        git_commit_hash="abc123",
        snapshot_id="snap_1",
        summary="Initial project setup",
    )
    await repo.update_project_pointer(project.id, version.id)

    task = await service.request_checkpoint(project.id, "user_1", "msg_1")
    result = await task

    assert result.version_id == "v1"
    args = workflows_mock.create_manual_checkpoint.await_args.args
    assert args[0].id == project.id
    assert args[1:] == (version.id, "msg_1")


@pytest.mark.asyncio
async def test_list_versions_newest_first(service, project, db_session):
    repo = ProjectRepository(db_session)
    first = await repo.insert_version(
        project_id=project.id, git_commit_hash="abc123", snapshot_id="s1", summary="one"
    )
    await asyncio.sleep(0.01)
    second = await repo.insert_version(
        project_id=project.id, git_commit_hash="def456", snapshot_id="s2", summary="two"
    )

    _, versions = await service.list_versions(project.id, "user_1")

    assert [v.id for v in versions] == [second.id, first.id]


@pytest.mark.asyncio
async def test_failed_background_delete_does_not_reach_caller(service, project, workflows_mock):
    workflows_mock.delete_project = AsyncMock(side_effect=RuntimeError("boom"))

    task = await service.request_delete(project.id, "user_1")
    await asyncio.gather(task, return_exceptions=True)

    assert isinstance(task.exception(), RuntimeError)


@pytest.mark.asyncio
async def test_agent_checkpoint_is_recorded_for_the_owner(service, project, workflows_mock):
    workflows_mock.record_agent_checkpoint.return_value = WorkflowResult(success=True, version_id="v2")
    env = {"DATABASE_URL": "pg://"}

    result = await service.record_agent_checkpoint(
        project.id, "Add todo list", env, "user_1", "msg_3"
    )

    assert result.version_id == "v2"
    stored, message, environment, message_id = workflows_mock.record_agent_checkpoint.await_args.args
    assert stored.id == project.id
    assert (message, environment, message_id) == ("Add todo list", env, "msg_3")


@pytest.mark.asyncio
async def test_agent_checkpoint_for_another_owner_is_not_found(service, project, workflows_mock):
    with pytest.raises(ProjectNotFoundError):
        await service.record_agent_checkpoint(project.id, "Add todo list", {}, "intruder")

    workflows_mock.record_agent_checkpoint.assert_not_called()
