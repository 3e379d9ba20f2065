from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from codegen_versions.backends import get_backend_adapter
from codegen_versions.clients.neon import NeonClient
from codegen_versions.clients.sandbox import SandboxGateway
from codegen_versions.clients.threads import ThreadClient
from codegen_versions.errors import ValidationError
from codegen_versions.models.project import (
    BackendType,
    Deployment,
    Project,
    ProjectVersion,
    WorkflowResult,
)
from codegen_versions.repositories.project_repository import ProjectRepository
from codegen_versions.services.deploy import DeploymentService
from codegen_versions.services.restore import VersionRestoreService
from codegen_versions.services.task_service import TaskService
from codegen_versions.services.workflows import VersionWorkflows

logger = logging.getLogger(__name__)


class ProjectService:
    """Coordinator for project operations, delegating to workflows and clients."""

    def __init__(
        self,
        repository: ProjectRepository,
        workflows: VersionWorkflows,
        restore_service: VersionRestoreService,
        task_service: TaskService,
        neon: NeonClient,
        sandbox: SandboxGateway,
        threads: ThreadClient,
        deployments: DeploymentService,
        template_repo_url: str,
    ):
        self.repository = repository
        self.workflows = workflows
        self.restore_service = restore_service
        self.task_service = task_service
        self.neon = neon
        self.sandbox = sandbox
        self.threads = threads
        self.deployments = deployments
        self.template_repo_url = template_repo_url

    async def create_project(
        self,
        user_id: str,
        name: str,
        source_url: str | None = None,
    ) -> tuple[Project, asyncio.Task[Any]]:
        """Provision the repo, database and thread, then start version 0."""
        repo_id, created = await asyncio.gather(
            self.sandbox.create_repo(name, source_url or self.template_repo_url),
            self.neon.create_project(name),
        )
        thread_id = await self.threads.create_thread(user_id, name)

        project = await self.repository.create_project(
            name=name,
            repo_id=repo_id,
            backend_type=BackendType.NEON.value,
            backend_project_id=created.backend_project_id,
            thread_id=thread_id,
            user_id=user_id,
        )
        await get_backend_adapter(project, self.neon).provision(project.id)
        logger.info(f"Project {project.id} created (repo {repo_id}, neon {created.backend_project_id})")

        task = await self.task_service.spawn(
            self.workflows.initialize_first_version(project),
            name=f"initialize-{project.id}",
        )
        return project, task

    async def get_project(self, project_id: str, user_id: str | None = None) -> Project:
        return await self.repository.get_project(project_id, user_id)

    async def list_versions(
        self, project_id: str, user_id: str | None = None
    ) -> tuple[Project, list[ProjectVersion]]:
        project = await self.get_project(project_id, user_id)
        return project, await self.repository.list_versions(project.id)

    async def request_checkpoint(
        self,
        project_id: str,
        user_id: str | None = None,
        assistant_message_id: str | None = None,
    ) -> asyncio.Task[Any]:
        project = await self.get_project(project_id, user_id)
        if not project.current_dev_version_id:
            raise ValidationError(f"No current dev version found for project {project.id}")

        return await self.task_service.spawn(
            self.workflows.create_manual_checkpoint(
                project, project.current_dev_version_id, assistant_message_id
            ),
            name=f"checkpoint-{project.id}",
        )

    async def restore_version(
        self,
        project_id: str,
        version_id: str,
        user_id: str | None = None,
    ) -> ProjectVersion:
        project = await self.get_project(project_id, user_id)
        return await self.restore_service.restore(project, version_id)

    async def request_delete(self, project_id: str, user_id: str | None = None) -> asyncio.Task[Any]:
        project = await self.get_project(project_id, user_id)
        return await self.task_service.spawn(
            self.workflows.delete_project(project),
            name=f"delete-{project.id}",
        )

    async def record_agent_checkpoint(
        self,
        project_id: str,
        message: str,
        environment_variables: Mapping[str, str],
        user_id: str | None = None,
        assistant_message_id: str | None = None,
    ) -> WorkflowResult:
        """Record the agent's finished turn as a version, waiting for it to land."""
        project = await self.get_project(project_id, user_id)
        return await self.workflows.record_agent_checkpoint(
            project, message, environment_variables, assistant_message_id
        )

    async def get_deployment(self, project_id: str, user_id: str | None = None) -> Deployment:
        project = await self.get_project(project_id, user_id)
        return self.deployments.deployment_for(project)

    async def request_deploy(
        self, project_id: str, user_id: str | None = None
    ) -> tuple[Deployment, asyncio.Task[Any]]:
        project = await self.get_project(project_id, user_id)
        return await self.deployments.deploy(project)
