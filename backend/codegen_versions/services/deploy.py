from __future__ import annotations

import asyncio
import logging
from typing import Any

from codegen_versions.backends import get_backend_adapter
from codegen_versions.clients.neon import NeonClient
from codegen_versions.clients.sandbox import SandboxGateway, generate_deployment_url
from codegen_versions.errors import ConfigurationError, OrchestrationError, ValidationError
from codegen_versions.models.project import Deployment, Project
from codegen_versions.services.dev_server import DevServerService
from codegen_versions.services.task_service import TaskService

logger = logging.getLogger(__name__)


class DeploymentService:
    """Publishes a project's current version on its public domain."""

    def __init__(
        self,
        neon: NeonClient,
        sandbox: SandboxGateway,
        dev_servers: DevServerService,
        task_service: TaskService,
        git_base_url: str,
        domain_suffix: str,
    ):
        self.neon = neon
        self.sandbox = sandbox
        self.dev_servers = dev_servers
        self.task_service = task_service
        self.git_base_url = git_base_url.rstrip("/")
        self.domain_suffix = domain_suffix

    def deployment_for(self, project: Project) -> Deployment:
        domain, url = generate_deployment_url(project.name, project.user_id, self.domain_suffix)
        return Deployment(domain=domain, url=url)

    async def deploy(self, project: Project) -> tuple[Deployment, asyncio.Task[Any]]:
        """Start a deployment of the current version.

        Allow-listing the public url for auth is best effort. The build
        itself runs detached; the returned task settles when it finishes.
        """
        if not project.current_dev_version_id:
            raise ValidationError(
                f"No current version found for project {project.id}; create a version first"
            )
        get_backend_adapter(project, self.neon)
        if not project.backend_project_id:
            raise ConfigurationError(f"Project {project.id} has no backend_project_id; cannot deploy")

        deployment = self.deployment_for(project)
        logger.info(f"[Deploy] Deploying project {project.id} to {deployment.domain}")

        try:
            await self.neon.add_auth_domain(project.backend_project_id, deployment.url)
        except OrchestrationError as exc:
            logger.warning(
                f"[Deploy] Failed to allow-list {deployment.url} for project {project.id}: {exc}",
                exc_info=exc,
            )

        secrets = await self.dev_servers.current_secrets(project)

        task = await self.task_service.spawn(
            self.sandbox.deploy_web(
                f"{self.git_base_url}/{project.repo_id}",
                domains=[deployment.domain],
                environment_variables=secrets,
            ),
            name=f"deploy-{project.id}",
        )
        return deployment, task
