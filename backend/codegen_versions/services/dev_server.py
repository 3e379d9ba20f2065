from __future__ import annotations

import logging
from collections.abc import Mapping

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codegen_versions.clients.neon import NeonClient
from codegen_versions.clients.sandbox import DevServer, SandboxGateway
from codegen_versions.errors import ConfigurationError, SecretsNotFoundError
from codegen_versions.models.project import BackendType, Project
from codegen_versions.repositories.project_repository import ProjectRepository
from codegen_versions.services.secrets_codec import SecretsCodec

logger = logging.getLogger(__name__)


class DevServerService:
    """Requests live dev servers with the right environment and allow-listing."""

    def __init__(
        self,
        sandbox: SandboxGateway,
        neon: NeonClient,
        codec: SecretsCodec,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.sandbox = sandbox
        self.neon = neon
        self.codec = codec
        self.session_factory = session_factory

    async def current_secrets(self, project: Project) -> dict[str, str]:
        if not project.current_dev_version_id:
            raise ConfigurationError(f"No current dev version found for project: {project.id}")

        async with self.session_factory() as session:
            ciphertext = await ProjectRepository(session).select_secrets(
                project.current_dev_version_id
            )
        if ciphertext is None:
            raise SecretsNotFoundError(project.current_dev_version_id)
        return self.codec.decrypt_bundle(ciphertext)

    async def request_dev_server(
        self,
        project: Project,
        environment_variables: Mapping[str, str] | None = None,
    ) -> DevServer:
        """Start or reuse the project's dev server.

        Uses ``environment_variables`` when given, otherwise the decrypted
        secrets of the current version. The server's origin is allow-listed
        for Neon Auth before returning.
        """
        neon_project_id: str | None = None
        if project.backend_type == BackendType.NEON.value:
            neon_project_id = project.backend_project_id
            if not neon_project_id:
                raise ConfigurationError(
                    f"Project {project.id} is not configured with a Neon project id"
                )

        if environment_variables is None:
            environment_variables = await self.current_secrets(project)
        logger.info(
            f"[DevServer] Requesting dev server for project {project.id} "
            f"with {len(environment_variables)} environment variables"
        )

        dev_server = await self.sandbox.request_dev_server(project.repo_id, environment_variables)
        logger.info(
            f"[DevServer] Dev server ready at {dev_server.ephemeral_url} (new={dev_server.is_new})"
        )

        if neon_project_id:
            logger.info(f"[DevServer] Allow-listing {dev_server.origin} in Neon Auth")
            await self.neon.add_auth_domain(neon_project_id, dev_server.origin)

        return dev_server
