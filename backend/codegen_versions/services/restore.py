from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codegen_versions.backends import get_backend_adapter
from codegen_versions.clients.neon import NeonClient
from codegen_versions.clients.sandbox import SandboxGateway
from codegen_versions.errors import SecretsNotFoundError
from codegen_versions.models.project import Project, ProjectVersion
from codegen_versions.repositories.project_repository import ProjectRepository
from codegen_versions.services.dev_server import DevServerService
from codegen_versions.services.secrets_codec import SecretsCodec

logger = logging.getLogger(__name__)


class VersionRestoreService:
    """Rebuilds a past version on the live sandbox and database.

    Order matters: the sandbox's git state is reset before the backend
    snapshot is applied, and the project pointer only moves once both have
    succeeded. Any failure leaves the pointer where it was.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        codec: SecretsCodec,
        neon: NeonClient,
        sandbox: SandboxGateway,
        dev_servers: DevServerService,
    ):
        self.session_factory = session_factory
        self.codec = codec
        self.neon = neon
        self.sandbox = sandbox
        self.dev_servers = dev_servers

    async def restore(self, project: Project, version_id: str) -> ProjectVersion:
        backend = get_backend_adapter(project, self.neon)
        await backend.validate(project.id)

        async with self.session_factory() as session:
            repo = ProjectRepository(session)
            version = await repo.get_version(version_id, project_id=project.id)
            ciphertext = await repo.select_secrets(version.id)
        if ciphertext is None:
            raise SecretsNotFoundError(version.id)

        logger.info(
            f"[Restore] Restoring {project.id} to version {version.id} "
            f"(commit {version.git_commit_hash}, snapshot {version.snapshot_id})"
        )
        secrets = self.codec.decrypt_bundle(ciphertext)

        dev_server = await self.dev_servers.request_dev_server(project, secrets)

        await self.sandbox.reset_to_commit(dev_server.process, version.git_commit_hash)
        logger.info(f"[Restore] Git reset to {version.git_commit_hash}")

        await backend.rollback(project.id, version.snapshot_id)
        logger.info(f"[Restore] Snapshot {version.snapshot_id} applied")

        async with self.session_factory() as session:
            await ProjectRepository(session).update_project_pointer(project.id, version.id)

        logger.info(f"[Restore] Project {project.id} now at version {version.id}")
        return version
