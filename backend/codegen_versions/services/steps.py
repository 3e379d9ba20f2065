"""Single-purpose units of work that the version workflows sequence.

Each step performs one external effect and opens its own database session,
so steps that a workflow fans out concurrently never share a session. Steps
never call each other. A durable host may re-run a step after a crash, so
every step here is either naturally idempotent or documented as
at-most-once per workflow run.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codegen_versions.backends import get_backend_adapter
from codegen_versions.clients.neon import NeonClient
from codegen_versions.clients.sandbox import SandboxGateway
from codegen_versions.clients.threads import ThreadClient
from codegen_versions.models.neon import Branch, NeonAuth
from codegen_versions.models.project import (
    INITIAL_VERSION_SUMMARY,
    MANUAL_CHECKPOINT_SUMMARY,
    Project,
    ProjectVersion,
)
from codegen_versions.repositories.project_repository import ProjectRepository
from codegen_versions.services.dev_server import DevServerService
from codegen_versions.services.secrets_codec import SecretsCodec
from codegen_versions.services.task_service import TaskService

logger = logging.getLogger(__name__)


def build_secrets_from_neon_auth(auth: NeonAuth, database_url: str) -> dict[str, str]:
    return {
        "NEXT_PUBLIC_STACK_PROJECT_ID": auth.auth_provider_project_id,
        "NEXT_PUBLIC_STACK_PUBLISHABLE_CLIENT_KEY": auth.pub_client_key,
        "STACK_SECRET_SERVER_KEY": auth.secret_server_key,
        "DATABASE_URL": database_url,
    }


class VersionSteps:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        codec: SecretsCodec,
        neon: NeonClient,
        sandbox: SandboxGateway,
        threads: ThreadClient,
        dev_servers: DevServerService,
        task_service: TaskService,
    ):
        self.session_factory = session_factory
        self.codec = codec
        self.neon = neon
        self.sandbox = sandbox
        self.threads = threads
        self.dev_servers = dev_servers
        self.task_service = task_service

    # Backend

    async def get_neon_production_branch(self, neon_project_id: str) -> Branch:
        logger.info("[Projects] Getting production branch for Neon Auth...")
        branch = await self.neon.require_production_branch(neon_project_id)
        logger.info(f"[Projects] Production branch ID: {branch.id}")
        return branch

    async def init_neon_auth(self, neon_project_id: str, branch_id: str) -> NeonAuth:
        logger.info("[Projects] Initializing Neon Auth...")
        auth = await self.neon.init_neon_auth(neon_project_id, branch_id)
        logger.info(f"[Projects] Neon Auth initialized: {auth.auth_provider_project_id}")
        return auth

    async def get_database_connection_uri(self, neon_project_id: str) -> str:
        logger.info("[Projects] Getting database connection URI...")
        database_url = await self.neon.get_connection_uri(neon_project_id)
        logger.info("[Projects] Database URL retrieved")
        return database_url

    async def create_backend_snapshot(self, project: Project) -> str:
        logger.info(f"[Projects] Creating {project.backend_type} snapshot for {project.id}...")
        backend = get_backend_adapter(project, self.neon)
        snapshot = await backend.snapshot(project.id)
        logger.info(f"[Projects] Snapshot created: {snapshot.id}")
        return snapshot.id

    async def build_backend_env(self, project: Project) -> dict[str, str]:
        backend = get_backend_adapter(project, self.neon)
        return await backend.build_env(project.id)

    # Sandbox

    async def get_latest_commit_hash(self, repo_id: str) -> str:
        logger.info("[Projects] Getting latest commit hash...")
        commit_hash = await self.sandbox.get_latest_commit(repo_id)
        logger.info(f"[Projects] Latest commit hash: {commit_hash}")
        return commit_hash

    async def commit_and_push(self, project: Project, message: str) -> None:
        await self.sandbox.commit_and_push(project.repo_id, message)

    async def warm_up_dev_server(self, project: Project, secrets: Mapping[str, str]) -> None:
        """Start the dev server in the background and return immediately."""
        logger.info(f"[Projects] Warming up dev server for {project.id}...")
        await self.task_service.spawn(
            self.dev_servers.request_dev_server(project, dict(secrets)),
            name=f"warm-up-{project.id}",
        )

    # Versions

    async def create_initial_version(
        self,
        project_id: str,
        git_commit_hash: str,
        snapshot_id: str,
    ) -> ProjectVersion:
        """Insert version 0. At most once per project; the workflow guarantees it."""
        logger.info("[Projects] Creating initial version...")
        async with self.session_factory() as session:
            version = await ProjectRepository(session).insert_version(
                project_id=project_id,
                git_commit_hash=git_commit_hash,
                snapshot_id=snapshot_id,
                assistant_message_id=None,
                summary=INITIAL_VERSION_SUMMARY,
            )
        logger.info(f"[Projects] Initial version created: {version.id}")
        return version

    async def create_checkpoint_version(
        self,
        project_id: str,
        git_commit_hash: str,
        snapshot_id: str,
        assistant_message_id: str | None = None,
        summary: str = MANUAL_CHECKPOINT_SUMMARY,
    ) -> ProjectVersion:
        logger.info("[Projects] Creating checkpoint version...")
        async with self.session_factory() as session:
            version = await ProjectRepository(session).insert_version(
                project_id=project_id,
                git_commit_hash=git_commit_hash,
                snapshot_id=snapshot_id,
                assistant_message_id=assistant_message_id,
                summary=summary,
            )
        logger.info(f"[Projects] Checkpoint version created: {version.id}")
        return version

    async def set_current_dev_version(
        self,
        project_id: str,
        version_id: str,
        *,
        expected_version_id: str | None = None,
    ) -> None:
        logger.info(f"[Projects] Setting current dev version of {project_id} to {version_id}...")
        async with self.session_factory() as session:
            await ProjectRepository(session).update_project_pointer(
                project_id, version_id, expected_version_id=expected_version_id
            )
        logger.info("[Projects] Current dev version set")

    # Secrets

    async def save_project_secrets(self, version_id: str, secrets: Mapping[str, str]) -> None:
        logger.info(f"[Projects] Saving {len(secrets)} secrets for version {version_id}...")
        async with self.session_factory() as session:
            repo = ProjectRepository(session)
            if await repo.count_secrets(version_id):
                logger.info(f"[Projects] Version {version_id} already has secrets, skipping")
                return
            await repo.insert_secrets(version_id, self.codec.encrypt_bundle(secrets))
        logger.info("[Projects] Project secrets saved (encrypted)")

    async def copy_project_secrets(self, from_version_id: str, to_version_id: str) -> None:
        """Decrypt the source bundle and store a freshly encrypted copy.

        A missing source bundle is not an error: the copy is skipped.
        """
        logger.info(f"[Projects] Copying secrets from version {from_version_id}")
        async with self.session_factory() as session:
            repo = ProjectRepository(session)
            ciphertext = await repo.select_secrets(from_version_id)
            if ciphertext is None:
                logger.warning(f"[Projects] No secrets found for {from_version_id}, skipping copy")
                return
            if await repo.count_secrets(to_version_id):
                logger.info(f"[Projects] Version {to_version_id} already has secrets, skipping")
                return

            secrets = self.codec.decrypt_bundle(ciphertext)
            await repo.insert_secrets(to_version_id, self.codec.encrypt_bundle(secrets))
        logger.info("[Projects] Secrets copied and re-encrypted")

    # Deletion

    async def get_project_version_ids(self, project_id: str) -> list[str]:
        logger.info("[DELETE Project] Fetching project versions...")
        async with self.session_factory() as session:
            version_ids = await ProjectRepository(session).list_version_ids(project_id)
        logger.info(f"[DELETE Project] Found {len(version_ids)} versions to delete")
        return version_ids

    async def clear_current_dev_version(self, project_id: str) -> None:
        logger.info("[DELETE Project] Clearing current dev version reference...")
        async with self.session_factory() as session:
            await ProjectRepository(session).clear_project_pointer(project_id)

    async def delete_project_secrets(self, version_ids: Sequence[str]) -> None:
        logger.info(f"[DELETE Project] Deleting secrets of {len(version_ids)} versions...")
        async with self.session_factory() as session:
            await ProjectRepository(session).delete_secrets(version_ids)

    async def delete_project_versions(self, project_id: str) -> None:
        logger.info("[DELETE Project] Deleting project versions...")
        async with self.session_factory() as session:
            await ProjectRepository(session).delete_versions(project_id)

    async def delete_project_record(self, project_id: str) -> None:
        logger.info("[DELETE Project] Deleting project record...")
        async with self.session_factory() as session:
            await ProjectRepository(session).delete_project(project_id)

    async def delete_backend_project(self, project: Project) -> None:
        logger.info(f"[DELETE Project] Destroying {project.backend_type} backend of {project.id}")
        backend = get_backend_adapter(project, self.neon)
        await backend.destroy(project.id)
        logger.info("[DELETE Project] Backend project deleted")

    async def delete_repository(self, repo_id: str) -> None:
        await self.sandbox.delete_repo(repo_id)
        logger.info(f"[DELETE Project] Repository {repo_id} deleted")

    async def delete_thread_resource(self, user_id: str, thread_id: str) -> None:
        await self.threads.delete_thread(user_id, thread_id)
        logger.info(f"[DELETE Project] Thread {thread_id} deleted")
