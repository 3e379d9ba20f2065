from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from codegen_versions.backends import get_backend_adapter
from codegen_versions.errors import ConfigurationError, UnsupportedBackendError
from codegen_versions.models.project import (
    BackendType,
    DeleteProjectResult,
    Project,
    TeardownFailure,
    WorkflowResult,
)
from codegen_versions.services.steps import VersionSteps, build_secrets_from_neon_auth

logger = logging.getLogger(__name__)


class VersionWorkflows:
    """Multi-step procedures that keep commit, snapshot and secrets in lockstep.

    Steps without a data dependency on each other run concurrently; a step
    that needs another's output always waits for it.
    """

    def __init__(self, steps: VersionSteps):
        self.steps = steps

    def _require_backend(self, project: Project, action: str) -> None:
        """Reject projects whose backend cannot be snapshotted, before any external call."""
        get_backend_adapter(project, self.steps.neon)
        if not project.backend_project_id:
            raise ConfigurationError(
                f"Project {project.id} has no backend_project_id; cannot {action}"
            )

    async def initialize_first_version(self, project: Project) -> WorkflowResult:
        if project.backend_type != BackendType.NEON.value:
            raise UnsupportedBackendError(project.backend_type)
        self._require_backend(project, "create initial version")
        neon_project_id = project.backend_project_id

        branch = await self.steps.get_neon_production_branch(neon_project_id)

        auth, database_url, commit_hash, snapshot_id = await asyncio.gather(
            self.steps.init_neon_auth(neon_project_id, branch.id),
            self.steps.get_database_connection_uri(neon_project_id),
            self.steps.get_latest_commit_hash(project.repo_id),
            self.steps.create_backend_snapshot(project),
        )

        version = await self.steps.create_initial_version(project.id, commit_hash, snapshot_id)

        secrets = build_secrets_from_neon_auth(auth, database_url)
        await asyncio.gather(
            self.steps.save_project_secrets(version.id, secrets),
            self.steps.set_current_dev_version(project.id, version.id),
            self.steps.warm_up_dev_server(project, secrets),
        )

        logger.info(f"Initial version {version.id} ready for project {project.id}")
        return WorkflowResult(success=True, version_id=version.id)

    async def create_manual_checkpoint(
        self,
        project: Project,
        current_dev_version_id: str,
        assistant_message_id: str | None = None,
    ) -> WorkflowResult:
        """Checkpoint the live state.

        ``current_dev_version_id`` is passed in rather than read from the
        project because the pointer may have moved since the request.
        """
        self._require_backend(project, "create checkpoint")

        commit_hash, snapshot_id = await asyncio.gather(
            self.steps.get_latest_commit_hash(project.repo_id),
            self.steps.create_backend_snapshot(project),
        )

        version = await self.steps.create_checkpoint_version(
            project.id, commit_hash, snapshot_id, assistant_message_id
        )

        await asyncio.gather(
            self.steps.copy_project_secrets(current_dev_version_id, version.id),
            self.steps.set_current_dev_version(project.id, version.id),
        )

        logger.info(f"Checkpoint {version.id} created for project {project.id}")
        return WorkflowResult(success=True, version_id=version.id)

    async def record_agent_checkpoint(
        self,
        project: Project,
        message: str,
        environment_variables: Mapping[str, str],
        assistant_message_id: str | None = None,
    ) -> WorkflowResult:
        """Commit the sandbox's work and record it as a version.

        The commit message becomes the version summary and the agent's
        final environment becomes its secrets bundle.
        """
        self._require_backend(project, "record checkpoint")

        await self.steps.commit_and_push(project, message)

        commit_hash, snapshot_id = await asyncio.gather(
            self.steps.get_latest_commit_hash(project.repo_id),
            self.steps.create_backend_snapshot(project),
        )

        version = await self.steps.create_checkpoint_version(
            project.id,
            commit_hash,
            snapshot_id,
            assistant_message_id,
            summary=message,
        )

        await asyncio.gather(
            self.steps.save_project_secrets(version.id, environment_variables),
            self.steps.set_current_dev_version(project.id, version.id),
        )
        return WorkflowResult(success=True, version_id=version.id)

    async def delete_project(self, project: Project) -> DeleteProjectResult:
        """Delete local rows, then tear down external resources.

        Rows go first and in foreign-key order. A failed external teardown is
        logged and reported as orphaned; the deleted rows stay deleted.
        """
        version_ids = await self.steps.get_project_version_ids(project.id)

        await self.steps.clear_current_dev_version(project.id)
        if version_ids:
            await self.steps.delete_project_secrets(version_ids)
        await self.steps.delete_project_versions(project.id)
        await self.steps.delete_project_record(project.id)

        teardown = {
            ("repository", project.repo_id): self.steps.delete_repository(project.repo_id),
            ("backend", project.backend_project_id or ""): self.steps.delete_backend_project(project),
            ("thread", project.thread_id): self.steps.delete_thread_resource(
                project.user_id, project.thread_id
            ),
        }
        outcomes = await asyncio.gather(*teardown.values(), return_exceptions=True)

        result = DeleteProjectResult(project_id=project.id)
        for (resource, reference), outcome in zip(teardown, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    f"[DELETE Project] Failed to delete {resource} {reference!r} of project "
                    f"{project.id}; it is now orphaned: {outcome}",
                    exc_info=outcome,
                )
                result.orphaned.append(
                    TeardownFailure(resource=resource, reference=reference, error=str(outcome))
                )

        logger.info(f"[DELETE Project] Project {project.id} deleted")
        return result
