from __future__ import annotations

import logging
from datetime import UTC, datetime

from codegen_versions.backends.base import BackendAdapter
from codegen_versions.clients.neon import NeonClient
from codegen_versions.errors import (
    ConfigurationError,
    DestroyError,
    OrchestrationError,
    RollbackError,
    SnapshotError,
    ValidationError,
)
from codegen_versions.models.project import BackendSnapshot, BackendType

logger = logging.getLogger(__name__)


class NeonBackendAdapter(BackendAdapter):
    type = BackendType.NEON

    def __init__(self, neon_project_id: str | None, client: NeonClient):
        self.neon_project_id = neon_project_id
        self.client = client

    def _require_project_id(self) -> str:
        if not self.neon_project_id:
            raise ConfigurationError("Missing Neon project id (backend_project_id)")
        return self.neon_project_id

    async def provision(self, project_id: str) -> None:
        # Neon projects are created together with the project row.
        self._require_project_id()

    async def destroy(self, project_id: str) -> None:
        neon_project_id = self._require_project_id()
        try:
            await self.client.delete_project(neon_project_id)
        except OrchestrationError as exc:
            raise DestroyError(f"Failed to delete Neon project {neon_project_id}: {exc}") from exc

    async def snapshot(self, project_id: str) -> BackendSnapshot:
        neon_project_id = self._require_project_id()
        created_at = datetime.now(UTC)
        try:
            snapshot_id = await self.client.create_snapshot(
                neon_project_id,
                name=f"checkpoint-{int(created_at.timestamp() * 1000)}",
                timestamp=created_at.isoformat(),
            )
        except OrchestrationError as exc:
            raise SnapshotError(
                f"Failed to snapshot Neon project {neon_project_id}: {exc}"
            ) from exc
        logger.info(f"Neon snapshot {snapshot_id} captured for project {project_id}")
        return BackendSnapshot(id=snapshot_id, created_at=created_at)

    async def rollback(self, project_id: str, snapshot_id: str) -> None:
        neon_project_id = self._require_project_id()
        try:
            branch = await self.client.require_production_branch(neon_project_id)
            await self.client.apply_snapshot(neon_project_id, snapshot_id, branch.id)
        except OrchestrationError as exc:
            raise RollbackError(
                f"Failed to restore snapshot {snapshot_id} on Neon project {neon_project_id}: {exc}"
            ) from exc

    async def build_env(self, project_id: str) -> dict[str, str]:
        neon_project_id = self._require_project_id()
        database_url = await self.client.get_connection_uri(neon_project_id)
        return {"DATABASE_URL": database_url}

    async def validate(self, project_id: str) -> None:
        if not self.neon_project_id:
            raise ValidationError(f"Project {project_id} has no Neon project id")
