from __future__ import annotations

from abc import ABC, abstractmethod

from codegen_versions.models.project import BackendSnapshot, BackendType


class BackendAdapter(ABC):
    """Uniform capability set for a project's database backend.

    Version steps talk to backends only through this contract so they never
    branch on backend type.
    """

    type: BackendType

    @abstractmethod
    async def provision(self, project_id: str) -> None:
        """Ensure backend resources exist. Raises ``ProvisionError``."""

    @abstractmethod
    async def destroy(self, project_id: str) -> None:
        """Irreversibly remove backend data. Raises ``DestroyError``."""

    @abstractmethod
    async def snapshot(self, project_id: str) -> BackendSnapshot:
        """Capture the live state. Raises ``SnapshotError``."""

    @abstractmethod
    async def rollback(self, project_id: str, snapshot_id: str) -> None:
        """Apply ``snapshot_id`` onto the live resource. Raises ``RollbackError``."""

    @abstractmethod
    async def build_env(self, project_id: str) -> dict[str, str]:
        """Environment the sandbox needs to reach this backend."""

    @abstractmethod
    async def validate(self, project_id: str) -> None:
        """Cheap precondition check. Raises ``ValidationError``."""
