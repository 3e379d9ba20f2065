"""Normalized shapes for the Neon control-plane."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class OperationStatus(str, Enum):
    """Lifecycle states of a control-plane operation."""

    SCHEDULING = "scheduling"
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"

    @property
    def is_settled(self) -> bool:
        """Whether polling should stop. ``FAILED`` stops polling too."""
        return self in SETTLED_STATUSES

    @property
    def is_successful(self) -> bool:
        return self in (OperationStatus.FINISHED, OperationStatus.SKIPPED)


SETTLED_STATUSES = frozenset(
    {
        OperationStatus.FINISHED,
        OperationStatus.SKIPPED,
        OperationStatus.CANCELLED,
        OperationStatus.FAILED,
    }
)

PRODUCTION_BRANCH_NAMES = ("main", "production")


class Branch(BaseModel):
    id: str
    name: str | None = None
    created_at: str | None = None
    parent_id: str | None = None


class CreatedProject(BaseModel):
    backend_project_id: str
    database_url: str


class NeonAuth(BaseModel):
    """Credentials returned when Neon Auth is provisioned for a project."""

    auth_provider: str
    auth_provider_project_id: str
    pub_client_key: str
    secret_server_key: str
    jwks_url: str | None = None
    schema_name: str | None = None
    table_name: str | None = None


class AuthDomain(BaseModel):
    domain: str
    auth_provider: str
