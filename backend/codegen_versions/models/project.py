from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(UTC)


class BackendType(str, Enum):
    """Database backend families a project can be created with."""

    NEON = "neon"
    FIREBASE = "firebase"
    AWS = "aws"


INITIAL_VERSION_SUMMARY = "Initial project setup"
MANUAL_CHECKPOINT_SUMMARY = "Manual checkpoint"


class Project(BaseModel):
    """Domain representation of a codegen project."""

    id: str
    name: str
    repo_id: str
    # Kept as a plain string so unknown values reach adapter dispatch and fail there.
    backend_type: str
    backend_project_id: str | None = None
    thread_id: str
    user_id: str
    current_dev_version_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class ProjectVersion(BaseModel):
    """Immutable (commit, snapshot, secrets) triple."""

    id: str
    project_id: str
    git_commit_hash: str
    snapshot_id: str
    assistant_message_id: str | None = None
    summary: str
    created_at: datetime = Field(default_factory=_utcnow)


class BackendSnapshot(BaseModel):
    """Reference to a backend point-in-time capture owned by the provider."""

    id: str
    created_at: datetime = Field(default_factory=_utcnow)
    meta: dict[str, Any] = Field(default_factory=dict)


class WorkflowResult(BaseModel):
    success: bool
    version_id: str | None = None


@dataclass(slots=True)
class TeardownFailure:
    """External resource left behind after a project's rows were deleted."""

    resource: str
    reference: str
    error: str


@dataclass(slots=True)
class DeleteProjectResult:
    project_id: str
    orphaned: list[TeardownFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.orphaned


@dataclass(slots=True)
class Deployment:
    """Public address a project is published under."""

    domain: str
    url: str
