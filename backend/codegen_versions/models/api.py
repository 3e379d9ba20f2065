from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ProjectCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    source_url: str | None = Field(
        default=None,
        description="Git repository to seed the project from; defaults to the template",
    )


class ProjectResponse(BaseModel):
    id: str
    name: str
    repo_id: str
    backend_type: str
    backend_project_id: str | None = None
    thread_id: str
    current_dev_version_id: str | None = None
    created_at: datetime
    updated_at: datetime


class VersionItem(BaseModel):
    id: str
    git_commit_hash: str
    snapshot_id: str
    assistant_message_id: str | None = None
    summary: str
    created_at: datetime


class VersionListResponse(BaseModel):
    versions: list[VersionItem] = Field(default_factory=list)
    current_dev_version_id: str | None = None


class RestoreVersionRequest(BaseModel):
    version_id: str = Field(..., min_length=1)


class RestoreVersionResponse(BaseModel):
    message: str
    version: VersionItem


class CheckpointRequest(BaseModel):
    assistant_message_id: str | None = Field(default=None, min_length=1)


class AcceptedResponse(BaseModel):
    message: str
    project_id: str


class AgentCheckpointRequest(BaseModel):
    message: str = Field(..., min_length=1, description="Commit message, kept as the version summary")
    environment_variables: dict[str, str] = Field(default_factory=dict)
    assistant_message_id: str | None = Field(default=None, min_length=1)


class CheckpointCreatedResponse(BaseModel):
    version_id: str


class DeployResponse(BaseModel):
    message: str
    domain: str
    url: str


class DeploymentStatusResponse(BaseModel):
    domain: str
    url: str
    status: str
