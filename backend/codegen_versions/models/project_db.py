from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from codegen_versions.database import Base


def _uuid() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ProjectDB(Base):
    """Database row for a codegen project and its current-version pointer."""

    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    repo_id = Column(String, nullable=False)
    backend_type = Column(String, nullable=False)
    backend_project_id = Column(String, nullable=True)
    thread_id = Column(String, nullable=False)
    user_id = Column(String, nullable=False, index=True)
    # Cleared before versions are deleted; see the delete-project workflow.
    current_dev_version_id = Column(
        String(36),
        ForeignKey("project_versions.id", use_alter=True, name="fk_projects_current_dev_version"),
        nullable=True,
    )
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    versions = relationship(
        "ProjectVersionDB",
        back_populates="project",
        foreign_keys="ProjectVersionDB.project_id",
        order_by="ProjectVersionDB.created_at",
    )


class ProjectVersionDB(Base):
    """Write-once row binding a commit, a backend snapshot and a secrets bundle."""

    __tablename__ = "project_versions"

    id = Column(String(36), primary_key=True, default=_uuid)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    git_commit_hash = Column(String, nullable=False)
    snapshot_id = Column(String, nullable=False)
    assistant_message_id = Column(String, nullable=True)
    summary = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    project = relationship("ProjectDB", back_populates="versions", foreign_keys=[project_id])


class ProjectSecretDB(Base):
    """Encrypted environment bundle for exactly one version."""

    __tablename__ = "project_secrets"

    id = Column(String(36), primary_key=True, default=_uuid)
    project_version_id = Column(
        String(36),
        ForeignKey("project_versions.id"),
        nullable=False,
        index=True,
    )
    secrets = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
