from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from codegen_versions.errors import (
    ProjectNotFoundError,
    StalePointerError,
    VersionNotFoundError,
)
from codegen_versions.models.project import Project, ProjectVersion
from codegen_versions.models.project_db import ProjectDB, ProjectSecretDB, ProjectVersionDB


class ProjectRepository:
    """Repository for projects, their versions and the versions' secrets."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _project_db_to_model(self, project_db: ProjectDB) -> Project:
        return Project(
            id=project_db.id,
            name=project_db.name,
            repo_id=project_db.repo_id,
            backend_type=project_db.backend_type,
            backend_project_id=project_db.backend_project_id,
            thread_id=project_db.thread_id,
            user_id=project_db.user_id,
            current_dev_version_id=project_db.current_dev_version_id,
            created_at=project_db.created_at,
            updated_at=project_db.updated_at,
        )

    def _version_db_to_model(self, version_db: ProjectVersionDB) -> ProjectVersion:
        return ProjectVersion(
            id=version_db.id,
            project_id=version_db.project_id,
            git_commit_hash=version_db.git_commit_hash,
            snapshot_id=version_db.snapshot_id,
            assistant_message_id=version_db.assistant_message_id,
            summary=version_db.summary,
            created_at=version_db.created_at,
        )

    # Projects

    async def create_project(
        self,
        *,
        name: str,
        repo_id: str,
        backend_type: str,
        backend_project_id: str | None,
        thread_id: str,
        user_id: str,
        project_id: str | None = None,
    ) -> Project:
        project_db = ProjectDB(
            name=name,
            repo_id=repo_id,
            backend_type=backend_type,
            backend_project_id=backend_project_id,
            thread_id=thread_id,
            user_id=user_id,
            current_dev_version_id=None,
        )
        if project_id is not None:
            project_db.id = project_id
        self.session.add(project_db)
        await self.session.commit()
        await self.session.refresh(project_db)
        return self._project_db_to_model(project_db)

    async def get_project(self, project_id: str, user_id: str | None = None) -> Project:
        query = select(ProjectDB).where(ProjectDB.id == project_id)
        if user_id:
            query = query.where(ProjectDB.user_id == user_id)

        result = await self.session.execute(query)
        project_db = result.scalar_one_or_none()
        if not project_db:
            raise ProjectNotFoundError(project_id)
        return self._project_db_to_model(project_db)

    async def update_project_pointer(
        self,
        project_id: str,
        version_id: str,
        *,
        expected_version_id: str | None = None,
    ) -> None:
        """Make ``version_id`` the project's current version.

        Unconditional last-write-wins unless ``expected_version_id`` is given,
        in which case the update only applies while the stored pointer still
        equals it.
        """
        version = await self.get_version(version_id, project_id=project_id)

        statement = (
            update(ProjectDB)
            .where(ProjectDB.id == project_id)
            .values(current_dev_version_id=version.id, updated_at=datetime.now(UTC))
        )
        if expected_version_id is not None:
            statement = statement.where(ProjectDB.current_dev_version_id == expected_version_id)

        result = await self.session.execute(statement)
        await self.session.commit()
        if result.rowcount == 0:
            current = await self.get_project(project_id)
            raise StalePointerError(project_id, expected_version_id, current.current_dev_version_id)

    async def clear_project_pointer(self, project_id: str) -> None:
        await self.session.execute(
            update(ProjectDB)
            .where(ProjectDB.id == project_id)
            .values(current_dev_version_id=None, updated_at=datetime.now(UTC))
        )
        await self.session.commit()

    async def delete_project(self, project_id: str) -> None:
        await self.session.execute(delete(ProjectDB).where(ProjectDB.id == project_id))
        await self.session.commit()

    # Versions

    async def insert_version(
        self,
        *,
        project_id: str,
        git_commit_hash: str,
        snapshot_id: str,
        summary: str,
        assistant_message_id: str | None = None,
    ) -> ProjectVersion:
        version_db = ProjectVersionDB(
            project_id=project_id,
            git_commit_hash=git_commit_hash,
            snapshot_id=snapshot_id,
            assistant_message_id=assistant_message_id,
            summary=summary,
        )
        self.session.add(version_db)
        await self.session.commit()
        await self.session.refresh(version_db)
        return self._version_db_to_model(version_db)

    async def get_version(self, version_id: str, project_id: str | None = None) -> ProjectVersion:
        query = select(ProjectVersionDB).where(ProjectVersionDB.id == version_id)
        if project_id:
            query = query.where(ProjectVersionDB.project_id == project_id)
        result = await self.session.execute(query)
        version_db = result.scalar_one_or_none()
        if not version_db:
            raise VersionNotFoundError(version_id)
        return self._version_db_to_model(version_db)

    async def list_versions(self, project_id: str) -> list[ProjectVersion]:
        result = await self.session.execute(
            select(ProjectVersionDB)
            .where(ProjectVersionDB.project_id == project_id)
            .order_by(ProjectVersionDB.created_at.desc())
        )
        return [self._version_db_to_model(v) for v in result.scalars().all()]

    async def list_version_ids(self, project_id: str) -> list[str]:
        result = await self.session.execute(
            select(ProjectVersionDB.id).where(ProjectVersionDB.project_id == project_id)
        )
        return list(result.scalars().all())

    async def delete_versions(self, project_id: str) -> None:
        await self.session.execute(
            delete(ProjectVersionDB).where(ProjectVersionDB.project_id == project_id)
        )
        await self.session.commit()

    # Secrets

    async def insert_secrets(self, version_id: str, ciphertext: str) -> None:
        self.session.add(ProjectSecretDB(project_version_id=version_id, secrets=ciphertext))
        await self.session.commit()

    async def select_secrets(self, version_id: str) -> str | None:
        result = await self.session.execute(
            select(ProjectSecretDB.secrets)
            .where(ProjectSecretDB.project_version_id == version_id)
            .order_by(ProjectSecretDB.created_at.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_secrets(self, version_id: str) -> int:
        result = await self.session.execute(
            select(func.count(ProjectSecretDB.id)).where(
                ProjectSecretDB.project_version_id == version_id
            )
        )
        return result.scalar_one()

    async def delete_secrets(self, version_ids: Sequence[str]) -> None:
        await self.session.execute(
            delete(ProjectSecretDB).where(ProjectSecretDB.project_version_id.in_(list(version_ids)))
        )
        await self.session.commit()
