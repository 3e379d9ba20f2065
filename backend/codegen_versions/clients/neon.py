from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime

import httpx

from codegen_versions.clients import normalize
from codegen_versions.clients.http import JsonApiClient
from codegen_versions.clients.poller import OperationPoller, log_operation_update
from codegen_versions.errors import (
    ConfigurationError,
    ExternalServiceError,
    OperationFailedError,
    OrchestrationError,
    ProductionBranchNotFoundError,
)
from codegen_versions.models.neon import (
    PRODUCTION_BRANCH_NAMES,
    AuthDomain,
    Branch,
    CreatedProject,
    NeonAuth,
    OperationStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://console.neon.tech/api/v2"
DEFAULT_DATABASE = "neondb"
DEFAULT_ROLE = "neondb_owner"
DEFAULT_AUTH_PROVIDER = "stack"

_VERCEL_MANAGED = re.compile(r"organization is managed by Vercel", re.IGNORECASE)


class NeonClient(JsonApiClient):
    """Typed facade over the Neon control-plane REST API."""

    service = "neon"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        poll_interval: float = 5.0,
        operation_timeout: float = 300.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__(api_key, base_url=base_url, client=client, timeout=timeout)
        self.poller = OperationPoller(
            self.fetch_operation_status,
            poll_interval=poll_interval,
            timeout=operation_timeout,
            sleep=sleep,
        )

    async def _settle(
        self,
        project_id: str,
        operation_ids: Sequence[str],
        operation: str,
    ) -> dict[str, OperationStatus]:
        if not operation_ids:
            logger.info(f"[Neon] No operations returned from {operation}")
            return {}

        logger.info(f"[Neon] Waiting for {operation} operations to settle: {list(operation_ids)}")
        statuses = await self.poller.wait_for_many(
            project_id,
            operation_ids,
            on_update=log_operation_update,
        )
        failed = {
            op_id: status.value
            for op_id, status in statuses.items()
            if status is OperationStatus.FAILED
        }
        if failed:
            raise OperationFailedError(self.service, operation, failed)

        cancelled = [op_id for op_id, status in statuses.items() if status is OperationStatus.CANCELLED]
        if cancelled:
            logger.warning(f"[Neon] {operation} operations were cancelled: {cancelled}")
        logger.info(f"[Neon] {operation} operations settled")
        return statuses

    # Projects

    async def create_project(self, name: str) -> CreatedProject:
        logger.info(f"[Neon] Creating project {name!r}")
        try:
            payload = await self._request(
                "create_project", "POST", "/projects", json={"project": {"name": name}}
            )
        except ExternalServiceError as exc:
            if exc.status_code == 404 and _VERCEL_MANAGED.search(exc.detail):
                raise ConfigurationError(
                    "Neon API key belongs to a Vercel-managed organization; creating "
                    "projects via the API is restricted. Use a standalone Neon API key."
                ) from exc
            raise

        project_id, database_url, operation_ids = normalize.parse_created_project(payload).unwrap(
            "create_project"
        )
        logger.info(f"[Neon] Created project {project_id}")

        # The connection uri may point at a compute that is still starting.
        await self._settle(project_id, operation_ids, "create_project")
        return CreatedProject(backend_project_id=project_id, database_url=database_url)

    async def delete_project(self, project_id: str) -> None:
        logger.info(f"[Neon] Deleting project {project_id}")
        await self._request("delete_project", "DELETE", f"/projects/{project_id}")
        logger.info(f"[Neon] Project {project_id} deleted")

    # Neon Auth

    async def init_neon_auth(
        self,
        project_id: str,
        branch_id: str,
        database_name: str = DEFAULT_DATABASE,
        role_name: str = DEFAULT_ROLE,
    ) -> NeonAuth:
        logger.info(f"[Neon] Initializing Neon Auth for project {project_id}")
        payload = await self._request(
            "init_neon_auth",
            "POST",
            "/projects/auth/create",
            json={
                "auth_provider": DEFAULT_AUTH_PROVIDER,
                "project_id": project_id,
                "branch_id": branch_id,
                "database_name": database_name,
                "role_name": role_name,
            },
        )
        auth = normalize.parse_neon_auth(payload).unwrap("init_neon_auth")
        logger.info(f"[Neon] Neon Auth initialized: {auth.auth_provider_project_id}")
        return auth

    async def get_neon_auth_keys(
        self,
        project_id: str,
        auth_provider: str = DEFAULT_AUTH_PROVIDER,
    ) -> NeonAuth:
        payload = await self._request(
            "get_neon_auth_keys",
            "POST",
            "/projects/auth/keys",
            json={"auth_provider": auth_provider, "project_id": project_id},
        )
        return normalize.parse_neon_auth(payload).unwrap("get_neon_auth_keys")

    async def list_auth_domains(self, project_id: str) -> list[AuthDomain]:
        payload = await self._request(
            "list_auth_domains", "GET", f"/projects/{project_id}/auth/domains"
        )
        return normalize.parse_auth_domains(payload).unwrap("list_auth_domains")

    async def add_auth_domain(
        self,
        project_id: str,
        domain: str,
        auth_provider: str = DEFAULT_AUTH_PROVIDER,
    ) -> None:
        """Allow-list ``domain``; a no-op when the pair is already present."""
        logger.info(f"[Neon] Adding auth domain {domain} for project {project_id}")
        try:
            existing = await self.list_auth_domains(project_id)
        except OrchestrationError as exc:
            logger.warning(
                f"[Neon] Failed to check existing auth domains, attempting add anyway: {exc}"
            )
        else:
            if any(d.domain == domain and d.auth_provider == auth_provider for d in existing):
                logger.info(f"[Neon] Auth domain {domain} already exists, skipping add")
                return

        await self._request(
            "add_auth_domain",
            "POST",
            f"/projects/{project_id}/auth/domains",
            json={"domain": domain, "auth_provider": auth_provider},
        )
        logger.info(f"[Neon] Auth domain {domain} added")

    # Connection URI

    async def get_connection_uri(
        self,
        project_id: str,
        *,
        branch_id: str | None = None,
        database_name: str = DEFAULT_DATABASE,
        role_name: str = DEFAULT_ROLE,
        endpoint_id: str | None = None,
        pooled: bool | None = None,
    ) -> str:
        params = {"database_name": database_name, "role_name": role_name}
        if branch_id:
            params["branch_id"] = branch_id
        if endpoint_id:
            params["endpoint_id"] = endpoint_id
        if pooled is not None:
            params["pooled"] = "true" if pooled else "false"

        logger.info(f"[Neon] Getting connection URI for project {project_id}")
        payload = await self._request(
            "get_connection_uri",
            "GET",
            f"/projects/{project_id}/connection_uri",
            params=params,
        )
        return normalize.parse_connection_uri(payload).unwrap("get_connection_uri")

    # Branches

    async def get_all_branches(self, project_id: str) -> list[Branch]:
        payload = await self._request("get_all_branches", "GET", f"/projects/{project_id}/branches")
        branches = normalize.parse_branch_list(payload).unwrap("get_all_branches")
        logger.debug(f"[Neon] Found branches: {[b.name or b.id for b in branches]}")
        return branches

    async def get_production_branch(self, project_id: str) -> Branch | None:
        """Resolve the writable branch by name, ``main`` first then ``production``.

        Never cached: a snapshot restore can change which branch carries the name.
        """
        branches = await self.get_all_branches(project_id)
        for name in PRODUCTION_BRANCH_NAMES:
            match = next((b for b in branches if b.name == name), None)
            if match is not None:
                return match
        return None

    async def require_production_branch(self, project_id: str) -> Branch:
        branch = await self.get_production_branch(project_id)
        if branch is None:
            raise ProductionBranchNotFoundError(project_id)
        return branch

    # Snapshots

    async def create_snapshot(
        self,
        project_id: str,
        *,
        name: str | None = None,
        timestamp: str | None = None,
    ) -> str:
        logger.info(f"[Neon] Creating snapshot for project {project_id}")
        branch = await self.require_production_branch(project_id)
        payload = await self._request(
            "create_snapshot",
            "POST",
            f"/projects/{project_id}/branches/{branch.id}/snapshot",
            json={
                "timestamp": timestamp or datetime.now(UTC).isoformat(),
                "name": name,
            },
        )
        snapshot_id = normalize.parse_snapshot_id(payload).unwrap("create_snapshot")
        logger.info(f"[Neon] Snapshot created: {snapshot_id}")
        return snapshot_id

    async def apply_snapshot(
        self,
        project_id: str,
        snapshot_id: str,
        target_branch_id: str,
    ) -> dict[str, OperationStatus]:
        """Restore ``snapshot_id`` onto ``target_branch_id`` and wait for it.

        The restore schedules timeline unarchive, branch creation and compute
        suspension; all of them must settle before the restore is complete.
        """
        logger.info(f"[Neon] Applying snapshot {snapshot_id} to branch {target_branch_id}")
        stamp = int(datetime.now(UTC).timestamp() * 1000)
        payload = await self._request(
            "apply_snapshot",
            "POST",
            f"/projects/{project_id}/snapshots/{snapshot_id}/restore",
            json={
                "name": f"before_restore_{stamp}",
                "finalize_restore": True,
                "target_branch_id": target_branch_id,
            },
        )
        return await self._settle(project_id, normalize.parse_operation_ids(payload), "apply_snapshot")

    # Operations

    async def fetch_operation_status(self, project_id: str, operation_id: str) -> OperationStatus:
        payload = await self._request(
            "get_operation",
            "GET",
            f"/projects/{project_id}/operations/{operation_id}",
        )
        return normalize.parse_operation_status(payload).unwrap("get_operation")
