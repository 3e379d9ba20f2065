from __future__ import annotations

import logging
from datetime import UTC, datetime

import httpx

from codegen_versions.clients.http import JsonApiClient
from codegen_versions.errors import ConfigurationError, ResponseShapeError

logger = logging.getLogger(__name__)


def normalize_api_key(raw: str) -> str:
    key = raw.strip()
    if key.lower().startswith("bearer "):
        key = key[7:].strip()
    return key


class ThreadClient(JsonApiClient):
    """Chat-thread resources that belong to a project."""

    service = "threads"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(normalize_api_key(api_key), base_url=base_url, client=client, timeout=timeout)

    def _scoped(self, user_id: str) -> dict[str, str]:
        if not self._api_key:
            raise ConfigurationError("assistant_api_key is empty")
        return {"user_id": user_id, "workspace_id": user_id}

    async def create_thread(self, user_id: str, project_name: str) -> str:
        logger.info(f"[Threads] Creating thread for project {project_name!r}")
        payload = await self._request(
            "create_thread",
            "POST",
            "/v1/threads",
            params=self._scoped(user_id),
            json={
                "last_message_at": datetime.now(UTC).isoformat(),
                "metadata": {"projectName": project_name},
            },
        )
        thread_id = payload.get("thread_id") if isinstance(payload, dict) else None
        if not isinstance(thread_id, str) or not thread_id:
            raise ResponseShapeError("create_thread", "thread_id missing")
        return thread_id

    async def delete_thread(self, user_id: str, thread_id: str) -> None:
        logger.info(f"[Threads] Deleting thread {thread_id}")
        await self._request(
            "delete_thread",
            "DELETE",
            f"/v1/threads/{thread_id}",
            params=self._scoped(user_id),
        )
