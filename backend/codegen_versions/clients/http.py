from __future__ import annotations

import logging
from typing import Any

import httpx

from codegen_versions.errors import ExternalServiceError, ResponseShapeError

logger = logging.getLogger(__name__)


class JsonApiClient:
    """Base for bearer-token JSON APIs.

    Non-2xx responses and transport failures become
    :class:`ExternalServiceError` carrying the operation name and raw body.
    """

    service = "api"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                params=params,
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            logger.error(f"[{self.service}] {operation} request failed: {exc}")
            raise ExternalServiceError(self.service, operation, detail=str(exc)) from exc

        if response.is_error:
            logger.error(
                f"[{self.service}] {operation} returned {response.status_code}: {response.text}"
            )
            raise ExternalServiceError(
                self.service, operation, response.status_code, response.text
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ResponseShapeError(operation, "response body is not JSON") from exc
