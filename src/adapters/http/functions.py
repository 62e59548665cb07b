"""
Cloud functions client - Shared JSON-over-HTTP transport via httpx.

Every hosted collaborator except auth is a cloud function under one base
URL. Non-2xx responses and transport errors become ExternalServiceError,
using the function's `error` field as the message when present.
"""

import logging
from typing import Any

import httpx

from src.domain.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


def error_message(response: httpx.Response) -> str:
    """Best-effort human message from an error response body."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "msg", "error_description", "message"):
            if body.get(key):
                return str(body[key])
    return f"HTTP error! status: {response.status_code}"


class FunctionsClient:
    """Thin async wrapper over httpx.AsyncClient for cloud function calls."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            base_url: Functions base URL, e.g. https://api.example/functions/v1
            api_key: Optional anon key sent as `apikey` and bearer token
            timeout: Per-request timeout in seconds
            transport: Injected transport (tests use httpx.MockTransport)
        """
        headers = {}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def call(
        self,
        endpoint: str,
        method: str = "GET",
        json: Any = None,
        params: dict[str, str] | None = None,
        files: dict[str, Any] | None = None,
        data: dict[str, str] | None = None,
    ) -> Any:
        """
        Call a function endpoint and return its decoded JSON body.

        Raises:
            ExternalServiceError: Transport failure, non-2xx status or non-JSON body
        """
        try:
            response = await self._client.request(
                method, endpoint, json=json, params=params, files=files, data=data
            )
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, endpoint, e)
            raise ExternalServiceError(str(e) or "Network request failed") from e

        if response.is_error:
            raise ExternalServiceError(error_message(response), response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError("Invalid response from server", response.status_code) from e

    async def aclose(self) -> None:
        await self._client.aclose()
