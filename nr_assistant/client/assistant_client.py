"""Async client for the remote AI backend using httpx."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from nr_assistant.config import AssistantSettings

logger = logging.getLogger("nr_assistant.client")


def is_error(raw: Any) -> bool:
    return isinstance(raw, dict) and "error" in raw


class AssistantClient:
    """Thin async wrapper around the assistant backend's JSON endpoints.

    Never raises on HTTP failures; returns ``{"error", "detail",
    "status_code"}`` dicts instead so callers decide how to surface them.
    """

    def __init__(self, settings: AssistantSettings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.url,
            headers=settings.headers,
            timeout=httpx.Timeout(settings.timeout_seconds, connect=10.0),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, payload: dict | None = None) -> Any:
        try:
            r = await self._client.request(method, path, json=payload)
            r.raise_for_status()
            return r.json() if r.text.strip() else {}
        except httpx.HTTPStatusError as e:
            logger.error("%s %s -> %s", method, path, e.response.status_code)
            return {
                "error": f"HTTP {e.response.status_code}",
                "detail": _body(e.response),
                "status_code": e.response.status_code,
            }
        except (httpx.HTTPError, ValueError) as e:
            logger.error("%s %s failed: %s", method, path, e)
            return {"error": str(e), "status_code": 500}

    # ==================================================================
    # BACKEND
    # ==================================================================

    async def post_method(self, method: str, body: dict[str, Any]) -> Any:
        return await self._request("POST", f"/{method.lstrip('/')}", body)

    async def post_mcp(self, body: dict[str, Any]) -> Any:
        return await self._request("POST", "/mcp", body)


def _body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
