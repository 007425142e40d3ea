"""Stock request sender backed by httpx."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx


class HttpxSender:
    """Send ``(target, options)`` requests through an ``httpx.AsyncClient``.

    ``options`` follows the fetch-style shape the chain rewrites:
    ``{"method": "POST", "headers": {...}, "body": str | bytes | dict}``.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, *, timeout: float = 120.0) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))

    async def __call__(self, target: Any, options: dict | None = None) -> httpx.Response:
        options = options or {}
        body = options.get("body")
        kwargs: dict[str, Any] = {"headers": options.get("headers")}
        if isinstance(body, Mapping):
            kwargs["json"] = body
        elif body is not None:
            kwargs["content"] = body
        return await self._client.request(options.get("method", "POST"), str(target), **kwargs)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
