from __future__ import annotations

from typing import Mapping, Protocol

import httpx


class NotificationTransport(Protocol):
    async def deliver(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        timeout: float,
        body: bytes,
    ) -> tuple[int | None, str | None]: ...


class HttpxNotificationTransport:
    """Single-shot HTTP delivery. Returns ``(status_code, error)`` and never raises."""

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def deliver(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        timeout: float,
        body: bytes,
    ) -> tuple[int | None, str | None]:
        try:
            if self._client is not None:
                resp = await self._client.request(method, url, headers=dict(headers), content=body, timeout=timeout)
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.request(method, url, headers=dict(headers), content=body, timeout=timeout)
        except httpx.HTTPError as e:
            return None, f"{type(e).__name__}: {e}"
        return resp.status_code, None
