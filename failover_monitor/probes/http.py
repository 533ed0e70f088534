from __future__ import annotations

import time

import httpx

from failover_monitor.probes.base import ProbeKind, ProbeResult, elapsed_ms


class HTTPChecker:
    """GET the URL without following redirects; 2xx and 3xx count as up.

    TLS verification is off so internal services with self-signed certificates
    can be probed.
    """

    kind = ProbeKind.HTTP

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def check(self, target: str, timeout: float) -> ProbeResult:
        url = (target or "").strip()
        if not url.startswith(("http://", "https://")):
            return ProbeResult.failed(self.kind, target, f"invalid URL (expected http:// or https://): {target}")

        started = time.perf_counter()
        try:
            if self._client is not None:
                resp = await self._client.get(url, follow_redirects=False, timeout=timeout)
            else:
                async with httpx.AsyncClient(verify=False) as client:
                    resp = await client.get(url, follow_redirects=False, timeout=timeout)
        except httpx.HTTPError as e:
            return ProbeResult.failed(self.kind, target, f"http_error: {type(e).__name__}: {e}")

        latency = elapsed_ms(started)
        if 200 <= resp.status_code < 400:
            return ProbeResult.ok(self.kind, target, latency)
        return ProbeResult(
            kind=self.kind,
            target=target,
            success=False,
            latency_ms=latency,
            error=f"unexpected status code: {resp.status_code}",
        )
