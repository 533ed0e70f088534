"""Cloudflare v4 REST client for single-record lookups and updates."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from failover_monitor.errors import DNSProviderError


logger = structlog.get_logger(__name__)

CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"


@dataclass(frozen=True)
class DNSRecord:
    id: str
    type: str
    name: str
    content: str
    proxied: bool
    ttl: int


def extract_root_domain(domain: str) -> str:
    """Zone name guess: the last two labels (``cn1.example.com`` -> ``example.com``)."""
    labels = [p for p in (domain or "").strip().rstrip(".").split(".") if p]
    return ".".join(labels[-2:])


def record_type_for(address: str) -> str:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return "CNAME"
    return "AAAA" if ip.version == 6 else "A"


class CloudflareDNSProvider:
    def __init__(
        self,
        api_token: str,
        *,
        base_url: str = CLOUDFLARE_API_BASE,
        timeout_seconds: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_token:
            raise ValueError("Cloudflare API token is required")
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = float(timeout_seconds)
        self._headers = {"Authorization": f"Bearer {api_token}", "Content-Type": "application/json"}
        self._client = client
        self._zone_ids: dict[str, str] = {}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                resp = await self._client.request(
                    method, url, headers=self._headers, timeout=self.timeout_seconds, **kwargs
                )
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.request(
                        method, url, headers=self._headers, timeout=self.timeout_seconds, **kwargs
                    )
        except httpx.HTTPError as e:
            raise DNSProviderError(f"cloudflare request failed: {type(e).__name__}: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code >= 400 or not (isinstance(data, dict) and data.get("success")):
            errors = data.get("errors") if isinstance(data, dict) else None
            raise DNSProviderError(f"cloudflare {method} {path} failed: status={resp.status_code} errors={errors}")
        return data.get("result")

    async def verify_token(self) -> None:
        result = await self._request("GET", "/user/tokens/verify")
        status = (result or {}).get("status")
        if status != "active":
            raise DNSProviderError(f"API token status is {status!r}")

    async def get_zone_id(self, domain: str) -> str:
        zone_name = extract_root_domain(domain)
        cached = self._zone_ids.get(zone_name)
        if cached:
            return cached
        result = await self._request("GET", "/zones", params={"name": zone_name})
        if not result:
            raise DNSProviderError(f"zone not found: {zone_name}")
        zone_id = str(result[0]["id"])
        self._zone_ids[zone_name] = zone_id
        return zone_id

    async def get_record(self, domain: str) -> DNSRecord:
        zone_id = await self.get_zone_id(domain)
        result = await self._request("GET", f"/zones/{zone_id}/dns_records", params={"name": domain})
        if not result:
            raise DNSProviderError(f"no DNS record for {domain}")
        r = result[0]
        return DNSRecord(
            id=str(r["id"]),
            type=str(r.get("type") or ""),
            name=str(r.get("name") or domain),
            content=str(r.get("content") or ""),
            proxied=bool(r.get("proxied")),
            ttl=int(r.get("ttl") or 1),
        )

    async def get_current_target(self, domain: str) -> str:
        return (await self.get_record(domain)).content

    async def update_record(self, domain: str, new_address: str) -> None:
        record = await self.get_record(domain)
        zone_id = await self.get_zone_id(domain)
        payload = {
            "type": record_type_for(new_address),
            "name": domain,
            "content": new_address,
            "proxied": record.proxied,
            "ttl": record.ttl,
        }
        await self._request("PUT", f"/zones/{zone_id}/dns_records/{record.id}", json=payload)
        logger.info("Cloudflare record updated", domain=domain, type=payload["type"], content=new_address)
