"""Fetch remote target lists from http(s):// or s3:// URLs."""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any, Protocol

import httpx
import structlog
import yaml

from failover_monitor.config import RemoteConfig, parse_remote_config
from failover_monitor.errors import RemoteConfigError


logger = structlog.get_logger(__name__)

REMOTE_FETCH_TIMEOUT_SECONDS = 30.0


class RemoteConfigFetcher(Protocol):
    async def fetch(self, url: str) -> RemoteConfig: ...


def decode_remote_body(body: bytes | str) -> Any:
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise RemoteConfigError(f"remote config is neither JSON nor YAML: {e}") from e


def split_s3_url(url: str) -> tuple[str, str]:
    rest = url[len("s3://"):] if url.startswith("s3://") else url
    bucket, _, key = rest.partition("/")
    if not bucket or not key:
        raise RemoteConfigError(f"invalid S3 URL (expected s3://bucket/key): {url}")
    return bucket, key


def _fetch_s3_sync(bucket: str, key: str, timeout_seconds: float) -> bytes:
    # boto3 is an optional extra; only s3:// deployments need it.
    import boto3
    from botocore.config import Config as BotoConfig

    region = os.getenv("AWS_REGION") or "us-east-1"
    client = boto3.client(
        "s3",
        region_name=region,
        config=BotoConfig(connect_timeout=timeout_seconds, read_timeout=timeout_seconds),
    )
    obj = client.get_object(Bucket=bucket, Key=key)
    return obj["Body"].read()


class HttpRemoteConfigFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = REMOTE_FETCH_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self.timeout_seconds = float(timeout_seconds)

    async def _fetch_http(self, url: str) -> bytes:
        try:
            if self._client is not None:
                resp = await self._client.get(url, timeout=self.timeout_seconds, follow_redirects=True)
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.get(url, timeout=self.timeout_seconds, follow_redirects=True)
        except httpx.HTTPError as e:
            raise RemoteConfigError(f"remote config request failed: {type(e).__name__}: {e}") from e
        if resp.status_code != 200:
            raise RemoteConfigError(f"remote config HTTP status {resp.status_code}")
        return resp.content

    async def _fetch_s3(self, url: str) -> bytes:
        bucket, key = split_s3_url(url)
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(_fetch_s3_sync, bucket, key, self.timeout_seconds),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise RemoteConfigError(f"S3 fetch timed out after {self.timeout_seconds}s") from e
        except ImportError as e:
            raise RemoteConfigError("s3:// remote config requires the 's3' extra (boto3)") from e
        except Exception as e:
            raise RemoteConfigError(f"S3 fetch failed: {type(e).__name__}: {e}") from e

    async def fetch(self, url: str) -> RemoteConfig:
        cleaned = (url or "").strip()
        if not cleaned:
            raise RemoteConfigError("remote config URL is empty")
        if cleaned.startswith("s3://"):
            body = await self._fetch_s3(cleaned)
        elif cleaned.startswith(("http://", "https://")):
            body = await self._fetch_http(cleaned)
        else:
            raise RemoteConfigError(f"unsupported remote config scheme: {cleaned}")

        remote = parse_remote_config(decode_remote_body(body))
        logger.info(
            "Fetched remote config",
            ping_targets=len(remote.ping.domains),
            tcp_targets=len(remote.tcp.domains),
            http_targets=len(remote.http.domains),
        )
        return remote
