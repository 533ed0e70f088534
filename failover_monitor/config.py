"""Configuration management for the failover monitor."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from failover_monitor.errors import RemoteConfigError
from failover_monitor.probes.base import ProbeKind


DEFAULT_CONFIG_PATH = "config/failover-monitor.yaml"
DEFAULT_TICK_SECONDS = 30
MIN_FREQUENCY_SECONDS = 10


class FailoverCandidate(BaseModel):
    """A weighted backup address."""
    address: str = Field(description="Backup IP or hostname")
    weight: int = Field(default=0, description="Higher weight is tried first")


class ProbeKindConfig(BaseModel):
    """Settings shared by every target of one probe kind."""
    enabled: bool = Field(default=False, description="Probe this kind at all")
    frequency: int = Field(default=DEFAULT_TICK_SECONDS, description="Probe interval in seconds")
    failcount: int = Field(default=3, description="Consecutive failures before escalation")
    timeout: int = Field(default=5, description="Probe timeout in seconds")
    retry: int = Field(default=3, description="DNS update attempts per switch")
    domains: List[str] = Field(default_factory=list, description="Targets to probe")
    failover: List[FailoverCandidate] = Field(default_factory=list, description="Backup addresses")

    @field_validator("frequency")
    @classmethod
    def _frequency_floor(cls, v: int) -> int:
        if v < MIN_FREQUENCY_SECONDS:
            raise ValueError(f"frequency must be >= {MIN_FREQUENCY_SECONDS} seconds")
        return v

    @field_validator("failcount")
    @classmethod
    def _failcount_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("failcount must be >= 1")
        return v

    @field_validator("domains")
    @classmethod
    def _strip_domains(cls, v: List[str]) -> List[str]:
        out: list[str] = []
        seen: set[str] = set()
        for raw in v:
            s = str(raw or "").strip()
            if s and s not in seen:
                seen.add(s)
                out.append(s)
        return out


class WebhookConfig(BaseModel):
    """Outbound alert webhook."""
    url: str = Field(default="", description="Webhook URL; empty disables alerts")
    method: str = Field(default="POST", description="HTTP method")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra request headers")
    timeout: int = Field(default=10, description="Delivery timeout in seconds")
    silence_period: int = Field(default=60, description="Seconds to suppress repeat alerts after a down alert")


class DNSConfig(BaseModel):
    """DNS provider credentials."""
    api_token: str = Field(default="", description="Cloudflare API token")
    base_url: str = Field(default="https://api.cloudflare.com/client/v4", description="Cloudflare API base URL")
    resolver: Optional[str] = Field(default=None, description="Custom DNS server for ping resolution, e.g. 1.1.1.1:53")


class LogConfig(BaseModel):
    level: str = Field(default="INFO", description="Logging level")
    json_output: bool = Field(default=False, description="Render log lines as JSON")
    buffer_size: int = Field(default=500, description="Recent log entries kept in memory")


class MonitorConfig(BaseModel):
    """Main configuration for the failover monitor."""

    mode: Literal["alert", "failover"] = Field(
        default="alert",
        description="alert: webhook notifications with a silence window; failover: DNS switch with cooldown",
    )
    ping: ProbeKindConfig = Field(default_factory=lambda: ProbeKindConfig(enabled=True))
    tcp: ProbeKindConfig = Field(default_factory=ProbeKindConfig)
    http: ProbeKindConfig = Field(default_factory=lambda: ProbeKindConfig(timeout=10))
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    dns: DNSConfig = Field(default_factory=DNSConfig)
    log: LogConfig = Field(default_factory=LogConfig)

    remote_config_url: Optional[str] = Field(default=None, description="http(s):// or s3:// URL of remote config")
    remote_update_freq: int = Field(default=0, description="Remote config refresh interval in seconds; 0 disables")
    cooldown_minutes: int = Field(default=5, description="Minutes after a DNS switch before another switch")
    db_path: Optional[str] = Field(default=None, description="SQLite file for persisted config and tasks")

    def kind_config(self, kind: ProbeKind) -> ProbeKindConfig:
        return getattr(self, ProbeKind.parse(kind).key)

    def enabled_kinds(self) -> list[ProbeKind]:
        return [k for k in ProbeKind if self.kind_config(k).enabled]

    def targets_by_kind(self) -> dict[ProbeKind, list[str]]:
        return {k: list(self.kind_config(k).domains) for k in self.enabled_kinds()}

    def all_targets(self) -> set[str]:
        out: set[str] = set()
        for targets in self.targets_by_kind().values():
            out.update(targets)
        return out

    def min_frequency(self) -> int:
        freqs = [self.kind_config(k).frequency for k in self.enabled_kinds()]
        return min(freqs) if freqs else DEFAULT_TICK_SECONDS


class RemoteKindConfig(BaseModel):
    frequency: int = 0
    failcount: int = 0
    timeout: int = 0
    retry: int = 0
    domains: List[str] = Field(default_factory=list)
    failover: List[FailoverCandidate] = Field(default_factory=list)

    def set_defaults(self, default_timeout: int = 5) -> None:
        if self.timeout == 0:
            self.timeout = default_timeout
        if self.retry == 0:
            self.retry = 3


class RemotePingConfig(RemoteKindConfig):
    remote_update_freq: int = 0


class RemoteConfig(BaseModel):
    """Target lists and thresholds served from a remote URL."""
    ping: RemotePingConfig = Field(default_factory=RemotePingConfig)
    tcp: RemoteKindConfig = Field(default_factory=RemoteKindConfig)
    http: RemoteKindConfig = Field(default_factory=RemoteKindConfig)

    def validate_required(self) -> None:
        if self.ping.frequency < MIN_FREQUENCY_SECONDS:
            raise RemoteConfigError(f"remote ping.frequency must be >= {MIN_FREQUENCY_SECONDS} seconds")
        if self.ping.failcount < 1:
            raise RemoteConfigError("remote ping.failcount must be >= 1")
        if not self.ping.domains:
            raise RemoteConfigError("remote ping.domains must not be empty")
        if not self.ping.failover:
            raise RemoteConfigError("remote ping.failover must not be empty")
        for name in ("tcp", "http"):
            section: RemoteKindConfig = getattr(self, name)
            if not section.domains:
                continue
            if section.frequency < MIN_FREQUENCY_SECONDS:
                raise RemoteConfigError(f"remote {name}.frequency must be >= {MIN_FREQUENCY_SECONDS} seconds")
            if section.failcount < 1:
                raise RemoteConfigError(f"remote {name}.failcount must be >= 1")

    def set_defaults(self) -> None:
        self.ping.set_defaults()
        if self.ping.remote_update_freq == 0:
            self.ping.remote_update_freq = 60
        self.tcp.set_defaults()
        self.http.set_defaults(default_timeout=10)

    def apply_to(self, config: MonitorConfig) -> MonitorConfig:
        """Return a copy of ``config`` with the remote sections applied."""
        updates: dict[str, Any] = {"remote_update_freq": self.ping.remote_update_freq or config.remote_update_freq}
        for name in ("ping", "tcp", "http"):
            remote: RemoteKindConfig = getattr(self, name)
            local: ProbeKindConfig = getattr(config, name)
            if name != "ping" and not remote.domains:
                updates[name] = local.model_copy(update={"domains": [], "failover": []})
                continue
            updates[name] = ProbeKindConfig(
                enabled=True if name == "ping" else local.enabled or bool(remote.domains),
                frequency=remote.frequency,
                failcount=remote.failcount,
                timeout=remote.timeout,
                retry=remote.retry,
                domains=list(remote.domains),
                failover=[c.model_copy() for c in remote.failover],
            )
        return config.model_copy(update=updates)


def parse_remote_config(data: Any) -> RemoteConfig:
    if not isinstance(data, dict):
        raise RemoteConfigError("remote config must be a mapping")
    try:
        remote = RemoteConfig(**data)
    except ValidationError as e:
        raise RemoteConfigError(f"remote config is malformed: {e}") from e
    remote.validate_required()
    remote.set_defaults()
    return remote


def default_config() -> MonitorConfig:
    return MonitorConfig(
        ping=ProbeKindConfig(
            enabled=True,
            frequency=30,
            failcount=3,
            timeout=5,
            retry=3,
            domains=["example1.com", "example2.com"],
            failover=[
                FailoverCandidate(address="backup1.example.com", weight=100),
                FailoverCandidate(address="backup2.example.com", weight=50),
            ],
        ),
    )


def write_default_config(path: str | Path) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    data = default_config().model_dump(mode="json")
    with open(p, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
    os.chmod(p, 0o600)
    return p


def load_config(config_path: Optional[str] = None) -> MonitorConfig:
    """Load configuration from file, then apply environment overrides."""
    if config_path is None:
        config_path = os.getenv("FAILOVER_MONITOR_CONFIG", DEFAULT_CONFIG_PATH)

    config_data: dict[str, Any] = {}
    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}
        if not isinstance(config_data, dict):
            raise ValueError("Config YAML must be a mapping")

    mode = os.getenv("FAILOVER_MONITOR_MODE")
    if mode:
        config_data["mode"] = mode.strip().lower()
    remote_url = os.getenv("FAILOVER_MONITOR_REMOTE_URL")
    if remote_url:
        config_data["remote_config_url"] = remote_url.strip()
    db_path = os.getenv("FAILOVER_MONITOR_DB")
    if db_path:
        config_data["db_path"] = db_path.strip()

    log_level = os.getenv("LOG_LEVEL")
    if log_level:
        config_data["log"] = {**(config_data.get("log") or {}), "level": log_level.strip().upper()}
    api_token = os.getenv("CLOUDFLARE_API_TOKEN")
    if api_token:
        config_data["dns"] = {**(config_data.get("dns") or {}), "api_token": api_token.strip()}

    config = MonitorConfig(**config_data)
    if config.remote_config_url and config.remote_update_freq == 0:
        config = config.model_copy(update={"remote_update_freq": 300})
    return config
