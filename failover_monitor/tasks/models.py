from __future__ import annotations

import ipaddress
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any

from failover_monitor.probes.base import ProbeKind


DEFAULT_TASK_TIMEOUT_SECONDS = 5
SCHEDULE_CHECK_EVENT = "schedule_check"


def new_task_id() -> str:
    return uuid.uuid4().hex[:12]


def _is_ipv6_literal(host: str) -> bool:
    try:
        return ipaddress.ip_address(host).version == 6
    except ValueError:
        return False


@dataclass
class ScheduledTask:
    name: str
    cron_expression: str
    check_kind: ProbeKind
    target: str
    id: str = field(default_factory=new_task_id)
    enabled: bool = True
    port: int | None = None
    timeout_seconds: int = DEFAULT_TASK_TIMEOUT_SECONDS
    webhook_url: str | None = None
    webhook_custom_data: dict[str, str] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    last_run_at: float | None = None
    last_result: str = ""

    def __post_init__(self) -> None:
        self.check_kind = ProbeKind.parse(self.check_kind)

    def probe_target(self) -> str:
        if self.check_kind is ProbeKind.TCP and self.port:
            host = self.target
            if _is_ipv6_literal(host):
                host = f"[{host}]"
            return f"{host}:{int(self.port)}"
        return self.target

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["check_kind"] = self.check_kind.key
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduledTask:
        port = data.get("port")
        return cls(
            id=str(data.get("id") or new_task_id()),
            name=str(data.get("name") or ""),
            enabled=bool(data.get("enabled", True)),
            cron_expression=str(data.get("cron_expression") or data.get("cron") or ""),
            check_kind=ProbeKind.parse(data.get("check_kind") or data.get("check_type") or ""),
            target=str(data.get("target") or ""),
            port=int(port) if port else None,
            timeout_seconds=int(data.get("timeout_seconds") or data.get("timeout") or DEFAULT_TASK_TIMEOUT_SECONDS),
            webhook_url=(str(data.get("webhook_url") or "").strip() or None),
            webhook_custom_data={str(k): str(v) for k, v in (data.get("webhook_custom_data") or {}).items()},
            created_at=float(data.get("created_at") or time.time()),
            updated_at=float(data.get("updated_at") or time.time()),
            last_run_at=float(data["last_run_at"]) if data.get("last_run_at") is not None else None,
            last_result=str(data.get("last_result") or ""),
        )


@dataclass(frozen=True)
class TaskResult:
    task_id: str
    task_name: str
    success: bool
    check_kind: ProbeKind
    target: str
    message: str
    executed_at: float
    webhook_sent: bool = False

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["check_kind"] = self.check_kind.key
        return d
