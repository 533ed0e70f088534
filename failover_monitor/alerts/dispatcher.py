"""Down/recovery webhook alerts."""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable

import structlog

from failover_monitor.alerts.transport import NotificationTransport
from failover_monitor.config import WebhookConfig
from failover_monitor.probes.base import ProbeKind


logger = structlog.get_logger(__name__)


class AlertKind(str, Enum):
    DOWN = "down"
    RECOVERY = "recovery"
    TEST = "test"


@dataclass(frozen=True)
class Alert:
    type: AlertKind
    probe_type: str
    target: str
    fail_count: int | None
    threshold: int | None
    error: str | None
    timestamp: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["type"] = self.type.value
        return d


def format_alert_message(
    kind: AlertKind,
    probe_type: str,
    target: str,
    fail_count: int | None = None,
    threshold: int | None = None,
    error: str | None = None,
) -> str:
    if kind is AlertKind.DOWN:
        msg = f"[{probe_type}] {target} failed {fail_count} consecutive checks (threshold {threshold})"
        if error:
            msg = f"{msg}: {error}"
        return msg
    if kind is AlertKind.RECOVERY:
        return f"[{probe_type}] {target} recovered"
    return f"[{probe_type}] webhook test for {target}"


def build_alert(
    kind: AlertKind,
    probe_kind: ProbeKind | str,
    target: str,
    *,
    fail_count: int | None = None,
    threshold: int | None = None,
    error: str | None = None,
    now: float | None = None,
) -> Alert:
    probe_type = probe_kind.key if isinstance(probe_kind, ProbeKind) else str(probe_kind).lower()
    return Alert(
        type=kind,
        probe_type=probe_type,
        target=target,
        fail_count=fail_count,
        threshold=threshold,
        error=error,
        timestamp=int(now if now is not None else time.time()),
        message=format_alert_message(kind, probe_type, target, fail_count, threshold, error),
    )


class AlertDispatcher:
    """Fire-and-log webhook delivery.

    A delivery failure is logged and reported through the boolean return value;
    it never raises, and it never changes health state.
    """

    def __init__(
        self,
        config: WebhookConfig,
        transport: NotificationTransport,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.transport = transport
        self._clock = clock

    def update_config(self, config: WebhookConfig) -> None:
        self.config = config

    async def send_down(
        self, probe_kind: ProbeKind, target: str, fail_count: int, threshold: int, error: str | None
    ) -> bool:
        alert = build_alert(
            AlertKind.DOWN,
            probe_kind,
            target,
            fail_count=fail_count,
            threshold=threshold,
            error=error,
            now=self._clock(),
        )
        return await self.send(alert)

    async def send_recovery(self, probe_kind: ProbeKind, target: str) -> bool:
        return await self.send(build_alert(AlertKind.RECOVERY, probe_kind, target, now=self._clock()))

    async def send_test(self, target: str = "webhook-test") -> bool:
        return await self.send(build_alert(AlertKind.TEST, ProbeKind.HTTP, target, now=self._clock()))

    async def send(self, alert: Alert) -> bool:
        cfg = self.config
        if not cfg.url:
            logger.warning("Webhook URL not configured; alert not sent", type=alert.type.value, target=alert.target)
            return False

        body = json.dumps(alert.to_dict(), ensure_ascii=False).encode("utf-8")
        headers = {"Content-Type": "application/json", **cfg.headers}
        method = (cfg.method or "POST").upper()

        logger.info(
            "Sending webhook alert",
            method=method,
            type=alert.type.value,
            target=alert.target,
            message=alert.message,
        )
        try:
            status, error = await self.transport.deliver(cfg.url, method, headers, float(cfg.timeout or 10), body)
        except Exception as e:
            status, error = None, f"{type(e).__name__}: {e}"

        if error is not None:
            logger.error("Webhook delivery failed", target=alert.target, error=error)
            return False
        if status is None or not (200 <= status < 300):
            logger.warning("Webhook returned non-success status", target=alert.target, status=status)
            return False

        logger.info("Webhook alert delivered", target=alert.target, status=status)
        return True
