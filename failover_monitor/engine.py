"""Wires the monitor components together and exposes the host-facing surface."""

from __future__ import annotations

import dataclasses
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

import structlog

from failover_monitor.alerts.dispatcher import AlertDispatcher
from failover_monitor.alerts.transport import HttpxNotificationTransport, NotificationTransport
from failover_monitor.config import MonitorConfig
from failover_monitor.dns.cloudflare import CloudflareDNSProvider
from failover_monitor.dns.provider import DNSProvider
from failover_monitor.errors import TaskError, TaskNotFoundError
from failover_monitor.failover.selector import FailoverSelector
from failover_monitor.failover.switcher import DNSSwitcher
from failover_monitor.health.state import HealthStateStore
from failover_monitor.probes import ProbeChecker, ProbeKind, default_checkers
from failover_monitor.remote import HttpRemoteConfigFetcher, RemoteConfigFetcher
from failover_monitor.scheduler.probe_scheduler import ProbeScheduler
from failover_monitor.storage.base import ConfigStore, TaskStore
from failover_monitor.tasks.models import ScheduledTask, TaskResult
from failover_monitor.tasks.runner import CronTaskRunner


logger = structlog.get_logger(__name__)


class MonitorEngine:
    """Owns one probe scheduler and one cron task runner.

    Collaborators that are not passed in are built from ``config``: the default
    checkers, an httpx webhook transport, a Cloudflare provider when an API
    token is configured and an HTTP/S3 remote fetcher when a remote URL is set.
    Without a DNS provider the engine still probes and alerts but cannot fail
    over. Without stores everything lives in memory only.
    """

    def __init__(
        self,
        config: MonitorConfig,
        *,
        config_store: Optional[ConfigStore] = None,
        task_store: Optional[TaskStore] = None,
        checkers: Optional[Mapping[ProbeKind, ProbeChecker]] = None,
        dns_provider: Optional[DNSProvider] = None,
        transport: Optional[NotificationTransport] = None,
        remote_fetcher: Optional[RemoteConfigFetcher] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config_store = config_store
        self.task_store = task_store
        self._clock = clock

        self.checkers = dict(checkers) if checkers is not None else default_checkers(config.dns.resolver)
        self.transport = transport or HttpxNotificationTransport()
        self.state = HealthStateStore(cooldown_minutes=config.cooldown_minutes, clock=clock)
        self.dispatcher = AlertDispatcher(config.webhook, self.transport, clock=clock)

        if dns_provider is None and config.dns.api_token:
            dns_provider = CloudflareDNSProvider(config.dns.api_token, base_url=config.dns.base_url)
        self.dns_provider = dns_provider
        self.switcher: Optional[DNSSwitcher] = None
        if dns_provider is not None:
            self.switcher = DNSSwitcher(dns_provider, FailoverSelector(self.checkers[ProbeKind.PING]))
        elif config.mode == "failover":
            logger.warning("Failover mode without a DNS provider; failures will only be logged")

        if remote_fetcher is None and config.remote_config_url:
            remote_fetcher = HttpRemoteConfigFetcher()

        self.scheduler = ProbeScheduler(
            config,
            checkers=self.checkers,
            state=self.state,
            dispatcher=self.dispatcher,
            switcher=self.switcher,
            remote_fetcher=remote_fetcher,
            config_store=config_store,
        )
        self.tasks = CronTaskRunner(
            self.checkers,
            transport=self.transport,
            on_task_update=self._persist_task_status,
            clock=clock,
        )
        self.started_at: Optional[float] = None

    @property
    def config(self) -> MonitorConfig:
        return self.scheduler.config

    # Lifecycle

    async def start(self) -> None:
        self.load_tasks()
        await self.scheduler.start()
        await self.tasks.start()
        self.started_at = self._clock()
        logger.info("Monitor engine started", mode=self.config.mode, tasks=self.tasks.task_count())

    async def stop(self) -> None:
        await self.tasks.stop()
        await self.scheduler.stop()
        self.started_at = None
        logger.info("Monitor engine stopped")

    def is_running(self) -> bool:
        return self.scheduler.is_running()

    async def run_once(self) -> None:
        await self.scheduler.run_once()

    def load_tasks(self) -> int:
        """Register every persisted task. Tasks that no longer validate are skipped."""
        if self.task_store is None:
            return 0
        loaded = 0
        for task in self.task_store.get_all():
            try:
                self.tasks.add_task(task)
            except TaskError as e:
                logger.error("Skipping invalid persisted task", task_id=task.id, name=task.name, error=str(e))
                continue
            loaded += 1
        logger.info("Loaded persisted tasks", count=loaded)
        return loaded

    # Configuration

    def update_config(self, config: MonitorConfig) -> None:
        if self.config_store is not None:
            self.config_store.save(config)
        self.scheduler.update_config(config)

    async def test_webhook(self) -> bool:
        return await self.dispatcher.send_test()

    def status(self) -> Dict[str, Any]:
        """Read-only snapshot for a status page."""
        cfg = self.config
        states = self.state.snapshot_all()
        kinds: Dict[str, Any] = {}
        for kind in ProbeKind:
            kc = cfg.kind_config(kind)
            kinds[kind.key] = {
                "enabled": kc.enabled,
                "targets": len(kc.domains) if kc.enabled else 0,
                "frequency": kc.frequency,
                "failcount": kc.failcount,
            }
        return {
            "running": self.is_running(),
            "mode": cfg.mode,
            "started_at": self.started_at,
            "uptime_seconds": round(self._clock() - self.started_at, 1) if self.started_at else 0.0,
            "ticks": self.scheduler.tick_count,
            "kinds": kinds,
            "webhook_configured": bool(cfg.webhook.url),
            "failover_available": self.switcher is not None,
            "remote_config_url": cfg.remote_config_url,
            "targets": {target: dataclasses.asdict(st) for target, st in sorted(states.items())},
            "tasks": {
                "total": self.tasks.task_count(),
                "enabled": sum(1 for t in self.tasks.list_tasks() if t.enabled),
                "running": self.tasks.is_running(),
            },
        }

    # Tasks

    def create_task(
        self,
        name: str,
        cron_expression: str,
        check_kind: ProbeKind | str,
        target: str,
        *,
        port: Optional[int] = None,
        timeout_seconds: Optional[int] = None,
        webhook_url: Optional[str] = None,
        webhook_custom_data: Optional[Dict[str, str]] = None,
        enabled: bool = True,
    ) -> ScheduledTask:
        now = self._clock()
        task = ScheduledTask(
            name=name,
            cron_expression=cron_expression,
            check_kind=ProbeKind.parse(check_kind),
            target=target,
            enabled=enabled,
            port=port,
            webhook_url=webhook_url or None,
            webhook_custom_data=dict(webhook_custom_data or {}),
            created_at=now,
            updated_at=now,
        )
        if timeout_seconds:
            task.timeout_seconds = int(timeout_seconds)
        self.tasks.add_task(task)
        self._save_task(task)
        return task

    def update_task(self, task_id: str, **changes: Any) -> ScheduledTask:
        current = self._require_task(task_id)
        changes.pop("id", None)
        changes.pop("created_at", None)
        if "check_kind" in changes:
            changes["check_kind"] = ProbeKind.parse(changes["check_kind"])
        task = dataclasses.replace(current, updated_at=self._clock(), **changes)
        self.tasks.add_task(task)
        self._save_task(task)
        return task

    def delete_task(self, task_id: str) -> None:
        self.tasks.remove_task(task_id)
        if self.task_store is not None:
            self.task_store.delete(task_id)

    def get_task(self, task_id: str) -> Optional[ScheduledTask]:
        return self.tasks.get_task(task_id)

    def list_tasks(self) -> List[ScheduledTask]:
        return sorted(self.tasks.list_tasks(), key=lambda t: t.created_at, reverse=True)

    def enable_task(self, task_id: str) -> ScheduledTask:
        task = self.tasks.enable_task(task_id)
        self._save_task(task)
        return task

    def disable_task(self, task_id: str) -> ScheduledTask:
        task = self.tasks.disable_task(task_id)
        self._save_task(task)
        return task

    async def run_task_now(self, task_id: str) -> TaskResult:
        return await self.tasks.run_task_now(task_id)

    def _require_task(self, task_id: str) -> ScheduledTask:
        task = self.tasks.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _save_task(self, task: ScheduledTask) -> None:
        if self.task_store is not None:
            self.task_store.save(task)

    def _persist_task_status(self, task: ScheduledTask) -> None:
        if self.task_store is not None:
            self.task_store.update_status(task.id, task.last_run_at, task.last_result)
