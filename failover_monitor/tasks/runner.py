"""Cron-scheduled one-off reachability checks with optional per-task webhooks."""

from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Union

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from failover_monitor.alerts.transport import HttpxNotificationTransport, NotificationTransport
from failover_monitor.errors import InvalidCronExpressionError, TaskNotFoundError
from failover_monitor.probes.base import ProbeChecker, ProbeKind, ProbeResult
from failover_monitor.tasks.models import (
    DEFAULT_TASK_TIMEOUT_SECONDS,
    SCHEDULE_CHECK_EVENT,
    ScheduledTask,
    TaskResult,
)


logger = structlog.get_logger(__name__)

TASK_WEBHOOK_TIMEOUT_SECONDS = 10.0

TaskUpdateCallback = Callable[[ScheduledTask], Union[None, Awaitable[None]]]


def parse_cron(expression: str) -> CronTrigger:
    """Build a trigger from a standard five-field crontab expression."""
    expr = str(expression or "").strip()
    if len(expr.split()) != 5:
        raise InvalidCronExpressionError(expr, "expected 5 fields (minute hour day month day_of_week)")
    try:
        return CronTrigger.from_crontab(expr)
    except ValueError as e:
        raise InvalidCronExpressionError(expr, str(e)) from e


def describe_result(kind: ProbeKind, result: ProbeResult) -> str:
    if not result.success:
        return result.error or "check failed"
    latency = result.describe_latency()
    if kind is ProbeKind.PING:
        return f"ping succeeded, latency {latency}"
    if kind is ProbeKind.TCP:
        return f"tcp connect succeeded in {latency}"
    return f"http check succeeded in {latency}"


class CronTaskRunner:
    """Manages scheduled check tasks using APScheduler.

    Each enabled task owns one cron job keyed by the task id. Disabled tasks
    stay registered without a job and can still be run by hand.
    """

    def __init__(
        self,
        checkers: Mapping[ProbeKind, ProbeChecker],
        *,
        transport: Optional[NotificationTransport] = None,
        on_task_update: Optional[TaskUpdateCallback] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.checkers = dict(checkers)
        self.transport = transport or HttpxNotificationTransport()
        self.on_task_update = on_task_update
        self._clock = clock
        self.scheduler = AsyncIOScheduler()
        self.tasks: Dict[str, ScheduledTask] = {}
        self._inflight: set[asyncio.Task] = set()
        self.running = False

    async def start(self) -> None:
        if self.running:
            logger.warning("Task runner already running")
            return
        self.scheduler.start()
        self.running = True
        logger.info("Task runner started", tasks=len(self.tasks))

    async def stop(self) -> None:
        """Stop firing triggers and wait for executions already started."""
        if not self.running:
            return
        self.scheduler.shutdown(wait=False)
        self.running = False
        if self._inflight:
            logger.info("Waiting for in-flight task executions", count=len(self._inflight))
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        # A fresh scheduler so the runner can be started again.
        self.scheduler = AsyncIOScheduler()
        for task in self.tasks.values():
            if task.enabled:
                self._schedule(task, parse_cron(task.cron_expression))
        logger.info("Task runner stopped")

    def is_running(self) -> bool:
        return self.running

    # Task registry

    def add_task(self, task: ScheduledTask) -> None:
        """Register or replace ``task``. The cron expression is validated first."""
        trigger = parse_cron(task.cron_expression)

        if task.id in self.tasks:
            logger.info("Task already exists, replacing", task_id=task.id)
            self._unschedule(task.id)

        if task.enabled:
            self._schedule(task, trigger)
        self.tasks[task.id] = task
        logger.info("Added task", task_id=task.id, name=task.name, cron=task.cron_expression, enabled=task.enabled)

    def remove_task(self, task_id: str) -> None:
        self._unschedule(task_id)
        if task_id not in self.tasks:
            raise TaskNotFoundError(task_id)
        del self.tasks[task_id]
        logger.info("Removed task", task_id=task_id)

    def get_task(self, task_id: str) -> Optional[ScheduledTask]:
        return self.tasks.get(task_id)

    def list_tasks(self) -> List[ScheduledTask]:
        return list(self.tasks.values())

    def task_count(self) -> int:
        return len(self.tasks)

    def enable_task(self, task_id: str) -> ScheduledTask:
        task = self._require(task_id)
        if task.enabled:
            return task
        self._schedule(task, parse_cron(task.cron_expression))
        task.enabled = True
        task.updated_at = self._clock()
        logger.info("Enabled task", task_id=task_id, name=task.name)
        return task

    def disable_task(self, task_id: str) -> ScheduledTask:
        task = self._require(task_id)
        if not task.enabled:
            return task
        self._unschedule(task_id)
        task.enabled = False
        task.updated_at = self._clock()
        logger.info("Disabled task", task_id=task_id, name=task.name)
        return task

    def next_run_time(self, task_id: str) -> Optional[datetime]:
        job = self.scheduler.get_job(task_id)
        return getattr(job, "next_run_time", None) if job is not None else None

    # Execution

    async def run_task_now(self, task_id: str) -> TaskResult:
        """Execute a task immediately, outside its trigger and regardless of ``enabled``."""
        task = self._require(task_id)
        logger.info("Running task manually", task_id=task_id, name=task.name)
        return await self.execute_task(task, manual=True)

    async def execute_task(self, task: ScheduledTask, *, manual: bool = False) -> TaskResult:
        available, message = await self._check(task)
        executed_at = self._clock()

        task.last_run_at = executed_at
        task.last_result = "available" if available else f"unavailable: {message}"
        if manual:
            task.last_result = f"{task.last_result} (manual)"

        webhook_sent = False
        if task.webhook_url:
            webhook_sent = await self._send_webhook(task, available, message, executed_at)

        await self._notify_update(task)

        if available:
            logger.info("Task finished; target available", task_id=task.id, name=task.name, message=message)
        else:
            logger.warning("Task finished; target unavailable", task_id=task.id, name=task.name, message=message)

        return TaskResult(
            task_id=task.id,
            task_name=task.name,
            success=available,
            check_kind=task.check_kind,
            target=task.target,
            message=message,
            executed_at=executed_at,
            webhook_sent=webhook_sent,
        )

    async def _on_trigger(self, task_id: str) -> None:
        task = self.tasks.get(task_id)
        if task is None or not task.enabled:
            return
        logger.info("Running scheduled task", task_id=task_id, name=task.name)
        run = asyncio.ensure_future(self.execute_task(task))
        self._inflight.add(run)
        run.add_done_callback(self._inflight.discard)
        # Scheduler shutdown cancels the job coroutine; the check itself finishes.
        await asyncio.shield(run)

    async def _check(self, task: ScheduledTask) -> tuple[bool, str]:
        checker = self.checkers.get(task.check_kind)
        if checker is None:
            return False, f"no checker for {task.check_kind.key}"
        timeout = float(task.timeout_seconds or DEFAULT_TASK_TIMEOUT_SECONDS)
        try:
            result = await checker.check(task.probe_target(), timeout)
        except Exception as e:
            logger.error("Checker raised", task_id=task.id, kind=task.check_kind.value, error=str(e))
            return False, f"{type(e).__name__}: {e}"
        return result.success, describe_result(task.check_kind, result)

    async def _send_webhook(self, task: ScheduledTask, available: bool, message: str, executed_at: float) -> bool:
        payload = {
            "event": SCHEDULE_CHECK_EVENT,
            "task_id": task.id,
            "task_name": task.name,
            "check_type": task.check_kind.key,
            "target": task.target,
            "available": available,
            "message": message,
            "custom_data": dict(task.webhook_custom_data or {}),
            "executed_at": datetime.fromtimestamp(executed_at, tz=timezone.utc).isoformat(),
            "timestamp": int(executed_at),
        }
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        try:
            status, error = await self.transport.deliver(
                str(task.webhook_url), "POST", headers, TASK_WEBHOOK_TIMEOUT_SECONDS, body
            )
        except Exception as e:
            status, error = None, f"{type(e).__name__}: {e}"

        if error is not None:
            logger.error("Task webhook failed", task_id=task.id, error=error)
            return False
        if status is None or not (200 <= status < 300):
            logger.warning("Task webhook returned non-success status", task_id=task.id, status=status)
            return False
        logger.info("Task webhook delivered", task_id=task.id, name=task.name)
        return True

    async def _notify_update(self, task: ScheduledTask) -> None:
        if self.on_task_update is None:
            return
        try:
            outcome = self.on_task_update(task)
            if asyncio.iscoroutine(outcome):
                await outcome
        except Exception as e:
            logger.error("Task update callback failed", task_id=task.id, error=str(e))

    def _require(self, task_id: str) -> ScheduledTask:
        task = self.tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _schedule(self, task: ScheduledTask, trigger: CronTrigger) -> None:
        self.scheduler.add_job(
            self._on_trigger,
            trigger=trigger,
            id=task.id,
            args=(task.id,),
            name=task.name or task.id,
            replace_existing=True,
        )

    def _unschedule(self, task_id: str) -> None:
        if self.scheduler.get_job(task_id) is not None:
            self.scheduler.remove_job(task_id)
