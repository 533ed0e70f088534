"""Cron-scheduled check tasks."""

from failover_monitor.tasks.models import ScheduledTask, TaskResult
from failover_monitor.tasks.runner import CronTaskRunner, parse_cron

__all__ = ["CronTaskRunner", "ScheduledTask", "TaskResult", "parse_cron"]
