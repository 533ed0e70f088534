from __future__ import annotations

from typing import Protocol

from failover_monitor.config import MonitorConfig
from failover_monitor.tasks.models import ScheduledTask


class ConfigStore(Protocol):
    def load(self) -> MonitorConfig | None: ...

    def save(self, config: MonitorConfig) -> None: ...


class TaskStore(Protocol):
    def get(self, task_id: str) -> ScheduledTask | None: ...

    def get_all(self) -> list[ScheduledTask]: ...

    def save(self, task: ScheduledTask) -> None: ...

    def delete(self, task_id: str) -> bool: ...

    def update_status(self, task_id: str, last_run_at: float | None, last_result: str) -> None: ...
