"""Health state tracking."""

from failover_monitor.health.state import HealthState, HealthStateStore

__all__ = ["HealthState", "HealthStateStore"]
