"""Durable storage for configuration and scheduled tasks."""

from failover_monitor.storage.base import ConfigStore, TaskStore
from failover_monitor.storage.sqlite_store import SQLiteStore, SQLiteTaskStore

__all__ = ["ConfigStore", "SQLiteStore", "SQLiteTaskStore", "TaskStore"]
