"""SQLite persistence for the monitor configuration and scheduled tasks."""

from __future__ import annotations

import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any

from failover_monitor.config import MonitorConfig
from failover_monitor.tasks.models import ScheduledTask


SCHEMA_VERSION = 1
MAIN_CONFIG_KEY = "main_config"

_TASK_COLUMNS = (
    "id, name, enabled, cron_expression, check_kind, target, port, timeout_seconds, "
    "webhook_url, webhook_custom_data, created_at_ts, updated_at_ts, last_run_at_ts, last_result"
)


def _json_dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, sort_keys=True)


def _json_loads(s: Any) -> Any:
    if s is None:
        return None
    try:
        return json.loads(str(s))
    except ValueError:
        return None


def _connect(path: str) -> sqlite3.Connection:
    p = str(path or "").strip()
    if not p:
        raise ValueError("Missing db_path")
    if p != ":memory:":
        Path(p).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(p, timeout=30, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout = 5000;")
    return conn


def _ensure_schema_conn(conn: sqlite3.Connection) -> None:
    conn.execute("CREATE TABLE IF NOT EXISTS schema_meta (k TEXT PRIMARY KEY, v TEXT NOT NULL);")
    row = conn.execute("SELECT v FROM schema_meta WHERE k='version'").fetchone()
    cur = int(row["v"]) if row and row["v"] else 0
    if cur >= SCHEMA_VERSION:
        return
    if cur != 0:
        raise RuntimeError(f"Unsupported schema version upgrade path cur={cur} target={SCHEMA_VERSION}")

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS config (
          key TEXT PRIMARY KEY,
          value TEXT NOT NULL,
          updated_at_ts REAL NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schedule_tasks (
          id TEXT PRIMARY KEY,
          name TEXT NOT NULL,
          enabled INTEGER NOT NULL DEFAULT 1,
          cron_expression TEXT NOT NULL,
          check_kind TEXT NOT NULL,
          target TEXT NOT NULL,
          port INTEGER,
          timeout_seconds INTEGER NOT NULL DEFAULT 5,
          webhook_url TEXT,
          webhook_custom_data TEXT,
          created_at_ts REAL NOT NULL,
          updated_at_ts REAL NOT NULL,
          last_run_at_ts REAL,
          last_result TEXT NOT NULL DEFAULT ''
        );
        """
    )
    conn.execute("INSERT OR REPLACE INTO schema_meta (k, v) VALUES ('version', ?)", (str(SCHEMA_VERSION),))


def _row_to_task(row: sqlite3.Row) -> ScheduledTask:
    return ScheduledTask.from_dict(
        {
            "id": row["id"],
            "name": row["name"],
            "enabled": bool(row["enabled"]),
            "cron_expression": row["cron_expression"],
            "check_kind": row["check_kind"],
            "target": row["target"],
            "port": row["port"],
            "timeout_seconds": row["timeout_seconds"],
            "webhook_url": row["webhook_url"],
            "webhook_custom_data": _json_loads(row["webhook_custom_data"]) or {},
            "created_at": row["created_at_ts"],
            "updated_at": row["updated_at_ts"],
            "last_run_at": row["last_run_at_ts"],
            "last_result": row["last_result"],
        }
    )


class SQLiteStore:
    """One SQLite file backing both the config store and the task store."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._conn = _connect(db_path)
        self._lock = threading.Lock()
        with self._lock:
            _ensure_schema_conn(self._conn)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # Config

    def load(self) -> MonitorConfig | None:
        with self._lock:
            row = self._conn.execute("SELECT value FROM config WHERE key=?", (MAIN_CONFIG_KEY,)).fetchone()
        if row is None:
            return None
        data = _json_loads(row["value"])
        if not isinstance(data, dict):
            raise ValueError("stored config is not a JSON object")
        return MonitorConfig(**data)

    def save(self, config: MonitorConfig) -> None:
        value = _json_dumps(config.model_dump(mode="json"))
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO config (key, value, updated_at_ts) VALUES (?, ?, ?)",
                (MAIN_CONFIG_KEY, value, time.time()),
            )

    def has_config(self) -> bool:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) AS n FROM config WHERE key=?", (MAIN_CONFIG_KEY,)).fetchone()
        return bool(row and row["n"])

    # Tasks

    def get_task(self, task_id: str) -> ScheduledTask | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_TASK_COLUMNS} FROM schedule_tasks WHERE id=?", (task_id,)
            ).fetchone()
        return _row_to_task(row) if row is not None else None

    def get_all_tasks(self) -> list[ScheduledTask]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_TASK_COLUMNS} FROM schedule_tasks ORDER BY created_at_ts DESC"
            ).fetchall()
        return [_row_to_task(r) for r in rows]

    def save_task(self, task: ScheduledTask) -> None:
        with self._lock:
            self._conn.execute(
                f"INSERT OR REPLACE INTO schedule_tasks ({_TASK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    task.id,
                    task.name,
                    1 if task.enabled else 0,
                    task.cron_expression,
                    task.check_kind.key,
                    task.target,
                    task.port,
                    int(task.timeout_seconds),
                    task.webhook_url,
                    _json_dumps(task.webhook_custom_data or {}),
                    float(task.created_at),
                    float(task.updated_at),
                    task.last_run_at,
                    task.last_result or "",
                ),
            )

    def delete_task(self, task_id: str) -> bool:
        with self._lock:
            cur = self._conn.execute("DELETE FROM schedule_tasks WHERE id=?", (task_id,))
        return cur.rowcount > 0

    def update_task_status(self, task_id: str, last_run_at: float | None, last_result: str) -> None:
        with self._lock:
            self._conn.execute(
                "UPDATE schedule_tasks SET last_run_at_ts=?, last_result=?, updated_at_ts=? WHERE id=?",
                (last_run_at, last_result, time.time(), task_id),
            )


class SQLiteTaskStore:
    """TaskStore view over a SQLiteStore."""

    def __init__(self, store: SQLiteStore) -> None:
        self._store = store

    def get(self, task_id: str) -> ScheduledTask | None:
        return self._store.get_task(task_id)

    def get_all(self) -> list[ScheduledTask]:
        return self._store.get_all_tasks()

    def save(self, task: ScheduledTask) -> None:
        self._store.save_task(task)

    def delete(self, task_id: str) -> bool:
        return self._store.delete_task(task_id)

    def update_status(self, task_id: str, last_run_at: float | None, last_result: str) -> None:
        self._store.update_task_status(task_id, last_run_at, last_result)
