from __future__ import annotations

from failover_monitor.config import MonitorConfig, ProbeKindConfig, WebhookConfig
from failover_monitor.storage import SQLiteStore, SQLiteTaskStore
from failover_monitor.tasks import ScheduledTask


def _task(task_id: str, created_at: float) -> ScheduledTask:
    return ScheduledTask(
        id=task_id,
        name=f"task {task_id}",
        cron_expression="0 * * * *",
        check_kind="tcp",
        target="db.example.com",
        port=5432,
        webhook_url="http://hooks.example/task",
        webhook_custom_data={"env": "prod"},
        created_at=created_at,
        updated_at=created_at,
    )


def test_config_round_trip(tmp_path) -> None:
    store = SQLiteStore(str(tmp_path / "db" / "monitor.db"))
    assert store.load() is None
    assert store.has_config() is False

    cfg = MonitorConfig(
        mode="failover",
        ping=ProbeKindConfig(enabled=True, domains=["a.example.com"]),
        webhook=WebhookConfig(url="http://hooks.example", headers={"X-Token": "t"}),
    )
    store.save(cfg)

    reopened = SQLiteStore(str(tmp_path / "db" / "monitor.db"))
    assert reopened.has_config() is True
    assert reopened.load() == cfg


def test_task_crud(tmp_path) -> None:
    tasks = SQLiteTaskStore(SQLiteStore(str(tmp_path / "monitor.db")))
    tasks.save(_task("t1", 100.0))
    tasks.save(_task("t2", 200.0))

    assert [t.id for t in tasks.get_all()] == ["t2", "t1"]
    loaded = tasks.get("t1")
    assert loaded is not None
    assert loaded.port == 5432
    assert loaded.webhook_custom_data == {"env": "prod"}
    assert loaded.check_kind.key == "tcp"

    loaded.enabled = False
    tasks.save(loaded)
    assert tasks.get("t1").enabled is False

    assert tasks.delete("t1") is True
    assert tasks.delete("t1") is False
    assert tasks.get("t1") is None


def test_update_status(tmp_path) -> None:
    tasks = SQLiteTaskStore(SQLiteStore(str(tmp_path / "monitor.db")))
    tasks.save(_task("t1", 100.0))

    tasks.update_status("t1", 1700000000.0, "unavailable: timeout")

    t = tasks.get("t1")
    assert t.last_run_at == 1700000000.0
    assert t.last_result == "unavailable: timeout"


def test_in_memory_database() -> None:
    store = SQLiteStore(":memory:")
    store.save_task(_task("t1", 1.0))
    assert [t.id for t in store.get_all_tasks()] == ["t1"]
