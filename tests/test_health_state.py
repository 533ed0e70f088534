from __future__ import annotations

import threading

from failover_monitor.health import HealthStateStore


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_failure_count_climbs_and_resets() -> None:
    store = HealthStateStore()
    store.init("a.example.com")

    assert store.increment_failure("a.example.com") == 1
    assert store.increment_failure("a.example.com") == 2
    assert store.increment_failure("a.example.com") == 3

    store.reset_failure("a.example.com")
    assert store.failure_count("a.example.com") == 0
    assert store.increment_failure("a.example.com") == 1


def test_increment_creates_unknown_target() -> None:
    store = HealthStateStore()
    assert store.increment_failure("new.example.com") == 1
    assert "new.example.com" in store.targets()


def test_silence_window_expires_with_clock() -> None:
    clock = FakeClock()
    store = HealthStateStore(clock=clock)
    store.init("a")

    store.mark_down("a", silence_seconds=60)
    assert store.is_down("a") is True
    assert store.is_silenced("a") is True
    assert store.silence_remaining("a") == 60

    clock.advance(59)
    assert store.is_silenced("a") is True
    assert store.silence_remaining("a") == 1

    clock.advance(1)
    assert store.is_silenced("a") is False
    assert store.silence_remaining("a") == 0


def test_clear_silence_and_reset_bring_target_back_up() -> None:
    store = HealthStateStore(clock=FakeClock())
    store.init("a")
    store.increment_failure("a")
    store.mark_down("a", 300)

    store.reset_failure("a")
    store.clear_silence("a")

    st = store.get("a")
    assert st is not None
    assert st.is_down is False
    assert st.failure_count == 0
    assert st.silence_until is None
    assert st.last_alert_time is not None


def test_mark_down_ignores_unknown_target() -> None:
    store = HealthStateStore()
    store.mark_down("ghost", 60)
    assert store.get("ghost") is None
    assert store.is_silenced("ghost") is False


def test_cooldown_after_switch() -> None:
    clock = FakeClock()
    store = HealthStateStore(cooldown_minutes=5, clock=clock)
    store.init("a")
    store.increment_failure("a")
    store.increment_failure("a")

    store.mark_switched("a")
    assert store.failure_count("a") == 0
    assert store.is_in_cooldown("a") is True
    assert store.cooldown_remaining("a") == 5

    clock.advance(61)
    assert store.cooldown_remaining("a") == 4

    clock.advance(240)
    assert store.is_in_cooldown("a") is False
    assert store.cooldown_remaining("a") == 0


def test_snapshot_is_a_copy() -> None:
    store = HealthStateStore()
    store.init("a")
    store.increment_failure("a")

    snap = store.snapshot_all()
    snap["a"].failure_count = 99
    snap.pop("a")

    assert store.failure_count("a") == 1
    assert store.get("a") is not None


def test_remove_forgets_target() -> None:
    store = HealthStateStore()
    store.init("a")
    store.increment_failure("a")
    store.remove("a")

    assert store.get("a") is None
    assert store.failure_count("a") == 0


def test_concurrent_increments_are_not_lost() -> None:
    store = HealthStateStore()
    store.init("a")

    def worker() -> None:
        for _ in range(500):
            store.increment_failure("a")

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.failure_count("a") == 4000


def test_init_twice_equals_init_once() -> None:
    once = HealthStateStore()
    once.init("a")

    twice = HealthStateStore()
    twice.init("a")
    twice.increment_failure("a")
    twice.init("a")
    twice.init("a")

    assert twice.get("a") == once.get("a")
    assert twice.failure_count("a") == 0
