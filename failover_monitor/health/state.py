"""Per-target health state: failure counting, silence windows and switch cooldowns."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from typing import Callable


@dataclass
class HealthState:
    target: str
    failure_count: int = 0
    is_down: bool = False
    silence_until: float | None = None
    last_alert_time: float | None = None
    last_switch_time: float | None = None


class HealthStateStore:
    """In-memory map of target -> HealthState.

    Two suppression models live here. ``mark_down`` opens a fixed silence window
    at alert time (alert deployments). ``mark_switched`` starts an elapsed-time
    cooldown after a successful DNS switch (failover deployments). Neither one
    stops probing; callers consult them only before escalating.

    Every method takes the one lock around the map and does no I/O, so it is
    safe to call from any number of concurrent probe completions.
    """

    def __init__(self, cooldown_minutes: int = 5, clock: Callable[[], float] = time.time) -> None:
        self.cooldown_minutes = int(cooldown_minutes)
        self._clock = clock
        self._states: dict[str, HealthState] = {}
        self._lock = threading.Lock()

    def init(self, target: str) -> None:
        with self._lock:
            self._states[target] = HealthState(target=target)

    def get(self, target: str) -> HealthState | None:
        with self._lock:
            state = self._states.get(target)
            return replace(state) if state is not None else None

    def targets(self) -> set[str]:
        with self._lock:
            return set(self._states)

    def failure_count(self, target: str) -> int:
        with self._lock:
            state = self._states.get(target)
            return state.failure_count if state else 0

    def is_down(self, target: str) -> bool:
        with self._lock:
            state = self._states.get(target)
            return bool(state and state.is_down)

    def increment_failure(self, target: str) -> int:
        with self._lock:
            state = self._states.get(target)
            if state is None:
                state = HealthState(target=target)
                self._states[target] = state
            state.failure_count += 1
            return state.failure_count

    def reset_failure(self, target: str) -> None:
        with self._lock:
            state = self._states.get(target)
            if state is not None:
                state.failure_count = 0
                state.is_down = False

    def mark_down(self, target: str, silence_seconds: float) -> None:
        with self._lock:
            state = self._states.get(target)
            if state is None:
                return
            now = self._clock()
            state.is_down = True
            state.last_alert_time = now
            state.silence_until = now + max(0.0, float(silence_seconds))

    def is_silenced(self, target: str) -> bool:
        with self._lock:
            state = self._states.get(target)
            if state is None or state.silence_until is None:
                return False
            return self._clock() < state.silence_until

    def silence_remaining(self, target: str) -> float:
        with self._lock:
            state = self._states.get(target)
            if state is None or state.silence_until is None:
                return 0.0
            return max(0.0, state.silence_until - self._clock())

    def clear_silence(self, target: str) -> None:
        with self._lock:
            state = self._states.get(target)
            if state is not None:
                state.silence_until = None

    # Cooldown variant, used by DNS failover deployments.

    def mark_switched(self, target: str) -> None:
        with self._lock:
            state = self._states.get(target)
            if state is None:
                state = HealthState(target=target)
                self._states[target] = state
            state.last_switch_time = self._clock()
            state.failure_count = 0

    def is_in_cooldown(self, target: str) -> bool:
        with self._lock:
            state = self._states.get(target)
            if state is None or state.last_switch_time is None:
                return False
            return self._clock() - state.last_switch_time < self.cooldown_minutes * 60

    def cooldown_remaining(self, target: str) -> int:
        """Whole minutes left in the cooldown, rounded up; 0 when not cooling down."""
        with self._lock:
            state = self._states.get(target)
            if state is None or state.last_switch_time is None:
                return 0
            left = self.cooldown_minutes * 60 - (self._clock() - state.last_switch_time)
            if left <= 0:
                return 0
            return int(-(-left // 60))

    def remove(self, target: str) -> None:
        with self._lock:
            self._states.pop(target, None)

    def snapshot_all(self) -> dict[str, HealthState]:
        with self._lock:
            return {k: replace(v) for k, v in self._states.items()}
