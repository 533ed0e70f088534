from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable


class ProbeKind(str, Enum):
    PING = "PING"
    TCP = "TCP"
    HTTP = "HTTP"

    @classmethod
    def parse(cls, value: str | ProbeKind) -> ProbeKind:
        if isinstance(value, ProbeKind):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            raise ValueError(f"Unknown probe kind: {value!r}") from None

    @property
    def key(self) -> str:
        """Lower-case name used in config files and task records."""
        return self.value.lower()


@dataclass(frozen=True)
class ProbeResult:
    kind: ProbeKind
    target: str
    success: bool
    latency_ms: float | None = None
    error: str | None = None

    @classmethod
    def ok(cls, kind: ProbeKind, target: str, latency_ms: float | None) -> ProbeResult:
        return cls(kind=kind, target=target, success=True, latency_ms=latency_ms)

    @classmethod
    def failed(cls, kind: ProbeKind, target: str, error: str) -> ProbeResult:
        return cls(kind=kind, target=target, success=False, error=error)

    def describe_latency(self) -> str:
        if self.latency_ms is None:
            return "n/a"
        return f"{int(round(self.latency_ms))}ms"


@runtime_checkable
class ProbeChecker(Protocol):
    """One reachability check primitive per probe kind.

    Implementations never raise for network trouble: any failure is reported as
    ``ProbeResult(success=False, error=...)``.
    """

    kind: ProbeKind

    async def check(self, target: str, timeout: float) -> ProbeResult: ...


def elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000.0, 3)
