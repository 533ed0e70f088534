"""Structured logging setup and an in-memory log sink."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any

import structlog


@dataclass(frozen=True)
class LogEntry:
    timestamp: float
    level: str
    message: str


class LogBuffer:
    """Keeps the most recent log entries for a status UI.

    Installed as a structlog processor; it records the event and passes it on
    unchanged.
    """

    def __init__(self, size: int = 500) -> None:
        self.size = max(1, int(size))
        self._entries: deque[LogEntry] = deque(maxlen=self.size)
        self._lock = threading.Lock()

    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        level = str(event_dict.get("level") or method_name).upper()
        extras = " ".join(f"{k}={v}" for k, v in event_dict.items() if k not in {"event", "level", "timestamp"})
        message = str(event_dict.get("event", ""))
        if extras:
            message = f"{message} {extras}"
        self.add(level, message)
        return event_dict

    def add(self, level: str, message: str) -> None:
        with self._lock:
            self._entries.append(LogEntry(timestamp=time.time(), level=level, message=message))

    def recent(self, n: int | None = None) -> list[LogEntry]:
        with self._lock:
            entries = list(self._entries)
        if n is None or n >= len(entries):
            return entries
        return entries[-n:] if n > 0 else []

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def configure_logging(level: str = "INFO", *, json_output: bool = False, buffer: LogBuffer | None = None) -> None:
    numeric_level = getattr(logging, str(level or "INFO").upper(), logging.INFO)

    processors: list[Any] = [
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO"),
    ]
    if buffer is not None:
        processors.append(buffer)
    if json_output:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # httpx logs full request URLs; keep them out of the output.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
