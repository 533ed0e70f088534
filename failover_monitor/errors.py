"""Exception hierarchy for the failover monitor."""

from __future__ import annotations


class FailoverMonitorError(Exception):
    """Base class for every error raised by this package."""


class SchedulerStateError(FailoverMonitorError):
    """Start/stop called in the wrong lifecycle state."""


class FailoverError(FailoverMonitorError):
    """Remediation through a DNS switch could not be completed."""


class NoFailoverCandidatesError(FailoverError):
    def __init__(self) -> None:
        super().__init__("no failover candidates configured")


class FailoverExhaustedError(FailoverError):
    def __init__(self, attempted: list[str]) -> None:
        self.attempted = list(attempted)
        names = ", ".join(self.attempted) or "-"
        super().__init__(f"all {len(self.attempted)} failover candidates unreachable: {names}")


class NoAlternativeCandidateError(FailoverError):
    def __init__(self, current: str) -> None:
        self.current = current
        super().__init__(f"no failover candidate other than the current address {current}")


class NoSwitchNeededError(FailoverError):
    """The record already points at the requested address. Callers must not retry."""

    def __init__(self, domain: str, address: str) -> None:
        self.domain = domain
        self.address = address
        super().__init__(f"{domain} already points to {address}; nothing to switch")


class DNSUpdateError(FailoverError):
    def __init__(self, domain: str, attempts: int, last_error: BaseException | None) -> None:
        self.domain = domain
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"DNS update for {domain} failed after {attempts} attempts: {last_error}")


class DNSLookupError(FailoverError):
    def __init__(self, domain: str, error: BaseException) -> None:
        self.domain = domain
        self.error = error
        super().__init__(f"could not read current DNS record for {domain}: {error}")


class DNSProviderError(FailoverMonitorError):
    """The DNS provider API rejected a lookup or update."""


class RemoteConfigError(FailoverMonitorError):
    """Remote configuration could not be fetched, parsed or validated."""


class TaskError(FailoverMonitorError):
    pass


class InvalidCronExpressionError(TaskError):
    def __init__(self, expression: str, reason: str) -> None:
        self.expression = expression
        super().__init__(f"invalid cron expression {expression!r}: {reason}")


class TaskNotFoundError(TaskError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"task not found: {task_id}")
