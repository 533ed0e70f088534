"""Probe checkers: one reachability primitive per probe kind."""

from __future__ import annotations

from failover_monitor.probes.base import ProbeChecker, ProbeKind, ProbeResult
from failover_monitor.probes.http import HTTPChecker
from failover_monitor.probes.ping import PingChecker
from failover_monitor.probes.tcp import TCPChecker, split_host_port


def default_checkers(dns_server: str | None = None) -> dict[ProbeKind, ProbeChecker]:
    return {
        ProbeKind.PING: PingChecker(dns_server=dns_server),
        ProbeKind.TCP: TCPChecker(),
        ProbeKind.HTTP: HTTPChecker(),
    }


__all__ = [
    "HTTPChecker",
    "PingChecker",
    "ProbeChecker",
    "ProbeKind",
    "ProbeResult",
    "TCPChecker",
    "default_checkers",
    "split_host_port",
]
