from __future__ import annotations

import asyncio
import time

from failover_monitor.probes.base import ProbeKind, ProbeResult, elapsed_ms


def split_host_port(target: str) -> tuple[str, int]:
    s = (target or "").strip()
    if s.startswith("["):
        host, sep, rest = s[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise ValueError(f"invalid target (expected host:port): {target!r}")
        port_str = rest[1:]
    else:
        host, sep, port_str = s.rpartition(":")
        if not sep:
            raise ValueError(f"invalid target (expected host:port): {target!r}")
    if not host or not port_str:
        raise ValueError(f"invalid target: host={host!r} port={port_str!r}")
    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"invalid port in target {target!r}") from None
    if not (0 < port < 65536):
        raise ValueError(f"port out of range in target {target!r}")
    return host, port


class TCPChecker:
    kind = ProbeKind.TCP

    async def check(self, target: str, timeout: float) -> ProbeResult:
        try:
            host, port = split_host_port(target)
        except ValueError as e:
            return ProbeResult.failed(self.kind, target, str(e))

        started = time.perf_counter()
        try:
            _reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
        except asyncio.TimeoutError:
            return ProbeResult.failed(self.kind, target, f"tcp_timeout after {timeout}s")
        except OSError as e:
            return ProbeResult.failed(self.kind, target, f"tcp_error: {type(e).__name__}: {e}")

        latency = elapsed_ms(started)
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return ProbeResult.ok(self.kind, target, latency)
