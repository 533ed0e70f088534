from __future__ import annotations

import asyncio
import ipaddress
import math
import re
import shutil

import structlog

from failover_monitor.probes.base import ProbeKind, ProbeResult


logger = structlog.get_logger(__name__)

PING_PACKET_COUNT = 4
PING_INTERVAL_SECONDS = 0.3

_RECEIVED_RE = re.compile(r"(\d+)\s+packets transmitted,\s+(\d+)\s+(?:packets\s+)?received")
_RTT_RE = re.compile(r"(?:rtt|round-trip)[^=]*=\s*([\d.]+)/([\d.]+)/([\d.]+)")


def _is_ip_literal(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def _resolve_sync(host: str, dns_server: str | None, timeout_seconds: float) -> str:
    # dnspython is imported lazily so plain TCP/HTTP deployments never touch it.
    import dns.resolver  # type: ignore

    r = dns.resolver.Resolver(configure=dns_server is None)
    if dns_server:
        server, _, port = dns_server.partition(":")
        r.nameservers = [server]
        if port:
            r.port = int(port)
    r.timeout = max(0.5, float(timeout_seconds))
    r.lifetime = max(0.5, float(timeout_seconds))
    for record_type in ("A", "AAAA"):
        try:
            ans = r.resolve(host, record_type)
        except (dns.resolver.NoAnswer, dns.resolver.NXDOMAIN):
            continue
        for rr in ans:
            s = str(rr or "").strip()
            if s:
                return s
    raise LookupError(f"no A/AAAA records for {host}")


def parse_ping_output(output: str) -> tuple[int, int, float | None]:
    """Return ``(sent, received, avg_rtt_ms)`` from iputils/BSD ping output."""
    sent = received = 0
    m = _RECEIVED_RE.search(output)
    if m:
        sent, received = int(m.group(1)), int(m.group(2))
    avg = None
    m = _RTT_RE.search(output)
    if m:
        avg = float(m.group(2))
    return sent, received, avg


class PingChecker:
    """ICMP reachability through the system ``ping`` binary.

    Hostnames are resolved first: through ``dns_server`` (``ip[:port]``) when
    configured, otherwise the system resolver. The probe succeeds when at least
    one echo reply arrives.
    """

    kind = ProbeKind.PING

    def __init__(self, dns_server: str | None = None, ping_binary: str | None = None) -> None:
        self.dns_server = (dns_server or "").strip() or None
        self.ping_binary = ping_binary or shutil.which("ping") or "ping"

    async def resolve(self, host: str, timeout: float) -> str:
        if _is_ip_literal(host):
            return host
        if self.dns_server:
            return await asyncio.to_thread(_resolve_sync, host, self.dns_server, timeout)
        loop = asyncio.get_running_loop()
        infos = await asyncio.wait_for(loop.getaddrinfo(host, None), timeout=timeout)
        if not infos:
            raise LookupError(f"no addresses for {host}")
        return str(infos[0][4][0])

    async def check(self, target: str, timeout: float) -> ProbeResult:
        host = (target or "").strip()
        if not host:
            return ProbeResult.failed(self.kind, target, "empty target")

        try:
            ip = await self.resolve(host, timeout)
        except Exception as e:
            return ProbeResult.failed(self.kind, target, f"dns_error ({host}): {type(e).__name__}: {e}")

        deadline = max(1, int(math.ceil(timeout)))
        cmd = [
            self.ping_binary,
            "-n",
            "-c",
            str(PING_PACKET_COUNT),
            "-i",
            str(PING_INTERVAL_SECONDS),
            "-w",
            str(deadline),
            ip,
        ]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return ProbeResult.failed(self.kind, target, f"ping_unavailable: {type(e).__name__}: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=deadline + 2)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return ProbeResult.failed(self.kind, target, f"ping_timeout after {deadline}s")

        output = stdout.decode("utf-8", errors="replace")
        sent, received, avg = parse_ping_output(output)
        if received > 0:
            return ProbeResult.ok(self.kind, target, avg)

        err = stderr.decode("utf-8", errors="replace").strip()
        if sent:
            loss = 100.0 * (sent - received) / sent
            msg = f"icmp_timeout (sent={sent} received={received} loss={loss:.0f}%)"
        else:
            msg = f"ping_failed rc={proc.returncode}"
        if err:
            msg = f"{msg}: {err[:200]}"
        logger.debug("Ping failed", target=target, ip=ip, error=msg)
        return ProbeResult.failed(self.kind, target, msg)
