"""Periodic probing of every configured target, with escalation on repeated failure."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple
from urllib.parse import urlparse

import structlog

from failover_monitor.alerts.dispatcher import AlertDispatcher
from failover_monitor.config import FailoverCandidate, MonitorConfig
from failover_monitor.errors import (
    FailoverError,
    NoSwitchNeededError,
    RemoteConfigError,
    SchedulerStateError,
)
from failover_monitor.failover.switcher import DNSSwitcher
from failover_monitor.health.state import HealthStateStore
from failover_monitor.probes.base import ProbeChecker, ProbeKind, ProbeResult
from failover_monitor.probes.tcp import split_host_port
from failover_monitor.remote import RemoteConfigFetcher
from failover_monitor.storage.base import ConfigStore


logger = structlog.get_logger(__name__)


def dns_name_for(kind: ProbeKind, target: str) -> str:
    """The DNS record name behind a probe target."""
    if kind is ProbeKind.HTTP:
        return urlparse(target).hostname or target
    if kind is ProbeKind.TCP:
        try:
            host, _ = split_host_port(target)
            return host
        except ValueError:
            return target
    return target


@dataclass(frozen=True)
class ProbeJob:
    """Everything one probe needs, copied out of the config at tick start."""

    kind: ProbeKind
    target: str
    timeout: float
    threshold: int
    retry: int
    failover: Tuple[FailoverCandidate, ...]
    mode: str
    silence_period: int


class ProbeScheduler:
    """Runs one probe per target per enabled kind on every tick.

    Ticks never overlap: every probe of a tick finishes before the loop sleeps
    again. Silence windows and switch cooldowns suppress escalation only; the
    target is probed and counted as usual.
    """

    def __init__(
        self,
        config: MonitorConfig,
        *,
        checkers: Mapping[ProbeKind, ProbeChecker],
        state: HealthStateStore,
        dispatcher: Optional[AlertDispatcher] = None,
        switcher: Optional[DNSSwitcher] = None,
        remote_fetcher: Optional[RemoteConfigFetcher] = None,
        config_store: Optional[ConfigStore] = None,
    ) -> None:
        self._config = config
        self._config_lock = threading.Lock()
        self.checkers = dict(checkers)
        self.state = state
        self.dispatcher = dispatcher
        self.switcher = switcher
        self.remote_fetcher = remote_fetcher
        self.config_store = config_store

        self._running = False
        self._stop_event: Optional[asyncio.Event] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._remote_task: Optional[asyncio.Task] = None
        self.tick_count = 0

    @property
    def config(self) -> MonitorConfig:
        with self._config_lock:
            return self._config

    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            raise SchedulerStateError("probe scheduler is already running")

        cfg = self.config
        logger.info("Starting probe scheduler", mode=cfg.mode, kinds=[k.value for k in cfg.enabled_kinds()])

        if cfg.remote_config_url and self.remote_fetcher is not None:
            try:
                await self.refresh_remote_config()
            except RemoteConfigError as e:
                logger.error("Initial remote config fetch failed; using local config", error=str(e))

        for target in self.config.all_targets():
            if self.state.get(target) is None:
                self.state.init(target)

        self._stop_event = asyncio.Event()
        self._running = True
        self._loop_task = asyncio.create_task(self._run_loop())

        cfg = self.config
        if cfg.remote_config_url and self.remote_fetcher is not None and cfg.remote_update_freq > 0:
            self._remote_task = asyncio.create_task(self._remote_loop())

        logger.info(
            "Probe scheduler started",
            interval=cfg.min_frequency(),
            targets=len(cfg.all_targets()),
            remote_update_freq=cfg.remote_update_freq if self._remote_task else 0,
        )

    async def stop(self) -> None:
        """Signal the loops to exit and wait for the current tick to drain."""
        if not self._running:
            raise SchedulerStateError("probe scheduler is not running")

        assert self._stop_event is not None
        self._stop_event.set()
        tasks = [t for t in (self._loop_task, self._remote_task) if t is not None]
        await asyncio.gather(*tasks, return_exceptions=True)

        self._loop_task = None
        self._remote_task = None
        self._running = False
        logger.info("Probe scheduler stopped", ticks=self.tick_count)

    async def run_once(self) -> None:
        """Run a single tick in the foreground."""
        await self._tick()

    # Configuration

    def update_config(self, new_config: MonitorConfig) -> None:
        """Swap in ``new_config`` and reconcile health state with its target set."""
        with self._config_lock:
            old_targets = self._config.all_targets()
            self._config = new_config
            new_targets = new_config.all_targets()

            added = sorted(new_targets - old_targets)
            # Also sweeps entries recreated by probes that finished after an earlier removal.
            removed = sorted((old_targets | self.state.targets()) - new_targets)
            for target in added:
                self.state.init(target)
            for target in removed:
                self.state.remove(target)
            self.state.cooldown_minutes = int(new_config.cooldown_minutes)

        if self.dispatcher is not None:
            self.dispatcher.update_config(new_config.webhook)

        if added or removed:
            logger.info("Targets changed", added=added, removed=removed)
        else:
            logger.info("Config updated; target set unchanged", targets=len(new_targets))

    def is_configured(self, target: str) -> bool:
        with self._config_lock:
            return target in self._config.all_targets()

    async def refresh_remote_config(self) -> MonitorConfig:
        """Fetch, validate and apply the remote config. The current config is kept on failure."""
        cfg = self.config
        if not cfg.remote_config_url:
            raise RemoteConfigError("no remote config URL configured")
        if self.remote_fetcher is None:
            raise RemoteConfigError("no remote config fetcher available")

        remote = await self.remote_fetcher.fetch(cfg.remote_config_url)
        new_config = remote.apply_to(self.config)
        self.update_config(new_config)

        if self.config_store is not None:
            try:
                self.config_store.save(new_config)
            except Exception as e:
                logger.error("Failed to persist remote config", error=str(e))

        logger.info("Remote config applied", url=cfg.remote_config_url, targets=len(new_config.all_targets()))
        return new_config

    # Loops

    async def _run_loop(self) -> None:
        assert self._stop_event is not None
        loop = asyncio.get_running_loop()
        while not self._stop_event.is_set():
            started = loop.time()
            try:
                await self._tick()
            except Exception as e:
                logger.exception("Tick failed", error=str(e))

            # Fixed rate: the interval is measured from tick start.
            elapsed = loop.time() - started
            wait = max(0.0, self.config.min_frequency() - elapsed)
            if wait == 0.0:
                logger.warning("Tick overran its interval", elapsed=round(elapsed, 2))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=wait)
            except asyncio.TimeoutError:
                pass

    async def _remote_loop(self) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            interval = max(1, self.config.remote_update_freq)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await self.refresh_remote_config()
            except RemoteConfigError as e:
                logger.error("Remote config refresh failed; keeping current config", error=str(e))
            except Exception as e:
                logger.exception("Remote config refresh crashed", error=str(e))

    def _snapshot(self) -> List[ProbeJob]:
        jobs: list[ProbeJob] = []
        with self._config_lock:
            cfg = self._config
            for kind in cfg.enabled_kinds():
                kc = cfg.kind_config(kind)
                for target in kc.domains:
                    jobs.append(
                        ProbeJob(
                            kind=kind,
                            target=target,
                            timeout=float(kc.timeout),
                            threshold=int(kc.failcount),
                            retry=int(kc.retry),
                            failover=tuple(kc.failover),
                            mode=cfg.mode,
                            silence_period=int(cfg.webhook.silence_period),
                        )
                    )
        return jobs

    async def _tick(self) -> None:
        jobs = self._snapshot()
        self.tick_count += 1
        if not jobs:
            logger.debug("No targets to probe")
            return

        results = await asyncio.gather(*(self._probe(job) for job in jobs), return_exceptions=True)
        for job, outcome in zip(jobs, results):
            if isinstance(outcome, BaseException):
                logger.error("Probe handling failed", kind=job.kind.value, target=job.target, error=str(outcome))

    async def _probe(self, job: ProbeJob) -> None:
        checker = self.checkers.get(job.kind)
        if checker is None:
            result = ProbeResult.failed(job.kind, job.target, f"no checker for {job.kind.value}")
        else:
            try:
                result = await checker.check(job.target, job.timeout)
            except Exception as e:
                result = ProbeResult.failed(job.kind, job.target, f"{type(e).__name__}: {e}")

        if result.success:
            await self._on_success(job, result)
        else:
            await self._on_failure(job, result)

    async def _on_success(self, job: ProbeJob, result: ProbeResult) -> None:
        if not self.is_configured(job.target):
            logger.debug("Dropping result for removed target", target=job.target)
            return
        logger.info("Probe succeeded", kind=job.kind.value, target=job.target, latency=result.describe_latency())
        was_down = self.state.is_down(job.target)
        if was_down and job.mode == "alert" and self.dispatcher is not None:
            await self.dispatcher.send_recovery(job.kind, job.target)
        self.state.reset_failure(job.target)
        self.state.clear_silence(job.target)

    async def _on_failure(self, job: ProbeJob, result: ProbeResult) -> None:
        if not self.is_configured(job.target):
            logger.debug("Dropping result for removed target", target=job.target)
            return
        count = self.state.increment_failure(job.target)
        logger.warning(
            "Probe failed",
            kind=job.kind.value,
            target=job.target,
            fail_count=count,
            threshold=job.threshold,
            error=result.error,
        )
        if count < job.threshold:
            return

        if job.mode == "failover":
            await self._escalate_failover(job, count)
        else:
            await self._escalate_alert(job, count, result.error)

    async def _escalate_alert(self, job: ProbeJob, count: int, error: Optional[str]) -> None:
        if self.state.is_silenced(job.target):
            logger.info(
                "Alert suppressed; target silenced",
                kind=job.kind.value,
                target=job.target,
                fail_count=count,
                remaining_seconds=round(self.state.silence_remaining(job.target), 1),
            )
            return

        logger.error("Failure threshold reached; alerting", kind=job.kind.value, target=job.target, fail_count=count)
        if self.dispatcher is None:
            logger.warning("No alert dispatcher configured", target=job.target)
        else:
            await self.dispatcher.send_down(job.kind, job.target, count, job.threshold, error)
        self.state.mark_down(job.target, job.silence_period)

    async def _escalate_failover(self, job: ProbeJob, count: int) -> None:
        if self.state.is_in_cooldown(job.target):
            logger.info(
                "Failover suppressed; target in cooldown",
                kind=job.kind.value,
                target=job.target,
                fail_count=count,
                remaining_minutes=self.state.cooldown_remaining(job.target),
            )
            return

        if self.switcher is None:
            logger.error("No DNS switcher configured; cannot fail over", target=job.target)
            self.state.reset_failure(job.target)
            return

        domain = dns_name_for(job.kind, job.target)
        logger.error("Failure threshold reached; failing over", kind=job.kind.value, target=job.target, domain=domain)
        try:
            new_address = await self.switcher.auto_switch(domain, list(job.failover), retry_count=job.retry)
        except NoSwitchNeededError as e:
            logger.warning("Failover not needed", target=job.target, domain=domain, error=str(e))
            self.state.reset_failure(job.target)
            return
        except FailoverError as e:
            logger.error("Failover failed", target=job.target, domain=domain, error=str(e))
            self.state.reset_failure(job.target)
            return
        except Exception as e:
            logger.exception("Failover crashed", target=job.target, domain=domain, error=str(e))
            self.state.reset_failure(job.target)
            return

        logger.info("Failover succeeded", target=job.target, domain=domain, address=new_address)
        if self.is_configured(job.target):
            self.state.mark_switched(job.target)
