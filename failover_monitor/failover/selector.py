"""Pick the first reachable backup address, highest weight first."""

from __future__ import annotations

from typing import Iterable, Sequence

import structlog

from failover_monitor.config import FailoverCandidate
from failover_monitor.errors import FailoverExhaustedError, NoAlternativeCandidateError, NoFailoverCandidatesError
from failover_monitor.probes.base import ProbeChecker


logger = structlog.get_logger(__name__)

SELECTOR_PROBE_TIMEOUT_SECONDS = 5.0


def rank_candidates(candidates: Iterable[FailoverCandidate]) -> list[FailoverCandidate]:
    # sorted() is stable, so equal weights keep their configured order.
    return sorted(candidates, key=lambda c: c.weight, reverse=True)


class FailoverSelector:
    def __init__(self, checker: ProbeChecker, probe_timeout: float = SELECTOR_PROBE_TIMEOUT_SECONDS) -> None:
        self.checker = checker
        self.probe_timeout = float(probe_timeout)

    async def select_best_failover(self, candidates: Sequence[FailoverCandidate]) -> str:
        return await self._select(candidates, exclude=None)

    async def select_excluding(self, candidates: Sequence[FailoverCandidate], exclude_address: str) -> str:
        return await self._select(candidates, exclude=exclude_address)

    async def _select(self, candidates: Sequence[FailoverCandidate], exclude: str | None) -> str:
        if not candidates:
            raise NoFailoverCandidatesError()

        ranked = rank_candidates(candidates)
        logger.info("Selecting failover address", candidates=len(ranked), exclude=exclude)

        attempted: list[str] = []
        for candidate in ranked:
            if exclude is not None and candidate.address == exclude:
                logger.info("Skipping current address", address=candidate.address)
                continue

            attempted.append(candidate.address)
            result = await self.checker.check(candidate.address, self.probe_timeout)
            if result.success:
                logger.info(
                    "Failover address reachable",
                    address=candidate.address,
                    weight=candidate.weight,
                    latency=result.describe_latency(),
                )
                return candidate.address
            logger.warning(
                "Failover address unreachable",
                address=candidate.address,
                weight=candidate.weight,
                error=result.error,
            )

        if not attempted and exclude is not None:
            raise NoAlternativeCandidateError(exclude)
        raise FailoverExhaustedError(attempted)
