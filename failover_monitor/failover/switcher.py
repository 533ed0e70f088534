"""Point a DNS record at a healthy backup address."""

from __future__ import annotations

from typing import Sequence

import structlog

from failover_monitor.config import FailoverCandidate
from failover_monitor.dns.provider import DNSProvider
from failover_monitor.errors import DNSLookupError, DNSUpdateError, NoSwitchNeededError
from failover_monitor.failover.selector import FailoverSelector


logger = structlog.get_logger(__name__)


class DNSSwitcher:
    def __init__(self, provider: DNSProvider, selector: FailoverSelector) -> None:
        self.provider = provider
        self.selector = selector

    async def current_address(self, domain: str) -> str:
        return await self.provider.get_current_target(domain)

    async def switch_domain(self, domain: str, target_address: str, retry_count: int = 3) -> None:
        """Update ``domain`` to ``target_address``.

        Raises NoSwitchNeededError when the record already holds the address (no
        update call is made) and DNSUpdateError once every attempt has failed.
        """
        logger.info("Switching domain", domain=domain, target=target_address)

        try:
            current = await self.provider.get_current_target(domain)
        except Exception as e:
            logger.error("Could not read current record", domain=domain, error=str(e))
            raise DNSLookupError(domain, e) from e
        if current == target_address:
            logger.info("Target equals current record; nothing to switch", domain=domain, address=current)
            raise NoSwitchNeededError(domain, target_address)

        attempts = max(1, int(retry_count))
        last_error: BaseException | None = None
        for attempt in range(1, attempts + 1):
            try:
                await self.provider.update_record(domain, target_address)
            except Exception as e:
                last_error = e
                logger.error(
                    "DNS record update failed",
                    domain=domain,
                    attempt=attempt,
                    attempts=attempts,
                    error=str(e),
                )
                continue

            logger.info("DNS record updated", domain=domain, previous=current, target=target_address, attempt=attempt)
            return

        logger.error("DNS switch abandoned", domain=domain, previous=current, target=target_address, error=str(last_error))
        raise DNSUpdateError(domain, attempts, last_error)

    async def auto_switch(self, domain: str, candidates: Sequence[FailoverCandidate], retry_count: int = 3) -> str:
        """Select the best reachable backup and switch ``domain`` to it; returns the new address."""
        logger.info("Auto switching domain", domain=domain)

        try:
            current = await self.provider.get_current_target(domain)
        except Exception as e:
            logger.warning("Could not read current record; selecting without exclusion", domain=domain, error=str(e))
            current = ""

        if current:
            target = await self.selector.select_excluding(candidates, current)
        else:
            target = await self.selector.select_best_failover(candidates)

        logger.info("Selected failover address", domain=domain, target=target)
        await self.switch_domain(domain, target, retry_count=retry_count)
        return target
