from __future__ import annotations

import pytest

from failover_monitor.config import FailoverCandidate
from failover_monitor.errors import (
    DNSLookupError,
    DNSUpdateError,
    FailoverExhaustedError,
    NoAlternativeCandidateError,
    NoFailoverCandidatesError,
    NoSwitchNeededError,
)
from failover_monitor.failover import DNSSwitcher, FailoverSelector, rank_candidates
from failover_monitor.probes.base import ProbeKind, ProbeResult


class FakeChecker:
    kind = ProbeKind.PING

    def __init__(self, reachable: set[str]) -> None:
        self.reachable = set(reachable)
        self.calls: list[tuple[str, float]] = []

    async def check(self, target: str, timeout: float) -> ProbeResult:
        self.calls.append((target, timeout))
        if target in self.reachable:
            return ProbeResult.ok(self.kind, target, 1.0)
        return ProbeResult.failed(self.kind, target, "unreachable")


class FakeDNSProvider:
    def __init__(self, current: str = "", fail_updates: int = 0, fail_reads: int = 0) -> None:
        self.current = current
        self.fail_updates = fail_updates
        self.fail_reads = fail_reads
        self.updates: list[tuple[str, str]] = []

    async def get_current_target(self, domain: str) -> str:
        if self.fail_reads > 0:
            self.fail_reads -= 1
            raise RuntimeError("lookup failed")
        return self.current

    async def update_record(self, domain: str, new_address: str) -> None:
        self.updates.append((domain, new_address))
        if self.fail_updates > 0:
            self.fail_updates -= 1
            raise RuntimeError("api down")
        self.current = new_address


CANDIDATES = [
    FailoverCandidate(address="low", weight=10),
    FailoverCandidate(address="high", weight=100),
    FailoverCandidate(address="mid-a", weight=50),
    FailoverCandidate(address="mid-b", weight=50),
]


def test_rank_candidates_is_stable_by_weight() -> None:
    assert [c.address for c in rank_candidates(CANDIDATES)] == ["high", "mid-a", "mid-b", "low"]


@pytest.mark.asyncio
async def test_select_returns_highest_weight_reachable() -> None:
    checker = FakeChecker({"mid-b", "low"})
    selector = FailoverSelector(checker)

    assert await selector.select_best_failover(CANDIDATES) == "mid-b"
    assert [t for t, _ in checker.calls] == ["high", "mid-a", "mid-b"]
    assert all(timeout == 5.0 for _, timeout in checker.calls)


@pytest.mark.asyncio
async def test_select_excluding_skips_current() -> None:
    checker = FakeChecker({"high", "mid-a"})
    selector = FailoverSelector(checker)

    assert await selector.select_excluding(CANDIDATES, "high") == "mid-a"
    assert "high" not in [t for t, _ in checker.calls]


@pytest.mark.asyncio
async def test_select_exhausted_names_every_candidate() -> None:
    selector = FailoverSelector(FakeChecker(set()))

    with pytest.raises(FailoverExhaustedError) as ei:
        await selector.select_best_failover(CANDIDATES)

    assert ei.value.attempted == ["high", "mid-a", "mid-b", "low"]
    for name in ("high", "mid-a", "mid-b", "low"):
        assert name in str(ei.value)


@pytest.mark.asyncio
async def test_select_without_candidates() -> None:
    with pytest.raises(NoFailoverCandidatesError):
        await FailoverSelector(FakeChecker({"x"})).select_best_failover([])


@pytest.mark.asyncio
async def test_switch_to_current_address_makes_no_update() -> None:
    provider = FakeDNSProvider(current="1.2.3.4")
    switcher = DNSSwitcher(provider, FailoverSelector(FakeChecker(set())))

    with pytest.raises(NoSwitchNeededError):
        await switcher.switch_domain("app.example.com", "1.2.3.4")
    assert provider.updates == []


@pytest.mark.asyncio
async def test_switch_retries_until_success() -> None:
    provider = FakeDNSProvider(current="1.1.1.1", fail_updates=2)
    switcher = DNSSwitcher(provider, FailoverSelector(FakeChecker(set())))

    await switcher.switch_domain("app.example.com", "2.2.2.2", retry_count=3)

    assert len(provider.updates) == 3
    assert provider.current == "2.2.2.2"


@pytest.mark.asyncio
async def test_switch_gives_up_after_retry_count() -> None:
    provider = FakeDNSProvider(current="1.1.1.1", fail_updates=10)
    switcher = DNSSwitcher(provider, FailoverSelector(FakeChecker(set())))

    with pytest.raises(DNSUpdateError) as ei:
        await switcher.switch_domain("app.example.com", "2.2.2.2", retry_count=3)

    assert len(provider.updates) == 3
    assert ei.value.attempts == 3
    assert isinstance(ei.value.last_error, RuntimeError)


@pytest.mark.asyncio
async def test_auto_switch_excludes_current_record() -> None:
    provider = FakeDNSProvider(current="high")
    switcher = DNSSwitcher(provider, FailoverSelector(FakeChecker({"high", "mid-a"})))

    new_address = await switcher.auto_switch("app.example.com", CANDIDATES)

    assert new_address == "mid-a"
    assert provider.updates == [("app.example.com", "mid-a")]


@pytest.mark.asyncio
async def test_auto_switch_tolerates_unreadable_record() -> None:
    provider = FakeDNSProvider(current="", fail_reads=1)
    switcher = DNSSwitcher(provider, FailoverSelector(FakeChecker({"high"})))

    assert await switcher.auto_switch("app.example.com", CANDIDATES) == "high"
    assert provider.updates == [("app.example.com", "high")]


@pytest.mark.asyncio
async def test_equal_weights_are_probed_before_lower_weight() -> None:
    candidates = [
        FailoverCandidate(address="A", weight=50),
        FailoverCandidate(address="B", weight=100),
        FailoverCandidate(address="C", weight=100),
    ]
    checker = FakeChecker({"C", "A"})

    assert await FailoverSelector(checker).select_best_failover(candidates) == "C"
    assert [t for t, _ in checker.calls] == ["B", "C"]

    with pytest.raises(FailoverExhaustedError) as ei:
        await FailoverSelector(FakeChecker(set())).select_best_failover(candidates)
    assert len(ei.value.attempted) == 3
    assert "all 3 failover candidates unreachable" in str(ei.value)


@pytest.mark.asyncio
async def test_only_candidate_is_current_address() -> None:
    checker = FakeChecker({"only"})

    with pytest.raises(NoAlternativeCandidateError) as ei:
        await FailoverSelector(checker).select_excluding([FailoverCandidate(address="only")], "only")
    assert ei.value.current == "only"
    assert "all 0" not in str(ei.value)
    assert checker.calls == []


@pytest.mark.asyncio
async def test_switch_wraps_record_read_errors() -> None:
    provider = FakeDNSProvider(current="high", fail_reads=1)
    switcher = DNSSwitcher(provider, FailoverSelector(FakeChecker({"high"})))

    with pytest.raises(DNSLookupError) as ei:
        await switcher.switch_domain("app.example.com", "mid-a")
    assert ei.value.domain == "app.example.com"
    assert isinstance(ei.value.error, RuntimeError)
    assert provider.updates == []
