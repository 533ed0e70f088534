"""Failover target selection and DNS switching."""

from failover_monitor.failover.selector import FailoverSelector, rank_candidates
from failover_monitor.failover.switcher import DNSSwitcher

__all__ = ["DNSSwitcher", "FailoverSelector", "rank_candidates"]
