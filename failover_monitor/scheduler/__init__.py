"""Probe scheduling."""

from failover_monitor.scheduler.probe_scheduler import ProbeJob, ProbeScheduler, dns_name_for

__all__ = ["ProbeJob", "ProbeScheduler", "dns_name_for"]
