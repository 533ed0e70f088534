"""DNS provider contract and the Cloudflare implementation."""

from failover_monitor.dns.cloudflare import CloudflareDNSProvider, DNSRecord, extract_root_domain, record_type_for
from failover_monitor.dns.provider import DNSProvider

__all__ = ["CloudflareDNSProvider", "DNSProvider", "DNSRecord", "extract_root_domain", "record_type_for"]
