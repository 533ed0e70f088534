"""Health monitoring and DNS failover engine."""

__version__ = "0.1.0"
