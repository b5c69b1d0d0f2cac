"""
DNSPulse Exporter - Prometheus exporter for DNS resolution performance.

Probes upstream servers over do53 (UDP/TCP), DoT, DoH, DoH3 and DoQ.
"""

__version__ = "1.1.0"

from .models import QueryResult, ServerConfig, DomainConfig, Protocol
from .resolvers import create_resolver
from .runner import Prober

__all__ = [
    "__version__",
    "QueryResult",
    "ServerConfig",
    "DomainConfig",
    "Protocol",
    "create_resolver",
    "Prober",
]
