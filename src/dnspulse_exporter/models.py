"""
Data models for the DNSPulse exporter.

Defines structured types for query results, server bindings,
probe configuration and per-probe outcomes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import dns.message

from .errors import ResolverError


class Protocol(Enum):
    """DNS transport protocols, valued by their metric label."""
    DO53_UDP = "do53-udp"
    DO53_TCP = "do53-tcp"
    DOT = "dot"    # DNS over TLS
    DOH = "doh"    # DNS over HTTPS (HTTP/2)
    DOH3 = "doh3"  # DNS over HTTPS (HTTP/3)
    DOQ = "doq"    # DNS over QUIC

    @property
    def default_port(self) -> int:
        """Standard port for this protocol."""
        return _DEFAULT_PORTS[self]

    @property
    def encrypted(self) -> bool:
        """Whether the protocol runs over TLS or QUIC."""
        return self not in (Protocol.DO53_UDP, Protocol.DO53_TCP)

    @classmethod
    def values(cls) -> list[str]:
        return [p.value for p in cls]


_DEFAULT_PORTS = {
    Protocol.DO53_UDP: 53,
    Protocol.DO53_TCP: 53,
    Protocol.DOT: 853,
    Protocol.DOQ: 853,
    Protocol.DOH: 443,
    Protocol.DOH3: 443,
}


@dataclass(frozen=True)
class TLSSettings:
    """TLS options for encrypted protocols."""
    server_name: Optional[str] = None
    insecure_skip_verify: bool = False


@dataclass(frozen=True)
class ServerConfig:
    """Configuration for one upstream DNS server."""
    address: str
    port: Optional[int] = None
    protocol: Optional[str] = None
    tls: Optional[TLSSettings] = None

    @property
    def protocol_tag(self) -> str:
        """Protocol tag, 'do53-udp' when unset."""
        if self.protocol is None:
            return Protocol.DO53_UDP.value
        return self.protocol

    @property
    def effective_port(self) -> int:
        """Configured port, or the protocol's standard port."""
        if self.port:
            return self.port
        try:
            return Protocol(self.protocol_tag).default_port
        except ValueError:
            return 53

    @property
    def endpoint(self) -> str:
        """``address:port`` as used in the ``server`` metric label."""
        host = self.address
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        return f"{host}:{self.effective_port}"

    @property
    def key(self) -> str:
        """Identity of the resolver built for this server."""
        return f"{self.address}:{self.effective_port}:{self.protocol_tag}"


@dataclass(frozen=True)
class DomainConfig:
    """A domain to probe and how many times per cycle."""
    name: str
    probes: int = 1


@dataclass
class QueryResult:
    """Result of a single resolution attempt."""
    duration: float
    response: Optional[dns.message.Message] = None
    error: Optional[Exception] = None

    def __post_init__(self):
        if self.duration < 0:
            self.duration = 0.0
        if self.error is not None:
            self.response = None
        elif self.response is None:
            # A missing answer is a failure even if nothing raised
            self.error = ResolverError("no response received")

    @property
    def success(self) -> bool:
        """Check if the attempt produced a decoded response."""
        return self.error is None

    @property
    def duration_ms(self) -> float:
        return self.duration * 1000


@dataclass
class ProbeOutcome:
    """What the prober reported for one probe."""
    domain: str
    server: str
    protocol: str
    hostname: str
    duration: float
    success: bool
    error: Optional[str] = None

    @property
    def latency_ms(self) -> float:
        """Latency in milliseconds."""
        return self.duration * 1000


@dataclass
class ServerStats:
    """Aggregated statistics for one server/protocol over a probe cycle."""
    server: str
    protocol: str
    total_queries: int
    successful_queries: int
    failed_queries: int

    # Latency stats (in milliseconds, successful probes only)
    min_latency: float = 0.0
    max_latency: float = 0.0
    avg_latency: float = 0.0
    median_latency: float = 0.0
    p95_latency: float = 0.0

    errors: list[str] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Percentage of successful queries."""
        if self.total_queries == 0:
            return 0.0
        return (self.successful_queries / self.total_queries) * 100
