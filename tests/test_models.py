"""Tests for data models."""

import dns.message

from dnspulse_exporter.errors import QueryTimeout, ResolverError
from dnspulse_exporter.models import (
    DomainConfig,
    ProbeOutcome,
    Protocol,
    QueryResult,
    ServerConfig,
    ServerStats,
)


class TestProtocol:
    """Tests for the Protocol enum."""

    def test_values(self):
        assert Protocol.values() == ["do53-udp", "do53-tcp", "dot", "doh", "doh3", "doq"]

    def test_default_ports(self):
        assert Protocol.DO53_UDP.default_port == 53
        assert Protocol.DO53_TCP.default_port == 53
        assert Protocol.DOT.default_port == 853
        assert Protocol.DOQ.default_port == 853
        assert Protocol.DOH.default_port == 443
        assert Protocol.DOH3.default_port == 443

    def test_encrypted(self):
        assert not Protocol.DO53_UDP.encrypted
        assert not Protocol.DO53_TCP.encrypted
        assert all(p.encrypted for p in (Protocol.DOT, Protocol.DOH, Protocol.DOH3, Protocol.DOQ))


class TestQueryResult:
    """Tests for QueryResult."""

    def test_success(self):
        response = dns.message.make_query("example.com", "A")
        result = QueryResult(duration=0.012, response=response)

        assert result.success
        assert result.error is None
        assert result.duration_ms == 12.0

    def test_failure(self):
        result = QueryResult(duration=2.0, error=QueryTimeout("timed out"))

        assert not result.success
        assert result.response is None

    def test_error_clears_response(self):
        response = dns.message.make_query("example.com", "A")
        result = QueryResult(duration=0.1, response=response, error=ResolverError("boom"))

        assert not result.success
        assert result.response is None

    def test_neither_response_nor_error(self):
        result = QueryResult(duration=0.1)

        assert not result.success
        assert isinstance(result.error, ResolverError)

    def test_negative_duration_clamped(self):
        result = QueryResult(duration=-1.0, error=ResolverError("x"))
        assert result.duration == 0.0


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_defaults(self):
        server = ServerConfig(address="192.0.2.53")

        assert server.protocol_tag == "do53-udp"
        assert server.effective_port == 53
        assert server.endpoint == "192.0.2.53:53"
        assert server.key == "192.0.2.53:53:do53-udp"

    def test_protocol_default_port(self):
        assert ServerConfig(address="192.0.2.53", protocol="dot").effective_port == 853
        assert ServerConfig(address="192.0.2.53", protocol="doh3").effective_port == 443

    def test_explicit_port(self):
        server = ServerConfig(address="192.0.2.53", port=5353, protocol="doq")
        assert server.endpoint == "192.0.2.53:5353"

    def test_ipv6_endpoint(self):
        server = ServerConfig(address="2001:db8::53", protocol="do53-tcp")
        assert server.endpoint == "[2001:db8::53]:53"

    def test_unknown_protocol_port(self):
        assert ServerConfig(address="192.0.2.53", protocol="bogus").effective_port == 53

    def test_key_distinguishes_protocol(self):
        udp = ServerConfig(address="192.0.2.53", port=53, protocol="do53-udp")
        tcp = ServerConfig(address="192.0.2.53", port=53, protocol="do53-tcp")
        assert udp.key != tcp.key


class TestProbeModels:
    """Tests for ProbeOutcome and ServerStats."""

    def test_outcome_latency(self):
        outcome = ProbeOutcome(
            domain="example.com",
            server="192.0.2.53:53",
            protocol="do53-udp",
            hostname="ABCDEFGH.example.com",
            duration=0.25,
            success=True,
        )
        assert outcome.latency_ms == 250.0

    def test_success_rate(self):
        stats = ServerStats(
            server="192.0.2.53:53",
            protocol="dot",
            total_queries=4,
            successful_queries=3,
            failed_queries=1,
        )
        assert stats.success_rate == 75.0

    def test_success_rate_empty(self):
        stats = ServerStats("s", "dot", 0, 0, 0)
        assert stats.success_rate == 0.0

    def test_domain_default_probes(self):
        assert DomainConfig(name="example.com").probes == 1
