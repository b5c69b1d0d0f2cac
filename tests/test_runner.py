"""Tests for probe orchestration."""

import asyncio
import logging
import time
from unittest.mock import AsyncMock

import dns.message
import pytest

from dns_stubs import build_answer
from dnspulse_exporter.config import ExporterConfig
from dnspulse_exporter.errors import ResolverError, UnsupportedProtocolError
from dnspulse_exporter.models import DomainConfig, Protocol, ServerConfig
from dnspulse_exporter.runner import Prober, ProbeThread
from dnspulse_exporter.transports import BaseResolver


class FakeResolver(BaseResolver):
    """Resolver answering locally after an optional delay."""

    transport_type = Protocol.DO53_UDP

    def __init__(self, delay: float = 0.0, fail: bool = False, timeout: float = 2.0):
        super().__init__("192.0.2.53", 53, timeout)
        self.delay = delay
        self.fail = fail
        self.hostnames: list[str] = []
        self.closed = 0

    async def _exchange(self, message: dns.message.Message) -> dns.message.Message:
        self.hostnames.append(str(message.question[0].name))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ResolverError("connection refused")
        return build_answer(message)

    async def close(self) -> None:
        self.closed += 1


class BrokenCloseResolver(FakeResolver):
    async def close(self) -> None:
        raise OSError("close failed")


def make_prober(config, metrics, resolver=None, probe_delay=0.0) -> Prober:
    prober = Prober(config, metrics=metrics, probe_delay=probe_delay)
    if resolver is not None:
        for key in prober.resolvers:
            prober.resolvers[key] = resolver
    return prober


def labels(server="192.0.2.53:53", domain="example.com", protocol="do53-udp"):
    return {"domain": domain, "server": server, "protocol": protocol}


async def set_later(event: asyncio.Event, delay: float) -> None:
    await asyncio.sleep(delay)
    event.set()


class TestProberInit:
    """Tests for Prober construction."""

    def test_one_resolver_per_server(self, sample_config, metrics):
        prober = Prober(sample_config, metrics=metrics)

        assert list(prober.resolvers) == ["192.0.2.53:53:do53-udp"]

    def test_duplicate_servers_share_resolver(self, metrics):
        config = ExporterConfig(
            domains=[DomainConfig("example.com")],
            servers=[
                ServerConfig("192.0.2.53", 53, "do53-udp"),
                ServerConfig("192.0.2.53", 53, "do53-udp"),
                ServerConfig("192.0.2.53", 53, "do53-tcp"),
            ],
        )
        prober = Prober(config, metrics=metrics)

        assert len(prober.resolvers) == 2

    def test_invalid_protocol(self, metrics):
        config = ExporterConfig(servers=[ServerConfig("192.0.2.53", 53, "dnscrypt")])

        with pytest.raises(UnsupportedProtocolError, match="failed to create resolver for 192.0.2.53"):
            Prober(config, metrics=metrics)

    def test_empty_protocol(self, metrics):
        config = ExporterConfig(servers=[ServerConfig("192.0.2.53", 53, "")])

        with pytest.raises(UnsupportedProtocolError):
            Prober(config, metrics=metrics)

    def test_default_timeout(self, metrics):
        config = ExporterConfig(servers=[ServerConfig("192.0.2.53")], timeout=0)
        prober = Prober(config, metrics=metrics)

        assert next(iter(prober.resolvers.values())).timeout == 2.0

    def test_configured_timeout(self, metrics):
        config = ExporterConfig(servers=[ServerConfig("192.0.2.53")], timeout=500)
        prober = Prober(config, metrics=metrics)

        assert next(iter(prober.resolvers.values())).timeout == 0.5


class TestRunCycle:
    """Tests for Prober.run_cycle."""

    @pytest.mark.asyncio
    async def test_reports_each_probe(self, sample_config, metrics, registry):
        resolver = FakeResolver()
        prober = make_prober(sample_config, metrics, resolver)

        outcomes = await prober.run_cycle()

        assert len(outcomes) == 2
        assert all(o.success for o in outcomes)
        assert [o.server for o in outcomes] == ["192.0.2.53:53"] * 2
        assert [o.protocol for o in outcomes] == ["do53-udp"] * 2
        assert registry.get_sample_value("dns_query_success_total", labels()) == 2
        assert registry.get_sample_value("dns_query_duration_seconds_count", labels()) == 2
        assert registry.get_sample_value("dns_query_failures_total", labels()) is None

    @pytest.mark.asyncio
    async def test_fresh_hostname_per_probe(self, sample_config, metrics):
        resolver = FakeResolver()
        prober = make_prober(sample_config, metrics, resolver)

        await prober.run_cycle()

        assert len(set(resolver.hostnames)) == 2
        for hostname in resolver.hostnames:
            label, _, rest = hostname.partition(".")
            assert len(label) == 8
            assert rest == "example.com."

    @pytest.mark.asyncio
    async def test_probe_order(self, metrics):
        config = ExporterConfig(
            domains=[DomainConfig("a.test", probes=2), DomainConfig("b.test", probes=2)],
            servers=[
                ServerConfig("192.0.2.1", 53, "do53-udp"),
                ServerConfig("192.0.2.2", 53, "do53-udp"),
            ],
        )
        prober = make_prober(config, metrics)
        for key in prober.resolvers:
            prober.resolvers[key] = FakeResolver()

        outcomes = await prober.run_cycle()

        assert [(o.domain, o.server) for o in outcomes] == [
            ("a.test", "192.0.2.1:53"),
            ("a.test", "192.0.2.1:53"),
            ("a.test", "192.0.2.2:53"),
            ("a.test", "192.0.2.2:53"),
            ("b.test", "192.0.2.1:53"),
            ("b.test", "192.0.2.1:53"),
            ("b.test", "192.0.2.2:53"),
            ("b.test", "192.0.2.2:53"),
        ]

    @pytest.mark.asyncio
    async def test_failures_are_recorded(self, sample_config, metrics, registry):
        prober = make_prober(sample_config, metrics, FakeResolver(fail=True))

        outcomes = await prober.run_cycle()

        assert len(outcomes) == 2
        assert not any(o.success for o in outcomes)
        assert outcomes[0].error == "connection refused"
        assert registry.get_sample_value("dns_query_failures_total", labels()) == 2
        assert registry.get_sample_value("dns_query_duration_seconds_count", labels()) == 2

    @pytest.mark.asyncio
    async def test_delay_between_probes(self, metrics):
        config = ExporterConfig(
            domains=[DomainConfig("example.com", probes=3)],
            servers=[ServerConfig("192.0.2.53", 53, "do53-udp")],
        )
        prober = make_prober(config, metrics, FakeResolver(), probe_delay=0.1)

        start = time.monotonic()
        outcomes = await prober.run_cycle()
        elapsed = time.monotonic() - start

        assert len(outcomes) == 3
        assert elapsed >= 0.29

    @pytest.mark.asyncio
    async def test_stop_during_delay(self, metrics, registry):
        config = ExporterConfig(
            domains=[DomainConfig("example.com", probes=3)],
            servers=[ServerConfig("192.0.2.53", 53, "do53-udp")],
        )
        resolver = FakeResolver()
        prober = make_prober(config, metrics, resolver, probe_delay=5.0)
        stop = asyncio.Event()

        setter = asyncio.ensure_future(set_later(stop, 0.1))
        start = time.monotonic()
        outcomes = await prober.run_cycle(stop)
        elapsed = time.monotonic() - start
        await setter

        assert len(outcomes) == 1
        assert len(resolver.hostnames) == 1
        assert elapsed < 1.0
        assert registry.get_sample_value("dns_query_success_total", labels()) == 1

    @pytest.mark.asyncio
    async def test_stop_during_query(self, sample_config, metrics, registry):
        prober = make_prober(sample_config, metrics, FakeResolver(delay=5.0))
        stop = asyncio.Event()

        setter = asyncio.ensure_future(set_later(stop, 0.1))
        start = time.monotonic()
        outcomes = await prober.run_cycle(stop)
        elapsed = time.monotonic() - start
        await setter

        assert outcomes == []
        assert elapsed < 1.0
        assert registry.get_sample_value("dns_query_duration_seconds_count", labels()) is None

    @pytest.mark.asyncio
    async def test_stop_already_set(self, sample_config, metrics):
        resolver = FakeResolver()
        prober = make_prober(sample_config, metrics, resolver)
        stop = asyncio.Event()
        stop.set()

        assert await prober.run_cycle(stop) == []
        assert resolver.hostnames == []

    @pytest.mark.asyncio
    async def test_empty_config(self, metrics):
        prober = Prober(ExporterConfig(), metrics=metrics)
        assert await prober.run_cycle() == []

    @pytest.mark.asyncio
    async def test_verbose_logging(self, sample_config, metrics, caplog):
        sample_config.verbose = True
        prober = make_prober(sample_config, metrics, FakeResolver())

        with caplog.at_level(logging.INFO, logger="dnspulse_exporter.runner"):
            await prober.run_cycle()

        messages = [r.getMessage() for r in caplog.records]
        assert len(messages) == 2
        assert messages[0].startswith("[do53-udp] (")
        assert "?(192.0.2.53:53) - success - " in messages[0]
        assert messages[0].endswith("msec")

    @pytest.mark.asyncio
    async def test_quiet_logging(self, sample_config, metrics, caplog):
        prober = make_prober(sample_config, metrics, FakeResolver())

        with caplog.at_level(logging.INFO, logger="dnspulse_exporter.runner"):
            await prober.run_cycle()

        assert caplog.records == []

    @pytest.mark.asyncio
    async def test_against_udp_server(self, udp_server, metrics, registry):
        config = ExporterConfig(
            domains=[DomainConfig("example.com", probes=2)],
            servers=[ServerConfig("127.0.0.1", udp_server.port, "do53-udp")],
        )
        prober = Prober(config, metrics=metrics, probe_delay=0.0)

        outcomes = await prober.run_cycle()
        await prober.close()

        server = f"127.0.0.1:{udp_server.port}"
        assert all(o.success for o in outcomes)
        assert len(udp_server.queries) == 2
        assert registry.get_sample_value("dns_query_success_total", labels(server)) == 2
        assert registry.get_sample_value("dns_query_duration_seconds_count", labels(server)) == 2


class TestClose:
    """Tests for Prober.close."""

    @pytest.mark.asyncio
    async def test_idempotent(self, sample_config, metrics):
        resolver = FakeResolver()
        prober = make_prober(sample_config, metrics, resolver)

        await prober.close()
        await prober.close()

        assert resolver.closed == 1

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, metrics, caplog):
        config = ExporterConfig(
            servers=[
                ServerConfig("192.0.2.1", 53, "do53-udp"),
                ServerConfig("192.0.2.2", 53, "do53-udp"),
            ],
        )
        prober = Prober(config, metrics=metrics)
        keys = list(prober.resolvers)
        healthy = FakeResolver()
        prober.resolvers[keys[0]] = BrokenCloseResolver()
        prober.resolvers[keys[1]] = healthy

        with caplog.at_level(logging.WARNING, logger="dnspulse_exporter.runner"):
            await prober.close()

        assert healthy.closed == 1
        assert "failed to close resolver" in caplog.text


class TestRunForever:
    """Tests for repeated probe cycles."""

    @pytest.mark.asyncio
    async def test_runs_until_stopped(self, sample_config, metrics):
        sample_config.interval = 0.05
        resolver = FakeResolver()
        prober = make_prober(sample_config, metrics, resolver)
        stop = asyncio.Event()

        setter = asyncio.ensure_future(set_later(stop, 0.3))
        await asyncio.wait_for(prober.run_forever(stop), timeout=2.0)
        await setter

        assert len(resolver.hostnames) >= 4

    @pytest.mark.asyncio
    async def test_cycle_error_does_not_stop(self, sample_config, metrics):
        sample_config.interval = 0.0
        prober = Prober(sample_config, metrics=metrics)
        stop = asyncio.Event()
        calls = []

        async def run_cycle(event):
            calls.append(event)
            if len(calls) == 3:
                event.set()
            raise RuntimeError("boom")

        prober.run_cycle = AsyncMock(side_effect=run_cycle)
        await asyncio.wait_for(prober.run_forever(stop), timeout=2.0)

        assert len(calls) == 3


class TestProbeThread:
    """Tests for the background probe thread."""

    def test_start_stop(self, sample_config, metrics):
        sample_config.interval = 0.05
        resolver = FakeResolver()
        prober = make_prober(sample_config, metrics, resolver)

        thread = ProbeThread(prober)
        thread.start()
        time.sleep(0.2)
        thread.stop(timeout=2.0)

        assert not thread.is_alive()
        assert resolver.hostnames
        assert resolver.closed == 1

    def test_stop_interrupts_delay(self, sample_config, metrics):
        resolver = FakeResolver()
        prober = make_prober(sample_config, metrics, resolver, probe_delay=10.0)

        thread = ProbeThread(prober)
        thread.start()
        time.sleep(0.1)
        start = time.monotonic()
        thread.stop(timeout=5.0)

        assert not thread.is_alive()
        assert time.monotonic() - start < 2.0

    def test_stop_not_started(self, sample_config, metrics):
        thread = ProbeThread(Prober(sample_config, metrics=metrics))
        thread.stop()
        assert not thread.is_alive()
