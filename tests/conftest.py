"""Pytest configuration and fixtures."""

import asyncio

import pytest
import pytest_asyncio
from prometheus_client import CollectorRegistry

from dns_stubs import TCPResponder, UDPResponder
from dnspulse_exporter.config import ExporterConfig
from dnspulse_exporter.metrics import QueryMetrics
from dnspulse_exporter.models import DomainConfig, ServerConfig


@pytest_asyncio.fixture
async def udp_server():
    """UDP stub DNS server on 127.0.0.1."""
    loop = asyncio.get_running_loop()
    responder = UDPResponder()
    transport, _ = await loop.create_datagram_endpoint(
        lambda: responder,
        local_addr=("127.0.0.1", 0),
    )
    responder.port = transport.get_extra_info("sockname")[1]
    yield responder
    transport.close()


@pytest_asyncio.fixture
async def tcp_server():
    """TCP stub DNS server on 127.0.0.1."""
    responder = TCPResponder()
    server = await asyncio.start_server(responder.handle, "127.0.0.1", 0)
    responder.port = server.sockets[0].getsockname()[1]
    yield responder
    server.close()


@pytest.fixture
def registry() -> CollectorRegistry:
    """Private Prometheus registry."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry) -> QueryMetrics:
    """Query metrics registered on the private registry."""
    return QueryMetrics(registry=registry)


@pytest.fixture
def sample_config() -> ExporterConfig:
    """One domain probed twice against one do53-udp server."""
    return ExporterConfig(
        domains=[DomainConfig(name="example.com", probes=2)],
        servers=[ServerConfig(address="192.0.2.53", port=53, protocol="do53-udp")],
        timeout=2000,
    )
