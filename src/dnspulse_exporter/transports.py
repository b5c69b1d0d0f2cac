"""
DNS transport implementations.

Provides resolver classes for the plain and TLS/HTTPS protocols:
- Do53 over UDP and TCP (RFC 1035)
- DoT (DNS over TLS, RFC 7858)
- DoH (DNS over HTTPS, RFC 8484, HTTP/2 only)

The QUIC based protocols live in ``quic.py``. Every resolver makes
exactly one attempt per query and reports it as a ``QueryResult``;
transport errors never propagate to the caller.
"""

import asyncio
import logging
import socket
import ssl
import struct
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Optional

import dns.asyncquery
import dns.inet
import dns.message
import dns.query
import dns.rdatatype
import httpx

from .errors import FramingError, HTTPStatusError, QueryCancelled, QueryTimeout, ResolverError
from .models import Protocol, QueryResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 2.0
DNS_MESSAGE = "application/dns-message"


def make_ssl_context(insecure_skip_verify: bool = False) -> ssl.SSLContext:
    """Create a client TLS context, optionally without certificate checks."""
    context = ssl.create_default_context()
    if insecure_skip_verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


async def read_framed(reader: asyncio.StreamReader) -> bytes:
    """Read one message carrying a 2-byte big-endian length prefix."""
    try:
        length_data = await reader.readexactly(2)
        (length,) = struct.unpack("!H", length_data)
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise FramingError(
            f"incomplete response: expected {e.expected} bytes, got {len(e.partial)}"
        ) from e


def frame(wire: bytes) -> bytes:
    """Prefix a wire message with its 2-byte big-endian length."""
    return struct.pack("!H", len(wire)) + wire


class BaseResolver(ABC):
    """Base class for DNS resolvers bound to a single server."""

    transport_type: Protocol

    def __init__(self, address: str, port: int, timeout: float = DEFAULT_TIMEOUT):
        """
        Initialize the resolver.

        Args:
            address: Server IP address or hostname
            port: Server port
            timeout: Per-query timeout in seconds
        """
        self.address = address
        self.port = port
        self.timeout = timeout

    @property
    def protocol(self) -> str:
        """Protocol tag used as the ``protocol`` metric label."""
        return self.transport_type.value

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.protocol} {self.address}:{self.port}>"

    def _make_message(self, hostname: str, rdtype) -> dns.message.Message:
        return dns.message.make_query(hostname, rdtype)

    @abstractmethod
    async def _exchange(self, message: dns.message.Message) -> dns.message.Message:
        """Send the query and return the decoded response."""
        pass

    async def query(
        self,
        hostname: str,
        rdtype=dns.rdatatype.A,
        stop: Optional[asyncio.Event] = None,
    ) -> QueryResult:
        """
        Perform one resolution attempt.

        Args:
            hostname: Name to resolve
            rdtype: Record type to request
            stop: Event that, once set, abandons the attempt

        Returns:
            QueryResult with the response or the failure, and the elapsed time
        """
        try:
            message = self._make_message(hostname, rdtype)
        except Exception as e:
            return QueryResult(duration=0.0, error=e)

        start = time.perf_counter_ns()
        try:
            response = await self._bounded(self._exchange(message), stop)
        except Exception as e:
            duration = (time.perf_counter_ns() - start) / 1_000_000_000
            logger.debug("%r query for %s failed: %s", self, hostname, e)
            return QueryResult(duration=duration, error=e)

        duration = (time.perf_counter_ns() - start) / 1_000_000_000
        return QueryResult(duration=duration, response=response)

    async def _bounded(self, exchange: Awaitable, stop: Optional[asyncio.Event]):
        """Await ``exchange`` until it finishes, times out or ``stop`` is set."""
        task = asyncio.ensure_future(exchange)
        waiters = {task}
        stopper = None
        if stop is not None:
            stopper = asyncio.ensure_future(stop.wait())
            waiters.add(stopper)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()

        if task in done:
            return task.result()
        if stopper is not None and stopper in done:
            raise QueryCancelled("query canceled")
        raise QueryTimeout(f"query timed out after {self.timeout}s")

    async def close(self) -> None:
        """Release transport resources."""
        pass


class Do53UDPResolver(BaseResolver):
    """Standard DNS over UDP."""

    transport_type = Protocol.DO53_UDP

    async def _server_ip(self, socktype: int) -> str:
        if dns.inet.is_address(self.address):
            return self.address
        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(self.address, self.port, type=socktype)
        if not infos:
            raise ResolverError(f"could not resolve server address {self.address}")
        return infos[0][4][0]

    async def _exchange(self, message: dns.message.Message) -> dns.message.Message:
        """Send DNS query over UDP."""
        where = await self._server_ip(socket.SOCK_DGRAM)
        # A truncated answer is returned as-is, never retried over TCP
        return await dns.asyncquery.udp(
            message,
            where,
            timeout=self.timeout,
            port=self.port,
        )


class _StreamResolver(BaseResolver):
    """Length-prefixed DNS over a TCP stream, optionally TLS-wrapped."""

    async def _open(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        return await asyncio.open_connection(self.address, self.port)

    async def _exchange(self, message: dns.message.Message) -> dns.message.Message:
        reader, writer = await self._open()
        try:
            writer.write(frame(message.to_wire()))
            await writer.drain()

            response_data = await read_framed(reader)
        finally:
            # Not waiting for the close keeps teardown out of the timing
            writer.close()

        response = dns.message.from_wire(response_data)
        if not message.is_response(response):
            raise dns.query.BadResponse("response does not match the query")
        return response


class Do53TCPResolver(_StreamResolver):
    """DNS over TCP."""

    transport_type = Protocol.DO53_TCP


class DoTResolver(_StreamResolver):
    """DNS over TLS (DoT)."""

    transport_type = Protocol.DOT

    def __init__(
        self,
        address: str,
        port: int,
        server_name: str,
        insecure_skip_verify: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize DoT resolver.

        Args:
            address: Server IP address or hostname
            port: Server port
            server_name: TLS hostname for SNI and certificate verification
            insecure_skip_verify: Skip certificate verification
            timeout: Per-query timeout in seconds
        """
        super().__init__(address, port, timeout)
        self.server_name = server_name
        self.insecure_skip_verify = insecure_skip_verify
        self._ssl_context = make_ssl_context(insecure_skip_verify)

    async def _open(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        return await asyncio.open_connection(
            self.address,
            self.port,
            ssl=self._ssl_context,
            server_hostname=self.server_name,
        )


class DoHResolver(BaseResolver):
    """DNS over HTTPS (DoH) over HTTP/2."""

    transport_type = Protocol.DOH

    def __init__(
        self,
        address: str,
        port: int,
        server_name: str,
        insecure_skip_verify: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize DoH resolver.

        Args:
            address: Server IP address or hostname used to connect
            port: Server port
            server_name: Host header and TLS name (virtual hosting)
            insecure_skip_verify: Skip certificate verification
            timeout: Per-query timeout in seconds
        """
        super().__init__(address, port, timeout)
        self.server_name = server_name
        self.insecure_skip_verify = insecure_skip_verify
        host = f"[{address}]" if ":" in address else address
        self.url = f"https://{host}:{port}/dns-query"
        self._ssl_context = make_ssl_context(insecure_skip_verify)
        self._client: Optional[httpx.AsyncClient] = None

    def _make_message(self, hostname: str, rdtype) -> dns.message.Message:
        message = super()._make_message(hostname, rdtype)
        message.id = 0
        return message

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP/2-only client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                http1=False,
                http2=True,
                verify=self._ssl_context,
                timeout=httpx.Timeout(self.timeout),
            )
        return self._client

    async def _exchange(self, message: dns.message.Message) -> dns.message.Message:
        """Send DNS query over HTTPS."""
        client = self._get_client()

        response = await client.post(
            self.url,
            content=message.to_wire(),
            headers={
                "Host": self.server_name,
                "Content-Type": DNS_MESSAGE,
                "Accept": DNS_MESSAGE,
            },
            extensions={"sni_hostname": self.server_name},
        )

        if response.status_code != 200:
            raise HTTPStatusError(response.status_code, response.text[:200])
        if response.http_version != "HTTP/2":
            raise ResolverError(f"server answered over {response.http_version}")

        return dns.message.from_wire(response.content)

    async def close(self) -> None:
        """Close the HTTP client and its idle connections."""
        if self._client is not None:
            client, self._client = self._client, None
            await client.aclose()
