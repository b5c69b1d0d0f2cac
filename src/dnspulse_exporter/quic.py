"""
QUIC based DNS transports.

- DoQ (DNS over QUIC, RFC 9250): one length-prefixed message each way on a
  bidirectional stream that the client half-closes after sending.
- DoH3 (DNS over HTTPS, RFC 8484, over HTTP/3).

Each query runs on its own QUIC connection. The connection is torn down
in a background task once the answer has been read, so the measured
duration stops at the answer.
"""

import asyncio
import logging
import ssl
from abc import abstractmethod
from typing import Optional

import dns.message
from aioquic.asyncio.client import connect
from aioquic.asyncio.protocol import QuicConnectionProtocol
from aioquic.h3.connection import H3_ALPN, H3Connection
from aioquic.h3.events import DataReceived, H3Event, HeadersReceived
from aioquic.quic.configuration import QuicConfiguration
from aioquic.quic.events import ConnectionTerminated, QuicEvent

from .errors import HTTPStatusError, QueryCancelled
from .models import Protocol
from .transports import DEFAULT_TIMEOUT, DNS_MESSAGE, BaseResolver, frame, read_framed

logger = logging.getLogger(__name__)


class _QuicResolver(BaseResolver):
    """Shared connection handling for DoQ and DoH3."""

    alpn_protocols: list[str]
    protocol_class = QuicConnectionProtocol

    def __init__(
        self,
        address: str,
        port: int,
        server_name: str,
        insecure_skip_verify: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        super().__init__(address, port, timeout)
        self.server_name = server_name
        self.insecure_skip_verify = insecure_skip_verify
        self._configuration = QuicConfiguration(
            is_client=True,
            alpn_protocols=self.alpn_protocols,
            server_name=server_name,
            idle_timeout=timeout,
        )
        if insecure_skip_verify:
            self._configuration.verify_mode = ssl.CERT_NONE
        self._sessions: set[asyncio.Task] = set()

    def _make_message(self, hostname: str, rdtype) -> dns.message.Message:
        message = super()._make_message(hostname, rdtype)
        message.id = 0
        return message

    @abstractmethod
    async def _roundtrip(self, client, message: dns.message.Message) -> bytes:
        """Exchange one message on an established connection."""
        pass

    async def _exchange(self, message: dns.message.Message) -> dns.message.Message:
        answer = asyncio.get_running_loop().create_future()
        session = asyncio.ensure_future(self._session(message, answer))
        self._sessions.add(session)
        session.add_done_callback(self._sessions.discard)

        try:
            return await answer
        finally:
            if answer.cancelled():
                session.cancel()

    async def _session(self, message: dns.message.Message, answer: asyncio.Future) -> None:
        try:
            async with connect(
                self.address,
                self.port,
                configuration=self._configuration,
                create_protocol=self.protocol_class,
            ) as client:
                data = await self._roundtrip(client, message)
                response = dns.message.from_wire(data)
                if not answer.done():
                    answer.set_result(response)
        except asyncio.CancelledError:
            if not answer.done():
                answer.set_exception(QueryCancelled("resolver closed"))
            raise
        except Exception as e:
            if not answer.done():
                answer.set_exception(e)
            else:
                logger.debug("%r connection teardown failed: %s", self, e)

    async def close(self) -> None:
        """Abort any connection still open or closing."""
        sessions = list(self._sessions)
        for session in sessions:
            session.cancel()
        if sessions:
            await asyncio.gather(*sessions, return_exceptions=True)


class DoQResolver(_QuicResolver):
    """DNS over QUIC (DoQ)."""

    transport_type = Protocol.DOQ
    alpn_protocols = ["doq"]

    async def _roundtrip(self, client: QuicConnectionProtocol, message: dns.message.Message) -> bytes:
        reader, writer = await client.create_stream()
        writer.write(frame(message.to_wire()))
        # Half-close: the server answers once it sees our FIN
        writer.write_eof()

        # The answer is complete once the framed message is read, FIN may lag
        return await read_framed(reader)


class H3ClientProtocol(QuicConnectionProtocol):
    """Minimal HTTP/3 client: one POST per stream."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._http = H3Connection(self._quic)
        self._request_events: dict[int, list[H3Event]] = {}
        self._request_waiters: dict[int, asyncio.Future] = {}

    def quic_event_received(self, event: QuicEvent) -> None:
        if isinstance(event, ConnectionTerminated):
            for waiter in self._request_waiters.values():
                if not waiter.done():
                    waiter.set_exception(
                        ConnectionError(f"connection terminated: {event.reason_phrase}")
                    )
            self._request_waiters.clear()

        for http_event in self._http.handle_event(event):
            self._http_event_received(http_event)

    def _http_event_received(self, event: H3Event) -> None:
        if not isinstance(event, (HeadersReceived, DataReceived)):
            return
        if event.stream_id not in self._request_events:
            return

        self._request_events[event.stream_id].append(event)
        if event.stream_ended:
            events = self._request_events.pop(event.stream_id)
            waiter = self._request_waiters.pop(event.stream_id, None)
            if waiter is not None and not waiter.done():
                waiter.set_result(events)

    async def post(
        self,
        authority: str,
        path: str,
        content: bytes,
        headers: list[tuple[bytes, bytes]],
    ) -> tuple[int, bytes]:
        """Send a POST request and return ``(status, body)``."""
        stream_id = self._quic.get_next_available_stream_id()
        self._http.send_headers(
            stream_id=stream_id,
            headers=[
                (b":method", b"POST"),
                (b":scheme", b"https"),
                (b":authority", authority.encode()),
                (b":path", path.encode()),
            ] + headers,
        )
        self._http.send_data(stream_id=stream_id, data=content, end_stream=True)

        waiter = asyncio.get_running_loop().create_future()
        self._request_events[stream_id] = []
        self._request_waiters[stream_id] = waiter
        self.transmit()

        events = await asyncio.shield(waiter)

        status: Optional[int] = None
        body = bytearray()
        for event in events:
            if isinstance(event, HeadersReceived):
                for name, value in event.headers:
                    if name == b":status":
                        status = int(value.decode())
            elif isinstance(event, DataReceived):
                body.extend(event.data)

        if status is None:
            raise ConnectionError("HTTP/3 response without :status")
        return status, bytes(body)


class DoH3Resolver(_QuicResolver):
    """DNS over HTTPS (DoH) over HTTP/3."""

    transport_type = Protocol.DOH3
    alpn_protocols = H3_ALPN
    protocol_class = H3ClientProtocol

    async def _roundtrip(self, client: H3ClientProtocol, message: dns.message.Message) -> bytes:
        wire = message.to_wire()
        status, body = await client.post(
            self.server_name,
            "/dns-query",
            wire,
            [
                (b"content-type", DNS_MESSAGE.encode()),
                (b"accept", DNS_MESSAGE.encode()),
                (b"content-length", str(len(wire)).encode()),
            ],
        )
        if status != 200:
            raise HTTPStatusError(status, body.decode(errors="replace")[:200])
        return body
