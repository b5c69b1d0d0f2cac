"""
Resolver construction.

Maps a server configuration to the resolver for its protocol, resolving
the standard port and the TLS server name once, at construction time.
"""

from typing import Optional

from .errors import UnsupportedProtocolError
from .models import Protocol, ServerConfig
from .quic import DoH3Resolver, DoQResolver
from .transports import (
    DEFAULT_TIMEOUT,
    BaseResolver,
    Do53TCPResolver,
    Do53UDPResolver,
    DoHResolver,
    DoTResolver,
)

# Resolver class for every protocol tag
RESOLVERS: dict[Protocol, type[BaseResolver]] = {
    Protocol.DO53_UDP: Do53UDPResolver,
    Protocol.DO53_TCP: Do53TCPResolver,
    Protocol.DOT: DoTResolver,
    Protocol.DOH: DoHResolver,
    Protocol.DOH3: DoH3Resolver,
    Protocol.DOQ: DoQResolver,
}


def get_protocol(tag: Optional[str]) -> Protocol:
    """Look up a protocol by tag; an unset tag means do53-udp."""
    if tag is None:
        return Protocol.DO53_UDP
    try:
        return Protocol(tag)
    except ValueError:
        raise UnsupportedProtocolError(
            f"unsupported protocol: {tag!r}. Available: {', '.join(Protocol.values())}"
        ) from None


def tls_settings(server: ServerConfig) -> tuple[str, bool]:
    """Return ``(server_name, insecure_skip_verify)`` for a server."""
    server_name = server.address
    insecure = False
    if server.tls is not None:
        if server.tls.server_name:
            server_name = server.tls.server_name
        insecure = server.tls.insecure_skip_verify
    return server_name, insecure


def create_resolver(server: ServerConfig, timeout: float = DEFAULT_TIMEOUT) -> BaseResolver:
    """
    Create a resolver for the given server configuration.

    Args:
        server: Server address, port, protocol and TLS options
        timeout: Per-query timeout in seconds

    Returns:
        Resolver bound to the server

    Raises:
        UnsupportedProtocolError: protocol tag is empty or unknown
    """
    protocol = get_protocol(server.protocol)
    resolver_class = RESOLVERS[protocol]
    port = server.port or protocol.default_port

    if not protocol.encrypted:
        return resolver_class(server.address, port, timeout=timeout)

    server_name, insecure = tls_settings(server)
    return resolver_class(
        server.address,
        port,
        server_name=server_name,
        insecure_skip_verify=insecure,
        timeout=timeout,
    )


def list_protocols() -> list[str]:
    """List all supported protocol tags."""
    return Protocol.values()
