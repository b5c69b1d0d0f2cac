"""
Probe workload generation.

Builds the cache-busting query names and the ordered
domain -> server -> repetition walk of one probe cycle.
"""

import base64
import secrets
from typing import Iterator, Optional

from .models import DomainConfig, ServerConfig

# 5 random bytes encode to exactly 8 base32 characters
PREFIX_BYTES = 5


def generate_random_prefix(length: int = PREFIX_BYTES) -> str:
    """
    Generate a random subdomain label for cache bypass.

    Draws ``length`` cryptographically random bytes and base32-encodes
    them without padding, so the label only contains ``A-Z`` and ``2-7``.
    """
    raw = secrets.token_bytes(length)
    return base64.b32encode(raw).decode("ascii").rstrip("=")


def probe_hostname(domain: str, prefix: Optional[str] = None) -> str:
    """Prefix a domain with a (new, unless given) random label."""
    if prefix is None:
        prefix = generate_random_prefix()
    return f"{prefix}.{domain.rstrip('.')}"


def iter_probes(
    domains: list[DomainConfig],
    servers: list[ServerConfig],
) -> Iterator[tuple[DomainConfig, ServerConfig, int]]:
    """
    Walk the probe matrix of one cycle.

    Yields ``(domain, server, repetition)`` in domain, then server,
    then repetition order.
    """
    for domain in domains:
        for server in servers:
            for repetition in range(domain.probes):
                yield domain, server, repetition


def count_probes(domains: list[DomainConfig], servers: list[ServerConfig]) -> int:
    """Number of probes in one cycle."""
    return sum(max(domain.probes, 0) for domain in domains) * len(servers)
