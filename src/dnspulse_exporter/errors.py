"""
Exception types raised inside the exporter.

Transport errors never escape a resolver's ``query``; they are carried
in ``QueryResult.error``. ``ConfigError`` and ``UnsupportedProtocolError``
are fatal at startup.
"""


class ResolverError(Exception):
    """Base class for failures of a single resolution attempt."""


class QueryTimeout(ResolverError):
    """The attempt did not complete within the query timeout."""


class QueryCancelled(ResolverError):
    """The attempt was abandoned because probing is stopping."""


class FramingError(ResolverError):
    """A length-prefixed response ended before the announced length."""


class HTTPStatusError(ResolverError):
    """A DoH/DoH3 server answered with a non-200 status."""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        message = f"HTTP status {status_code}"
        if body:
            message = f"{message}: {body}"
        super().__init__(message)


class ConfigError(Exception):
    """Invalid or unreadable configuration."""


class UnsupportedProtocolError(ConfigError, ValueError):
    """Unknown or empty protocol tag."""
