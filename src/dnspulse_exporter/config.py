"""
YAML configuration for the exporter.

Loads the config file, fills in defaults (protocol, port, TLS server
name, timeout) and rejects invalid values with ``ConfigError``.
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from .errors import ConfigError
from .models import DomainConfig, Protocol, ServerConfig, TLSSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/dnspulse.yml"
DEFAULT_TIMEOUT_MS = 2000
DEFAULT_LISTEN_PORT = 9953
DEFAULT_INTERVAL = 30.0


@dataclass
class ExporterConfig:
    """Complete exporter configuration."""
    domains: list[DomainConfig] = field(default_factory=list)
    servers: list[ServerConfig] = field(default_factory=list)
    listen_address: str = "*"
    listen_port: int = DEFAULT_LISTEN_PORT
    verbose: bool = False
    timeout: int = DEFAULT_TIMEOUT_MS  # milliseconds
    interval: float = DEFAULT_INTERVAL  # seconds between probe cycles

    @property
    def timeout_seconds(self) -> float:
        """Per-query timeout in seconds; 0 means the default."""
        return (self.timeout or DEFAULT_TIMEOUT_MS) / 1000

    @property
    def bind_host(self) -> str:
        """Host for the HTTP server; '*' or empty binds all interfaces."""
        if self.listen_address in ("", "*"):
            return "0.0.0.0"
        return self.listen_address


def _parse_port(value: Any, where: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"invalid port {value!r} for {where}") from None
    if not 0 < port < 65536:
        raise ConfigError(f"port {port} out of range for {where}")
    return port


def _parse_domain(raw: Any) -> DomainConfig:
    if isinstance(raw, str):
        return DomainConfig(name=raw)
    if not isinstance(raw, dict) or not raw.get("name"):
        raise ConfigError(f"domain entry needs a name: {raw!r}")

    probes = raw.get("probes", 1)
    if not isinstance(probes, int) or isinstance(probes, bool) or probes < 0:
        raise ConfigError(f"invalid probes {probes!r} for domain {raw['name']}")
    return DomainConfig(name=str(raw["name"]), probes=probes)


def _parse_server(raw: Any) -> ServerConfig:
    if not isinstance(raw, dict) or not raw.get("address"):
        raise ConfigError(f"dns server entry needs an address: {raw!r}")

    address = str(raw["address"])
    tag = raw.get("protocol") or Protocol.DO53_UDP.value
    try:
        protocol = Protocol(tag)
    except ValueError:
        raise ConfigError(f"invalid protocol '{tag}' for server {address}") from None

    tls = None
    tls_raw = raw.get("tls")
    if tls_raw is not None:
        if not isinstance(tls_raw, dict):
            raise ConfigError(f"tls for server {address} must be a mapping")
        tls = TLSSettings(
            server_name=tls_raw.get("server_name") or None,
            insecure_skip_verify=bool(tls_raw.get("insecure_skip_verify", False)),
        )

    port = _parse_port(raw.get("port"), f"server {address}")
    return ServerConfig(
        address=address,
        port=port or protocol.default_port,
        protocol=protocol.value,
        tls=tls,
    )


def apply_tls_defaults(server: ServerConfig) -> ServerConfig:
    """Give encrypted protocols a TLS server name, defaulting to the address."""
    if not Protocol(server.protocol_tag).encrypted:
        return server
    if server.tls is None:
        return replace(server, tls=TLSSettings(server_name=server.address))
    if not server.tls.server_name:
        return replace(server, tls=replace(server.tls, server_name=server.address))
    return server


def parse_config(data: Any) -> ExporterConfig:
    """
    Build an ExporterConfig from parsed YAML.

    Args:
        data: Result of ``yaml.safe_load`` (None for an empty file)

    Returns:
        Validated configuration with defaults applied

    Raises:
        ConfigError: when the document is invalid
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("configuration root must be a mapping")

    domains = [_parse_domain(d) for d in data.get("domains") or []]
    servers = [apply_tls_defaults(_parse_server(s)) for s in data.get("dns_servers") or []]

    timeout = data.get("timeout") or 0
    if not isinstance(timeout, int) or isinstance(timeout, bool) or timeout < 0:
        raise ConfigError(f"invalid timeout {timeout!r}")

    interval = data.get("interval", DEFAULT_INTERVAL)
    try:
        interval = float(interval)
    except (TypeError, ValueError):
        raise ConfigError(f"invalid interval {interval!r}") from None
    if interval < 0:
        raise ConfigError(f"invalid interval {interval!r}")

    listen_port = _parse_port(data.get("listen_port"), "listen_port") or DEFAULT_LISTEN_PORT

    return ExporterConfig(
        domains=domains,
        servers=servers,
        listen_address=str(data.get("listen_addr") or "*"),
        listen_port=listen_port,
        verbose=bool(data.get("verbose_logging", False)),
        timeout=timeout or DEFAULT_TIMEOUT_MS,
        interval=interval,
    )


def load_config(path: Union[str, Path]) -> ExporterConfig:
    """Read and validate a YAML configuration file."""
    path = Path(path)
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"cannot parse {path}: {e}") from e

    config = parse_config(data)
    logger.debug(
        "Loaded %s: %d domains, %d servers",
        path,
        len(config.domains),
        len(config.servers),
    )
    return config
