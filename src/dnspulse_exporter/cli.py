"""
Command-line interface for the DNSPulse exporter.

Runs the exporter, performs one-shot probe cycles and lists the
supported protocols.
"""

import asyncio
import logging
import sys

import click
from prometheus_client import CollectorRegistry
from rich import box
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import DEFAULT_CONFIG_PATH, load_config
from .errors import ConfigError
from .logging_config import setup_logging
from .metrics import QueryMetrics
from .models import Protocol
from .output import JSONOutput, RichConsoleOutput
from .runner import PROBE_DELAY, Prober, ProbeThread
from .statistics import StatisticsEngine
from .workload import count_probes

logger = logging.getLogger(__name__)


config_option = click.option(
    "--config", "-f",
    "config_path",
    type=click.Path(dir_okay=False),
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help="Path to config file",
)


def _load(config_path: str):
    try:
        return load_config(config_path)
    except ConfigError as e:
        click.echo(f"Failed to load configuration: {e}", err=True)
        sys.exit(1)


def _build_prober(config, **kwargs) -> Prober:
    try:
        return Prober(config, **kwargs)
    except ConfigError as e:
        click.echo(f"Failed to create prober: {e}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(__version__)
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool):
    """
    DNSPulse Exporter - Prometheus exporter for DNS query metrics.

    Measures DNS resolution latency and failures over do53, DoT,
    DoH, DoH3 and DoQ.
    """
    setup_logging(debug=debug)


@main.command()
@config_option
def serve(config_path: str):
    """
    Run the exporter.

    Probes all configured servers every interval on a background
    thread and serves the metrics over HTTP until interrupted.
    """
    from .web import create_app, run_server

    config = _load(config_path)
    prober = _build_prober(config)

    thread = ProbeThread(prober)
    thread.start()

    try:
        run_server(create_app(config), host=config.bind_host, port=config.listen_port)
    finally:
        logger.info("Shutting down...")
        thread.stop(timeout=config.timeout_seconds + PROBE_DELAY + 5)


@main.command()
@config_option
@click.option(
    "--json", "as_json",
    is_flag=True,
    help="Output results as JSON to stdout",
)
@click.option(
    "--no-delay",
    is_flag=True,
    help="Skip the pause between probes",
)
def probe(config_path: str, as_json: bool, no_delay: bool):
    """
    Run a single probe cycle and print a summary.

    Metrics are recorded on a private registry, nothing is served.

    Examples:

    \b
      # Check a config before deploying it
      dnspulse-exporter probe -f dnspulse.yml
    """
    config = _load(config_path)
    prober = _build_prober(
        config,
        metrics=QueryMetrics(registry=CollectorRegistry()),
        probe_delay=0.0 if no_delay else PROBE_DELAY,
    )

    total = count_probes(config.domains, config.servers)
    if not as_json:
        click.echo(f"Running {total} probes against {len(config.servers)} servers...")

    async def run_once():
        try:
            return await prober.run_cycle()
        finally:
            await prober.close()

    outcomes = asyncio.run(run_once())
    stats = StatisticsEngine.summarize(outcomes)

    if as_json:
        click.echo(JSONOutput.format(stats, outcomes))
    else:
        RichConsoleOutput.print(stats)


@main.command()
def protocols():
    """List the supported protocols and their default ports."""
    console = Console()
    table = Table(
        title="Supported Protocols",
        box=box.ROUNDED,
        header_style="bold cyan",
    )

    table.add_column("Protocol", style="green")
    table.add_column("Default port", justify="right")
    table.add_column("Encrypted")

    for protocol in Protocol:
        table.add_row(
            protocol.value,
            str(protocol.default_port),
            "yes" if protocol.encrypted else "no",
        )

    console.print(table)


if __name__ == "__main__":
    main()
