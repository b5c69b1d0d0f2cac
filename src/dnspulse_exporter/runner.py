"""
Probe orchestration.

The Prober holds one resolver per configured server and walks the
domain -> server -> repetition matrix once per cycle, recording each
outcome to the metrics sink. ProbeThread repeats cycles on a dedicated
thread and event loop so slow transports never stall metric scrapes.
"""

import asyncio
import logging
import threading
from typing import Optional

import dns.rdatatype

from .config import ExporterConfig
from .errors import UnsupportedProtocolError
from .metrics import QueryMetrics, default_metrics
from .models import ProbeOutcome
from .resolvers import create_resolver
from .transports import BaseResolver
from .workload import iter_probes, probe_hostname

logger = logging.getLogger(__name__)

# Pause after every probe, limits the query rate seen by upstream servers
PROBE_DELAY = 0.5


def _stopped(stop: Optional[asyncio.Event]) -> bool:
    return stop is not None and stop.is_set()


async def _pause(delay: float, stop: Optional[asyncio.Event]) -> None:
    """Sleep for ``delay`` seconds, waking early once ``stop`` is set."""
    if delay <= 0:
        return
    if stop is None:
        await asyncio.sleep(delay)
        return
    try:
        await asyncio.wait_for(stop.wait(), timeout=delay)
    except asyncio.TimeoutError:
        pass


class Prober:
    """
    Orchestrates DNS probes across all configured servers.

    Resolvers are created once, keyed by address, port and protocol,
    and reused for every cycle until ``close``.
    """

    def __init__(
        self,
        config: ExporterConfig,
        metrics: Optional[QueryMetrics] = None,
        probe_delay: float = PROBE_DELAY,
    ):
        """
        Initialize the prober.

        Args:
            config: Domains, servers, timeout and verbosity
            metrics: Sink for probe outcomes (default registry if None)
            probe_delay: Seconds to wait after each probe

        Raises:
            UnsupportedProtocolError: a server has an unknown protocol
        """
        self.config = config
        self.metrics = metrics if metrics is not None else default_metrics()
        self.probe_delay = probe_delay
        self.verbose = config.verbose
        self.resolvers: dict[str, BaseResolver] = {}
        self._closed = False

        timeout = config.timeout_seconds
        for server in config.servers:
            if server.key in self.resolvers:
                continue
            try:
                self.resolvers[server.key] = create_resolver(server, timeout)
            except UnsupportedProtocolError as e:
                raise UnsupportedProtocolError(
                    f"failed to create resolver for {server.address}: {e}"
                ) from e

    async def run_cycle(self, stop: Optional[asyncio.Event] = None) -> list[ProbeOutcome]:
        """
        Run one probe cycle.

        Args:
            stop: Event that ends the cycle before the next probe

        Returns:
            Outcomes reported during this cycle, in probe order
        """
        outcomes: list[ProbeOutcome] = []

        for domain, server, _ in iter_probes(self.config.domains, self.config.servers):
            if _stopped(stop):
                return outcomes

            resolver = self.resolvers[server.key]
            hostname = probe_hostname(domain.name)
            result = await resolver.query(hostname, dns.rdatatype.A, stop=stop)

            if _stopped(stop):
                # Abandoned mid-flight, nothing to report
                return outcomes

            outcome = ProbeOutcome(
                domain=domain.name,
                server=server.endpoint,
                protocol=resolver.protocol,
                hostname=hostname,
                duration=result.duration,
                success=result.success,
                error=None if result.success else str(result.error),
            )
            self.metrics.record_query(
                outcome.domain,
                outcome.server,
                outcome.protocol,
                outcome.duration,
                outcome.success,
            )
            self._log_outcome(outcome)
            outcomes.append(outcome)

            await _pause(self.probe_delay, stop)

        return outcomes

    def _log_outcome(self, outcome: ProbeOutcome) -> None:
        level = logging.INFO if self.verbose else logging.DEBUG
        if outcome.success:
            logger.log(
                level,
                "[%s] (%-25s)?(%s) - success - %-5.0f msec",
                outcome.protocol,
                outcome.hostname,
                outcome.server,
                outcome.latency_ms,
            )
        else:
            logger.log(
                level,
                "[%s] (%-25s)?(%s) - failed  - %-5.0f msec - error: %s",
                outcome.protocol,
                outcome.hostname,
                outcome.server,
                outcome.latency_ms,
                outcome.error,
            )

    async def run_forever(self, stop: asyncio.Event) -> None:
        """Run cycles separated by the configured interval until ``stop`` is set."""
        while not stop.is_set():
            try:
                await self.run_cycle(stop)
            except Exception:
                logger.exception("Probe cycle failed")
            await _pause(self.config.interval, stop)

    async def close(self) -> None:
        """Close all resolvers; failures are logged and skipped."""
        if self._closed:
            return
        self._closed = True

        for key, resolver in self.resolvers.items():
            try:
                await resolver.close()
            except Exception as e:
                logger.warning("failed to close resolver %s: %s", key, e)


class ProbeThread(threading.Thread):
    """Runs ``Prober.run_forever`` on its own thread and event loop."""

    def __init__(self, prober: Prober):
        super().__init__(name="dnspulse-prober", daemon=True)
        self.prober = prober
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._ready = threading.Event()

    def run(self) -> None:
        asyncio.run(self._main())

    async def _main(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self._ready.set()
        try:
            await self.prober.run_forever(self._stop_event)
        finally:
            await self.prober.close()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to stop and wait for the thread to finish."""
        if not self.is_alive():
            return
        self._ready.wait()
        try:
            self._loop.call_soon_threadsafe(self._stop_event.set)
        except RuntimeError:
            # Loop already closed
            pass
        self.join(timeout)
