"""
Summary statistics for a probe cycle.

Used by the ``probe`` command to report latency and success rate per
server and protocol. The exporter itself leaves aggregation to
Prometheus.
"""

import numpy as np

from .models import ProbeOutcome, ServerStats


class StatisticsEngine:
    """Calculates per-server statistics from probe outcomes."""

    @staticmethod
    def calculate_server_stats(
        outcomes: list[ProbeOutcome],
        server: str,
        protocol: str,
    ) -> ServerStats:
        """
        Calculate aggregated statistics for one server/protocol pair.

        Args:
            outcomes: Outcomes for this server and protocol
            server: ``address:port`` of the server
            protocol: Protocol tag

        Returns:
            ServerStats with latency figures from successful probes
        """
        successful = [o for o in outcomes if o.success]
        failed = [o for o in outcomes if not o.success]

        stats = ServerStats(
            server=server,
            protocol=protocol,
            total_queries=len(outcomes),
            successful_queries=len(successful),
            failed_queries=len(failed),
            errors=[o.error for o in failed if o.error],
        )

        if successful:
            latencies = np.array([o.latency_ms for o in successful])
            stats.min_latency = float(np.min(latencies))
            stats.max_latency = float(np.max(latencies))
            stats.avg_latency = float(np.mean(latencies))
            stats.median_latency = float(np.median(latencies))
            stats.p95_latency = float(np.percentile(latencies, 95))

        return stats

    @staticmethod
    def summarize(outcomes: list[ProbeOutcome]) -> list[ServerStats]:
        """Group outcomes by server and protocol, keeping first-seen order."""
        groups: dict[tuple[str, str], list[ProbeOutcome]] = {}
        for outcome in outcomes:
            groups.setdefault((outcome.server, outcome.protocol), []).append(outcome)

        return [
            StatisticsEngine.calculate_server_stats(group, server, protocol)
            for (server, protocol), group in groups.items()
        ]
