"""
Prometheus metrics for DNS probes.

Every probe observes its duration and increments either the success
or the failure counter, labelled by domain, server and protocol.
"""

from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

LABELS = ["domain", "server", "protocol"]


class QueryMetrics:
    """Metric families for DNS queries, registered on one registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Create and register the metric families.

        Args:
            registry: Target registry (the process-wide default if None)
        """
        self.registry = registry if registry is not None else REGISTRY
        self.query_duration = Histogram(
            "dns_query_duration_seconds",
            "Duration of DNS queries",
            LABELS,
            registry=self.registry,
        )
        self.query_success = Counter(
            "dns_query_success",
            "Total successful DNS queries",
            LABELS,
            registry=self.registry,
        )
        self.query_failures = Counter(
            "dns_query_failures",
            "Total failed DNS queries",
            LABELS,
            registry=self.registry,
        )

    def record_query(
        self,
        domain: str,
        server: str,
        protocol: str,
        duration: float,
        success: bool,
    ) -> None:
        """Record the outcome of one probe."""
        self.query_duration.labels(domain, server, protocol).observe(duration)
        if success:
            self.query_success.labels(domain, server, protocol).inc()
        else:
            self.query_failures.labels(domain, server, protocol).inc()


_default_metrics: Optional[QueryMetrics] = None


def default_metrics() -> QueryMetrics:
    """Metrics on the default registry, created on first use."""
    global _default_metrics
    if _default_metrics is None:
        _default_metrics = QueryMetrics()
    return _default_metrics
