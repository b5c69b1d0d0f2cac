"""
FastAPI application for the DNSPulse exporter.

Exposes the Prometheus registry on ``/metrics`` next to a liveness
route and a read-only view of the probe configuration.
"""

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.responses import HTMLResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, generate_latest

from .. import __version__
from ..config import ExporterConfig

logger = logging.getLogger(__name__)

INDEX_PAGE = """<html>
<head><title>DNSPulse Exporter</title></head>
<body>
<h1>DNSPulse Exporter</h1>
<p><a href="/metrics">Metrics</a></p>
</body>
</html>
"""


def create_app(
    config: Optional[ExporterConfig] = None,
    registry: Optional[CollectorRegistry] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="DNSPulse Exporter",
        description="Prometheus exporter for DNS query metrics",
        version=__version__,
    )

    @app.get("/", response_class=HTMLResponse)
    async def root():
        """Serve a landing page linking to the metrics."""
        return INDEX_PAGE

    @app.get("/healthz")
    async def healthz():
        """Liveness probe."""
        return {"status": "ok", "version": __version__}

    @app.get("/api/config")
    async def get_config():
        """Get the probed domains and servers."""
        if config is None:
            return {"domains": [], "servers": []}
        return {
            "domains": [
                {"name": d.name, "probes": d.probes} for d in config.domains
            ],
            "servers": [
                {
                    "server": s.endpoint,
                    "protocol": s.protocol_tag,
                    "server_name": s.tls.server_name if s.tls else None,
                }
                for s in config.servers
            ],
            "timeout_ms": config.timeout,
            "interval_seconds": config.interval,
        }

    @app.get("/metrics")
    async def metrics():
        """Expose the Prometheus registry."""
        return Response(
            generate_latest(registry if registry is not None else REGISTRY),
            media_type=CONTENT_TYPE_LATEST,
        )

    return app


def run_server(app: FastAPI, host: str = "0.0.0.0", port: int = 9953) -> None:
    """Serve the app until SIGINT/SIGTERM."""
    logger.info("Starting Prometheus metrics server on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level="warning")
