"""
Web package for the DNSPulse exporter.

Serves Prometheus metrics and a liveness endpoint over HTTP.
"""

from .app import create_app, run_server

__all__ = ["create_app", "run_server"]
