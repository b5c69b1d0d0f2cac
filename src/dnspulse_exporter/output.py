"""
Output formatting for one-shot probe reports.

Provides two formats:
- JSON: machine-readable summary and per-probe outcomes
- Rich: terminal table of per-server statistics
"""

import json
from typing import Optional

from rich import box
from rich.console import Console
from rich.table import Table

from .models import ProbeOutcome, ServerStats


class JSONOutput:
    """JSON output formatter."""

    @staticmethod
    def format(
        stats_list: list[ServerStats],
        outcomes: Optional[list[ProbeOutcome]] = None,
        indent: int = 2,
    ) -> str:
        """
        Format a probe summary as JSON.

        Args:
            stats_list: Per-server statistics
            outcomes: Individual probe outcomes to include, if any
            indent: JSON indentation level

        Returns:
            JSON string
        """
        data = {"servers": []}

        for stats in stats_list:
            data["servers"].append({
                "server": stats.server,
                "protocol": stats.protocol,
                "queries": {
                    "total": stats.total_queries,
                    "successful": stats.successful_queries,
                    "failed": stats.failed_queries,
                    "success_rate_pct": round(stats.success_rate, 2),
                },
                "latency_ms": {
                    "min": round(stats.min_latency, 3),
                    "max": round(stats.max_latency, 3),
                    "avg": round(stats.avg_latency, 3),
                    "median": round(stats.median_latency, 3),
                    "p95": round(stats.p95_latency, 3),
                },
                "errors": stats.errors,
            })

        if outcomes is not None:
            data["probes"] = [
                {
                    "domain": o.domain,
                    "hostname": o.hostname,
                    "server": o.server,
                    "protocol": o.protocol,
                    "duration_ms": round(o.latency_ms, 3),
                    "success": o.success,
                    "error": o.error,
                }
                for o in outcomes
            ]

        return json.dumps(data, indent=indent)


class RichConsoleOutput:
    """Rich library console output with colors and tables."""

    @staticmethod
    def print(stats_list: list[ServerStats], console: Optional[Console] = None) -> None:
        """Print per-server statistics as a table."""
        console = console or Console()

        table = Table(
            title="DNS Probe Results",
            box=box.ROUNDED,
            header_style="bold magenta",
        )

        table.add_column("Server", style="cyan")
        table.add_column("Protocol", style="dim")
        table.add_column("Queries", justify="right")
        table.add_column("Success", justify="right")
        table.add_column("Min (ms)", justify="right")
        table.add_column("Avg (ms)", justify="right", style="green")
        table.add_column("Median (ms)", justify="right")
        table.add_column("p95 (ms)", justify="right", style="yellow")

        for stats in stats_list:
            success_style = "green" if stats.failed_queries == 0 else "red"
            table.add_row(
                stats.server,
                stats.protocol,
                str(stats.total_queries),
                f"[{success_style}]{stats.success_rate:.1f}%[/{success_style}]",
                f"{stats.min_latency:.1f}",
                f"{stats.avg_latency:.1f}",
                f"{stats.median_latency:.1f}",
                f"{stats.p95_latency:.1f}",
            )

        console.print(table)

        for stats in stats_list:
            for error in sorted(set(stats.errors)):
                console.print(f"  [red]{stats.server} ({stats.protocol}):[/red] {error}")
