"""
Prometheus text exposition for the chat gateway.

Renders ConnectionManager.get_stats() without a client library: the gateway
has a handful of counters and one scrape endpoint.

Format reference: https://prometheus.io/docs/instrumenting/exposition_formats/
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Iterator, TYPE_CHECKING

if TYPE_CHECKING:
    from chat_gateway.connection_manager import ConnectionManager


class MetricType(str, Enum):
    COUNTER = "counter"
    GAUGE = "gauge"


# (stats key, metric suffix, help text); read from the top level of the stats
_GAUGES: list[tuple[str, str, str]] = [
    ("online", "connections_online", "Current number of registered chat connections"),
    ("max_connections", "connections_max", "Maximum allowed chat connections"),
]

# Same shape, read from stats["metrics"]
_COUNTERS: list[tuple[str, str, str]] = [
    ("broadcasts_total", "broadcasts_total", "Total broadcast operations"),
    ("broadcasts_failed", "broadcasts_failed", "Broadcasts with at least one failed recipient"),
    ("broadcasts_recipients_failed", "broadcasts_failed_recipients", "Total failed recipients"),
    ("connections_accepted", "connections_accepted", "Accepted chat connections"),
    ("connections_torn_down", "connections_torn_down", "Connections torn down after a failed send"),
    ("frames_received", "frames_received", "Inbound frames received"),
    ("frames_relayed", "frames_relayed", "Inbound chat frames relayed"),
    ("frames_dropped", "frames_dropped", "Inbound frames dropped as malformed"),
]

_REJECT_REASONS = ("limit", "shutdown", "name")


def _sample(name: str, value: float | int, labels: dict[str, str] | None = None) -> str:
    if not labels:
        return f"{name} {value}"
    rendered = ",".join(f'{k}="{v}"' for k, v in labels.items())
    return f"{name}{{{rendered}}} {value}"


class PrometheusFormatter:
    """
    Renders gateway stats as Prometheus text.

    Usage:
        text = PrometheusFormatter().format_all_metrics(manager.get_stats())
    """

    def __init__(self, prefix: str = "chatgateway"):
        self._prefix = prefix

    def format_metric(
        self,
        name: str,
        value: float | int,
        help_text: str,
        metric_type: MetricType,
        labels: dict[str, str] | None = None,
    ) -> str:
        """One metric family with a single sample."""
        return "\n".join((
            f"# HELP {name} {help_text}",
            f"# TYPE {name} {metric_type.value}",
            _sample(name, value, labels),
        ))

    def _families(self, stats: dict[str, Any]) -> Iterator[str]:
        counters = stats.get("metrics", {})
        p = self._prefix

        for key, suffix, help_text in _GAUGES:
            yield self.format_metric(f"{p}_{suffix}", stats.get(key, 0), help_text, MetricType.GAUGE)

        for key, suffix, help_text in _COUNTERS:
            yield self.format_metric(f"{p}_{suffix}", counters.get(key, 0), help_text, MetricType.COUNTER)

        rejected = f"{p}_connections_rejected_total"
        yield "\n".join([
            f"# HELP {rejected} Rejected connections by reason",
            f"# TYPE {rejected} counter",
            *(
                _sample(rejected, counters.get(f"connections_rejected_{reason}", 0), {"reason": reason})
                for reason in _REJECT_REASONS
            ),
        ])

        yield self.format_metric(
            f"{p}_scrape_timestamp",
            int(time.time()),
            "Unix time of this scrape",
            MetricType.GAUGE,
        )

    def format_all_metrics(self, stats: dict[str, Any]) -> str:
        """Full exposition body for ``stats`` (as returned by get_stats())."""
        return "\n".join(self._families(stats)) + "\n"


_formatter: PrometheusFormatter | None = None


def get_prometheus_formatter() -> PrometheusFormatter:
    global _formatter
    if _formatter is None:
        _formatter = PrometheusFormatter()
    return _formatter


def generate_prometheus_metrics(manager: "ConnectionManager") -> str:
    """Exposition body for a running gateway."""
    return get_prometheus_formatter().format_all_metrics(manager.get_stats())
