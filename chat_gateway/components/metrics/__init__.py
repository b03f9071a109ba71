"""
Metrics and observability components.

Internal metrics collection and Prometheus exposition.
"""

from chat_gateway.components.metrics.collector import (
    MetricsCollector,
    BroadcastMetrics,
    ConnectionMetrics,
    FrameMetrics,
)
from chat_gateway.components.metrics.prometheus import (
    PrometheusFormatter,
    generate_prometheus_metrics,
)

__all__ = [
    # Metrics collector
    "MetricsCollector",
    "BroadcastMetrics",
    "ConnectionMetrics",
    "FrameMetrics",
    # Prometheus
    "PrometheusFormatter",
    "generate_prometheus_metrics",
]
