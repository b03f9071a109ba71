"""
Metrics Collector for the chat gateway.

In-process counters behind /chat/health and /chat/metrics. Increments are
synchronous and guarded by a threading.Lock so they are safe to call from any
hot path.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, asdict
from typing import Any


@dataclass
class BroadcastMetrics:
    """Fan-out operations through the router."""
    total: int = 0
    failed: int = 0  # broadcasts with at least one failed recipient
    recipients_failed: int = 0


@dataclass
class ConnectionMetrics:
    """Admission and teardown of chat connections."""
    accepted: int = 0
    rejected_limit: int = 0
    rejected_shutdown: int = 0
    rejected_name: int = 0
    torn_down: int = 0


@dataclass
class FrameMetrics:
    """Inbound client frames."""
    received: int = 0
    relayed: int = 0
    dropped: int = 0


# Snapshot key prefix -> counter group
_GROUPS: dict[str, type] = {
    "broadcasts": BroadcastMetrics,
    "connections": ConnectionMetrics,
    "frames": FrameMetrics,
}


class MetricsCollector:
    """
    Thread-safe counter registry.

    Usage:
        metrics = MetricsCollector()
        metrics.increment_frames_received()
        metrics.get_snapshot()["frames_received"]
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._groups: dict[str, Any] = {prefix: cls() for prefix, cls in _GROUPS.items()}

    def _bump(self, group: str, counter: str, amount: int = 1) -> None:
        with self._lock:
            target = self._groups[group]
            setattr(target, counter, getattr(target, counter) + amount)

    # Broadcasts

    def increment_broadcast_total(self) -> None:
        self._bump("broadcasts", "total")

    def record_broadcast_failures(self, count: int) -> None:
        """Record one broadcast that failed for ``count`` recipients."""
        with self._lock:
            broadcasts = self._groups["broadcasts"]
            broadcasts.failed += 1
            broadcasts.recipients_failed += count

    # Connections

    def increment_connection_accepted(self) -> None:
        self._bump("connections", "accepted")

    def increment_connection_rejected_limit(self) -> None:
        self._bump("connections", "rejected_limit")

    def increment_connection_rejected_shutdown(self) -> None:
        self._bump("connections", "rejected_shutdown")

    def increment_connection_rejected_name(self) -> None:
        self._bump("connections", "rejected_name")

    def increment_connection_torn_down(self) -> None:
        self._bump("connections", "torn_down")

    # Frames

    def increment_frames_received(self) -> None:
        self._bump("frames", "received")

    def increment_frames_relayed(self) -> None:
        self._bump("frames", "relayed")

    def increment_frames_dropped(self) -> None:
        self._bump("frames", "dropped")

    # Snapshot

    def _flatten(self) -> dict[str, Any]:
        return {
            f"{prefix}_{name}": value
            for prefix, group in self._groups.items()
            for name, value in asdict(group).items()
        }

    def get_snapshot(self) -> dict[str, Any]:
        """Flat copy of every counter, keyed ``{group}_{counter}``."""
        with self._lock:
            return self._flatten()

    def reset(self) -> dict[str, Any]:
        """Zero every counter and return the values they had."""
        with self._lock:
            previous = self._flatten()
            self._groups = {prefix: cls() for prefix, cls in _GROUPS.items()}
        return previous
