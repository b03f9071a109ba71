"""
Connection components.

The registry of live connections and their display names.
"""

from chat_gateway.components.connection.registry import (
    Connection,
    ConnectionId,
    ConnectionRegistry,
    is_ws_connected,
)

__all__ = [
    "Connection",
    "ConnectionId",
    "ConnectionRegistry",
    "is_ws_connected",
]
