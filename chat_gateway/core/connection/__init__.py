"""
Connection delivery module.

- broadcaster.py: ordered fan-out to registered connections
"""

from chat_gateway.core.connection.broadcaster import BroadcastRouter

__all__ = [
    "BroadcastRouter",
]
