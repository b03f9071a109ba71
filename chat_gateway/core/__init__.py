"""
Chat Gateway Core Module.

- connection/: ordered broadcast delivery
- session/: per-connection protocol state machine
"""

from chat_gateway.core.connection import BroadcastRouter
from chat_gateway.core.session import ChatSession, SessionState, normalize_display_name

__all__ = [
    "BroadcastRouter",
    "ChatSession",
    "SessionState",
    "normalize_display_name",
]
