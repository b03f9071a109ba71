"""
Session module: per-connection protocol state machine.
"""

from chat_gateway.core.session.session import ChatSession, SessionState, normalize_display_name

__all__ = [
    "ChatSession",
    "SessionState",
    "normalize_display_name",
]
