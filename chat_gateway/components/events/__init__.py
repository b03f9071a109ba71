"""
Event handling components.

Outbound message types and inbound frame parsing.
"""

from chat_gateway.components.events.messages import (
    ChatMessage,
    SystemMessage,
    UserListMessage,
    Message,
    InboundChat,
    parse_inbound,
)

__all__ = [
    "ChatMessage",
    "SystemMessage",
    "UserListMessage",
    "Message",
    "InboundChat",
    "parse_inbound",
]
