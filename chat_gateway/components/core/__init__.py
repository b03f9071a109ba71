"""
Core components.

Constants, error taxonomy, and per-session logging context.
"""

from chat_gateway.components.core.constants import (
    WSCloseCode,
    WSConstants,
    FrameType,
    CHAT_ENDPOINT,
    DEFAULT_ALLOWED_ORIGINS,
)
from chat_gateway.components.core.context import SessionContext, sanitize_log_data
from chat_gateway.components.core.exceptions import (
    ChatGatewayError,
    DuplicateConnection,
    DisplayNameTaken,
    SessionClosed,
    MalformedFrame,
)

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "FrameType",
    "CHAT_ENDPOINT",
    "DEFAULT_ALLOWED_ORIGINS",
    "SessionContext",
    "sanitize_log_data",
    "ChatGatewayError",
    "DuplicateConnection",
    "DisplayNameTaken",
    "SessionClosed",
    "MalformedFrame",
]
