"""
Chat Gateway Constants.

Centralized constants with documentation explaining the rationale for each value.
"""

from enum import IntEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "FrameType",
    "CHAT_ENDPOINT",
    "DEFAULT_ALLOWED_ORIGINS",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the gateway.

    Standard codes (1000-1999) from RFC 6455.
    Custom codes (4000-4999) for application-specific errors.
    """

    # Standard codes (RFC 6455)
    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Server shutting down
    POLICY_VIOLATION = 1008  # Generic policy violation
    SERVER_ERROR = 1011  # Unexpected server error
    SERVER_OVERLOADED = 1013  # Server at capacity, try again later

    # Custom application codes (4000-4999)
    NAME_IN_USE = 4009  # Requested display name already held by a live connection
    SEND_FAILED = 4010  # Outbound write failed or timed out


class WSConstants:
    """
    Chat gateway operational constants.

    These are defaults for values that are not worth exposing in settings.
    Anything deployment-specific lives in shared.config.settings.
    """

    # MAX_REGISTER_ATTEMPTS: 3
    # Rationale: Connection ids come from a monotonic counter, so a clash
    # means an id was registered out of band. One fresh id almost always
    # resolves it; three bounds the retry loop.
    MAX_REGISTER_ATTEMPTS: Final[int] = 3

    # LOG_PREVIEW_LENGTH: 100
    # Rationale: Chat content is user-controlled; logs keep a bounded,
    # sanitized preview only.
    LOG_PREVIEW_LENGTH: Final[int] = 100

    # SHUTDOWN_CLOSE_TIMEOUT: 5 seconds
    # Rationale: Closing a socket to a dead peer can hang; shutdown must
    # finish within the process manager's grace period.
    SHUTDOWN_CLOSE_TIMEOUT: Final[float] = 5.0


class FrameType:
    """Values of the ``type`` field on the wire."""

    CHAT: Final[str] = "chat"
    SYSTEM: Final[str] = "system"
    USERLIST: Final[str] = "userlist"


CHAT_ENDPOINT: Final[str] = "/chat"

# Default development origins for CORS
DEFAULT_ALLOWED_ORIGINS: Final[tuple[str, ...]] = (
    "http://localhost:8080",
    "http://127.0.0.1:8080",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
)
