"""
Per-session logging context.

Holds the fields every lifecycle log line of one chat session shares, and
cleans user-controlled text before it reaches a log line.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from starlette.websockets import WebSocket


# (first, last) code points removed from logged user text
_STRIPPED_RANGES = (
    (0x00, 0x1F),  # C0 controls
    (0x7F, 0x9F),  # DEL and C1 controls
    (0x200B, 0x200F),  # zero-width and direction marks
    (0x202A, 0x202E),  # bidi embeddings and overrides
    (0x2066, 0x2069),  # bidi isolates
    (0xFEFF, 0xFEFF),  # byte order mark
)
_STRIPPED = re.compile(
    "[" + "".join(f"{chr(lo)}-{chr(hi)}" for lo, hi in _STRIPPED_RANGES) + "]"
)
_ESCAPES = str.maketrans({"\\": "\\\\", '"': '\\"'})


def sanitize_log_data(data: str, max_length: int = 100) -> str:
    """
    Make user-controlled text safe to embed in a log line.

    Cuts to ``max_length`` first (marking the cut with "..."), then drops
    control and invisible formatting characters and escapes quotes and
    backslashes.
    """
    cleaned = _STRIPPED.sub("", data[:max_length]).translate(_ESCAPES)
    if len(data) > max_length:
        return cleaned + "..."
    return cleaned


@dataclass
class SessionContext:
    """
    Lifecycle fields of one chat session.

    Usage:
        ctx = SessionContext.from_websocket(websocket, "/chat", connection_id=7)
        ctx.display_name = "alice"
        ctx.audit("CONNECT")
    """

    endpoint: str
    connection_id: int
    origin: str | None = None
    requested_name: str | None = None
    display_name: str | None = None

    @classmethod
    def from_websocket(
        cls,
        websocket: "WebSocket",
        endpoint: str,
        connection_id: int,
        requested_name: str | None = None,
    ) -> "SessionContext":
        return cls(
            endpoint=endpoint,
            connection_id=connection_id,
            origin=websocket.headers.get("origin"),
            requested_name=requested_name,
        )

    def to_audit_dict(self, event_type: str, **extra: Any) -> dict[str, Any]:
        """Audit fields for ``event_type``; unset optional fields are left out."""
        optional = {"origin": self.origin, "display_name": self.display_name}
        return {
            "event_type": event_type,
            "endpoint": self.endpoint,
            "connection_id": self.connection_id,
            **{k: v for k, v in optional.items() if v},
            **extra,
        }

    def audit(
        self,
        event_type: str,
        logger_func: Callable[..., None] | None = None,
        **extra: Any,
    ) -> None:
        """Emit an audit event, by default through audit_ws_connection."""
        if logger_func is None:
            from shared.config.logging import audit_ws_connection

            logger_func = audit_ws_connection
        logger_func(**self.to_audit_dict(event_type, **extra))

    @property
    def identifier(self) -> str:
        """``name#id`` once named, ``conn#id`` before."""
        name = self.display_name or "conn"
        return f"{name}#{self.connection_id}"
