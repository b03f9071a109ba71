"""
Chat message value objects.

Outbound frames are a closed set of immutable variants. Inbound frames are
decoded at the boundary into ``InboundChat`` or rejected with MalformedFrame;
nothing downstream ever sees a raw dict.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Union

from chat_gateway.components.core.constants import FrameType
from chat_gateway.components.core.exceptions import MalformedFrame


@dataclass(frozen=True)
class ChatMessage:
    """A chat line relayed from one participant to the others."""

    sender: str
    content: str
    timestamp: int | None = None  # epoch millis, only sent when configured

    @property
    def type(self) -> str:
        return FrameType.CHAT

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": FrameType.CHAT,
            "sender": self.sender,
            "content": self.content,
        }
        if self.timestamp is not None:
            payload["timestamp"] = self.timestamp
        return payload

    @classmethod
    def stamped(cls, sender: str, content: str) -> "ChatMessage":
        """Create a chat message carrying the current time."""
        return cls(sender=sender, content=content, timestamp=int(time.time() * 1000))


@dataclass(frozen=True)
class SystemMessage:
    """Server notice (joins, leaves, welcome, shutdown)."""

    content: str

    @property
    def type(self) -> str:
        return FrameType.SYSTEM

    def to_dict(self) -> dict[str, Any]:
        return {"type": FrameType.SYSTEM, "content": self.content}

    @classmethod
    def welcome(cls, name: str) -> "SystemMessage":
        return cls(f"Welcome to the chat, {name}!")

    @classmethod
    def joined(cls, name: str) -> "SystemMessage":
        return cls(f"{name} joined the chat")

    @classmethod
    def left(cls, name: str) -> "SystemMessage":
        return cls(f"{name} left the chat")


@dataclass(frozen=True)
class UserListMessage:
    """The online set, in join order."""

    users: tuple[str, ...] = field(default_factory=tuple)

    @property
    def type(self) -> str:
        return FrameType.USERLIST

    def to_dict(self) -> dict[str, Any]:
        return {"type": FrameType.USERLIST, "users": list(self.users)}

    @classmethod
    def of(cls, users: list[str]) -> "UserListMessage":
        return cls(users=tuple(users))


Message = Union[ChatMessage, SystemMessage, UserListMessage]


@dataclass(frozen=True)
class InboundChat:
    """The only frame a client may send: ``{"type": "chat", "content": ...}``."""

    content: str


def parse_inbound(raw: str) -> InboundChat:
    """
    Decode one inbound text frame.

    Args:
        raw: Text frame as received from the transport.

    Returns:
        The decoded InboundChat.

    Raises:
        MalformedFrame: If the frame is not JSON, not an object, has an
            unknown type, or lacks a string ``content``.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedFrame(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedFrame("frame is not a JSON object")

    frame_type = data.get("type")
    if frame_type is None:
        raise MalformedFrame("missing 'type'")
    if frame_type != FrameType.CHAT:
        raise MalformedFrame(f"unsupported type: {frame_type!r}")

    content = data.get("content")
    if not isinstance(content, str):
        raise MalformedFrame("missing or non-string 'content'")

    return InboundChat(content=content)


__all__ = [
    "ChatMessage",
    "SystemMessage",
    "UserListMessage",
    "Message",
    "InboundChat",
    "parse_inbound",
]
