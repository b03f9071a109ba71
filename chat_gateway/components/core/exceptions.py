"""
Chat gateway error taxonomy.

Usage:
    from chat_gateway.components.core.exceptions import SessionClosed

    raise SessionClosed(connection_id)
"""

from __future__ import annotations


class ChatGatewayError(Exception):
    """Base class for all chat gateway errors."""


class DuplicateConnection(ChatGatewayError):
    """
    A connection id is already registered.

    Fatal to the registration call; recoverable by allocating a fresh id.
    """

    def __init__(self, connection_id: int):
        self.connection_id = connection_id
        super().__init__(f"Connection {connection_id} is already registered")


class DisplayNameTaken(ChatGatewayError):
    """A live connection already holds the requested display name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Display name {name!r} is already in use")


class SessionClosed(ChatGatewayError):
    """Operation attempted on a terminated session. Discard the handle."""

    def __init__(self, connection_id: int):
        self.connection_id = connection_id
        super().__init__(f"Session {connection_id} is closed")


class MalformedFrame(ChatGatewayError):
    """
    Inbound frame could not be decoded into a known variant.

    Recovered locally: the frame is dropped and the session continues.
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


__all__ = [
    "ChatGatewayError",
    "DuplicateConnection",
    "DisplayNameTaken",
    "SessionClosed",
    "MalformedFrame",
]
