"""
Connection Registry - the authoritative online set.

Tracks live connections and their display names in join order. Every
mutation and every snapshot goes through one asyncio.Lock, so snapshot readers
see a consistent point-in-time copy and never the internal dict. The sync
accessors (get, len, membership, get_stats) are lock-free reads, safe only
from the event loop thread.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, TYPE_CHECKING

from starlette.websockets import WebSocketState

from shared.config.logging import get_logger

from chat_gateway.components.core.constants import WSCloseCode
from chat_gateway.components.core.exceptions import DisplayNameTaken, DuplicateConnection

if TYPE_CHECKING:
    from fastapi import WebSocket
    from chat_gateway.components.events.messages import Message

logger = get_logger(__name__)

ConnectionId = int


def is_ws_connected(ws: "WebSocket") -> bool:
    """
    Check if WebSocket is in connected state before sending.

    Starlette only exposes CONNECTING/CONNECTED/DISCONNECTED, so a socket may
    still look connected briefly after the peer went away.
    """
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


@dataclass(eq=False)
class Connection:
    """
    Transport handle for one chat participant.

    The display name is assigned once, when the registry accepts the
    connection. ``alive`` drops to False on the first close and never returns.
    """

    id: ConnectionId
    websocket: "WebSocket"
    name: str | None = None
    alive: bool = True
    _close_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def assign_name(self, name: str) -> None:
        if self.name is not None and self.name != name:
            raise ValueError(f"Connection {self.id} already named {self.name!r}")
        self.name = name

    async def send(self, message: "Message", timeout: float) -> None:
        """
        Write one frame, bounded by ``timeout``.

        Raises:
            ConnectionError: If the connection is no longer usable.
            asyncio.TimeoutError: If the write did not finish in time.
        """
        if not self.alive or not is_ws_connected(self.websocket):
            raise ConnectionError(f"Connection {self.id} is not connected")
        await asyncio.wait_for(self.websocket.send_json(message.to_dict()), timeout=timeout)

    async def close(
        self,
        code: int = WSCloseCode.NORMAL,
        reason: str = "",
        timeout: float | None = None,
    ) -> bool:
        """
        Close the transport. Idempotent.

        Returns:
            True if this call performed the close.
        """
        async with self._close_lock:
            if not self.alive:
                return False
            self.alive = False

        if WebSocketState.DISCONNECTED in (
            self.websocket.client_state,
            self.websocket.application_state,
        ):
            return True
        try:
            await asyncio.wait_for(self.websocket.close(code=code, reason=reason), timeout=timeout)
        except (asyncio.TimeoutError, RuntimeError, OSError, ConnectionError) as e:
            # Peer already gone; nothing left to close
            logger.debug("Close failed", connection_id=self.id, error=str(e))
        return True


class ConnectionRegistry:
    """
    Live connections indexed by id, in join order.

    Thread Safety:
    - All mutations and snapshots hold ``_lock``
    - Snapshots are copies; callers never see internal state
    - get, __contains__, __len__ and get_stats are lock-free reads
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        # dicts preserve insertion order, which is the join order
        self._connections: dict[ConnectionId, Connection] = {}

    async def register(self, connection: Connection, name: str) -> ConnectionId:
        """
        Add a connection under ``name``.

        Raises:
            DuplicateConnection: If the connection id is already registered.
            DisplayNameTaken: If a live connection already holds ``name``.
        """
        async with self._lock:
            if connection.id in self._connections:
                raise DuplicateConnection(connection.id)
            if any(c.name == name for c in self._connections.values()):
                raise DisplayNameTaken(name)
            connection.assign_name(name)
            self._connections[connection.id] = connection
            size = len(self._connections)

        logger.debug("Connection registered", connection_id=connection.id, name=name, online=size)
        return connection.id

    async def unregister(self, connection_id: ConnectionId) -> Connection | None:
        """
        Remove a connection.

        Removing an id that is not registered is a no-op: concurrent close
        paths (transport disconnect, failed send, shutdown) may all try.

        Returns:
            The removed connection, or None if it was already absent.
        """
        async with self._lock:
            connection = self._connections.pop(connection_id, None)

        if connection is not None:
            logger.debug("Connection unregistered", connection_id=connection_id)
        return connection

    async def snapshot(self) -> list[str]:
        """Display names of registered connections, in join order."""
        async with self._lock:
            return [c.name for c in self._connections.values() if c.name is not None]

    async def connections(self) -> list[Connection]:
        """Registered connections, in join order."""
        async with self._lock:
            return list(self._connections.values())

    def get(self, connection_id: ConnectionId) -> Connection | None:
        """Lock-free lookup by id."""
        return self._connections.get(connection_id)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    def get_stats(self) -> dict[str, Any]:
        """Registry statistics (sync, lock-free read for health checks)."""
        connections = list(self._connections.values())
        return {
            "online": len(connections),
            "alive": sum(1 for c in connections if c.alive),
        }
