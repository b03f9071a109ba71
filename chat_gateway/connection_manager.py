"""
Chat Connection Manager.

Thin orchestrator that composes the gateway components:
- ConnectionRegistry: the authoritative online set
- BroadcastRouter: ordered fan-out
- ChatSession: per-connection state machine
- MetricsCollector: counters for health and Prometheus
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, TYPE_CHECKING

from shared.config.logging import get_logger
from shared.config.settings import Settings, settings as default_settings

from chat_gateway.components.connection.registry import ConnectionRegistry
from chat_gateway.components.core.constants import CHAT_ENDPOINT, WSCloseCode, WSConstants
from chat_gateway.components.events.messages import SystemMessage
from chat_gateway.components.metrics.collector import MetricsCollector
from chat_gateway.core.connection import BroadcastRouter
from chat_gateway.core.session import ChatSession

if TYPE_CHECKING:
    from fastapi import WebSocket
    from chat_gateway.components.connection.registry import Connection, ConnectionId
    from chat_gateway.components.events.messages import Message

logger = get_logger(__name__)


class ConnectionManager:
    """
    Accepts chat connections and owns their sessions.

    Configuration from settings:
    - ws_max_total_connections: Global connection limit (default: 1000)
    - ws_send_timeout: Write timeout before a peer is torn down (default: 5s)
    - ws_accept_timeout: Handshake timeout (default: 5s)
    - chat_username_prefix: Prefix for generated display names (default: "User")
    """

    def __init__(self, config: Settings | None = None) -> None:
        self._settings = config or default_settings
        self._registry = ConnectionRegistry()
        self._metrics = MetricsCollector()
        self._router = BroadcastRouter(
            registry=self._registry,
            metrics=self._metrics,
            send_timeout=self._settings.ws_send_timeout,
            on_teardown=self._on_teardown,
        )
        self._connection_ids = itertools.count(1)
        self._name_counter = itertools.count(1)
        self._sessions: set[ChatSession] = set()
        # Admitted connections still in the accept handshake
        self._pending = 0
        self._shutdown = False

    # =========================================================================
    # Public properties
    # =========================================================================

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def router(self) -> BroadcastRouter:
        return self._router

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def total_connections(self) -> int:
        """Admitted connections: sessions not finished yet plus handshakes in flight."""
        return len(self._sessions) + self._pending

    def is_shutting_down(self) -> bool:
        return self._shutdown

    # =========================================================================
    # Allocation
    # =========================================================================

    def allocate_connection_id(self) -> "ConnectionId":
        return next(self._connection_ids)

    def generate_name(self) -> str:
        return f"{self._settings.chat_username_prefix}{next(self._name_counter)}"

    # =========================================================================
    # Connection management
    # =========================================================================

    async def connect(
        self,
        websocket: "WebSocket",
        requested_name: str | None = None,
        timeout: float | None = None,
    ) -> ChatSession:
        """
        Accept a WebSocket and create its session in CONNECTING state.

        Raises:
            ConnectionError: If the server is shutting down, at capacity,
                or the handshake fails.
        """
        if self._shutdown:
            self._metrics.increment_connection_rejected_shutdown()
            await self._reject(websocket, WSCloseCode.GOING_AWAY, "Server shutting down")
            raise ConnectionError("Server is shutting down")

        if self.total_connections >= self._settings.ws_max_total_connections:
            self._metrics.increment_connection_rejected_limit()
            await self._reject(websocket, WSCloseCode.SERVER_OVERLOADED, "Server at capacity")
            raise ConnectionError(
                f"Server at capacity ({self._settings.ws_max_total_connections} connections)"
            )

        # Hold the slot across the handshake so concurrent connects see it
        self._pending += 1
        try:
            await asyncio.wait_for(
                websocket.accept(),
                timeout=timeout or self._settings.ws_accept_timeout,
            )
        except asyncio.TimeoutError:
            raise ConnectionError("WebSocket accept timed out")
        except Exception as e:
            raise ConnectionError(f"WebSocket accept failed: {e}")
        finally:
            self._pending -= 1

        session = ChatSession(
            websocket,
            self.allocate_connection_id(),
            self._registry,
            self._router,
            self._metrics,
            allocate_id=self.allocate_connection_id,
            generate_name=self.generate_name,
            requested_name=requested_name,
            endpoint_name=CHAT_ENDPOINT,
        )
        self._sessions.add(session)
        self._metrics.increment_connection_accepted()
        return session

    async def run_session(self, session: ChatSession) -> None:
        """Drive a session to completion and forget it."""
        try:
            await session.run()
        finally:
            self._sessions.discard(session)

    async def _reject(self, websocket: "WebSocket", code: int, reason: str) -> None:
        try:
            await websocket.close(code=code, reason=reason)
        except (RuntimeError, OSError) as e:
            logger.debug("Failed to close rejected connection", error=str(e))

    async def _on_teardown(self, connection: "Connection") -> None:
        """Router callback: a send failed, finish the owning session."""
        for session in list(self._sessions):
            if session.connection is connection:
                await session.close(reason="Send failed", code=WSCloseCode.SEND_FAILED)
                return

    # =========================================================================
    # Broadcast (delegate to router)
    # =========================================================================

    async def broadcast(
        self,
        message: "Message",
        exclude: "ConnectionId | None" = None,
    ) -> int:
        """Send a message to every registered connection except ``exclude``."""
        return await self._router.broadcast(message, exclude=exclude)

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """Connection statistics (sync, for health checks)."""
        return {
            **self._registry.get_stats(),
            "sessions": len(self._sessions),
            "max_connections": self._settings.ws_max_total_connections,
            "shutting_down": self._shutdown,
            "metrics": self._metrics.get_snapshot(),
        }

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def shutdown(self, notice: str | None = None) -> int:
        """
        Graceful shutdown.

        Stops accepting connections, broadcasts a final system notice, then
        closes every live connection without per-user leave notices.

        Returns:
            Number of sessions closed.
        """
        self._shutdown = True
        logger.info("Chat gateway shutting down...")

        await self.broadcast(SystemMessage(notice or self._settings.chat_shutdown_notice))

        sessions = list(self._sessions)

        async def close_one(session: ChatSession) -> None:
            await session.close(
                reason="Server shutdown",
                code=WSCloseCode.GOING_AWAY,
                announce=False,
            )

        results = await asyncio.gather(
            *[close_one(s) for s in sessions],
            return_exceptions=True,
        )
        for session, result in zip(sessions, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Error closing session during shutdown",
                    connection_id=session.connection_id,
                    error=str(result),
                )

        # Anything registered outside a session
        for connection in await self._registry.connections():
            await self._registry.unregister(connection.id)
            await connection.close(
                code=WSCloseCode.GOING_AWAY,
                reason="Server shutdown",
                timeout=WSConstants.SHUTDOWN_CLOSE_TIMEOUT,
            )

        closed = sum(1 for r in results if not isinstance(r, Exception))
        logger.info("Chat gateway shutdown complete", closed=closed)
        return closed
