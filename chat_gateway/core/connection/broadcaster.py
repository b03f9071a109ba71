"""
Broadcast Router.

Fans messages out to registered connections. This is the single ordering
point for outbound traffic: every broadcast takes one lock for its whole
snapshot-and-send sequence, so two broadcasts never interleave and every
recipient observes them in submission order.

Failed recipients are torn down (unregister + close) after the lock is
released; teardown may itself broadcast leave notices.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TYPE_CHECKING

from shared.config.logging import get_logger

from chat_gateway.components.core.constants import WSCloseCode
from chat_gateway.components.events.messages import UserListMessage

if TYPE_CHECKING:
    from chat_gateway.components.connection.registry import (
        Connection,
        ConnectionId,
        ConnectionRegistry,
    )
    from chat_gateway.components.events.messages import Message
    from chat_gateway.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)

TeardownCallback = Callable[["Connection"], Awaitable[None]]


class BroadcastRouter:
    """
    Sends messages to every registered connection except an optional sender.

    Responsibilities:
    - Snapshot the registry and deliver under one ordering lock
    - Bound each write by the send timeout
    - Isolate per-connection failures and tear failed peers down

    Lock Ordering: the router lock may acquire the registry lock, never the
    reverse.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        metrics: "MetricsCollector",
        send_timeout: float,
        on_teardown: TeardownCallback | None = None,
    ) -> None:
        """
        Initialize router with dependencies.

        Args:
            registry: The connection registry to broadcast over.
            metrics: Collects broadcast metrics.
            send_timeout: Seconds a single write may take before the peer
                is considered dead.
            on_teardown: Called with each connection torn down after a
                failed send, once the ordering lock is released.
        """
        self._registry = registry
        self._metrics = metrics
        self._send_timeout = send_timeout
        self._on_teardown = on_teardown
        self._order_lock = asyncio.Lock()

    def set_teardown_callback(self, callback: TeardownCallback | None) -> None:
        self._on_teardown = callback

    async def broadcast(
        self,
        message: "Message",
        exclude: "ConnectionId | None" = None,
    ) -> int:
        """
        Send ``message`` to every registered connection except ``exclude``.

        Never raises for recipient failures.

        Returns:
            Number of connections that received the message.
        """
        async with self._order_lock:
            targets = [
                c for c in await self._registry.connections() if c.id != exclude
            ]
            sent, failed = await self._deliver(targets, message)

        await self._teardown(failed)
        return sent

    async def broadcast_online_users(self) -> int:
        """
        Broadcast the current online set to everyone.

        The snapshot is taken inside the ordering lock, so the last user list
        any client receives always reflects the latest registry state.
        """
        async with self._order_lock:
            targets = await self._registry.connections()
            message = UserListMessage.of([c.name for c in targets if c.name is not None])
            sent, failed = await self._deliver(targets, message)

        await self._teardown(failed)
        return sent

    async def send_to(self, connection_id: "ConnectionId", message: "Message") -> bool:
        """
        Send to a single registered connection through the ordering point.

        Returns:
            True if delivered, False if the connection is not registered or
            the send failed.
        """
        async with self._order_lock:
            connection = self._registry.get(connection_id)
            if connection is None:
                return False
            sent, failed = await self._deliver([connection], message, count_broadcast=False)

        await self._teardown(failed)
        return sent == 1

    async def _deliver(
        self,
        targets: list["Connection"],
        message: "Message",
        count_broadcast: bool = True,
    ) -> tuple[int, list["Connection"]]:
        """Send to all targets concurrently. Returns (sent, failed connections)."""
        if count_broadcast:
            self._metrics.increment_broadcast_total()
        if not targets:
            return 0, []

        results = await asyncio.gather(
            *[self._send_one(c, message) for c in targets],
        )
        failed = [c for c, ok in zip(targets, results) if not ok]

        if failed:
            self._metrics.record_broadcast_failures(len(failed))
            logger.debug(
                "Broadcast completed with failures",
                message_type=message.type,
                sent=len(targets) - len(failed),
                failed=len(failed),
                total=len(targets),
            )
        return len(targets) - len(failed), failed

    async def _send_one(self, connection: "Connection", message: "Message") -> bool:
        try:
            await connection.send(message, timeout=self._send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                "Send timed out",
                connection_id=connection.id,
                timeout=self._send_timeout,
            )
            return False
        except Exception as e:
            logger.debug("Send failed", connection_id=connection.id, error=str(e))
            return False

    async def _teardown(self, failed: list["Connection"]) -> None:
        """Unregister and close connections whose send failed."""
        for connection in failed:
            removed = await self._registry.unregister(connection.id)
            await connection.close(
                code=WSCloseCode.SEND_FAILED,
                reason="Send failed",
                timeout=self._send_timeout,
            )
            if removed is None:
                continue

            self._metrics.increment_connection_torn_down()
            logger.info("Connection torn down after failed send", connection_id=connection.id)

            if self._on_teardown is not None:
                try:
                    await self._on_teardown(connection)
                except Exception as e:
                    logger.error(
                        "Teardown callback failed",
                        connection_id=connection.id,
                        error=str(e),
                        exc_info=True,
                    )
