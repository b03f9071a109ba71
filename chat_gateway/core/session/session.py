"""
Chat Session.

Per-connection protocol state machine: CONNECTING -> ACTIVE -> CLOSED.

One session runs in the task serving its WebSocket. It joins the chat
(display name + registry entry + join notices), relays inbound chat frames
to everyone else, and on any way out (client disconnect, transport error,
server teardown, shutdown) unregisters and announces the departure.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.correlation import bind_connection_id, reset_connection_id

from chat_gateway.components.connection.registry import Connection
from chat_gateway.components.core.constants import CHAT_ENDPOINT, WSCloseCode, WSConstants
from chat_gateway.components.core.context import SessionContext, sanitize_log_data
from chat_gateway.components.core.exceptions import (
    DisplayNameTaken,
    DuplicateConnection,
    MalformedFrame,
    SessionClosed,
)
from chat_gateway.components.events.messages import (
    ChatMessage,
    SystemMessage,
    parse_inbound,
)

if TYPE_CHECKING:
    from chat_gateway.components.connection.registry import ConnectionId, ConnectionRegistry
    from chat_gateway.components.events.messages import Message
    from chat_gateway.components.metrics.collector import MetricsCollector
    from chat_gateway.core.connection.broadcaster import BroadcastRouter

logger = get_logger(__name__)


class SessionState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


def normalize_display_name(name: str | None, max_length: int) -> str | None:
    """
    Clean a client-requested display name.

    Returns:
        The trimmed name, or None if nothing usable was requested.
    """
    if name is None:
        return None
    name = name.strip()[:max_length].strip()
    if not name or not name.isprintable():
        return None
    return name


class ChatSession:
    """
    Server-side state machine for one chat connection.

    Usage:
        session = ChatSession(websocket, connection_id, registry, router, metrics,
                              allocate_id=..., generate_name=...)
        await session.run()
    """

    def __init__(
        self,
        websocket: WebSocket,
        connection_id: "ConnectionId",
        registry: "ConnectionRegistry",
        router: "BroadcastRouter",
        metrics: "MetricsCollector",
        allocate_id: Callable[[], "ConnectionId"],
        generate_name: Callable[[], str],
        requested_name: str | None = None,
        endpoint_name: str = CHAT_ENDPOINT,
    ):
        """
        Initialize a session in CONNECTING state.

        Args:
            websocket: The accepted WebSocket.
            connection_id: Id allocated by the server core.
            registry: Connection registry.
            router: Broadcast router.
            metrics: Metrics collector.
            allocate_id: Produces a fresh connection id after an id clash.
            generate_name: Produces a display name when none was requested.
            requested_name: Display name asked for by the client, if any.
            endpoint_name: Endpoint path, for logging.
        """
        self.websocket = websocket
        self.connection = Connection(id=connection_id, websocket=websocket)
        self.endpoint_name = endpoint_name
        self.state = SessionState.CONNECTING
        # Set once the join notice has gone out; only then is a leave announced
        self._announced = False
        self.context = SessionContext.from_websocket(
            websocket,
            endpoint_name,
            connection_id,
            requested_name=requested_name,
        )

        self._registry = registry
        self._router = router
        self._metrics = metrics
        self._allocate_id = allocate_id
        self._generate_name = generate_name
        self._requested_name = normalize_display_name(
            requested_name, settings.chat_max_name_length
        )

    @property
    def connection_id(self) -> "ConnectionId":
        return self.connection.id

    @property
    def display_name(self) -> str | None:
        return self.connection.name

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.ACTIVE

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def run(self) -> None:
        """
        Main entry point - drive the session to completion.

        1. Join (name, registry, notices)
        2. Message loop
        3. Close on any exit path
        """
        token = bind_connection_id(self.connection_id)
        try:
            if not await self.join():
                return

            self.log_connect()
            try:
                await self._message_loop()
            except WebSocketDisconnect as e:
                self.log_disconnect("client_disconnect", code=e.code)
            except (RuntimeError, OSError, ConnectionError) as e:
                # Transport failed under us, or the router already closed it
                self.log_disconnect("transport_error", error=str(e))
        finally:
            await self.close(reason="Connection closed")
            reset_connection_id(token)

    async def join(self) -> bool:
        """
        CONNECTING -> ACTIVE.

        Registers under the resolved display name, then sends the private
        welcome notice, the join notice to everyone else, and the updated
        online set to everyone.

        Returns:
            True if the session is now ACTIVE.
        """
        if self.state is SessionState.CLOSED:
            raise SessionClosed(self.connection_id)
        if self.state is SessionState.ACTIVE:
            return True

        name = self._requested_name or self._generate_name()

        for attempt in range(1, WSConstants.MAX_REGISTER_ATTEMPTS + 1):
            try:
                await self._registry.register(self.connection, name)
                break
            except DuplicateConnection as e:
                fresh_id = self._allocate_id()
                logger.warning(
                    "Connection id already registered, retrying with fresh id",
                    connection_id=e.connection_id,
                    fresh_id=fresh_id,
                    attempt=attempt,
                )
                self.connection.id = fresh_id
                self.context.connection_id = fresh_id
            except DisplayNameTaken:
                if self._requested_name is not None:
                    self.log_connect_rejected("name_in_use")
                    self._metrics.increment_connection_rejected_name()
                    await self._abort(WSCloseCode.NAME_IN_USE, "Display name already in use")
                    return False
                # A requested name may shadow a generated one; draw another
                name = self._generate_name()
        else:
            self.log_connect_rejected("registration_failed")
            await self._abort(WSCloseCode.SERVER_ERROR, "Registration failed")
            return False

        # Closed (e.g. by shutdown) while waiting on the registry
        if self.state is SessionState.CLOSED:
            await self._registry.unregister(self.connection_id)
            return False

        self.state = SessionState.ACTIVE
        self.context.display_name = name

        delivered = await self._router.send_to(self.connection_id, SystemMessage.welcome(name))
        if self.state is SessionState.CLOSED:
            return False
        if not delivered:
            self.log_connect_rejected("welcome_failed")
            await self.close(reason="Send failed", code=WSCloseCode.SEND_FAILED)
            return False

        self._announced = True
        await self._router.broadcast(SystemMessage.joined(name), exclude=self.connection_id)
        await self._router.broadcast_online_users()
        return self.state is SessionState.ACTIVE

    async def close(
        self,
        reason: str = "",
        code: int = WSCloseCode.NORMAL,
        announce: bool = True,
    ) -> None:
        """
        Move to CLOSED. Idempotent.

        Unregisters and closes the transport. Once the join notice has gone
        out, also broadcasts the leave notice and the updated online set
        unless ``announce`` is False.
        """
        if self.state is SessionState.CLOSED:
            return
        was_announced = self.state is SessionState.ACTIVE and self._announced
        self.state = SessionState.CLOSED

        await self._registry.unregister(self.connection_id)
        await self.connection.close(code=code, reason=reason, timeout=settings.ws_send_timeout)

        if was_announced and announce:
            name = self.display_name
            await self._router.broadcast(SystemMessage.left(name))
            await self._router.broadcast_online_users()

    async def _abort(self, code: int, reason: str) -> None:
        """CONNECTING -> CLOSED without join or leave notices."""
        self.state = SessionState.CLOSED
        await self.connection.close(code=code, reason=reason, timeout=settings.ws_send_timeout)

    # =========================================================================
    # Messaging
    # =========================================================================

    async def send(self, message: "Message") -> bool:
        """
        Send a message to this session's client through the ordering point.

        Raises:
            SessionClosed: If the session is CLOSED.
        """
        if self.state is SessionState.CLOSED:
            raise SessionClosed(self.connection_id)
        return await self._router.send_to(self.connection_id, message)

    async def handle_frame(self, data: str | None) -> bool:
        """
        Process one inbound text frame while ACTIVE.

        Malformed frames are logged and dropped; they never change state.

        Returns:
            True if the frame was relayed.

        Raises:
            SessionClosed: If the session is CLOSED.
        """
        if self.state is SessionState.CLOSED:
            raise SessionClosed(self.connection_id)

        self._metrics.increment_frames_received()
        try:
            frame = self._decode(data)
        except MalformedFrame as e:
            self._metrics.increment_frames_dropped()
            logger.info(
                "Dropping malformed frame",
                reason=e.reason,
                preview=sanitize_log_data(data or "", WSConstants.LOG_PREVIEW_LENGTH),
            )
            return False

        sender = self.display_name
        if settings.chat_include_timestamp:
            message = ChatMessage.stamped(sender, frame.content)
        else:
            message = ChatMessage(sender=sender, content=frame.content)

        await self._router.broadcast(message, exclude=self.connection_id)
        self._metrics.increment_frames_relayed()
        logger.debug(
            "Chat relayed",
            sender=sender,
            preview=sanitize_log_data(frame.content, WSConstants.LOG_PREVIEW_LENGTH),
        )
        return True

    def _decode(self, data: str | None):
        if data is None:
            raise MalformedFrame("non-text frame")
        if len(data) > settings.ws_max_message_size:
            raise MalformedFrame(f"frame too large ({len(data)} bytes)")
        return parse_inbound(data)

    async def _message_loop(self) -> None:
        while self.state is SessionState.ACTIVE:
            data = await self._receive_frame()
            if self.state is not SessionState.ACTIVE:
                break
            await self.handle_frame(data)

    async def _receive_frame(self) -> str | None:
        """
        Receive one frame.

        Returns:
            The text payload, or None for a binary frame.

        Raises:
            WebSocketDisconnect: When the client disconnects.
        """
        message = await self.websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(code=message.get("code", WSCloseCode.NORMAL))
        return message.get("text")

    # =========================================================================
    # Lifecycle logging
    # =========================================================================

    def log_connect(self) -> None:
        logger.info("Participant joined", **self.context.to_audit_dict("CONNECT"))
        self.context.audit("CONNECT")

    def log_disconnect(self, reason: str, **extra: Any) -> None:
        logger.info(
            "Participant disconnected",
            **self.context.to_audit_dict("DISCONNECT", reason=reason, **extra),
        )
        self.context.audit("DISCONNECT", reason=reason)

    def log_connect_rejected(self, reason: str) -> None:
        logger.warning(
            "Connection rejected",
            endpoint=self.endpoint_name,
            identifier=self.context.identifier,
            reason=reason,
        )
        self.context.audit("CONNECT_REJECTED", reason=reason)
