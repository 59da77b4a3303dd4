"""Persistent push connection bound to the resolved identity."""
from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Protocol

import aiohttp
from pydantic import ValidationError

from ..shared.schemas import EventFrame, MessageRecord, OutboundMessage
from .errors import NotConnected, TransportFailure
from .logging_config import configure_logging
from .models import ConnectionState, Identity, Message

logger = configure_logging()

InboundHandler = Callable[[Message], None]
StateListener = Callable[[Optional[Identity], ConnectionState], None]
FrameCallback = Callable[[str], None]
CloseCallback = Callable[[], None]


class Transport(Protocol):
    async def open(self, on_frame: FrameCallback, on_close: CloseCallback) -> None: ...

    async def send(self, frame: Dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


class WebSocketTransport:
    """JSON-framed websocket carried by an aiohttp client session."""

    def __init__(self, url: str, heartbeat: float = 20.0):
        self.url = url
        self.heartbeat = heartbeat
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None
        self._closing = False

    async def open(self, on_frame: FrameCallback, on_close: CloseCallback) -> None:
        self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(self.url, heartbeat=self.heartbeat)
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            await self._session.close()
            raise TransportFailure(f"Could not connect to {self.url}: {exc}") from exc
        self._reader = asyncio.create_task(self._read_loop(on_frame, on_close))

    async def _read_loop(self, on_frame: FrameCallback, on_close: CloseCallback) -> None:
        assert self._ws is not None
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    on_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    break
        finally:
            if not self._closing:
                if self._session is not None:
                    await self._session.close()
                on_close()

    async def send(self, frame: Dict[str, Any]) -> None:
        if self._ws is None or self._ws.closed:
            raise TransportFailure("Websocket is closed")
        try:
            await self._ws.send_json(frame)
        except (aiohttp.ClientError, ConnectionResetError) as exc:
            raise TransportFailure(f"Send failed: {exc}") from exc

    async def close(self) -> None:
        self._closing = True
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._reader is not None and self._reader is not asyncio.current_task():
            await self._reader
        if self._session is not None:
            await self._session.close()


class Connection:
    """Per-identity connection state. Discarded wholesale on teardown."""

    def __init__(self, identity: Identity, transport: Transport):
        self.bound_identity = identity
        self.transport = transport
        self.state = ConnectionState.DISCONNECTED
        self.handlers: List[InboundHandler] = []


class ConnectionManager:
    """Owns at most one Connection, bound to the current Identity.

    ``Disconnected -> Connecting -> Connected -> Registered``; every failure
    or teardown collapses back to ``Disconnected`` without retrying.
    """

    def __init__(self, transport_factory: Callable[[], Transport]):
        self.transport_factory = transport_factory
        self.connection: Optional[Connection] = None
        self._lock = asyncio.Lock()
        self._state_listeners: List[StateListener] = []

    @property
    def state(self) -> ConnectionState:
        return self.connection.state if self.connection else ConnectionState.DISCONNECTED

    @property
    def bound_identity(self) -> Optional[Identity]:
        return self.connection.bound_identity if self.connection else None

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def _set_state(self, connection: Connection, state: ConnectionState) -> None:
        connection.state = state
        logger.info("CONNECTION_STATE user_id=%s state=%s", connection.bound_identity.id, state.value)
        for listener in list(self._state_listeners):
            listener(connection.bound_identity, state)

    async def bind(self, identity: Identity) -> Connection:
        async with self._lock:
            current = self.connection
            if current is not None:
                if current.bound_identity == identity and current.state == ConnectionState.REGISTERED:
                    return current
                await self._teardown(current)

            connection = Connection(identity, self.transport_factory())
            self.connection = connection
            self._set_state(connection, ConnectionState.CONNECTING)
            try:
                await connection.transport.open(
                    lambda raw: self._on_frame(connection, raw),
                    lambda: self._on_closed(connection),
                )
                self._set_state(connection, ConnectionState.CONNECTED)
                register = EventFrame(event="register", data=identity.id)
                await connection.transport.send(register.model_dump())
            except TransportFailure:
                logger.warning("CONNECTION_FAILED user_id=%s", identity.id)
                if self.connection is connection:
                    await self._teardown(connection)
                raise
            if self.connection is not connection:
                raise TransportFailure("Connection closed during registration")
            self._set_state(connection, ConnectionState.REGISTERED)
            return connection

    async def unbind(self) -> None:
        async with self._lock:
            if self.connection is not None:
                await self._teardown(self.connection)

    async def _teardown(self, connection: Connection) -> None:
        connection.handlers.clear()
        if self.connection is connection:
            self.connection = None
        if connection.state != ConnectionState.DISCONNECTED:
            self._set_state(connection, ConnectionState.DISCONNECTED)
        await connection.transport.close()

    def subscribe_to_inbound(self, handler: InboundHandler) -> None:
        """Invoke ``handler`` once per inbound message for this Connection's lifetime."""
        if self.connection is None:
            raise NotConnected("No active connection")
        self.connection.handlers.append(handler)

    async def send_outbound(self, draft: OutboundMessage) -> None:
        connection = self.connection
        if connection is None or connection.state != ConnectionState.REGISTERED:
            raise NotConnected("Connection is not registered")
        frame = EventFrame(event="dm", data=draft.model_dump(by_alias=True))
        await connection.transport.send(frame.model_dump())

    def _on_frame(self, connection: Connection, raw: str) -> None:
        if connection is not self.connection:
            return
        try:
            frame = EventFrame.model_validate(json.loads(raw))
        except (ValueError, ValidationError):
            logger.warning("FRAME_DROPPED reason=malformed")
            return
        if frame.event != "dm":
            logger.debug("FRAME_IGNORED event=%s", frame.event)
            return
        try:
            message = Message.from_record(MessageRecord.model_validate(frame.data))
        except ValidationError:
            logger.warning("FRAME_DROPPED reason=bad_message")
            return
        for handler in list(connection.handlers):
            try:
                handler(message)
            except Exception:  # noqa: BLE001
                logger.exception("INBOUND_HANDLER_FAILED message_id=%s", message.id)

    def _on_closed(self, connection: Connection) -> None:
        if connection is not self.connection:
            return
        logger.warning("CONNECTION_LOST user_id=%s", connection.bound_identity.id)
        connection.handlers.clear()
        self.connection = None
        self._set_state(connection, ConnectionState.DISCONNECTED)
