"""Application controller wiring session, connection and thread state."""
from __future__ import annotations

import asyncio
from typing import Callable, List, Optional

from ..shared.schemas import OutboundMessage
from .api import APIClient
from .compose import ComposePipeline
from .config import DEFAULT_SERVER_URL, WS_PATH
from .connection import ConnectionManager, Transport, WebSocketTransport
from .errors import TransportFailure
from .logging_config import configure_logging
from .models import Identity, Selection, Thread
from .reconciler import ThreadReconciler
from .session import Location, SessionStore
from .storage import get_server_url, store_server_url

logger = configure_logging()


class ChatController:
    """Async facade over the client core for a user-facing surface."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api: Optional[APIClient] = None,
        transport_factory: Optional[Callable[[], Transport]] = None,
        opener: Optional[Callable[[str], object]] = None,
    ):
        self.base_url = (base_url or get_server_url() or DEFAULT_SERVER_URL).rstrip("/")
        self.api = api or APIClient(self.base_url)
        self.session = SessionStore(self.api, opener) if opener else SessionStore(self.api)
        self.connection = ConnectionManager(transport_factory or self._websocket_transport)
        self.selection = Selection()
        self.reconciler = ThreadReconciler(self.selection)
        self.compose = ComposePipeline(self.connection, self.selection)
        self.search_results: List[Identity] = []

    def _websocket_transport(self) -> Transport:
        return WebSocketTransport(self.api.websocket_url(WS_PATH))

    def set_base_url(self, url: str) -> None:
        self.base_url = url.rstrip("/")
        store_server_url(self.base_url)
        self.api.base_url = self.base_url

    @property
    def identity(self) -> Optional[Identity]:
        return self.session.identity

    @property
    def thread(self) -> Optional[Thread]:
        return self.reconciler.thread

    async def _activate(self, identity: Optional[Identity]) -> None:
        """Rebuild connection and thread state for a new (or cleared) identity."""
        if self.connection.bound_identity != identity:
            await self.connection.unbind()
        if identity is None or self.reconciler.local_id != identity.id:
            self.reconciler.detach()
            self.search_results = []
        if identity is None:
            return
        self.reconciler.attach(identity)
        connection = await self.connection.bind(identity)
        if self.reconciler.on_inbound_push not in connection.handlers:
            self.connection.subscribe_to_inbound(self.reconciler.on_inbound_push)

    async def startup(self, location: Optional[Location] = None) -> Optional[Identity]:
        identity = await asyncio.to_thread(self.session.startup, location)
        if identity is None:
            logger.info("SESSION_UNRESOLVED")
            return None
        try:
            await self._activate(identity)
        except TransportFailure as exc:
            logger.warning("STARTUP_CONNECT_FAILED error=%s", exc)
        return identity

    async def login_by_email(self, email: str) -> Identity:
        identity = await asyncio.to_thread(self.session.login_by_email, email)
        await self._activate(identity)
        return identity

    async def login_with_password(self, email: str, password: str) -> Identity:
        identity = await asyncio.to_thread(self.session.login_with_password, email, password)
        await self._activate(identity)
        return identity

    def start_external_login(self, provider: str) -> str:
        return self.session.start_external_login(provider)

    async def reconnect(self) -> None:
        if self.identity is not None:
            await self._activate(self.identity)

    async def logout(self) -> None:
        self.session.logout()
        await self._activate(None)

    async def search(self, email_fragment: str) -> List[Identity]:
        self.search_results = await asyncio.to_thread(self.api.search, email_fragment.strip())
        return self.search_results

    async def select_peer(self, peer: Identity) -> Thread:
        ticket = self.reconciler.on_peer_selected(peer)
        try:
            snapshot = await asyncio.to_thread(self.api.fetch_history, ticket.local_id, peer.id)
        except TransportFailure as exc:
            self.reconciler.on_history_failed(peer, exc, ticket)
            if self.reconciler.thread is ticket:
                raise
            return ticket
        self.reconciler.on_history_fetched(peer, snapshot, ticket)
        return ticket

    def deselect_peer(self) -> None:
        self.reconciler.on_peer_deselected()

    async def send(self, text: str) -> OutboundMessage:
        return await self.compose.send(text)

    async def close(self) -> None:
        await self.connection.unbind()
