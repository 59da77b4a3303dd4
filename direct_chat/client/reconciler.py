"""Merges history snapshots and live pushes into the displayed thread."""
from __future__ import annotations

import bisect
from typing import Callable, Dict, Iterable, List, Optional, Protocol

from .logging_config import configure_logging
from .models import Identity, LoadState, Message, Selection, Thread

logger = configure_logging()

ThreadListener = Callable[[Optional[Thread]], None]


class HistorySource(Protocol):
    def fetch_history(self, local_id: str, peer_id: str) -> List[Message]: ...


def merge_messages(*batches: Iterable[Message]) -> List[Message]:
    """Union batches by message id, ordered by ``(created_at, id)``."""
    by_id: Dict[str, Message] = {}
    for batch in batches:
        for message in batch:
            by_id.setdefault(message.id, message)
    return sorted(by_id.values(), key=Message.sort_key)


class ThreadReconciler:
    """Keeps exactly one Thread for the selected peer.

    A Thread holds only messages between the local identity and the
    selected peer, never two messages with the same id. Pushes that
    arrive while the snapshot is loading are buffered and merged into it.
    """

    def __init__(self, selection: Optional[Selection] = None):
        self.selection = selection or Selection()
        self.local_id: Optional[str] = None
        self.thread: Optional[Thread] = None
        self._pending: Dict[str, Message] = {}
        self._listeners: List[ThreadListener] = []

    def add_listener(self, listener: ThreadListener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.thread)

    def attach(self, identity: Identity) -> None:
        if self.local_id != identity.id:
            self.detach()
        self.local_id = identity.id

    def detach(self) -> None:
        self.local_id = None
        self.on_peer_deselected()

    def on_peer_selected(self, peer: Identity) -> Thread:
        """Start a fresh Thread for ``peer``; the caller fetches its history.

        The returned Thread is the ticket to pass back to
        ``on_history_fetched`` so a late snapshot can be recognised as stale.
        """
        if self.local_id is None:
            raise RuntimeError("Reconciler is not attached to an identity")
        self.selection.set(peer)
        self._pending = {}
        self.thread = Thread(local_id=self.local_id, peer=peer, load_state=LoadState.LOADING)
        logger.info("THREAD_SELECTED peer_id=%s", peer.id)
        self._notify()
        return self.thread

    def _is_current(self, peer: Identity, ticket: Optional[Thread]) -> bool:
        if self.thread is None:
            return False
        if ticket is not None:
            return ticket is self.thread
        return self.thread.peer_id == peer.id

    def on_history_fetched(self, peer: Identity, snapshot: Iterable[Message], ticket: Optional[Thread] = None) -> None:
        if not self._is_current(peer, ticket):
            logger.debug("SNAPSHOT_DISCARDED reason=stale peer_id=%s", peer.id)
            return
        thread = self.thread
        snapshot = list(snapshot)
        accepted = [m for m in snapshot if m.belongs_to(thread.key)]
        if len(accepted) != len(snapshot):
            logger.warning("SNAPSHOT_FILTERED peer_id=%s dropped=%s", peer.id, len(snapshot) - len(accepted))
        thread.messages = merge_messages(thread.messages, accepted, self._pending.values())
        thread.load_state = LoadState.LOADED
        self._pending = {}
        logger.info("THREAD_LOADED peer_id=%s count=%s", peer.id, len(thread.messages))
        self._notify()

    def on_history_failed(self, peer: Identity, error: Exception, ticket: Optional[Thread] = None) -> None:
        if not self._is_current(peer, ticket):
            return
        thread = self.thread
        thread.messages = merge_messages(thread.messages, self._pending.values())
        thread.load_state = LoadState.FAILED
        self._pending = {}
        logger.warning("THREAD_LOAD_FAILED peer_id=%s error=%s", peer.id, error)
        self._notify()

    def on_inbound_push(self, message: Message) -> None:
        thread = self.thread
        peer_id = self.selection.peer_id
        if thread is None or peer_id is None or self.local_id is None or thread.peer_id != peer_id:
            logger.debug("PUSH_DISCARDED reason=no_thread message_id=%s", message.id)
            return
        if not message.belongs_to(thread.key):
            logger.debug("PUSH_DISCARDED reason=thread_mismatch message_id=%s", message.id)
            return
        if thread.load_state == LoadState.LOADING:
            self._pending.setdefault(message.id, message)
            logger.debug("PUSH_BUFFERED message_id=%s", message.id)
            return
        if thread.contains(message.id):
            logger.debug("PUSH_DISCARDED reason=duplicate message_id=%s", message.id)
            return
        bisect.insort(thread.messages, message, key=Message.sort_key)
        self._notify()

    def on_peer_deselected(self) -> None:
        self.selection.clear()
        self._pending = {}
        if self.thread is not None:
            self.thread = None
            self._notify()
