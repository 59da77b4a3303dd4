"""Client-side models for identities, messages and the active thread."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, List, Optional

from ..shared.schemas import MessageRecord, UserRecord
from ..shared.utils import belongs_to_thread, thread_key


@dataclass(frozen=True)
class Identity:
    id: str
    email: str
    username: str = ""
    status: str = ""

    @classmethod
    def from_record(cls, record: UserRecord) -> "Identity":
        return cls(id=record.id, email=record.email, username=record.username, status=record.status)


@dataclass(frozen=True)
class Message:
    id: str
    from_user_id: str
    to_user_id: str
    content: Optional[str]
    type: str
    created_at: datetime

    @classmethod
    def from_record(cls, record: MessageRecord) -> "Message":
        return cls(
            id=record.id,
            from_user_id=record.from_user_id,
            to_user_id=record.to_user_id,
            content=record.content,
            type=record.type,
            created_at=record.created_at,
        )

    def belongs_to(self, key: FrozenSet[str]) -> bool:
        return belongs_to_thread(self.from_user_id, self.to_user_id, key)

    def sort_key(self):
        return (self.created_at, self.id)


class LoadState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    REGISTERED = "registered"


@dataclass
class Thread:
    """Messages exchanged with one peer, as currently displayed."""

    local_id: str
    peer: Identity
    messages: List[Message] = field(default_factory=list)
    load_state: LoadState = LoadState.LOADING

    @property
    def peer_id(self) -> str:
        return self.peer.id

    @property
    def key(self) -> FrozenSet[str]:
        return thread_key(self.local_id, self.peer.id)

    def contains(self, message_id: str) -> bool:
        return any(m.id == message_id for m in self.messages)


class Selection:
    """Always-current binding of the selected peer.

    Long-lived subscribers (the push handler) read ``peer_id`` at dispatch
    time instead of capturing it when they are registered.
    """

    def __init__(self) -> None:
        self.peer: Optional[Identity] = None

    @property
    def peer_id(self) -> Optional[str]:
        return self.peer.id if self.peer else None

    def set(self, peer: Optional[Identity]) -> None:
        self.peer = peer

    def clear(self) -> None:
        self.peer = None
