"""Shared fixtures for the direct chat client test suite."""

from __future__ import annotations

import json
import logging
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from direct_chat.client import config as client_config
from direct_chat.client.errors import AuthRejected, TransportFailure
from direct_chat.client.models import Identity, Message
from direct_chat.shared.schemas import MessageRecord

BASE_TIME = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

_log_dir: Path | None = None


def pytest_configure(config):
    """Send client logs to a scratch directory before any client module is imported."""
    global _log_dir
    _log_dir = Path(tempfile.mkdtemp(prefix="direct_chat_logs_"))
    client_config.LOG_FILE = _log_dir / "client.log"


def pytest_unconfigure(config):
    logger = logging.getLogger("direct_chat_client")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    if _log_dir is not None:
        shutil.rmtree(_log_dir, ignore_errors=True)


@pytest.fixture(autouse=True)
def storage_file(tmp_path: Path, monkeypatch) -> Path:
    """Point credential storage at a per-test file."""
    path = tmp_path / "client_state.json"
    monkeypatch.setattr(client_config, "STORAGE_FILE", path)
    return path


@pytest.fixture
def u1() -> Identity:
    return Identity(id="u1", email="a@x.com", username="alice", status="online")


@pytest.fixture
def u2() -> Identity:
    return Identity(id="u2", email="b@x.com", username="bob", status="online")


@pytest.fixture
def u3() -> Identity:
    return Identity(id="u3", email="c@x.com", username="carol", status="away")


@pytest.fixture
def record():
    """Build a wire-format message dict; ``minute`` offsets ``createdAt``."""

    def _record(msg_id, from_user_id, to_user_id, content="hi", minute=0):
        return {
            "id": msg_id,
            "fromUserId": from_user_id,
            "toUserId": to_user_id,
            "content": content,
            "type": "text",
            "createdAt": (BASE_TIME + timedelta(minutes=minute)).isoformat().replace("+00:00", "Z"),
        }

    return _record


@pytest.fixture
def message(record):
    """Build a client ``Message`` with the same arguments as ``record``."""

    def _message(*args, **kwargs) -> Message:
        return Message.from_record(MessageRecord.model_validate(record(*args, **kwargs)))

    return _message


class FakeTransport:
    """In-memory transport recording frames sent by the client."""

    def __init__(self, fail_open: bool = False):
        self.fail_open = fail_open
        self.sent: list[dict] = []
        self.opened = False
        self.closed = False
        self.on_frame = None
        self.on_close = None

    async def open(self, on_frame, on_close) -> None:
        if self.fail_open:
            raise TransportFailure("connection refused")
        self.opened = True
        self.on_frame = on_frame
        self.on_close = on_close

    async def send(self, frame: dict) -> None:
        if self.closed:
            raise TransportFailure("closed")
        self.sent.append(frame)

    async def close(self) -> None:
        self.closed = True

    def push(self, data: dict) -> None:
        self.on_frame(json.dumps({"event": "dm", "data": data}))

    def drop(self) -> None:
        self.closed = True
        self.on_close()


@pytest.fixture
def transports() -> list[FakeTransport]:
    return []


@pytest.fixture
def transport_factory(transports):
    def _factory() -> FakeTransport:
        transport = FakeTransport()
        transports.append(transport)
        return transport

    return _factory


class FakeAPI:
    """Stands in for ``APIClient`` with canned directory and history data."""

    base_url = "http://chat.test"

    def __init__(self):
        self.users: list[Identity] = []
        self.history: dict[frozenset, list[Message]] = {}
        self.credentials: dict[str, Identity] = {}
        self.history_calls: list[tuple[str, str]] = []

    def search(self, email_fragment: str) -> list[Identity]:
        return [u for u in self.users if email_fragment.lower() in u.email.lower()]

    def fetch_history(self, local_id: str, peer_id: str) -> list[Message]:
        self.history_calls.append((local_id, peer_id))
        return list(self.history.get(frozenset((local_id, peer_id)), []))

    def who_am_i(self, credential: str) -> Identity:
        if credential not in self.credentials:
            raise AuthRejected("rejected")
        return self.credentials[credential]

    def login(self, email: str, password: str):
        for token, identity in self.credentials.items():
            if identity.email == email and password == "s3cret-pass":
                return token, identity
        raise AuthRejected("Invalid credentials")

    def external_login_url(self, provider: str) -> str:
        return f"{self.base_url}/auth/{provider}"

    def websocket_url(self, path: str) -> str:
        return "ws://chat.test" + path


@pytest.fixture
def fake_api(u1, u2, u3) -> FakeAPI:
    api = FakeAPI()
    api.users = [u1, u2, u3]
    return api


@pytest.fixture
def failing_transport_factory(transports):
    def _factory() -> FakeTransport:
        transport = FakeTransport(fail_open=True)
        transports.append(transport)
        return transport

    return _factory
