"""Tests for the console surface."""

from __future__ import annotations

import asyncio

import pytest

from direct_chat.client import main
from direct_chat.client.app import ChatController
from direct_chat.client.main import ConsoleView, login_menu


@pytest.fixture
def answers(monkeypatch):
    """Feed scripted replies to the console prompts."""
    replies = []

    async def fake_ainput(prompt: str) -> str:
        return replies.pop(0)

    monkeypatch.setattr(main, "ainput", fake_ainput)
    return replies


def test_prints_each_message_once(fake_api, transport_factory, u1, u2, message, capsys):
    controller = ChatController("http://chat.test", api=fake_api, transport_factory=transport_factory)
    ConsoleView(controller)
    controller.session.identity = u1
    controller.reconciler.attach(u1)

    ticket = controller.reconciler.on_peer_selected(u2)
    controller.reconciler.on_history_fetched(u2, [message("m1", "u2", "u1", content="hey")], ticket)
    controller.reconciler.on_inbound_push(message("m2", "u1", "u2", content="yo", minute=1))

    out = capsys.readouterr().out.splitlines()
    assert out == [
        "Loading conversation with b@x.com...",
        "[10:00] u2: hey",
        "[10:01] (you): yo",
    ]


class TestLoginMenu:
    def test_welcome_when_registered(self, fake_api, transport_factory, answers, capsys):
        controller = ChatController("http://chat.test", api=fake_api, transport_factory=transport_factory)
        answers.extend(["e", "a@x.com"])
        assert asyncio.run(login_menu(controller)) is True
        out = capsys.readouterr().out
        assert "Welcome, a@x.com!" in out

    def test_unknown_email_reports_login_failure(self, fake_api, transport_factory, answers, capsys):
        controller = ChatController("http://chat.test", api=fake_api, transport_factory=transport_factory)
        answers.extend(["e", "zed@x.com"])
        asyncio.run(login_menu(controller))
        out = capsys.readouterr().out
        assert "Login failed: No user found for zed@x.com" in out
        assert "Welcome" not in out

    def test_connection_failure_after_sign_in_suggests_reconnect(
        self, fake_api, failing_transport_factory, answers, capsys
    ):
        controller = ChatController("http://chat.test", api=fake_api, transport_factory=failing_transport_factory)
        answers.extend(["e", "a@x.com"])
        asyncio.run(login_menu(controller))
        out = capsys.readouterr().out
        assert "Signed in as a@x.com, but the connection failed: connection refused" in out
        assert "Use [r]econnect to try again." in out
        assert "Login failed" not in out
        assert "Welcome" not in out

    def test_external_login_without_connection_suggests_reconnect(
        self, fake_api, failing_transport_factory, answers, opened_urls, u1, capsys
    ):
        fake_api.credentials["abc"] = u1
        controller = ChatController(
            "http://chat.test", api=fake_api, transport_factory=failing_transport_factory, opener=opened_urls.append
        )
        answers.extend(["x", "google", "http://localhost:5173/?token=abc"])
        asyncio.run(login_menu(controller))
        out = capsys.readouterr().out
        assert opened_urls == ["http://chat.test/auth/google"]
        assert "but not connected. Use [r]econnect to try again." in out
        assert "Welcome" not in out

    def test_quit(self, fake_api, transport_factory, answers):
        controller = ChatController("http://chat.test", api=fake_api, transport_factory=transport_factory)
        answers.append("q")
        assert asyncio.run(login_menu(controller)) is False


@pytest.fixture
def opened_urls():
    return []
