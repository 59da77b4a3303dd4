"""Console client for direct messaging."""
import argparse
import asyncio
from typing import List, Optional

from .app import ChatController
from .config import DEFAULT_SERVER_URL, EXTERNAL_PROVIDERS
from .errors import ChatError, TransportFailure
from .models import ConnectionState, Identity, LoadState, Message, Thread
from .session import Location
from .storage import get_server_url


class ConsoleView:
    """Prints the active thread as it changes."""

    def __init__(self, controller: ChatController):
        self.controller = controller
        self._shown: List[str] = []
        controller.reconciler.add_listener(self.on_thread_changed)

    def format_message(self, msg: Message) -> str:
        identity = self.controller.identity
        who = "(you)" if identity and msg.from_user_id == identity.id else msg.from_user_id
        body = msg.content if msg.type == "text" else "[media]"
        return f"[{msg.created_at:%H:%M}] {who}: {body}"

    def on_thread_changed(self, thread: Optional[Thread]) -> None:
        if thread is None:
            self._shown = []
            return
        if thread.load_state == LoadState.LOADING:
            self._shown = []
            print(f"Loading conversation with {thread.peer.email}...")
            return
        if thread.load_state == LoadState.FAILED and not self._shown:
            print("Could not load history.")
        for msg in thread.messages:
            if msg.id not in self._shown:
                self._shown.append(msg.id)
                print(self.format_message(msg))


async def ainput(prompt: str) -> str:
    return (await asyncio.to_thread(input, prompt)).strip()


async def login_menu(controller: ChatController) -> bool:
    print("\nMenu: [e]mail login, [p]assword login, e[x]ternal login, [q]uit")
    choice = (await ainput("> ")).lower()
    if choice == "q":
        return False
    try:
        if choice == "e":
            await controller.login_by_email(await ainput("Email: "))
        elif choice == "p":
            await controller.login_with_password(await ainput("Email: "), await ainput("Password: "))
        elif choice == "x":
            provider = await ainput(f"Provider ({', '.join(EXTERNAL_PROVIDERS)}): ")
            url = controller.start_external_login(provider)
            print(f"Continue in your browser: {url}")
            callback = await ainput("Paste the URL you were redirected to: ")
            if await controller.startup(Location(callback)) is None:
                print("External login did not complete.")
    except TransportFailure as exc:
        if controller.identity is None:
            print(f"Login failed: {exc}")
        else:
            print(f"Signed in as {controller.identity.email}, but the connection failed: {exc}")
            print("Use [r]econnect to try again.")
        return True
    except ChatError as exc:
        print(f"Login failed: {exc}")
        return True
    if controller.identity:
        if controller.connection.state == ConnectionState.REGISTERED:
            print(f"Welcome, {controller.identity.email}!")
        else:
            print(f"Signed in as {controller.identity.email}, but not connected. Use [r]econnect to try again.")
    return True


async def pick_peer(controller: ChatController) -> Optional[Identity]:
    query = await ainput("Search user by email: ")
    try:
        users = await controller.search(query)
    except ChatError as exc:
        print(f"Could not search users: {exc}")
        return None
    if not users:
        print("User not found.")
        return None
    for index, user in enumerate(users, start=1):
        print(f"{index}. {user.email} ({user.username or '-'})")
    choice = await ainput("Select #: ")
    if not choice.isdigit() or not 1 <= int(choice) <= len(users):
        return None
    return users[int(choice) - 1]


async def chat(controller: ChatController) -> None:
    peer = await pick_peer(controller)
    if peer is None:
        return
    try:
        await controller.select_peer(peer)
    except ChatError as exc:
        print(f"Could not fetch messages: {exc}")
    print("Type a message and press enter. '/b' goes back.")
    while True:
        text = await ainput("")
        if text == "/b":
            controller.deselect_peer()
            break
        try:
            await controller.send(text)
        except ChatError as exc:
            print(f"Failed to send message: {exc}")


async def run(server_url: str, callback_url: Optional[str]) -> None:
    controller = ChatController(server_url)
    controller.set_base_url(server_url)
    ConsoleView(controller)
    try:
        await controller.startup(Location(callback_url) if callback_url else None)
        while True:
            if controller.identity is None:
                if not await login_menu(controller):
                    return
                continue
            print(f"\nUser menu ({controller.connection.state.value}): [c]hat, [r]econnect, [o]logout, [q]uit")
            sub = (await ainput("> ")).lower()
            if sub == "q":
                return
            if sub == "o":
                await controller.logout()
                print("Logged out.")
            if sub == "c":
                await chat(controller)
            if sub == "r":
                try:
                    await controller.reconnect()
                except ChatError as exc:
                    print(f"Reconnect failed: {exc}")
    finally:
        await controller.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Direct chat console client")
    parser.add_argument("--server", help=f"Server URL (default {DEFAULT_SERVER_URL})")
    parser.add_argument("--callback-url", help="URL the identity provider redirected to")
    args = parser.parse_args()
    server_url = args.server or get_server_url() or DEFAULT_SERVER_URL
    print("Direct Chat Client")
    try:
        asyncio.run(run(server_url, args.callback_url))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
