"""Shared helpers for conversation keys and user input."""
from typing import FrozenSet


def thread_key(user_a: str, user_b: str) -> FrozenSet[str]:
    """Return the unordered participant pair identifying a conversation."""
    return frozenset((user_a, user_b))


def belongs_to_thread(from_user_id: str, to_user_id: str, key: FrozenSet[str]) -> bool:
    return thread_key(from_user_id, to_user_id) == key


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_blank(text: str | None) -> bool:
    return text is None or not text.strip()
