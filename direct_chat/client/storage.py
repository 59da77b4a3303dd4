"""Local client storage for the credential and server settings."""
import json
from pathlib import Path
from typing import Any, Dict, Optional

from . import config
from .logging_config import configure_logging

logger = configure_logging()


def _storage_file() -> Path:
    return config.STORAGE_FILE


def load_state() -> Dict[str, Any]:
    path = _storage_file()
    if path.exists():
        with path.open("r", encoding="utf-8") as f:
            try:
                state = json.load(f)
            except ValueError:
                logger.warning("STATE_FILE_CORRUPT path=%s", path)
                return {}
        if isinstance(state, dict):
            return state
        logger.warning("STATE_FILE_CORRUPT path=%s", path)
    return {}


def save_state(data: Dict[str, Any]) -> None:
    path = _storage_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def store_token(token: str) -> None:
    state = load_state()
    state["token"] = token
    save_state(state)


def clear_token() -> None:
    state = load_state()
    if state.pop("token", None) is not None:
        save_state(state)


def get_token() -> Optional[str]:
    return load_state().get("token")


def store_server_url(url: str) -> None:
    state = load_state()
    state["server_url"] = url
    save_state(state)


def get_server_url() -> Optional[str]:
    return load_state().get("server_url")
