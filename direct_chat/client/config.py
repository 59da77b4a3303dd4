"""Client configuration values."""
from pathlib import Path

DEFAULT_SERVER_URL = "http://localhost:8080"
STORAGE_FILE = Path.home() / ".direct_chat_client.json"
LOG_FILE = Path.home() / ".direct_chat_client.log"
REQUEST_TIMEOUT = 10
TOKEN_PARAM = "token"
WS_PATH = "/ws"
EXTERNAL_PROVIDERS = ("google", "facebook", "linkedin", "github")
