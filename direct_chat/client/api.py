"""HTTP API client for the directory, history and identity endpoints."""
from typing import Any, Dict, List, Optional, Tuple

import requests
from pydantic import ValidationError

from ..shared.schemas import DataEnvelope, LoginRequest, LoginResponse, MessageRecord, UserRecord
from .config import REQUEST_TIMEOUT
from .errors import AuthRejected, Timeout, TransportFailure
from .models import Identity, Message
from .storage import get_token


class APIClient:
    """Request/response side of the chat server.

    One instance serves user lookup (directory), conversation history and
    credential exchange (``who_am_i``). Every call is blocking and bounded
    by ``REQUEST_TIMEOUT``.
    """

    def __init__(self, base_url: str, timeout: float = REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _headers(self, token: Optional[str] = None) -> Dict[str, str]:
        token = token or get_token()
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return requests.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as exc:
            raise Timeout(f"{method} {path} timed out after {self.timeout}s") from exc
        except requests.RequestException as exc:
            raise TransportFailure(f"{method} {path} failed: {exc}") from exc

    @staticmethod
    def _data(resp: requests.Response) -> Any:
        try:
            resp.raise_for_status()
        except requests.HTTPError as exc:
            raise TransportFailure(f"Server responded {resp.status_code}") from exc
        try:
            return DataEnvelope.model_validate(resp.json()).data
        except (ValueError, ValidationError) as exc:
            raise TransportFailure("Malformed response body") from exc

    def search(self, email_fragment: str) -> List[Identity]:
        resp = self._request("GET", "/users/search", params={"email": email_fragment}, headers=self._headers())
        records = self._data(resp) or []
        try:
            return [Identity.from_record(UserRecord.model_validate(r)) for r in records]
        except ValidationError as exc:
            raise TransportFailure("Malformed user record") from exc

    def fetch_history(self, local_id: str, peer_id: str) -> List[Message]:
        resp = self._request(
            "GET",
            "/chat/history",
            params={"userId": local_id, "peerId": peer_id},
            headers=self._headers(),
        )
        records = self._data(resp) or []
        try:
            return [Message.from_record(MessageRecord.model_validate(r)) for r in records]
        except ValidationError as exc:
            raise TransportFailure("Malformed message record") from exc

    def who_am_i(self, credential: str) -> Identity:
        resp = self._request("GET", "/auth/me", headers=self._headers(credential))
        if resp.status_code in (401, 403):
            raise AuthRejected("Credential rejected by server")
        try:
            return Identity.from_record(UserRecord.model_validate(self._data(resp)))
        except ValidationError as exc:
            raise TransportFailure("Malformed identity record") from exc

    def login(self, email: str, password: str) -> Tuple[str, Identity]:
        payload = LoginRequest(email=email, password=password).model_dump()
        resp = self._request("POST", "/auth/login", json=payload, headers={"Content-Type": "application/json"})
        if resp.status_code in (401, 403):
            raise AuthRejected("Invalid credentials")
        try:
            body = LoginResponse.model_validate(self._data(resp))
        except ValidationError as exc:
            raise TransportFailure("Malformed login response") from exc
        return body.token, Identity.from_record(body.user)

    def external_login_url(self, provider: str) -> str:
        return f"{self.base_url}/auth/{provider}"

    def websocket_url(self, path: str) -> str:
        if self.base_url.startswith("https://"):
            return "wss://" + self.base_url[len("https://"):] + path
        if self.base_url.startswith("http://"):
            return "ws://" + self.base_url[len("http://"):] + path
        return self.base_url + path
