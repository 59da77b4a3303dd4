"""Local identity resolution and credential persistence."""
from __future__ import annotations

import webbrowser
from typing import Callable, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ..shared.utils import is_blank, normalize_email
from . import storage
from .api import APIClient
from .config import EXTERNAL_PROVIDERS, TOKEN_PARAM
from .errors import AuthRejected, InvalidInput, NotFound, TransportFailure
from .logging_config import configure_logging
from .models import Identity

logger = configure_logging()

IdentityListener = Callable[[Optional[Identity]], None]


class Location:
    """The navigation URL a session was started from.

    ``replace`` rewrites the visible URL in place, the way a browser history
    replace does, so consumed parameters do not linger.
    """

    def __init__(self, href: str = ""):
        self.href = href

    def query_param(self, name: str) -> Optional[str]:
        for key, value in parse_qsl(urlsplit(self.href).query, keep_blank_values=True):
            if key == name:
                return value
        return None

    def without_param(self, name: str) -> str:
        parts = urlsplit(self.href)
        query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != name]
        return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))

    def replace(self, href: str) -> None:
        self.href = href


class SessionStore:
    """Resolves the local Identity and owns the persisted Credential."""

    def __init__(self, api: APIClient, opener: Callable[[str], object] = webbrowser.open):
        self.api = api
        self.opener = opener
        self.identity: Optional[Identity] = None
        self._listeners: List[IdentityListener] = []

    def add_listener(self, listener: IdentityListener) -> None:
        self._listeners.append(listener)

    def _set_identity(self, identity: Optional[Identity]) -> None:
        if identity == self.identity:
            return
        self.identity = identity
        if identity:
            logger.info("SESSION_RESOLVED user_id=%s", identity.id)
        else:
            logger.info("SESSION_CLEARED")
        for listener in list(self._listeners):
            listener(identity)

    def bootstrap_from_url(self, location: Location) -> Optional[str]:
        """Consume a one-time token from ``location`` and persist it.

        The token parameter is stripped from the URL whether or not it is
        usable. Returns the persisted credential, or None.
        """
        token = location.query_param(TOKEN_PARAM)
        if token is None:
            return None
        location.replace(location.without_param(TOKEN_PARAM))
        if is_blank(token):
            logger.warning("URL_TOKEN_REJECTED reason=blank")
            return None
        storage.store_token(token)
        logger.info("URL_TOKEN_CONSUMED")
        return token

    def bootstrap_from_stored_credential(self) -> Optional[Identity]:
        credential = storage.get_token()
        if not credential:
            return None
        try:
            identity = self.api.who_am_i(credential)
        except AuthRejected:
            logger.info("CREDENTIAL_REJECTED reason=auth")
            storage.clear_token()
            return None
        except TransportFailure as exc:
            logger.warning("WHO_AM_I_FAILED error=%s", exc)
            return None
        self._set_identity(identity)
        return identity

    def startup(self, location: Optional[Location] = None) -> Optional[Identity]:
        """Run the bootstrap paths in order; None leaves the session unresolved."""
        if location is not None:
            self.bootstrap_from_url(location)
        return self.bootstrap_from_stored_credential()

    def login_by_email(self, email: str) -> Identity:
        """Resolve an Identity by email lookup alone.

        No secret is verified on this path; prefer ``login_with_password``
        wherever the server supports it.
        """
        if is_blank(email):
            raise InvalidInput("Email is required")
        wanted = normalize_email(email)
        logger.warning("UNVERIFIED_LOGIN email=%s", wanted)
        matches = [u for u in self.api.search(wanted) if normalize_email(u.email) == wanted]
        if not matches:
            logger.info("LOGIN_FAIL email=%s reason=not_found", wanted)
            raise NotFound(f"No user found for {email.strip()}")
        storage.clear_token()
        self._set_identity(matches[0])
        return matches[0]

    def login_with_password(self, email: str, password: str) -> Identity:
        if is_blank(email) or not password:
            raise InvalidInput("Email and password are required")
        try:
            token, identity = self.api.login(normalize_email(email), password)
        except AuthRejected:
            logger.info("LOGIN_FAIL email=%s reason=bad_credentials", normalize_email(email))
            raise
        storage.store_token(token)
        self._set_identity(identity)
        return identity

    def start_external_login(self, provider: str) -> str:
        provider = provider.strip().lower()
        if provider not in EXTERNAL_PROVIDERS:
            raise InvalidInput(f"Unsupported identity provider: {provider}")
        url = self.api.external_login_url(provider)
        logger.info("EXTERNAL_LOGIN provider=%s", provider)
        self.opener(url)
        return url

    def logout(self) -> None:
        storage.clear_token()
        self._set_identity(None)
