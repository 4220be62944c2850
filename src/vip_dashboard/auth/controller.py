"""Authentication state and token lifecycle.

Supplies request headers to ``APIClient`` (bearer token while a session is
valid, otherwise a refreshed token, otherwise the raw API key) and reacts
to 401 responses by dropping the token session.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx

from vip_dashboard.api.dto import TokenResponse
from vip_dashboard.api.errors import NetworkError, UnauthorizedError
from vip_dashboard.config import Config
from vip_dashboard.utils.constants import (
    CREDENTIAL_ACCESS_TOKEN,
    CREDENTIAL_API_KEY,
    CREDENTIAL_REFRESH_TOKEN,
    CREDENTIAL_TOKEN_EXPIRY,
    PATH_AUTH_TOKEN,
    TOKEN_CREDENTIAL_KEYS,
)
from vip_dashboard.utils.formatters import mask_token, parse_iso, to_iso, utcnow

from .credentials import CredentialStore

logger = logging.getLogger(__name__)

STATE_LOADING = "loading"
STATE_NEEDS_API_KEY = "needs_api_key"
STATE_AUTHENTICATED = "authenticated"


@dataclass
class TokenSession:
    access_token: str
    refresh_token: str
    expires_at: datetime


class AuthenticationController:
    """Implements the ``AuthenticationProvider`` protocol of APIClient."""

    def __init__(self, store: CredentialStore,
                 base_url: Optional[str] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        self.store = store
        self.base_url = (base_url or Config.API_BASE_URL).rstrip("/")
        self._http = httpx.Client(
            base_url=self.base_url,
            timeout=Config.API_TIMEOUT,
            transport=transport,
            headers={"Accept": "application/json"},
        )
        self._lock = threading.RLock()
        self._session: Optional[TokenSession] = None
        self.state = STATE_LOADING
        self.user_facing_token: Optional[str] = None

    def close(self):
        self._http.close()

    # ── State ───────────────────────────────────────────────────

    def bootstrap(self):
        """Restore state from stored credentials."""
        with self._lock:
            access = self.store.get(CREDENTIAL_ACCESS_TOKEN)
            refresh = self.store.get(CREDENTIAL_REFRESH_TOKEN)
            expiry_raw = self.store.get(CREDENTIAL_TOKEN_EXPIRY)
            api_key = self.store.get(CREDENTIAL_API_KEY)
            try:
                expiry = parse_iso(expiry_raw)
            except ValueError:
                expiry = None

            if access and refresh and expiry:
                self._session = TokenSession(access, refresh, expiry)
                self._set_authenticated(access)
            elif api_key:
                self._set_authenticated(api_key)
            else:
                self.state = STATE_NEEDS_API_KEY
                self.user_facing_token = None

    @property
    def is_authenticated(self) -> bool:
        return self.state == STATE_AUTHENTICATED

    def _set_authenticated(self, token: str):
        self.state = STATE_AUTHENTICATED
        self.user_facing_token = mask_token(token)

    def update_api_key(self, key: str):
        with self._lock:
            self.store.set(CREDENTIAL_API_KEY, key)
            self._session = None
            self._set_authenticated(key)

    def clear_credentials(self):
        with self._lock:
            self.store.clear_all()
            self._session = None
            self.state = STATE_NEEDS_API_KEY
            self.user_facing_token = None

    # ── AuthenticationProvider ──────────────────────────────────

    def authentication_headers(self) -> dict[str, str]:
        with self._lock:
            session = self._session
            if session is not None and session.expires_at > utcnow():
                return {"Authorization": f"Bearer {session.access_token}"}

            refreshed = self._refresh_if_needed()
            if refreshed is not None:
                return {"Authorization": f"Bearer {refreshed.access_token}"}

            api_key = self.store.get(CREDENTIAL_API_KEY)
            if api_key:
                return {"X-API-Key": api_key}

        raise UnauthorizedError()

    def handle_unauthorized(self):
        """Forget the token session; the API key is kept."""
        with self._lock:
            self._session = None
            self.store.remove(*TOKEN_CREDENTIAL_KEYS)
            self.state = STATE_NEEDS_API_KEY
            self.user_facing_token = None
        logger.warning("Credentials rejected; token session cleared")

    # ── Token exchange ──────────────────────────────────────────

    def _refresh_if_needed(self) -> Optional[TokenSession]:
        refresh_token = self.store.get(CREDENTIAL_REFRESH_TOKEN)
        if not refresh_token:
            return None
        try:
            response = self._http.post(
                PATH_AUTH_TOKEN, json={"refreshToken": refresh_token}
            )
        except httpx.HTTPError as e:
            raise NetworkError(e) from e

        if not 200 <= response.status_code < 300:
            logger.error(f"Failed to refresh token: status {response.status_code}")
            self.clear_credentials()
            raise UnauthorizedError()

        try:
            token = TokenResponse.from_json(response.json())
        except (ValueError, KeyError, TypeError) as e:
            raise NetworkError(e) from e
        return self._store_session(token)

    def exchange_api_key_for_jwt(self) -> bool:
        """Trade the stored API key for a token session.

        Returns True when a session was stored. Failures are logged and
        leave the API key in place.
        """
        with self._lock:
            api_key = self.store.get(CREDENTIAL_API_KEY)
            if not api_key:
                return False
            try:
                response = self._http.post(
                    PATH_AUTH_TOKEN, json={"apiKey": api_key}
                )
            except httpx.HTTPError as e:
                logger.error(f"Token exchange failed: {e}")
                return False
            if not 200 <= response.status_code < 300:
                logger.error(
                    f"Token exchange failed with status {response.status_code}"
                )
                return False
            try:
                token = TokenResponse.from_json(response.json())
            except (ValueError, KeyError, TypeError) as e:
                logger.error(f"Token exchange failed: {e}")
                return False
            self._store_session(token)
            return True

    def _store_session(self, token: TokenResponse) -> TokenSession:
        session = TokenSession(
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            expires_at=token.access_token_expiry,
        )
        self._session = session
        self.store.set(CREDENTIAL_ACCESS_TOKEN, session.access_token)
        self.store.set(CREDENTIAL_REFRESH_TOKEN, session.refresh_token)
        self.store.set(CREDENTIAL_TOKEN_EXPIRY, to_iso(session.expires_at))
        self._set_authenticated(session.access_token)
        return session
