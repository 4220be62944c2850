"""Tests for authentication state and the token lifecycle."""

import json
from datetime import timedelta

import httpx
import pytest

from vip_dashboard.api.errors import UnauthorizedError
from vip_dashboard.auth.controller import (
    STATE_AUTHENTICATED,
    STATE_NEEDS_API_KEY,
    AuthenticationController,
)
from vip_dashboard.auth.credentials import CredentialStore
from vip_dashboard.utils.formatters import to_iso, utcnow


class TokenServer:
    def __init__(self, status=200, body=None):
        self.status = status
        self.body = body if body is not None else {
            "access_token": "access-new", "refresh_token": "refresh-new",
            "expires_in": 3600,
        }
        self.requests = []

    def __call__(self, request):
        self.requests.append(json.loads(request.content))
        return httpx.Response(self.status, json=self.body)


@pytest.fixture
def store(tmp_path):
    return CredentialStore(tmp_path / "credentials.json")


def _controller(store, server=None):
    server = server or TokenServer()
    return AuthenticationController(
        store, base_url="https://tracker.test",
        transport=httpx.MockTransport(server),
    )


def _store_session(store, expires_in_seconds):
    store.set("accessToken", "access-old")
    store.set("refreshToken", "refresh-old")
    store.set("tokenExpiry",
              to_iso(utcnow() + timedelta(seconds=expires_in_seconds)))


class TestBootstrap:
    def test_needs_api_key_when_empty(self, store):
        auth = _controller(store)
        auth.bootstrap()
        assert auth.state == STATE_NEEDS_API_KEY
        assert not auth.is_authenticated

    def test_api_key_only(self, store):
        store.set("apiKey", "abcd1234efgh5678")
        auth = _controller(store)
        auth.bootstrap()
        assert auth.state == STATE_AUTHENTICATED
        assert auth.user_facing_token == "abcd…5678"

    def test_token_session(self, store):
        _store_session(store, 600)
        auth = _controller(store)
        auth.bootstrap()
        assert auth.authentication_headers() == {
            "Authorization": "Bearer access-old"}


class TestAuthenticationHeaders:
    def test_api_key_header(self, store):
        store.set("apiKey", "key-1")
        auth = _controller(store)
        auth.bootstrap()
        assert auth.authentication_headers() == {"X-API-Key": "key-1"}

    def test_expired_session_refreshes(self, store):
        _store_session(store, -60)
        server = TokenServer()
        auth = _controller(store, server)
        auth.bootstrap()
        headers = auth.authentication_headers()
        assert headers == {"Authorization": "Bearer access-new"}
        assert server.requests == [{"refreshToken": "refresh-old"}]
        assert store.get("accessToken") == "access-new"
        assert store.get("refreshToken") == "refresh-new"

    def test_failed_refresh_clears_everything(self, store):
        _store_session(store, -60)
        store.set("apiKey", "key-1")
        auth = _controller(store, TokenServer(status=401, body={}))
        auth.bootstrap()
        with pytest.raises(UnauthorizedError):
            auth.authentication_headers()
        assert store.get("apiKey") is None
        assert auth.state == STATE_NEEDS_API_KEY

    def test_no_credentials(self, store):
        auth = _controller(store)
        with pytest.raises(UnauthorizedError):
            auth.authentication_headers()


class TestHandleUnauthorized:
    def test_clears_tokens_keeps_api_key(self, store):
        _store_session(store, 600)
        store.set("apiKey", "key-1")
        auth = _controller(store)
        auth.bootstrap()
        auth.handle_unauthorized()
        assert store.get("accessToken") is None
        assert store.get("refreshToken") is None
        assert store.get("tokenExpiry") is None
        assert store.get("apiKey") == "key-1"
        assert auth.state == STATE_NEEDS_API_KEY
        assert auth.authentication_headers() == {"X-API-Key": "key-1"}


class TestExchange:
    def test_exchange_stores_session(self, store):
        store.set("apiKey", "key-1")
        server = TokenServer()
        auth = _controller(store, server)
        assert auth.exchange_api_key_for_jwt() is True
        assert server.requests == [{"apiKey": "key-1"}]
        assert auth.authentication_headers() == {
            "Authorization": "Bearer access-new"}

    def test_exchange_failure_keeps_api_key(self, store):
        store.set("apiKey", "key-1")
        auth = _controller(store, TokenServer(status=500, body={}))
        assert auth.exchange_api_key_for_jwt() is False
        assert store.get("apiKey") == "key-1"

    def test_exchange_without_key(self, store):
        assert _controller(store).exchange_api_key_for_jwt() is False


class TestUpdateAndClear:
    def test_update_api_key(self, store):
        auth = _controller(store)
        auth.update_api_key("key-2")
        assert auth.is_authenticated
        assert store.get("apiKey") == "key-2"

    def test_clear_credentials(self, store):
        auth = _controller(store)
        auth.update_api_key("key-2")
        auth.clear_credentials()
        assert store.get("apiKey") is None
        assert auth.state == STATE_NEEDS_API_KEY
