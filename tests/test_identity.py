"""Tests for the Google OAuth identity provider (no real HTTP)."""

from urllib.parse import parse_qs, urlparse

import pytest
import requests

from organizer.config import GoogleOAuthSettings
from organizer.services.identity import GoogleIdentityProvider, IdentityProviderError
from organizer.services.identity.google_identity import REVOKE_URL, TOKEN_URL, USERINFO_URL

from tests.conftest import FakeResponse


class OAuthHttp:
    """requests.Session double for the OAuth endpoints."""

    def __init__(self):
        self.responses: list = []
        self.calls: list[tuple[str, str, dict]] = []

    def _next(self):
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def post(self, url, data=None, params=None, headers=None, timeout=None):
        self.calls.append(("POST", url, {"data": data, "params": params, "headers": headers}))
        return self._next()

    def get(self, url, headers=None, timeout=None):
        self.calls.append(("GET", url, {"headers": headers}))
        return self._next()


@pytest.fixture
def http():
    return OAuthHttp()


@pytest.fixture
def provider(http):
    settings = GoogleOAuthSettings(client_id="client-1", client_secret="secret", redirect_uri="http://localhost:8501")
    return GoogleIdentityProvider(settings=settings, session=http)


class TestAuthorizationUrl:

    def test_carries_client_scopes_and_state(self, provider):
        query = parse_qs(urlparse(provider.authorization_url(state="abc")).query)
        assert query["client_id"] == ["client-1"]
        assert query["response_type"] == ["code"]
        assert query["state"] == ["abc"]
        assert "https://www.googleapis.com/auth/calendar.events" in query["scope"][0].split()


class TestExchangeCode:

    async def test_code_becomes_token(self, provider, http):
        http.responses.append(FakeResponse(200, {"access_token": "tok-1", "expires_in": 3599}))
        token = await provider.exchange_code("code-1")

        assert token.access_token == "tok-1"
        method, url, sent = http.calls[0]
        assert (method, url) == ("POST", TOKEN_URL)
        assert sent["data"]["code"] == "code-1"
        assert sent["data"]["grant_type"] == "authorization_code"

    async def test_rejected_code(self, provider, http):
        http.responses.append(FakeResponse(400, {"error": "invalid_grant"}))
        with pytest.raises(IdentityProviderError):
            await provider.exchange_code("stale")

    async def test_connection_error_is_retried_then_reported(self, provider, http):
        http.responses.extend([requests.ConnectionError("down")] * 3)
        with pytest.raises(IdentityProviderError):
            await provider.exchange_code("code-1")
        assert len(http.calls) == 3


class TestFetchIdentity:

    async def test_userinfo_becomes_assertion(self, provider, http):
        http.responses.append(FakeResponse(200, {"email": "Ana@Example.com", "name": "Ana", "picture": "p.png"}))
        assertion = await provider.fetch_identity("tok-1")

        assert assertion.email == "ana@example.com"
        assert assertion.picture == "p.png"
        method, url, sent = http.calls[0]
        assert (method, url) == ("GET", USERINFO_URL)
        assert sent["headers"]["Authorization"] == "Bearer tok-1"

    async def test_expired_token(self, provider, http):
        http.responses.append(FakeResponse(401))
        with pytest.raises(IdentityProviderError) as exc:
            await provider.fetch_identity("old")
        assert "expired" in str(exc.value)

    async def test_missing_email(self, provider, http):
        http.responses.append(FakeResponse(200, {"name": "Ana"}))
        with pytest.raises(IdentityProviderError):
            await provider.fetch_identity("tok-1")


class TestRevoke:

    async def test_revoked(self, provider, http):
        http.responses.append(FakeResponse(200))
        assert await provider.revoke("tok-1") is True
        method, url, sent = http.calls[0]
        assert (method, url) == ("POST", REVOKE_URL)
        assert sent["params"] == {"token": "tok-1"}

    async def test_rejected_revoke_returns_false(self, provider, http):
        http.responses.append(FakeResponse(400))
        assert await provider.revoke("tok-1") is False

    async def test_network_failure_returns_false(self, provider, http):
        http.responses.append(requests.ConnectionError("down"))
        assert await provider.revoke("tok-1") is False
