"""
Shared fixtures.

One InMemoryBackend stands in for the hosted platform; each "device"
is its own InMemoryGateway + SubscriptionManager attached to it.
No real network calls anywhere.
"""

from types import SimpleNamespace
from typing import Optional

import pytest

from organizer.audit import AuditLogger
from organizer.models.profile import IdentityAssertion, Role, UserProfile
from organizer.services.identity import IdentityProvider, IdentityProviderError, OAuthToken
from organizer.services.storage import InMemoryBackend, InMemoryGateway
from organizer.store import SubscriptionManager


COUPLE_ID = "couple-1"


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def gateway(backend):
    return InMemoryGateway(backend)


@pytest.fixture
def other_gateway(backend):
    """A second device on the same backend."""
    return InMemoryGateway(backend)


@pytest.fixture
def subscriptions(gateway):
    return SubscriptionManager(gateway)


@pytest.fixture
def other_subscriptions(other_gateway):
    return SubscriptionManager(other_gateway)


@pytest.fixture
def audit():
    return AuditLogger()


@pytest.fixture
def nicolas():
    return UserProfile(
        id="p-nicolas",
        email="nicolas@example.com",
        name="Nicolas",
        role=Role.ADMIN,
        couple_id=COUPLE_ID,
    )


@pytest.fixture
def ana():
    return UserProfile(
        id="p-ana",
        email="ana@example.com",
        name="Ana",
        role=Role.PARTNER,
        couple_id=COUPLE_ID,
    )


class FakeIdentityProvider(IdentityProvider):
    """Maps tokens to identities; records revocations."""

    def __init__(self, identities: Optional[dict[str, IdentityAssertion]] = None):
        self.identities = identities or {}
        self.revoked: list[str] = []
        self.fail_revoke = False

    def authorization_url(self, state: Optional[str] = None) -> str:
        return "https://accounts.example.com/auth"

    async def exchange_code(self, code: str) -> OAuthToken:
        if code == "bad":
            raise IdentityProviderError("invalid_grant")
        return OAuthToken(access_token=f"token-{code}")

    async def fetch_identity(self, access_token: str) -> IdentityAssertion:
        if access_token not in self.identities:
            raise IdentityProviderError("Failed to fetch")
        return self.identities[access_token]

    async def revoke(self, access_token: str) -> bool:
        if self.fail_revoke:
            raise IdentityProviderError("revoke failed")
        self.revoked.append(access_token)
        return True


@pytest.fixture
def identity():
    return FakeIdentityProvider()


class FakeModel:
    """
    Stands in for genai.GenerativeModel.

    `responses` items are returned (text) or raised (exceptions) in order.
    """

    def __init__(self, responses: list):
        self.responses = list(responses)
        self.calls: list[dict] = []

    async def generate_content_async(self, prompt, generation_config=None, tools=None):
        self.calls.append({"prompt": prompt, "generation_config": generation_config, "tools": tools})
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return SimpleNamespace(text=item)


class FakeCompletion:
    """CompletionService double for the agents."""

    def __init__(self, json_result=None, text_result: str = "", error: Optional[Exception] = None):
        self.json_result = json_result
        self.text_result = text_result
        self.error = error
        self.prompts: list[str] = []
        self.calls: list[dict] = []

    async def complete_text(self, prompt, feature, temperature=None):
        self.prompts.append(prompt)
        self.calls.append({"feature": feature})
        if self.error:
            raise self.error
        return self.text_result

    async def complete_json(self, prompt, feature, response_schema=None, use_search=False, temperature=None):
        self.prompts.append(prompt)
        self.calls.append({"feature": feature, "use_search": use_search})
        if self.error:
            raise self.error
        return self.json_result


class FakeResponse:
    def __init__(self, status_code: int, payload: Optional[dict] = None):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = str(self._payload)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self):
        return self._payload


class FakeHttp:
    """requests.Session double; queue responses per HTTP method."""

    def __init__(self):
        self.queued: dict[str, list[FakeResponse]] = {}
        self.requests: list[tuple[str, str, Optional[dict]]] = []
        self._ids = 0

    def queue(self, method: str, response: FakeResponse) -> None:
        self.queued.setdefault(method, []).append(response)

    def request(self, method, url, headers=None, json=None, timeout=None):
        self.requests.append((method, url, json))
        if self.queued.get(method):
            return self.queued[method].pop(0)
        if method == "POST":
            self._ids += 1
            return FakeResponse(200, {"id": f"evt-{self._ids}"})
        if method == "PUT":
            return FakeResponse(200, {"id": url.rsplit("/", 1)[-1]})
        return FakeResponse(204)

    def methods(self) -> list[str]:
        return [m for m, _, _ in self.requests]
