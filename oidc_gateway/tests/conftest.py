"""
Shared fixtures for the OIDC gateway tests.

InMemoryIdentityProviderClient stands in for the identity provider: it
records every call and returns canned values.
"""

from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

import pytest

from oidc_gateway.config import Settings, get_settings
from oidc_gateway.models import TokenSet


REQUIRED_ENV = {
    "SP_HOST": "http://localhost:8484",
    "IDP_ISSUER": "http://localhost:8000",
    "IDP_CLIENT_ID": "client id",
    "IDP_CLIENT_SECRET": "secret",
}

FAKE_REDIRECT_URL = "FAKE_REDIRECT_URL"
DISCOVERED_END_SESSION_ENDPOINT = "http://localhost:8484/logout"
URL_RETURNED_BY_CLIENT = "http://localhost:8484/logout_url_from_issuer"

FAKE_USER_INFO = {
    "email": "fake-email",
    "name": "fake-name",
    "email_verified": True,
}


class InMemoryIdentityProviderClient:
    """In-memory identity provider client."""

    def __init__(self, end_session_endpoint: Optional[str] = DISCOVERED_END_SESSION_ENDPOINT):
        self.end_session_endpoint = end_session_endpoint
        self.authorization_url = FAKE_REDIRECT_URL
        self.logout_url = URL_RETURNED_BY_CLIENT
        self.params: Dict[str, str] = {}
        self.token_set = TokenSet(access_token="fake-access-token", claims={"sub": "fake-sub"})
        self.userinfo: Dict[str, Any] = dict(FAKE_USER_INFO)
        self.exchange_error: Optional[Exception] = None

        self.authorization_calls: List[Dict[str, Any]] = []
        self.exchange_calls: List[Tuple[str, Dict[str, str], Dict[str, str]]] = []
        self.end_session_calls: List[str] = []
        self.closed = False

    @property
    def discovered_end_session_endpoint(self) -> Optional[str]:
        return self.end_session_endpoint

    def build_authorization_url(self, params: Dict[str, Any]) -> str:
        self.authorization_calls.append(dict(params))
        return self.authorization_url

    async def callback_params(self, request) -> Dict[str, str]:
        return dict(self.params)

    async def exchange_code_for_claims(self, redirect_url, params, checks) -> TokenSet:
        self.exchange_calls.append((redirect_url, dict(params), dict(checks)))
        if self.exchange_error is not None:
            raise self.exchange_error
        return self.token_set

    async def fetch_userinfo(self, token_set: TokenSet) -> Dict[str, Any]:
        return dict(self.userinfo)

    def end_session_url(self, post_logout_redirect_uri: str) -> str:
        self.end_session_calls.append(post_logout_redirect_uri)
        return self.logout_url

    async def aclose(self) -> None:
        self.closed = True


class RecordingScopedSession:
    """Scoped session keeping the user record in memory."""

    def __init__(self):
        self.user: Dict[str, Any] = {}
        self.calls = 0

    async def operate_on_scoped_session(self, request, callback):
        self.calls += 1
        self.user = callback(dict(self.user))
        return self.user


class RecordingSessions:
    def __init__(self):
        self.scoped = RecordingScopedSession()

    def get_or_create_session_from_request(self, request):
        return self.scoped


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of Settings."""
    for name in Settings.model_fields:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_settings():
    """Build Settings from the required values plus overrides."""
    def _make(**overrides: Any) -> Settings:
        values = {**REQUIRED_ENV, **overrides}
        return Settings(_env_file=None, **values)
    return _make


@pytest.fixture
def fake_client():
    return InMemoryIdentityProviderClient()


@pytest.fixture
def client_factory(fake_client):
    """Client factory returning fake_client and recording its arguments."""
    calls = []

    async def factory(issuer_url, client_id, client_secret, redirect_url):
        calls.append({
            "issuer_url": issuer_url,
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_url": redirect_url,
        })
        return fake_client

    factory.calls = calls
    return factory


@pytest.fixture
def sessions():
    return RecordingSessions()


@pytest.fixture
def make_request():
    """Minimal request exposing the attributes the flow reads."""
    def _make(session: Optional[Dict[str, Any]] = None, query: Optional[Dict[str, str]] = None):
        return SimpleNamespace(
            session=session if session is not None else {},
            query_params=query or {},
            method="GET",
        )
    return _make
