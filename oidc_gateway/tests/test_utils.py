"""
Utility Tests

Tests secret generation, PKCE challenge derivation, redirect target
resolution, the PendingLogin session record and cookie-backed sessions.
"""

import re
from types import SimpleNamespace

import pytest

from oidc_gateway.auth.sessions import CookieSessions
from oidc_gateway.auth.utils import (
    generate_code_challenge,
    generate_code_verifier,
    generate_nonce,
    generate_state,
    resolve_target_url,
)
from oidc_gateway.models import PENDING_LOGIN_SESSION_KEY, PendingLogin, UserProfile


SP_HOST = "http://localhost:8484"


class TestGenerators:

    @pytest.mark.parametrize("generate", [generate_state, generate_nonce, generate_code_verifier])
    def test_values_are_urlsafe_and_unique(self, generate):
        values = {generate() for _ in range(20)}

        assert len(values) == 20
        for value in values:
            assert re.fullmatch(r"[A-Za-z0-9_-]{43,}", value)

    def test_code_verifier_length(self):
        # RFC 7636: 43 to 128 characters
        assert 43 <= len(generate_code_verifier()) <= 128

    def test_code_challenge_matches_rfc7636_example(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"

        assert generate_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


class TestResolveTargetUrl:

    @pytest.mark.parametrize(
        "target, expected",
        [
            (None, "http://localhost:8484/"),
            ("", "http://localhost:8484/"),
            ("/docs", "http://localhost:8484/docs"),
            ("/docs?tab=1", "http://localhost:8484/docs?tab=1"),
            ("http://localhost:8484/o/team", "http://localhost:8484/o/team"),
            ("https://localhost:8484/o/team", "http://localhost:8484/"),
            ("http://evil.example.com/", "http://localhost:8484/"),
            ("//evil.example.com/", "http://localhost:8484/"),
            ("javascript:alert(1)", "http://localhost:8484/"),
        ],
    )
    def test_resolve(self, target, expected):
        assert resolve_target_url(SP_HOST, target) == expected


class TestPendingLogin:

    def test_saved_with_session_field_names(self):
        session = {}

        PendingLogin(state="s", code_verifier="v", target_url="http://localhost:8484/docs").save(session)

        assert session[PENDING_LOGIN_SESSION_KEY] == {
            "state": "s",
            "codeVerifier": "v",
            "targetUrl": "http://localhost:8484/docs",
        }

    def test_from_session(self):
        session = {PENDING_LOGIN_SESSION_KEY: {"nonce": "n", "targetUrl": "/x"}}

        pending = PendingLogin.from_session(session)

        assert pending.nonce == "n"
        assert pending.target_url == "/x"
        assert pending.state is None

    def test_absent(self):
        assert PendingLogin.from_session({}) is None

    @pytest.mark.parametrize(
        "stored",
        ["garbage", {"state": 123}, {"targetUrl": ["/a", "/b"]}],
        ids=["not-a-mapping", "non-string-state", "non-string-target"],
    )
    def test_malformed_entry_reads_as_absent(self, stored):
        assert PendingLogin.from_session({PENDING_LOGIN_SESSION_KEY: stored}) is None

    def test_discard(self):
        session = {PENDING_LOGIN_SESSION_KEY: {"state": "s"}, "other": 1}

        PendingLogin.discard(session)
        PendingLogin.discard(session)

        assert session == {"other": 1}


class TestUserProfile:

    def test_name_is_omitted_when_absent(self):
        assert UserProfile(email="a@example.com").to_session() == {"email": "a@example.com"}


class TestCookieSessions:

    @pytest.mark.asyncio
    async def test_operate_on_scoped_session_writes_back(self):
        request = SimpleNamespace(session={"user": {"id": 7}, "oidc": {"state": "s"}})
        scoped = CookieSessions().get_or_create_session_from_request(request)

        def set_profile(user):
            user["profile"] = {"email": "a@example.com"}
            return user

        result = await scoped.operate_on_scoped_session(request, set_profile)

        assert result == {"id": 7, "profile": {"email": "a@example.com"}}
        assert request.session == {
            "user": {"id": 7, "profile": {"email": "a@example.com"}},
            "oidc": {"state": "s"},
        }

    @pytest.mark.asyncio
    async def test_creates_record_when_missing(self):
        request = SimpleNamespace(session={})
        scoped = CookieSessions(key="account").get_or_create_session_from_request(request)

        await scoped.operate_on_scoped_session(request, lambda user: {**user, "seen": True})

        assert request.session == {"account": {"seen": True}}
