"""
Protection Set Tests

Tests IDP_ENABLED_PROTECTIONS parsing, both directly and through
OIDCConfig.build().
"""

import pytest

from oidc_gateway.auth.exceptions import InvalidProtectionError
from oidc_gateway.auth.oidc import OIDCConfig
from oidc_gateway.auth.protections import Protection, ProtectionSet


class TestParse:

    def test_unset_defaults_to_state_and_pkce(self):
        protections = ProtectionSet.parse(None)

        assert protections.supports(Protection.STATE)
        assert protections.supports(Protection.PKCE)
        assert not protections.supports(Protection.NONCE)

    def test_empty_string_disables_everything(self):
        protections = ProtectionSet.parse("")

        assert len(protections) == 0
        for protection in Protection:
            assert not protections.supports(protection)

    def test_whitespace_around_entries_is_ignored(self):
        protections = ProtectionSet.parse(" NONCE , PKCE ")

        assert list(protections) == [Protection.NONCE, Protection.PKCE]

    def test_rejects_unknown_entry(self):
        with pytest.raises(InvalidProtectionError) as exc_info:
            ProtectionSet.parse("STATE,NONCE,PKCE,invalid")

        assert exc_info.value.protection == "invalid"
        assert str(exc_info.value) == "OIDC: Invalid protection in IDP_ENABLED_PROTECTIONS: invalid"

    def test_entries_are_case_sensitive(self):
        with pytest.raises(InvalidProtectionError, match="state"):
            ProtectionSet.parse("state")

    def test_supports_accepts_names(self):
        protections = ProtectionSet.parse("NONCE")

        assert protections.supports("NONCE")
        assert not protections.supports("STATE")
        assert not protections.supports("bogus")


class TestOIDCConfigProtections:

    @pytest.mark.asyncio
    async def test_build_rejects_unsupported_values_before_client_init(self, make_settings, client_factory):
        settings = make_settings(IDP_ENABLED_PROTECTIONS="STATE,NONCE,PKCE,invalid")

        with pytest.raises(InvalidProtectionError, match="Invalid protection in IDP_ENABLED_PROTECTIONS: invalid"):
            await OIDCConfig.build(settings, client_factory)

        assert client_factory.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("NONCE", {"NONCE"}),
            ("", set()),
            (None, {"STATE", "PKCE"}),
            ("STATE,NONCE,PKCE", {"STATE", "NONCE", "PKCE"}),
        ],
        ids=["nonce-only", "empty", "default", "all"],
    )
    async def test_supports_protection(self, raw, expected, make_settings, client_factory):
        config = await OIDCConfig.build(make_settings(IDP_ENABLED_PROTECTIONS=raw), client_factory)

        for protection in ("STATE", "NONCE", "PKCE"):
            assert config.supports_protection(protection) is (protection in expected)
