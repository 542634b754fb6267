"""
Exceptions raised by the OIDC relying party.

Startup errors (OIDCConfigError subclasses) abort application startup.
Per-request errors (CallbackError, ExchangeError) are caught at the callback
boundary, logged, and turned into a generic 500 response.
"""


class OIDCError(Exception):
    """Base exception for OIDC errors."""
    pass


# =============================================================================
# Startup
# =============================================================================

class OIDCConfigError(OIDCError):
    """OIDC cannot be served with the current configuration."""
    pass


class MissingParameterError(OIDCConfigError):
    """A mandatory configuration parameter is absent or empty."""

    def __init__(self, parameter: str):
        self.parameter = parameter
        super().__init__(f"missing environment variable: {parameter}")


class InvalidProtectionError(OIDCConfigError):
    """IDP_ENABLED_PROTECTIONS contains an unknown entry."""

    def __init__(self, protection: str):
        self.protection = protection
        super().__init__(
            f"OIDC: Invalid protection in IDP_ENABLED_PROTECTIONS: {protection}"
        )


class ClientInitError(OIDCConfigError):
    """The identity provider client could not be initialized."""
    pass


class EndSessionEndpointUnresolvedError(OIDCConfigError):
    """No end_session_endpoint is known and skipping it was not requested."""
    pass


# =============================================================================
# Per request
# =============================================================================

class CallbackError(OIDCError):
    """The provider callback failed validation."""
    pass


class ExchangeError(OIDCError):
    """A call to the identity provider failed."""
    pass


class StateMismatchError(ExchangeError):
    """The state returned by the provider does not match the session."""
    pass
