"""
Configuration module for the OIDC Gateway.

This module uses Pydantic Settings to load environment variables for the
OpenID Connect relying party, the cookie session store and the HTTP server.

Environment variables are loaded from .env file or system environment.

The four identity-provider parameters (SP_HOST, IDP_ISSUER, IDP_CLIENT_ID,
IDP_CLIENT_SECRET) are optional at this layer: OIDCConfig.build() checks them
and reports the specific missing one.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    # =========================================================================
    # Service Provider / Identity Provider
    # =========================================================================

    SP_HOST: Optional[str] = Field(
        None,
        description="Public base URL of this service (e.g., https://app.example.com)",
    )

    IDP_ISSUER: Optional[str] = Field(
        None,
        description="Issuer URL of the identity provider, used for discovery",
    )

    IDP_CLIENT_ID: Optional[str] = Field(
        None,
        description="Client ID registered with the identity provider",
    )

    IDP_CLIENT_SECRET: Optional[str] = Field(
        None,
        description="Client secret registered with the identity provider",
    )

    IDP_SCOPES: str = Field(
        default="openid email profile",
        description="Space-separated scopes requested at login",
    )

    IDP_ENABLED_PROTECTIONS: Optional[str] = Field(
        None,
        description="Comma-separated subset of STATE,NONCE,PKCE (default: STATE,PKCE)",
    )

    IDP_SKIP_END_SESSION_ENDPOINT: bool = Field(
        default=False,
        description="Do not redirect to the provider on logout",
    )

    IDP_END_SESSION_ENDPOINT: Optional[str] = Field(
        None,
        description="Logout URL to use instead of the discovered end_session_endpoint",
    )

    IDP_HTTP_TIMEOUT: float = Field(
        default=10.0,
        description="Timeout in seconds for calls to the identity provider",
        gt=0,
    )

    # =========================================================================
    # Profile Mapping
    # =========================================================================

    SP_IGNORE_EMAIL_VERIFIED: bool = Field(
        default=False,
        description="Accept users whose email_verified claim is false",
    )

    SP_PROFILE_NAME_ATTR: Optional[str] = Field(
        None,
        description="Claim holding the user's display name",
    )

    SP_PROFILE_EMAIL_ATTR: Optional[str] = Field(
        None,
        description="Claim holding the user's email address",
    )

    # =========================================================================
    # Session Cookie
    # =========================================================================

    SESSION_SECRET: Optional[str] = Field(
        None,
        description="Key for signing session cookies (ephemeral if unset)",
    )

    SESSION_COOKIE: str = Field(
        default="oidc_gateway_session",
        description="Name of the session cookie",
    )

    SESSION_MAX_AGE: int = Field(
        default=14 * 24 * 60 * 60,
        description="Session cookie lifetime in seconds",
        ge=60,
    )

    # =========================================================================
    # Server
    # =========================================================================

    SERVER_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the server",
    )

    SERVER_PORT: int = Field(
        default=8080,
        description="Port to bind the server",
        ge=1,
        le=65535,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("SP_HOST", "IDP_ISSUER")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        """Normalize base URLs so paths can be appended safely."""
        if v is None:
            return v
        return v.strip().rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """
        Validate that LOG_LEVEL names a standard logging level.

        Raises:
            ValueError: If the level is unknown
        """
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = v.upper()

        if level not in allowed_levels:
            raise ValueError(
                f"LOG_LEVEL must be one of {allowed_levels}, got: {v}"
            )

        return level


@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    The application factory reads it once and passes it down explicitly;
    nothing else in the package should call this.
    """
    return Settings()
