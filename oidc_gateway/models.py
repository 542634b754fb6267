"""
Data Models Module

Pydantic models shared by the authentication flow:
- PendingLogin: single-use secrets kept in the session between login and callback
- UserProfile: the authenticated user written into the session
- TokenSet: result of the authorization code exchange
"""

import logging
from typing import Any, Dict, MutableMapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


# ============================================================================
# Session Models
# ============================================================================

PENDING_LOGIN_SESSION_KEY = "oidc"


class PendingLogin(BaseModel):
    """
    Secrets generated at login time and checked at callback time.

    Stored in the session under the "oidc" key using camelCase field names.
    An absent PendingLogin is represented by None, never by an empty instance
    read from the session.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    state: Optional[str] = Field(None, description="CSRF token round-tripped through the provider")
    nonce: Optional[str] = Field(None, description="Replay token bound to the id token")
    code_verifier: Optional[str] = Field(None, alias="codeVerifier", description="PKCE verifier")
    target_url: Optional[str] = Field(None, alias="targetUrl", description="Where to go after login")

    @classmethod
    def from_session(cls, session: MutableMapping[str, Any]) -> Optional["PendingLogin"]:
        """Read the pending login; a missing or malformed entry reads as None."""
        data = session.get(PENDING_LOGIN_SESSION_KEY)
        if not data:
            return None
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed pending login in session: {e}")
            return None

    def save(self, session: MutableMapping[str, Any]) -> None:
        """Write to the session, replacing any previous pending login."""
        session[PENDING_LOGIN_SESSION_KEY] = self.model_dump(by_alias=True, exclude_none=True)

    @staticmethod
    def discard(session: MutableMapping[str, Any]) -> None:
        session.pop(PENDING_LOGIN_SESSION_KEY, None)


class UserProfile(BaseModel):
    """User profile mapped from identity provider claims."""
    email: str = Field(..., description="User email address")
    name: Optional[str] = Field(None, description="User display name")

    def to_session(self) -> Dict[str, str]:
        return self.model_dump(exclude_none=True)


# ============================================================================
# Identity Provider Models
# ============================================================================

class TokenSet(BaseModel):
    """Tokens returned by the code exchange, with verified id token claims."""
    access_token: Optional[str] = Field(None, description="Access token for the userinfo endpoint")
    id_token: Optional[str] = Field(None, description="Raw id token")
    token_type: Optional[str] = Field(None, description="Token type (usually Bearer)")
    claims: Dict[str, Any] = Field(default_factory=dict, description="Verified id token claims")
