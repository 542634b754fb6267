"""
Authentication Package

This package implements the OpenID Connect relying party: federated login,
callback validation, session profile and federated logout.

Modules:
- oidc: OIDCConfig, the configuration resolver and the login/callback/logout flow
- client: identity provider capability and its httpx implementation
- protections: STATE / NONCE / PKCE protection set
- sessions: scoped session store abstraction and cookie-backed implementation
- routes: HTTP endpoints (/login, /oauth2/callback, /logout, ...)
- utils: secret generation and redirect helpers
- exceptions: startup and per-request errors

The authentication flow:
1. Browser hits /login; secrets are stored in the session
2. User authenticates with the identity provider
3. Provider redirects to /oauth2/callback
4. Secrets are checked, the code exchanged and the profile stored
5. Browser is redirected to the original target
"""

from .oidc import OIDCConfig
from .routes import auth_router

__all__ = [
    "OIDCConfig",
    "auth_router",
]
