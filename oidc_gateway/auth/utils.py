"""
Authentication utilities.

This module handles:
- Generating unguessable state, nonce and PKCE values
- Deriving the PKCE code challenge
- Checking redirect targets against the service origin
"""

import base64
import hashlib
import secrets
from typing import Optional
from urllib.parse import urljoin, urlsplit


PKCE_METHOD = "S256"


# =============================================================================
# Secret Generators
# =============================================================================

def generate_state() -> str:
    """Generate an opaque CSRF token for the state parameter."""
    return secrets.token_urlsafe(32)


def generate_nonce() -> str:
    """Generate an opaque replay-protection token for the nonce parameter."""
    return secrets.token_urlsafe(32)


def generate_code_verifier() -> str:
    """
    Generate a cryptographically random code verifier for PKCE.

    Returns:
        Base64-URL-encoded random string (43 characters)
    """
    verifier_bytes = secrets.token_bytes(32)
    return base64.urlsafe_b64encode(verifier_bytes).decode('utf-8').rstrip('=')


def generate_code_challenge(verifier: str) -> str:
    """
    Generate code challenge from verifier using S256 method.

    Args:
        verifier: Code verifier string

    Returns:
        Base64-URL-encoded SHA256 hash of verifier
    """
    digest = hashlib.sha256(verifier.encode('utf-8')).digest()
    return base64.urlsafe_b64encode(digest).decode('utf-8').rstrip('=')


# =============================================================================
# Redirect Helpers
# =============================================================================

def resolve_target_url(sp_host: str, target: Optional[str]) -> str:
    """
    Resolve a post-login target against the service host.

    Relative paths are joined to sp_host. Absolute URLs are accepted only
    when they share the scheme and host of sp_host; anything else falls back
    to the service root.

    Args:
        sp_host: Public base URL of this service
        target: Requested target (may be None)

    Returns:
        Absolute URL on sp_host
    """
    root = urljoin(sp_host, "/")
    if not target:
        return root

    # Protocol-relative URLs ("//evil.com") would otherwise pass as paths.
    if target.startswith("/") and not target.startswith("//"):
        return urljoin(sp_host, target)

    expected = urlsplit(sp_host)
    candidate = urlsplit(target)
    if (candidate.scheme, candidate.netloc) == (expected.scheme, expected.netloc):
        return target

    return root
