"""
Authentication routes for the OIDC login flow.

Endpoints:
- GET  /login            : redirect to the identity provider
- GET  /signup           : same flow as /login
- GET|POST /oauth2/callback : provider callback
- GET  /logout           : clear the session and redirect to the provider logout
- GET  /signed-out       : landing page after logout
"""

import logging
from typing import Optional
from urllib.parse import urljoin

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from .oidc import CALLBACK_URL_PATH, OIDCConfig
from .sessions import Sessions
from .utils import resolve_target_url

logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(
    tags=["authentication"],
)

SIGNED_OUT_PATH = "/signed-out"


def get_oidc_config(request: Request) -> OIDCConfig:
    return request.app.state.oidc_config


def get_sessions(request: Request) -> Sessions:
    return request.app.state.sessions


# =============================================================================
# Login Endpoints
# =============================================================================

@auth_router.get("/login", response_class=RedirectResponse)
async def login(
    request: Request,
    next_url: Optional[str] = Query(None, alias="next", description="Where to go after login (path or URL on this host)"),
):
    """
    Initiate OIDC login by redirecting to the identity provider.

    The state, nonce and PKCE secrets are kept in the session until the
    provider calls back.
    """
    config = get_oidc_config(request)
    target_url = resolve_target_url(config.sp_host, next_url)

    authorization_url = config.get_login_redirect_url(request, target_url)

    return RedirectResponse(url=authorization_url, status_code=302)


@auth_router.get("/signup", response_class=RedirectResponse)
async def signup(
    request: Request,
    next_url: Optional[str] = Query(None, alias="next", description="Where to go after sign-up"),
):
    """Sign-up is handled by the identity provider's login page."""
    return await login(request, next_url)


# =============================================================================
# Callback Endpoint
# =============================================================================

@auth_router.api_route(CALLBACK_URL_PATH, methods=["GET", "POST"])
async def callback(request: Request) -> Response:
    """
    Handle the identity provider callback.

    Redirects to the login target on success. Any failure is answered with
    a generic 500 and the details are only logged server-side.
    """
    config = get_oidc_config(request)
    return await config.handle_callback(get_sessions(request), request)


# =============================================================================
# Logout Endpoints
# =============================================================================

@auth_router.get("/logout", response_class=RedirectResponse)
async def logout(
    request: Request,
    next_url: Optional[str] = Query(None, alias="next", description="Where to go after logout"),
):
    """Clear the local session and redirect to the provider logout."""
    config = get_oidc_config(request)

    if next_url:
        post_logout_url = resolve_target_url(config.sp_host, next_url)
    else:
        post_logout_url = urljoin(config.sp_host, SIGNED_OUT_PATH)

    request.session.clear()
    logger.info("Session cleared for logout")

    logout_url = config.get_logout_redirect_url(request, post_logout_url)

    return RedirectResponse(url=logout_url, status_code=302)


@auth_router.get(SIGNED_OUT_PATH, response_class=HTMLResponse)
async def signed_out() -> HTMLResponse:
    return _render_signed_out_page()


# =============================================================================
# HTML Response Templates
# =============================================================================

def _render_signed_out_page() -> HTMLResponse:
    html_content = """
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>Signed out</title>
        <style>
            * { margin: 0; padding: 0; box-sizing: border-box; }
            body {
                font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;
                background: #f3f4f6;
                min-height: 100vh;
                display: flex;
                align-items: center;
                justify-content: center;
                padding: 20px;
            }
            .container {
                background: white;
                border-radius: 12px;
                padding: 40px;
                max-width: 500px;
                width: 100%;
                box-shadow: 0 10px 40px rgba(0,0,0,0.1);
                text-align: center;
            }
            h1 {
                color: #1f2937;
                font-size: 24px;
                margin-bottom: 16px;
            }
            .message {
                color: #6b7280;
                font-size: 16px;
                margin-bottom: 32px;
            }
            .button {
                display: inline-block;
                background: #667eea;
                color: white;
                padding: 14px 32px;
                border-radius: 8px;
                text-decoration: none;
                font-weight: 600;
            }
        </style>
    </head>
    <body>
        <div class="container">
            <h1>Signed out</h1>
            <p class="message">You have been signed out.</p>
            <a href="/login" class="button">Sign in again</a>
        </div>
    </body>
    </html>
    """

    return HTMLResponse(content=html_content, status_code=200)
