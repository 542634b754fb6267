"""
FastAPI Application Factory
===========================

Entry point for the OIDC gateway: a relying party that signs browsers in
with an OpenID Connect identity provider and keeps the resulting profile in
a signed-cookie session.

Routers:
    - /login, /signup        : Start the OIDC login flow
    - /oauth2/callback       : Identity provider callback
    - /logout, /signed-out   : Federated logout
    - /health                : Health check endpoint

Running the Service:
    Development:
        uvicorn oidc_gateway.main:app --reload --host 0.0.0.0 --port 8080

    Production:
        uvicorn oidc_gateway.main:app --host 0.0.0.0 --port 8080 --workers 4

    With custom log level:
        LOG_LEVEL=DEBUG uvicorn oidc_gateway.main:app --reload
"""

import logging
import secrets
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from oidc_gateway.auth import OIDCConfig, auth_router
from oidc_gateway.auth.client import ClientFactory
from oidc_gateway.auth.sessions import CookieSessions, Sessions
from oidc_gateway.config import Settings, get_settings

logger = logging.getLogger("oidc_gateway.main")


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_app(
    settings: Optional[Settings] = None,
    client_factory: Optional[ClientFactory] = None,
    sessions: Optional[Sessions] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management (OIDC initialization)
        - Cookie session middleware
        - Route handlers
        - Exception handlers

    Args:
        settings: Settings to use (default: loaded from the environment)
        client_factory: Identity provider client factory (default: httpx discovery)
        sessions: Scoped session store (default: cookie sessions)

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    sessions = sessions or CookieSessions()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Build the OIDC configuration on startup; release the provider
        client on shutdown. Any configuration error aborts startup.
        """
        setup_logging(settings.LOG_LEVEL)

        app.state.oidc_config = await OIDCConfig.build(settings, client_factory)
        app.state.sessions = sessions

        logger.info(
            "OIDC gateway started",
            extra={"sp_host": settings.SP_HOST, "issuer": settings.IDP_ISSUER}
        )

        yield

        logger.info("Shutting down OIDC gateway")
        await app.state.oidc_config.aclose()

    app = FastAPI(
        title="OIDC Gateway",
        description="OpenID Connect relying party with cookie sessions",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    session_secret = settings.SESSION_SECRET
    if not session_secret:
        logger.warning("SESSION_SECRET is not set; sessions will not survive a restart")
        session_secret = secrets.token_urlsafe(32)

    # form_post callbacks are cross-site POSTs: browsers only send the cookie
    # with them when it is SameSite=None, which in turn requires Secure.
    is_https = (settings.SP_HOST or "").startswith("https://")
    app.add_middleware(
        SessionMiddleware,
        secret_key=session_secret,
        session_cookie=settings.SESSION_COOKIE,
        max_age=settings.SESSION_MAX_AGE,
        same_site="none" if is_https else "lax",
        https_only=is_https,
    )

    app.include_router(auth_router)

    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, str]:
        """Service status and basic metadata."""
        return {
            "status": "ok",
            "service": "oidc-gateway",
            "version": "1.0.0"
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Log unhandled errors and return a standardized response without
        internal details.
        """
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            }
        )

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "oidc_gateway.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
