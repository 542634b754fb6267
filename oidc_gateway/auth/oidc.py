"""
OpenID Connect relying party.

OIDCConfig owns the whole login flow:

1. build() validates the configuration and initializes the provider client
2. get_login_redirect_url() stores a PendingLogin in the session and returns
   the authorization URL
3. handle_callback() checks the PendingLogin against the provider response,
   exchanges the code, maps the claims to a UserProfile and stores it in the
   authenticated session
4. get_logout_redirect_url() computes where to send the browser on logout

Login and callback only communicate through the session. A new login in the
same session replaces the previous PendingLogin (last writer wins).
"""

import logging
from functools import partial
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import urljoin

from starlette.requests import Request
from starlette.responses import PlainTextResponse, RedirectResponse, Response

from ..config import Settings
from ..models import PendingLogin, UserProfile
from .client import ClientFactory, HttpxIdentityProviderClient, IdentityProviderClient
from .exceptions import (
    CallbackError,
    ClientInitError,
    EndSessionEndpointUnresolvedError,
    ExchangeError,
    MissingParameterError,
    StateMismatchError,
)
from .protections import Protection, ProtectionSet
from .sessions import Sessions, UserRecord
from .utils import (
    PKCE_METHOD,
    generate_code_challenge,
    generate_code_verifier,
    generate_nonce,
    generate_state,
)

logger = logging.getLogger(__name__)

CALLBACK_URL_PATH = "/oauth2/callback"

CALLBACK_FAILED_MESSAGE = "OIDC callback failed."

REQUIRED_PARAMETERS = (
    "SP_HOST",
    "IDP_ISSUER",
    "IDP_CLIENT_ID",
    "IDP_CLIENT_SECRET",
)


class OIDCConfig:
    """
    Relying party configuration and flow.

    Always create instances with the async build() classmethod.

    Usage:
        config = await OIDCConfig.build(settings)
        url = config.get_login_redirect_url(request, "https://app.example.com/docs")
    """

    def __init__(self, settings: Settings, client_factory: Optional[ClientFactory] = None):
        self._settings = settings
        self._client_factory = client_factory or partial(
            HttpxIdentityProviderClient.discover,
            timeout=settings.IDP_HTTP_TIMEOUT,
        )
        self._client: Optional[IdentityProviderClient] = None

    @classmethod
    async def build(
        cls,
        settings: Settings,
        client_factory: Optional[ClientFactory] = None,
    ) -> "OIDCConfig":
        """
        Create and initialize an OIDCConfig.

        Raises:
            MissingParameterError: A mandatory parameter is absent
            InvalidProtectionError: IDP_ENABLED_PROTECTIONS is invalid
            ClientInitError: The provider client could not be initialized
            EndSessionEndpointUnresolvedError: No logout endpoint is known
        """
        config = cls(settings, client_factory)
        await config.init_oidc()
        return config

    async def init_oidc(self) -> None:
        settings = self._settings

        for name in REQUIRED_PARAMETERS:
            if not getattr(settings, name):
                raise MissingParameterError(name)

        self._sp_host: str = settings.SP_HOST
        self._issuer_url: str = settings.IDP_ISSUER
        self._redirect_url = urljoin(self._sp_host, CALLBACK_URL_PATH)
        self._scopes = settings.IDP_SCOPES
        self._protections = ProtectionSet.parse(settings.IDP_ENABLED_PROTECTIONS)
        self._skip_end_session_endpoint = settings.IDP_SKIP_END_SESSION_ENDPOINT
        self._end_session_endpoint = settings.IDP_END_SESSION_ENDPOINT or None
        self._ignore_email_verified = settings.SP_IGNORE_EMAIL_VERIFIED
        self._name_attr = settings.SP_PROFILE_NAME_ATTR or None
        self._email_attr = settings.SP_PROFILE_EMAIL_ATTR or "email"

        self._client = await self._init_client(
            issuer_url=self._issuer_url,
            client_id=settings.IDP_CLIENT_ID,
            client_secret=settings.IDP_CLIENT_SECRET,
        )

        if (
            not self._skip_end_session_endpoint
            and not self._end_session_endpoint
            and not self._client.discovered_end_session_endpoint
        ):
            await self._client.aclose()
            raise EndSessionEndpointUnresolvedError(
                "The identity provider does not advertise an end_session_endpoint. "
                "Set IDP_END_SESSION_ENDPOINT to its logout URL. "
                "If that is expected, please set IDP_SKIP_END_SESSION_ENDPOINT=true"
            )

        logger.info(f"OIDCConfig: initialized with issuer {self._issuer_url}")

    async def _init_client(self, *, issuer_url: str, client_id: str, client_secret: str) -> IdentityProviderClient:
        try:
            return await self._client_factory(issuer_url, client_id, client_secret, self._redirect_url)
        except ClientInitError:
            raise
        except Exception as e:
            raise ClientInitError(f"Failed to initialize OIDC client: {e}") from e

    @property
    def client(self) -> Optional[IdentityProviderClient]:
        """Provider client; None until init_oidc() has run."""
        return self._client

    @property
    def sp_host(self) -> str:
        return self._sp_host

    @property
    def redirect_url(self) -> str:
        return self._redirect_url

    def supports_protection(self, protection: Union[Protection, str]) -> bool:
        return self._protections.supports(protection)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    # =========================================================================
    # Login
    # =========================================================================

    def get_login_redirect_url(self, request: Request, target_url: Optional[str] = None) -> str:
        """
        Start a login: store the PendingLogin and return the authorization URL.

        Args:
            request: Current request (its session is mutated)
            target_url: Where to send the user after a successful callback

        Returns:
            Authorization URL to redirect the browser to
        """
        state = generate_state() if self.supports_protection(Protection.STATE) else None
        nonce = generate_nonce() if self.supports_protection(Protection.NONCE) else None

        params: Dict[str, Any] = {
            "scope": self._scopes,
            # Reserved; no configuration sets it yet.
            "acr_values": None,
        }

        code_verifier = None
        if self.supports_protection(Protection.PKCE):
            code_verifier = generate_code_verifier()
            params["code_challenge"] = generate_code_challenge(code_verifier)
            params["code_challenge_method"] = PKCE_METHOD
        if state is not None:
            params["state"] = state
        if nonce is not None:
            params["nonce"] = nonce

        authorization_url = self._client.build_authorization_url(params)

        PendingLogin(
            state=state,
            nonce=nonce,
            code_verifier=code_verifier,
            target_url=str(target_url) if target_url else None,
        ).save(request.session)

        logger.debug(
            "Login initiated",
            extra={"state": state[:8] + "..." if state else None}
        )

        return authorization_url

    # =========================================================================
    # Callback
    # =========================================================================

    async def handle_callback(self, sessions: Sessions, request: Request) -> Response:
        """
        Complete a login from the provider callback.

        Never raises: any failure is logged and answered with a generic 500.
        The PendingLogin is removed from the session in every case.

        Returns:
            Redirect to the stored target URL (default "/"), or a 500 response
        """
        try:
            pending = PendingLogin.from_session(request.session)
            checks = self._checks_from_pending_login(pending)
            params = await self._client.callback_params(request)

            try:
                token_set = await self._client.exchange_code_for_claims(
                    self._redirect_url, params, checks
                )
                user_info = await self._client.fetch_userinfo(token_set)
            except StateMismatchError as e:
                raise CallbackError("Login or logout failed to complete") from e
            except ExchangeError as e:
                raise CallbackError(f"Identity provider exchange failed: {e}") from e

            if user_info.get("email_verified") is False and not self._ignore_email_verified:
                raise CallbackError(f"email not verified for {user_info.get('email')}")

            profile = self._make_user_profile(user_info)

            def _set_profile(user: UserRecord) -> UserRecord:
                user["profile"] = profile.to_session()
                return user

            scoped_session = sessions.get_or_create_session_from_request(request)
            await scoped_session.operate_on_scoped_session(request, _set_profile)

            PendingLogin.discard(request.session)

        except Exception as e:
            logger.error(f"OIDC callback failed: {e}", exc_info=True)
            PendingLogin.discard(request.session)
            return PlainTextResponse(CALLBACK_FAILED_MESSAGE, status_code=500)

        logger.info("User authenticated", extra={"email": profile.email})

        target_url = pending.target_url if pending and pending.target_url else "/"
        return RedirectResponse(url=target_url, status_code=302)

    def _checks_from_pending_login(self, pending: Optional[PendingLogin]) -> Dict[str, str]:
        """
        Collect the secrets the exchange must check.

        Raises:
            CallbackError: If an enabled protection has no secret in the session
        """
        state = pending.state if pending else None
        code_verifier = pending.code_verifier if pending else None
        nonce = pending.nonce if pending else None

        checks: Dict[str, str] = {}

        if self.supports_protection(Protection.STATE):
            if not state:
                raise CallbackError("Login or logout failed to complete")
            checks["state"] = state

        if self.supports_protection(Protection.PKCE):
            if not code_verifier:
                raise CallbackError("Login is stale")
            checks["code_verifier"] = code_verifier

        if self.supports_protection(Protection.NONCE):
            if not nonce:
                raise CallbackError("Login is stale")
            checks["nonce"] = nonce

        return checks

    def _make_user_profile(self, user_info: Mapping[str, Any]) -> UserProfile:
        email = user_info.get(self._email_attr)
        if not email:
            raise CallbackError(f"no {self._email_attr} claim in user info")

        return UserProfile(email=str(email), name=self._extract_name(user_info))

    def _extract_name(self, user_info: Mapping[str, Any]) -> Optional[str]:
        if self._name_attr:
            value = user_info.get(self._name_attr)
            return str(value) if value is not None else None

        if user_info.get("name"):
            return str(user_info["name"])

        given_name = user_info.get("given_name")
        family_name = user_info.get("family_name")
        if given_name and family_name:
            return f"{given_name} {family_name}"

        return None

    # =========================================================================
    # Logout
    # =========================================================================

    def get_logout_redirect_url(self, request: Request, post_logout_redirect_url: str) -> str:
        """
        Compute where to send the browser on logout.

        1. IDP_SKIP_END_SESSION_ENDPOINT: straight to post_logout_redirect_url
        2. IDP_END_SESSION_ENDPOINT: the configured logout URL
        3. Otherwise the discovered end_session_endpoint, built by the client
        """
        if self._skip_end_session_endpoint:
            return str(post_logout_redirect_url)

        if self._end_session_endpoint:
            return self._end_session_endpoint

        return self._client.end_session_url(str(post_logout_redirect_url))
