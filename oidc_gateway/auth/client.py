"""
Identity provider client.

IdentityProviderClient is the capability the OIDC flow relies on. The
production implementation talks to the provider with httpx:

- Discovery of the provider metadata (/.well-known/openid-configuration)
- Authorization URL construction
- Authorization code exchange and ID token verification (python-jose, JWKS)
- Userinfo retrieval
- End-session (logout) URL construction

Every call is a single attempt. Failures surface as ExchangeError.
"""

import logging
import secrets
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

import httpx
from jose import jwk, jwt
from jose.exceptions import JOSEError
from starlette.requests import Request

from ..models import TokenSet
from .exceptions import (
    ClientInitError,
    EndSessionEndpointUnresolvedError,
    ExchangeError,
    StateMismatchError,
)

logger = logging.getLogger(__name__)

DISCOVERY_PATH = "/.well-known/openid-configuration"

# Clock skew tolerance for id token exp/iat/nbf
CLOCK_SKEW_SECONDS = 10

REQUIRED_METADATA = ("issuer", "authorization_endpoint", "token_endpoint", "jwks_uri")

ASYMMETRIC_ALGORITHMS = (
    "RS256", "RS384", "RS512",
    "ES256", "ES384", "ES512",
    "PS256", "PS384", "PS512",
)


# =============================================================================
# Capability
# =============================================================================

class IdentityProviderClient(Protocol):
    """Operations the relying party needs from an identity provider."""

    @property
    def discovered_end_session_endpoint(self) -> Optional[str]: ...

    def build_authorization_url(self, params: Dict[str, Any]) -> str: ...

    async def callback_params(self, request: Request) -> Dict[str, str]: ...

    async def exchange_code_for_claims(
        self,
        redirect_url: str,
        params: Dict[str, str],
        checks: Dict[str, str],
    ) -> TokenSet: ...

    async def fetch_userinfo(self, token_set: TokenSet) -> Dict[str, Any]: ...

    def end_session_url(self, post_logout_redirect_uri: str) -> str: ...

    async def aclose(self) -> None: ...


# (issuer_url, client_id, client_secret, redirect_url) -> client
ClientFactory = Callable[[str, str, str, str], Awaitable[IdentityProviderClient]]


# =============================================================================
# httpx implementation
# =============================================================================

class HttpxIdentityProviderClient:
    """
    Identity provider client backed by one long-lived httpx.AsyncClient.

    Usage:
        client = await HttpxIdentityProviderClient.discover(
            "https://idp.example.com/realms/main",
            "client-id",
            "client-secret",
            "https://app.example.com/oauth2/callback",
        )
        url = client.build_authorization_url({"scope": "openid email"})
    """

    def __init__(
        self,
        metadata: Dict[str, Any],
        client_id: str,
        client_secret: str,
        redirect_url: str,
        http_client: httpx.AsyncClient,
    ):
        self._metadata = metadata
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_url = redirect_url
        self._http = http_client
        self._jwks: Optional[Dict[str, Any]] = None

        supported = metadata.get("id_token_signing_alg_values_supported") or ["RS256"]
        self._algorithms: List[str] = [a for a in supported if a in ASYMMETRIC_ALGORITHMS]

    @classmethod
    async def discover(
        cls,
        issuer_url: str,
        client_id: str,
        client_secret: str,
        redirect_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "HttpxIdentityProviderClient":
        """
        Fetch the provider metadata and create a client.

        Raises:
            ClientInitError: If the discovery document cannot be fetched
                             or lacks a required endpoint
        """
        http_client = httpx.AsyncClient(timeout=timeout, transport=transport)
        discovery_url = f"{issuer_url.rstrip('/')}{DISCOVERY_PATH}"

        try:
            response = await http_client.get(discovery_url)
            response.raise_for_status()
            metadata = response.json()
            if not isinstance(metadata, dict):
                raise ValueError("discovery document is not a JSON object")
        except (httpx.HTTPError, ValueError) as e:
            await http_client.aclose()
            raise ClientInitError(f"OIDC discovery failed for {issuer_url}: {e}") from e

        missing = [key for key in REQUIRED_METADATA if not metadata.get(key)]
        if missing:
            await http_client.aclose()
            raise ClientInitError(
                f"OIDC discovery document for {issuer_url} is missing: {', '.join(missing)}"
            )

        logger.info(
            "Discovered OIDC provider metadata",
            extra={
                "issuer": metadata["issuer"],
                "has_end_session_endpoint": bool(metadata.get("end_session_endpoint")),
            }
        )

        return cls(metadata, client_id, client_secret, redirect_url, http_client)

    @property
    def metadata(self) -> Dict[str, Any]:
        return dict(self._metadata)

    @property
    def discovered_end_session_endpoint(self) -> Optional[str]:
        return self._metadata.get("end_session_endpoint")

    # =========================================================================
    # Login
    # =========================================================================

    def build_authorization_url(self, params: Dict[str, Any]) -> str:
        """Build the authorization URL; parameters set to None are dropped."""
        query = {
            "client_id": self._client_id,
            "response_type": "code",
            "redirect_uri": self._redirect_url,
        }
        query.update({key: value for key, value in params.items() if value is not None})

        url = httpx.URL(self._metadata["authorization_endpoint"]).copy_merge_params(query)
        return str(url)

    # =========================================================================
    # Callback
    # =========================================================================

    async def callback_params(self, request: Request) -> Dict[str, str]:
        """Read the provider response from the query string or a form_post body."""
        if request.method == "POST":
            form = await request.form()
            return {key: value for key, value in form.items() if isinstance(value, str)}
        return dict(request.query_params)

    async def exchange_code_for_claims(
        self,
        redirect_url: str,
        params: Dict[str, str],
        checks: Dict[str, str],
    ) -> TokenSet:
        """
        Exchange the authorization code for tokens and verify the id token.

        Args:
            redirect_url: Redirect URI used at login (must match exactly)
            params: Callback parameters returned by the provider
            checks: Expected values: state, code_verifier, nonce (each optional)

        Returns:
            TokenSet with the verified id token claims

        Raises:
            StateMismatchError: If the returned state does not match
            ExchangeError: On provider errors or invalid tokens
        """
        expected_state = checks.get("state")
        if expected_state is not None:
            received_state = params.get("state") or ""
            if not secrets.compare_digest(received_state, expected_state):
                raise StateMismatchError("state mismatch between callback and session")

        if params.get("error"):
            description = params.get("error_description") or "no description"
            raise ExchangeError(f"Provider returned {params['error']}: {description}")

        code = params.get("code")
        if not code:
            raise ExchangeError("Callback parameters missing 'code'")

        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_url,
        }
        if checks.get("code_verifier"):
            payload["code_verifier"] = checks["code_verifier"]

        try:
            response = await self._http.post(
                self._metadata["token_endpoint"],
                data=payload,
                auth=(self._client_id, self._client_secret),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise ExchangeError(f"Token exchange failed: {e}") from e

        token_data = self._read_json(response, "Token exchange")

        id_token = token_data.get("id_token")
        if not id_token:
            raise ExchangeError("Token response missing id_token")

        access_token = token_data.get("access_token")
        claims = await self._verify_id_token(id_token, access_token)

        expected_nonce = checks.get("nonce")
        if expected_nonce is not None and claims.get("nonce") != expected_nonce:
            raise ExchangeError("nonce mismatch between id token and session")

        return TokenSet(
            access_token=access_token,
            id_token=id_token,
            token_type=token_data.get("token_type"),
            claims=claims,
        )

    async def fetch_userinfo(self, token_set: TokenSet) -> Dict[str, Any]:
        """
        Fetch the userinfo claims for an exchanged token set.

        Providers without a userinfo endpoint only have the id token claims.
        """
        endpoint = self._metadata.get("userinfo_endpoint")
        if not endpoint:
            return dict(token_set.claims)

        if not token_set.access_token:
            raise ExchangeError("No access token available for the userinfo request")

        try:
            response = await self._http.get(
                endpoint,
                headers={
                    "Authorization": f"Bearer {token_set.access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise ExchangeError(f"Userinfo request failed: {e}") from e

        userinfo = self._read_json(response, "Userinfo request")

        subject = token_set.claims.get("sub")
        if subject and userinfo.get("sub") != subject:
            raise ExchangeError("userinfo sub does not match the id token")

        return userinfo

    # =========================================================================
    # Logout
    # =========================================================================

    def end_session_url(self, post_logout_redirect_uri: str) -> str:
        endpoint = self.discovered_end_session_endpoint
        if not endpoint:
            raise EndSessionEndpointUnresolvedError("Provider metadata has no end_session_endpoint")

        url = httpx.URL(endpoint).copy_merge_params({
            "client_id": self._client_id,
            "post_logout_redirect_uri": post_logout_redirect_uri,
        })
        return str(url)

    async def aclose(self) -> None:
        await self._http.aclose()

    # =========================================================================
    # ID Token Verification
    # =========================================================================

    async def _fetch_jwks(self, force_refresh: bool = False) -> Dict[str, Any]:
        if self._jwks is not None and not force_refresh:
            return self._jwks

        try:
            response = await self._http.get(self._metadata["jwks_uri"])
            response.raise_for_status()
            jwks_data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ExchangeError(f"Unable to fetch JWKS: {e}") from e

        if "keys" not in jwks_data:
            raise ExchangeError("Invalid JWKS response: missing 'keys' field")

        self._jwks = jwks_data
        return jwks_data

    @staticmethod
    def _select_key(jwks: Dict[str, Any], kid: Optional[str]) -> Optional[Dict[str, Any]]:
        keys = [key for key in jwks.get("keys", []) if key.get("use", "sig") == "sig"]

        if kid is None:
            return keys[0] if len(keys) == 1 else None

        for key in keys:
            if key.get("kid") == kid:
                return key
        return None

    async def _get_signing_key(self, kid: Optional[str]) -> Dict[str, Any]:
        signing_key = self._select_key(await self._fetch_jwks(), kid)
        if signing_key is None:
            # Keys may have rotated since the last fetch
            signing_key = self._select_key(await self._fetch_jwks(force_refresh=True), kid)

        if signing_key is None:
            raise ExchangeError("Unable to find matching signing key in JWKS")
        return signing_key

    async def _verify_id_token(self, id_token: str, access_token: Optional[str]) -> Dict[str, Any]:
        try:
            header = jwt.get_unverified_header(id_token)
        except JOSEError as e:
            raise ExchangeError(f"Malformed id token: {e}") from e

        algorithm = header.get("alg")
        if algorithm not in self._algorithms:
            raise ExchangeError(f"Unexpected id token algorithm: {algorithm}")

        signing_key = await self._get_signing_key(header.get("kid"))

        try:
            public_key = jwk.construct(signing_key, algorithm=algorithm)
            return jwt.decode(
                id_token,
                public_key.to_pem().decode('utf-8'),
                algorithms=[algorithm],
                audience=self._client_id,
                issuer=self._metadata["issuer"],
                access_token=access_token,
                options={"leeway": CLOCK_SKEW_SECONDS},
            )
        except JOSEError as e:
            logger.warning(f"Id token verification failed: {e}")
            raise ExchangeError(f"Id token verification failed: {e}") from e

    @staticmethod
    def _read_json(response: httpx.Response, action: str) -> Dict[str, Any]:
        if not response.is_success:
            error_data: Dict[str, Any] = {}
            if response.headers.get("content-type", "").startswith("application/json"):
                try:
                    error_data = response.json()
                except ValueError:
                    pass
            error_msg = (
                error_data.get("error_description")
                or error_data.get("error")
                or f"HTTP {response.status_code}"
            )
            logger.warning(
                f"{action} failed",
                extra={"status_code": response.status_code, "error": error_msg}
            )
            raise ExchangeError(f"{action} failed: {error_msg}")

        try:
            return response.json()
        except ValueError as e:
            raise ExchangeError(f"{action} returned invalid JSON") from e
