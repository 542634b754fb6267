"""
Session store abstraction used by the callback handler.

The pending login lives directly in request.session. The authenticated user
lives in a scoped session record that is only changed through
operate_on_scoped_session(), a single read-modify-write per call.
"""

from typing import Any, Callable, Dict, Protocol

from starlette.requests import Request

UserRecord = Dict[str, Any]


class ScopedSession(Protocol):
    """Authenticated session state of one browser session."""

    async def operate_on_scoped_session(
        self,
        request: Request,
        callback: Callable[[UserRecord], UserRecord],
    ) -> UserRecord: ...


class Sessions(Protocol):
    """Factory of scoped sessions."""

    def get_or_create_session_from_request(self, request: Request) -> ScopedSession: ...


# =============================================================================
# Cookie-backed implementation
# =============================================================================

class CookieScopedSession:
    """
    Scoped session stored in Starlette's signed-cookie session.

    The cookie session is private to one browser and is only written back
    when the response is sent, so each call is atomic for this component.
    """

    def __init__(self, key: str = "user"):
        self._key = key

    async def operate_on_scoped_session(
        self,
        request: Request,
        callback: Callable[[UserRecord], UserRecord],
    ) -> UserRecord:
        user = dict(request.session.get(self._key) or {})
        user = callback(user)
        request.session[self._key] = user
        return user


class CookieSessions:
    """Sessions backed by SessionMiddleware."""

    def __init__(self, key: str = "user"):
        self._scoped = CookieScopedSession(key)

    def get_or_create_session_from_request(self, request: Request) -> CookieScopedSession:
        return self._scoped
