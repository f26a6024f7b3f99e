"""
Route Surface.

Paths owned by the session flow and the predicates the rest of the
application consults before rendering a protected screen.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import parse_qs, urlsplit

from authflow.models.session_state import SessionState

LANDING_ROUTE: str = "/"
SIGN_UP_ROUTE: str = "/signup"
CHECK_INBOX_ROUTE: str = "/verify-email"
VERIFICATION_CALLBACK_ROUTE: str = "/auth/callback"
ONBOARDING_ROUTE: str = "/complete-profile"
MAIN_APP_ROUTE: str = "/dashboard/profile"

PUBLIC_ROUTES: tuple[str, ...] = (
    SIGN_UP_ROUTE,
    CHECK_INBOX_ROUTE,
    VERIFICATION_CALLBACK_ROUTE,
    "/privacy-policy",
    "/terms",
)


def path_of(url: str) -> str:
    """Return the path component of *url* (``"/"`` when empty)."""
    return urlsplit(url).path or LANDING_ROUTE


def is_public_route(path: str) -> bool:
    """``True`` when *path* may be rendered without a session.

    The landing page is matched exactly; the others by prefix so nested
    paths (``/terms/cookies``) stay public.
    """
    path = path_of(path)
    if path == LANDING_ROUTE:
        return True
    return any(path == route or path.startswith(route + "/") for route in PUBLIC_ROUTES)


def is_onboarding_complete(state: SessionState) -> bool:
    """Reactive predicate: the signed-in user has a complete profile."""
    return state.identity is not None and state.is_onboarding_complete


def guard_protected_route(path: str, state: SessionState) -> Optional[str]:
    """Return where a protected route must send the user, or ``None`` to render.

    While the session is loading nothing is decided; the caller renders a
    loading state and asks again on the next state change.
    """
    if is_public_route(path) or state.is_loading:
        return None
    if state.identity is None:
        return LANDING_ROUTE
    return None


def url_error(url: str) -> Optional[str]:
    """Return the provider error carried by a landing URL, if any.

    The provider reports a rejected link either in the query string or in
    the fragment (``#error=access_denied&error_code=otp_expired``).
    """
    parts = urlsplit(url)
    for raw in (parts.query, parts.fragment):
        params = parse_qs(raw)
        if "error" in params or "error_code" in params:
            return (
                params.get("error_code", [None])[0]
                or params.get("error_description", [None])[0]
                or params["error"][0]
            )
    return None
