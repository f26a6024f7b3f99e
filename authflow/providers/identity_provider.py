"""
Identity Provider.

``IdentityProvider`` is the port the session flow consumes;
``SupabaseIdentityProvider`` implements it over Supabase Auth (GoTrue)
and converts GoTrue users / sessions into ``AuthSession`` models.

Credential exchange
-------------------
A verification link lands on ``/auth/callback?code=...`` (PKCE) or, for
the implicit flow, ``#access_token=...&refresh_token=...``.  Exchanging
that for a session is the transport's job: ``complete_redirect()`` is
called once by the shell when the landing URL is opened, and exchanges
each code at most once.  A code is single-use on the server, so a second,
competing exchange would fail with "link already used".  The callback
handler never calls it; it only observes ``get_current_session()``.
"""

from __future__ import annotations

from typing import Callable, Optional, Protocol
from urllib.parse import parse_qs, urlsplit

from authflow.database import SupabaseManager
from authflow.errors import IdentityProviderError
from authflow.logger import StructuredLogger
from authflow.models.enums import ProfileRole
from authflow.models.identity import AuthSession, Identity

SessionChangeCallback = Callable[[str, Optional[AuthSession]], None]


class Subscription(Protocol):
    """Handle returned by ``on_session_change``."""

    def unsubscribe(self) -> None: ...


class IdentityProvider(Protocol):
    """Port interface for the identity provider."""

    async def get_current_session(self) -> Optional[AuthSession]:
        """Return the established session, or ``None``."""
        ...

    def on_session_change(self, callback: SessionChangeCallback) -> Subscription:
        """Register *callback* for ``(event_kind, session)`` notifications."""
        ...

    async def resend_verification(self, email: str) -> None:
        """Send a fresh verification link to *email*."""
        ...

    async def complete_redirect(self, url: str) -> Optional[AuthSession]:
        """Exchange the credentials carried by a landing *url* (once per code)."""
        ...

    async def sign_out(self) -> None:
        """Revoke the current session."""
        ...


class SupabaseIdentityProvider:
    """Supabase Auth implementation of ``IdentityProvider``.

    Parameters
    ----------
    db:
        Connected ``SupabaseManager``.
    redirect_url:
        Absolute verification-landing URL put into resent emails.
    logger:
        Structured JSON logger.
    """

    def __init__(
        self,
        db: SupabaseManager,
        redirect_url: str,
        logger: StructuredLogger,
    ) -> None:
        self._db = db
        self._redirect_url = redirect_url
        self._logger = logger
        self._exchanged_codes: set[str] = set()

    # ------------------------------------------------------------------
    # IdentityProvider
    # ------------------------------------------------------------------

    async def get_current_session(self) -> Optional[AuthSession]:
        try:
            session = await self._db.client.auth.get_session()
        except Exception as exc:
            raise self._wrap("get_session", exc) from exc
        return self._to_auth_session(session)

    def on_session_change(self, callback: SessionChangeCallback) -> Subscription:
        def _forward(event: str, session: object) -> None:
            callback(str(event), self._to_auth_session(session))

        try:
            return self._db.client.auth.on_auth_state_change(_forward)
        except Exception as exc:
            raise self._wrap("on_auth_state_change", exc) from exc

    async def resend_verification(self, email: str) -> None:
        try:
            await self._db.client.auth.resend({
                "type": "signup",
                "email": email,
                "options": {"email_redirect_to": self._redirect_url},
            })
        except Exception as exc:
            raise self._wrap("resend", exc) from exc
        self._logger.info(
            "Verification email resent.",
            extra={"event": "VERIFICATION_RESENT", "email": email},
        )

    async def complete_redirect(self, url: str) -> Optional[AuthSession]:
        parts = urlsplit(url)
        query = parse_qs(parts.query)
        fragment = parse_qs(parts.fragment)

        code = query.get("code", [None])[0]
        if code:
            if code in self._exchanged_codes:
                self._logger.debug("Code already exchanged; skipping second exchange.")
                return None
            self._exchanged_codes.add(code)
            try:
                response = await self._db.client.auth.exchange_code_for_session(
                    {"auth_code": code}
                )
            except Exception as exc:
                raise self._wrap("exchange_code_for_session", exc) from exc
            return self._to_auth_session(response.session)

        access_token = fragment.get("access_token", [None])[0]
        refresh_token = fragment.get("refresh_token", [None])[0]
        if access_token and refresh_token:
            try:
                response = await self._db.client.auth.set_session(access_token, refresh_token)
            except Exception as exc:
                raise self._wrap("set_session", exc) from exc
            return self._to_auth_session(response.session)

        return None

    async def sign_out(self) -> None:
        try:
            await self._db.client.auth.sign_out()
        except Exception as exc:
            raise self._wrap("sign_out", exc) from exc

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_auth_session(session: object) -> Optional[AuthSession]:
        """Convert a GoTrue ``Session`` into an ``AuthSession``."""
        user = getattr(session, "user", None)
        if session is None or user is None:
            return None

        metadata = getattr(user, "user_metadata", None) or {}
        role_hint: Optional[ProfileRole] = None
        try:
            raw_role = metadata.get("role")
            role_hint = ProfileRole(raw_role) if raw_role else None
        except ValueError:
            role_hint = None

        return AuthSession(
            identity=Identity(
                id=str(user.id),
                email=getattr(user, "email", None),
                role_hint=role_hint,
            ),
            access_token=getattr(session, "access_token", "") or "",
            refresh_token=getattr(session, "refresh_token", "") or "",
            expires_at=getattr(session, "expires_at", None),
        )

    def _wrap(self, operation: str, exc: Exception) -> IdentityProviderError:
        code = getattr(exc, "code", None)
        self._logger.warning(
            "Identity provider %s failed: %s", operation, exc,
            extra={"event": "PROVIDER_ERROR", "operation": operation, "code": str(code)},
        )
        return IdentityProviderError(
            f"{operation} failed: {exc}",
            code=str(code) if code else None,
            original_error=exc,
        )
