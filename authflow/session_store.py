"""
Session State Store.

Provides an injectable ``SessionStore`` that holds the process-wide
``SessionState`` for the lifetime of the running client, and notifies
subscribers synchronously after every write.

Usage::

    from authflow.session_store import SessionStore

    store = SessionStore(logger=get_logger("session_store"))
    unsubscribe = store.subscribe(lambda state: print(state.identity))
    store.set_loading(False)
    unsubscribe()

Field ownership
---------------
Each field has exactly one writer.  The store does not enforce this; the
components below do by construction:

===============================  ======================================
Field                            Writer
===============================  ======================================
``identity``, ``is_loading``     ``SessionBootstrapper``
``profile``, ``profile_status``  ``ProfileProvisioningService`` and
                                 ``ProfileCompletionForm``
``has_redirected_to_onboarding`` ``OnboardingRouter``
===============================  ======================================

``sign_out()`` clears identity, profile and the redirect flag together;
switching to a different identity clears profile and flag the same way.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from authflow.logger import StructuredLogger
from authflow.models.enums import ProfileStatus
from authflow.models.identity import Identity
from authflow.models.profile import ProfileRecord
from authflow.models.session_state import SessionState

StateListener = Callable[[SessionState], None]


class SessionStore:
    """Injectable holder for the current ``SessionState``.

    Each setter builds a new frozen snapshot and replaces the old one in a
    single assignment, then notifies listeners with that snapshot.  There
    are no partial-state windows for a reader to observe.
    """

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger
        self._state: SessionState = SessionState()
        self._listeners: list[StateListener] = []
        self._error_handler: Optional[Callable[[Exception], None]] = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_state(self) -> SessionState:
        """Return the current snapshot."""
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register *listener* and return a callable that removes it.

        The returned callable is idempotent.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def set_error_handler(self, handler: Optional[Callable[[Exception], None]]) -> None:
        """Route listener failures to *handler* (the shell's error boundary)."""
        self._error_handler = handler

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_identity(self, identity: Optional[Identity]) -> None:
        """Written only by ``SessionBootstrapper``.

        A change of identity drops the previous identity's profile in the
        same snapshot so a stale profile is never paired with a new user.
        It also starts a new sign-in session, so the one-shot onboarding
        redirect flag is cleared with it.
        """
        current = self._state
        if current.identity == identity:
            return
        changes: dict[str, object] = {"identity": identity}
        if current.identity is None or identity is None or current.identity.id != identity.id:
            changes.update(
                profile=None,
                profile_status=ProfileStatus.IDLE,
                profile_fetched_at=None,
                profile_error=None,
                has_redirected_to_onboarding=False,
            )
        self._replace(**changes)

    def set_profile(self, profile: Optional[ProfileRecord]) -> None:
        """Written only by the provisioning path and the completion form."""
        if profile is None:
            self._replace(profile=None)
            return
        self._replace(
            profile=profile,
            profile_status=ProfileStatus.LOADED,
            profile_fetched_at=self._now(),
            profile_error=None,
        )

    def set_profile_status(
        self,
        status: ProfileStatus,
        error: Optional[str] = None,
    ) -> None:
        """Record progress of the profile load (same writers as ``profile``)."""
        changes: dict[str, object] = {"profile_status": status, "profile_error": error}
        if status in (ProfileStatus.MISSING, ProfileStatus.ERROR):
            changes["profile_fetched_at"] = self._now()
        self._replace(**changes)

    def set_loading(self, loading: bool) -> None:
        """Written only by ``SessionBootstrapper``."""
        if self._state.is_loading == loading:
            return
        self._replace(is_loading=loading)

    def set_has_redirected_to_onboarding(self, value: bool) -> None:
        """Written only by ``OnboardingRouter``."""
        if self._state.has_redirected_to_onboarding == value:
            return
        self._replace(has_redirected_to_onboarding=value)

    def sign_out(self) -> None:
        """Clear identity, profile and the redirect flag atomically."""
        self._replace(
            identity=None,
            profile=None,
            has_redirected_to_onboarding=False,
            profile_status=ProfileStatus.IDLE,
            profile_fetched_at=None,
            profile_error=None,
        )

    def reset(self) -> None:
        """Restore the initial (loading) state; used by a full reload."""
        self._state = SessionState()
        self._notify()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _replace(self, **changes: object) -> None:
        self._state = self._state.model_copy(update=changes)
        self._notify()

    def _notify(self) -> None:
        snapshot = self._state
        # Listeners may unsubscribe (or subscribe others) while we iterate.
        for listener in list(self._listeners):
            if self._state is not snapshot:
                # A listener wrote again; the nested notify already
                # delivered the newer snapshot to everyone.
                return
            try:
                listener(snapshot)
            except Exception as exc:
                self._logger.error(
                    "Session listener %r failed: %s",
                    listener,
                    exc,
                    exc_info=True,
                )
                if self._error_handler is not None:
                    self._error_handler(exc)

    @staticmethod
    def _now() -> Optional[float]:
        try:
            return asyncio.get_running_loop().time()
        except RuntimeError:
            return None
