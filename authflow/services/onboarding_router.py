"""
Onboarding Router.

The single authority for navigation that depends on profile completeness.
While mounted it re-evaluates on every ``SessionStore`` notification:

====================================================  =======================
State                                                 Decision
====================================================  =======================
``is_loading``                                        ``LOADING`` (no-op)
no identity                                           ``LANDING`` (navigate)
no profile yet                                        ``WAITING_FOR_PROFILE``
incomplete, redirect flag unset                       ``ONBOARDING`` (set flag,
                                                      navigate once)
incomplete, flag set, on the onboarding form          ``ONBOARDING``
incomplete, flag set, elsewhere                       ``PROMPT_COMPLETION``
complete                                              ``MAIN_APP`` (leaves the
                                                      onboarding form)
====================================================  =======================

The redirect flag lives in the store, not here, so a remounted router
never redirects a second time in the same sign-in session.  This is the
only writer of ``has_redirected_to_onboarding``.
"""

from __future__ import annotations

from typing import Callable, Optional

from authflow.logger import StructuredLogger
from authflow.models.enums import RouteDecision
from authflow.models.session_state import SessionState
from authflow.routes import LANDING_ROUTE, MAIN_APP_ROUTE, ONBOARDING_ROUTE
from authflow.services.base_service import BaseService
from authflow.session_store import SessionStore
from authflow.ui.navigation import NavigationHost
from authflow.utils.audit import log_audit_event


class OnboardingRouter(BaseService):
    """Reactive routing effect over ``SessionState``."""

    def __init__(
        self,
        store: SessionStore,
        navigator: NavigationHost,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._store = store
        self._navigator = navigator
        self._mounted: bool = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._decision: RouteDecision = RouteDecision.LOADING
        self._evaluating: bool = False
        self._reevaluate: bool = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def mount(self) -> RouteDecision:
        if not self._mounted:
            self._mounted = True
            self._unsubscribe = self._store.subscribe(self._on_state)
        return self.evaluate()

    def unmount(self) -> None:
        self._mounted = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def view(self) -> RouteDecision:
        """What the host should render for the current state."""
        return self._decision

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def evaluate(self) -> RouteDecision:
        """Run the routing effect against the current snapshot.

        A write made while deciding (the redirect flag, a navigation that
        remounts this router) triggers a nested notification; that one is
        folded into another pass of the loop below instead of recursing.
        """
        if not self._mounted:
            return self._decision
        if self._evaluating:
            self._reevaluate = True
            return self._decision

        self._evaluating = True
        try:
            while True:
                self._reevaluate = False
                self._decision = self._decide(self._store.get_state())
                if not (self._reevaluate and self._mounted):
                    break
        finally:
            self._evaluating = False
        return self._decision

    def hand_off_verified_session(self) -> str:
        """Route a freshly verified session; returns the target path.

        Used by the verification callback handler so the landing screen
        never makes its own completeness decision.
        """
        state = self._store.get_state()
        if state.identity is None:
            target = LANDING_ROUTE
        elif state.is_onboarding_complete:
            target = MAIN_APP_ROUTE
        elif not state.has_redirected_to_onboarding:
            self._mark_redirected(state, source="verification")
            target = ONBOARDING_ROUTE
        else:
            # Already sent to onboarding once; the main route shows the prompt.
            target = MAIN_APP_ROUTE

        self._navigator.navigate(target, replace=True)
        return target

    def open_onboarding_form(self) -> None:
        """Manual "complete profile" action offered by ``PROMPT_COMPLETION``."""
        if self._navigator.current_path() != ONBOARDING_ROUTE:
            self._navigator.navigate(ONBOARDING_ROUTE)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _on_state(self, _state: SessionState) -> None:
        self.evaluate()

    def _decide(self, state: SessionState) -> RouteDecision:
        if state.is_loading:
            return RouteDecision.LOADING

        current_path = self._navigator.current_path()

        if state.identity is None:
            if current_path != LANDING_ROUTE:
                self._navigator.navigate(LANDING_ROUTE, replace=True)
            return RouteDecision.LANDING

        if state.profile is None:
            return RouteDecision.WAITING_FOR_PROFILE

        if not state.profile.is_complete:
            if not state.has_redirected_to_onboarding:
                self._mark_redirected(state, source="router")
                if current_path != ONBOARDING_ROUTE:
                    self._navigator.navigate(ONBOARDING_ROUTE, replace=True)
                return RouteDecision.ONBOARDING
            if current_path == ONBOARDING_ROUTE:
                return RouteDecision.ONBOARDING
            return RouteDecision.PROMPT_COMPLETION

        if current_path == ONBOARDING_ROUTE:
            self._navigator.navigate(MAIN_APP_ROUTE, replace=True)
        return RouteDecision.MAIN_APP

    def _mark_redirected(self, state: SessionState, *, source: str) -> None:
        self._store.set_has_redirected_to_onboarding(True)
        user_id = state.identity.id if state.identity else ""
        log_audit_event(
            logger=self._logger,
            action="ONBOARDING_REDIRECT",
            entity_type="Session",
            entity_id=user_id,
            user_id=user_id,
            details={"source": source},
        )
