"""
Verification Callback Handler.

Runs on the verification-landing route after the user clicks the link in
their email.  The provider's credential exchange is asynchronous and not
immediately observable, so the handler:

1. checks the landing URL for a provider error (expired / consumed link);
2. checks for a session once, then polls ``get_current_session()`` every
   ``SESSION_POLL_INTERVAL_S`` up to ``SESSION_POLL_ATTEMPTS`` times;
3. once a session is seen, polls the *store* (not the provider) for up to
   ``PROFILE_WAIT_S`` for the profile to arrive;
4. hands routing to ``OnboardingRouter.hand_off_verified_session()``.

States::

    polling -> session_found -> awaiting_profile -> redirected
    polling -> timed_out
    (entry) -> link_rejected

The handler never performs a credential exchange itself; the transport
already did (or is doing) one, and a second exchange of the same code
fails with "link already used".

``unmount()`` cancels the running task and every state mutation checks
the mounted flag first, so nothing fires after the screen is gone.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from authflow.config import AppConfig
from authflow.errors import IdentityProviderError, OperationTimeoutError
from authflow.logger import StructuredLogger
from authflow.models.auth_models import SUPABASE_ERROR_MAP, AuthErrorCode, ResendResult, classify_error
from authflow.models.enums import CallbackState, ProfileStatus
from authflow.models.identity import AuthSession
from authflow.providers.identity_provider import IdentityProvider
from authflow.routes import url_error
from authflow.services.base_service import BaseService
from authflow.services.onboarding_router import OnboardingRouter
from authflow.session_store import SessionStore
from authflow.ui.navigation import NavigationHost
from authflow.utils.retry import with_timeout
from authflow.utils.tasks import TaskRunner

STATUS_VERIFYING: str = "Verifying your email..."
STATUS_STILL_VERIFYING: str = "Still verifying... ({elapsed_ms}ms)"
STATUS_SESSION_FOUND: str = "Session verified! Finalizing your account..."
STATUS_AWAITING_PROFILE: str = "Loading your profile..."
STATUS_REDIRECTING: str = "Redirecting..."

ERROR_TIMED_OUT: str = (
    "We couldn't confirm your verification. Please try again or request a new link."
)
ERROR_LINK_REJECTED: str = (
    "Verification link expired or already used. Please request a new one."
)


class VerificationCallbackHandler(BaseService):
    """State machine behind the verification-landing screen.

    Parameters
    ----------
    provider:
        Identity provider, polled for the session.
    store:
        Session store, polled for the profile.
    router:
        Makes the completeness-based routing decision at the end.
    navigator:
        Supplies the landing URL (for provider error parameters).
    tasks:
        Runner owning the poll task.
    config:
        Poll interval / attempts and profile-wait bounds.
    logger:
        Structured JSON logger.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        store: SessionStore,
        router: OnboardingRouter,
        navigator: NavigationHost,
        tasks: TaskRunner,
        config: AppConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._provider = provider
        self._store = store
        self._router = router
        self._navigator = navigator
        self._tasks = tasks
        self._config = config

        self._mounted: bool = False
        self._task: Optional[asyncio.Task[Any]] = None
        self._timeline: dict[str, float] = {}

        self.state: CallbackState = CallbackState.IDLE
        self.status_message: str = ""
        self.error_message: Optional[str] = None
        self.error_code: Optional[AuthErrorCode] = None
        self.session_polls: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def mount(self) -> None:
        if self._mounted:
            return
        self._mounted = True
        self._timeline = {"mounted_at": self._loop_time()}
        self.session_polls = 0
        self.error_message = None
        self.error_code = None

        provider_error = url_error(self._navigator.current_url())
        if provider_error is not None:
            self._reject_link(provider_error)
            return
        self._start()

    def unmount(self) -> None:
        self._mounted = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def timeline(self) -> dict[str, float]:
        return dict(self._timeline)

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def retry(self) -> bool:
        """Restart polling after a timeout.  Returns ``False`` when not applicable."""
        if not self._mounted or self.state != CallbackState.TIMED_OUT:
            return False
        self._logger.info("Verification retry requested.")
        self.error_message = None
        self.error_code = None
        self.session_polls = 0
        self._start()
        return True

    async def request_new_link(self, email: str) -> ResendResult:
        """Ask the provider to send a fresh verification link."""
        email = email.strip()
        if not email:
            return ResendResult(
                success=False,
                error_code=AuthErrorCode.VALIDATION_ERROR,
                error_message="Please enter the email you signed up with.",
            )
        try:
            await with_timeout(
                self._provider.resend_verification(email),
                self._config.REQUEST_TIMEOUT_S,
                operation="resend_verification",
            )
        except (IdentityProviderError, OperationTimeoutError) as exc:
            error_code, message = classify_error(exc)
            self._logger.warning("Verification resend failed: %s", exc)
            return ResendResult(success=False, error_code=error_code, error_message=message)
        return ResendResult(success=True)

    # ------------------------------------------------------------------
    # Poll loop
    # ------------------------------------------------------------------

    def _start(self) -> None:
        self._set_state(CallbackState.POLLING, STATUS_VERIFYING)
        self._task = self._tasks.spawn(self._run(), name="verification-callback")

    async def _run(self) -> None:
        session = await self._wait_for_session()
        if not self._mounted:
            return
        if session is None:
            self.error_code = AuthErrorCode.TIMEOUT_ERROR
            self.error_message = ERROR_TIMED_OUT
            self._set_state(CallbackState.TIMED_OUT, "")
            self._logger.warning(
                "No session after %d polls.", self.session_polls,
                extra={"event": "CALLBACK_TIMED_OUT"},
            )
            return

        self._timeline["session_detected_at"] = self._loop_time()
        self._set_state(CallbackState.SESSION_FOUND, STATUS_SESSION_FOUND)

        self._set_state(CallbackState.AWAITING_PROFILE, STATUS_AWAITING_PROFILE)
        await self._wait_for_profile()
        if not self._mounted:
            return
        self._timeline["profile_resolved_at"] = self._loop_time()

        self._set_state(CallbackState.REDIRECTED, STATUS_REDIRECTING)
        self._timeline["navigated_at"] = self._loop_time()
        self._log_timeline()
        # Navigation unmounts this handler; nothing may follow it.
        self._router.hand_off_verified_session()

    async def _wait_for_session(self) -> Optional[AuthSession]:
        # Immediate check: a second click on an already-used link lands
        # here with the session in place and skips the poll loop.
        session = await self._query_session()
        while session is None and self.session_polls < self._config.SESSION_POLL_ATTEMPTS:
            if not self._mounted:
                return None
            await asyncio.sleep(self._config.SESSION_POLL_INTERVAL_S)
            if not self._mounted:
                return None
            self.session_polls += 1
            elapsed_ms = int(self.session_polls * self._config.SESSION_POLL_INTERVAL_S * 1000)
            self._set_state(
                CallbackState.POLLING,
                STATUS_STILL_VERIFYING.format(elapsed_ms=elapsed_ms),
            )
            session = await self._query_session()
        return session

    async def _query_session(self) -> Optional[AuthSession]:
        try:
            return await with_timeout(
                self._provider.get_current_session(),
                self._config.REQUEST_TIMEOUT_S,
                operation="get_current_session",
            )
        except (IdentityProviderError, OperationTimeoutError) as exc:
            self._logger.debug("Session query failed during verification: %s", exc)
            return None

    async def _wait_for_profile(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.PROFILE_WAIT_S
        while True:
            state = self._store.get_state()
            if state.profile is not None:
                return
            if state.identity is not None and state.profile_status == ProfileStatus.ERROR:
                # The creation path already gave up; the onboarding form
                # offers the retry.
                return
            if loop.time() >= deadline:
                self._logger.info(
                    "Profile not available after %.1fs; handing off anyway.",
                    self._config.PROFILE_WAIT_S,
                )
                return
            await asyncio.sleep(self._config.PROFILE_POLL_INTERVAL_S)
            if not self._mounted:
                return

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _reject_link(self, provider_error: str) -> None:
        error_code, message = SUPABASE_ERROR_MAP.get(
            provider_error.lower(),
            (AuthErrorCode.LINK_EXPIRED, ERROR_LINK_REJECTED),
        )
        self.error_code = error_code
        self.error_message = message
        self._set_state(CallbackState.LINK_REJECTED, "")
        self._logger.warning(
            "Verification link rejected by provider: %s", provider_error,
            extra={"event": "CALLBACK_LINK_REJECTED"},
        )

    def _set_state(self, state: CallbackState, status_message: str) -> None:
        if not self._mounted:
            return
        self.state = state
        self.status_message = status_message

    def _log_timeline(self) -> None:
        start = self._timeline.get("mounted_at", 0.0)
        self._logger.info(
            "Verification completed.",
            extra={
                "event": "CALLBACK_TIMELINE",
                **{key: round((value - start) * 1000) for key, value in self._timeline.items()},
            },
        )

    @staticmethod
    def _loop_time() -> float:
        return asyncio.get_running_loop().time()
