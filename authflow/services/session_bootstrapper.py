"""
Session Bootstrapper.

Hydrates the ``SessionStore`` from the identity provider on startup and on
every session-change notification, and kicks off the profile load.

Invariant: at most one change subscription to the identity provider
exists for the whole application, and this class owns it.  ``start()`` is
latched with a boolean so a repeated start (a second ``boot()``, a test
harness calling it twice) is a no-op rather than a second subscription.

This is the only writer of ``identity`` and ``is_loading``.
"""

from __future__ import annotations

from typing import Optional

from authflow.config import AppConfig
from authflow.errors import IdentityProviderError, OperationTimeoutError
from authflow.logger import StructuredLogger
from authflow.models.enums import ProfileStatus, SessionEvent
from authflow.models.identity import AuthSession
from authflow.providers.identity_provider import IdentityProvider, Subscription
from authflow.services.base_service import BaseService
from authflow.services.profile_provisioning import ProfileProvisioningService
from authflow.session_store import SessionStore
from authflow.utils.retry import with_timeout
from authflow.utils.tasks import TaskRunner


class SessionBootstrapper(BaseService):
    """Owns the single provider subscription and the identity field.

    Parameters
    ----------
    provider:
        Identity provider port.
    provisioning:
        Loads (and if needed creates) the profile for a hydrated identity.
    store:
        Process-wide session store.
    tasks:
        Runner for the background profile loads.
    config:
        Supplies ``REQUEST_TIMEOUT_S``.
    logger:
        Structured JSON logger.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        provisioning: ProfileProvisioningService,
        store: SessionStore,
        tasks: TaskRunner,
        config: AppConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._provider = provider
        self._provisioning = provisioning
        self._store = store
        self._tasks = tasks
        self._config = config
        self._started: bool = False
        self._subscription: Optional[Subscription] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Hydrate from the current session and subscribe to changes.

        Safe to call repeatedly; only the first call does anything until
        ``stop()`` re-arms the latch.
        """
        if self._started:
            self._logger.debug("Session bootstrapper already started; ignoring.")
            return
        self._started = True

        # Subscribe before the first await so no change slips between the
        # initial query and the subscription.
        self._subscription = self._provider.on_session_change(self._on_session_change)
        self._logger.info(
            "Subscribed to session changes.",
            extra={"event": "SESSION_SUBSCRIBED"},
        )

        session: Optional[AuthSession] = None
        try:
            session = await with_timeout(
                self._provider.get_current_session(),
                self._config.REQUEST_TIMEOUT_S,
                operation="get_current_session",
            )
        except (IdentityProviderError, OperationTimeoutError) as exc:
            self._logger.warning(
                "Initial session query failed; starting signed out: %s", exc,
            )

        if self._started:
            self._hydrate(session, SessionEvent.INITIAL_SESSION)
            self._store.set_loading(False)

    def stop(self) -> None:
        """Drop the subscription and re-arm the start latch."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
            self._logger.info(
                "Unsubscribed from session changes.",
                extra={"event": "SESSION_UNSUBSCRIBED"},
            )
        self._started = False

    async def sign_out(self) -> None:
        """Revoke the provider session, then clear the store.

        The store is cleared even when the provider call fails: a local
        sign-out must always take effect.
        """
        try:
            await with_timeout(
                self._provider.sign_out(),
                self._config.REQUEST_TIMEOUT_S,
                operation="sign_out",
            )
        except (IdentityProviderError, OperationTimeoutError) as exc:
            self._logger.warning("Provider sign-out failed: %s", exc)
        self._store.sign_out()
        self._logger.info("Signed out.", extra={"event": "SIGNED_OUT"})

    @property
    def active_subscriptions(self) -> int:
        """Number of live provider subscriptions held (0 or 1)."""
        return 0 if self._subscription is None else 1

    @property
    def started(self) -> bool:
        return self._started

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _on_session_change(self, event: str, session: Optional[AuthSession]) -> None:
        if not self._started:
            return
        self._logger.debug("Session event %s", event, extra={"event": "SESSION_EVENT", "kind": event})
        self._hydrate(session, event)

    def _hydrate(self, session: Optional[AuthSession], event: str) -> None:
        if session is None:
            if self._store.get_state().identity is not None:
                self._store.sign_out()
                self._logger.info(
                    "Session ended (%s); store cleared.", event,
                    extra={"event": "SESSION_CLEARED"},
                )
            return

        identity = session.identity
        self._store.set_identity(identity)
        self._logger.info(
            "Session hydrated for %s (%s).", identity.id, event,
            extra={"event": "SESSION_HYDRATED", "user_id": identity.id},
        )

        state = self._store.get_state()
        if state.profile is not None and state.profile.id == identity.id:
            return
        if state.profile_status == ProfileStatus.FETCHING:
            return
        self._tasks.spawn(
            self._provisioning.load_profile(identity),
            name=f"profile-load:{identity.id}",
        )
