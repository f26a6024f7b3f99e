"""
Profile Provisioning Service.

Loads the profile row for the signed-in identity into the ``SessionStore``
and, when the row does not exist, creates it through a retry-protected
path.

Creation strategy:
    - Insert a placeholder row (``display_name=None``) with the role the
      user picked at sign-up, or ``DEFAULT_PROFILE_ROLE``.
    - A uniqueness violation means a concurrent writer (a server-side
      trigger, another tab) created the row first.  That is the expected
      outcome of a lost race: fetch the existing row and succeed.
    - Any other store error or timeout is retried with exponential
      backoff; after the last attempt the failure is surfaced to the user
      with a "please retry" message.  Nothing is left half-created.
    - Concurrent calls for the same identity share one in-flight attempt.

When the deployment has a server-side auto-create trigger
(``PROFILE_AUTO_CREATE_TRIGGER``) a missing row is re-fetched once after
``PROFILE_TRIGGER_GRACE_S`` before the client inserts.  The insert path
stays armed either way.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from authflow.config import AppConfig
from authflow.errors import (
    OperationTimeoutError,
    ProfileConflictError,
    ProfileNotFoundError,
    ProfileProvisioningError,
    ProfileStoreError,
)
from authflow.logger import StructuredLogger
from authflow.models.auth_models import RETRY_MESSAGE, ProvisioningResult, classify_error
from authflow.models.enums import ProfileStatus, ProvisioningOutcome
from authflow.models.identity import Identity
from authflow.models.profile import ProfileRecord
from authflow.repositories.profile_repository import ProfileStore
from authflow.services.base_service import BaseService
from authflow.session_store import SessionStore
from authflow.utils.audit import log_audit_event
from authflow.utils.retry import backoff_delays, with_timeout
from authflow.utils.tasks import TaskRunner

# Errors that are worth another attempt.
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (ProfileStoreError, OperationTimeoutError)


class ProfileProvisioningService(BaseService):
    """Fetches or creates the profile row and publishes it to the store.

    Only writes ``profile`` / ``profile_status`` while the identity it
    worked for is still the store's current identity; results for a user
    who signed out (or was replaced) in the meantime are dropped.

    Fetches and inserts run as ``TaskRunner`` tasks, so a shell teardown
    cancels the retry loops along with everything else.
    """

    def __init__(
        self,
        repo: ProfileStore,
        store: SessionStore,
        tasks: TaskRunner,
        config: AppConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._store = store
        self._tasks = tasks
        self._config = config
        self._loads: dict[str, asyncio.Task[Optional[ProfileRecord]]] = {}
        self._creations: dict[str, asyncio.Task[ProvisioningResult]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load_profile(
        self,
        identity: Identity,
        force: bool = False,
    ) -> Optional[ProfileRecord]:
        """Fetch the identity's profile, creating it when missing.

        Concurrent calls for the same identity await the same load unless
        *force* is set.

        Returns
        -------
        The profile, or ``None`` when it could not be loaded or created
        (the store then carries ``profile_status=ERROR``).
        """
        task = self._loads.get(identity.id)
        if task is None or task.done() or force:
            task = self._tasks.spawn(self._load(identity), name=f"profile-fetch:{identity.id}")
            self._loads[identity.id] = task
            task.add_done_callback(lambda t, key=identity.id: self._forget(self._loads, key, t))
        return await asyncio.shield(task)

    async def refresh_profile(self, identity: Identity) -> Optional[ProfileRecord]:
        """Drop the cached view and refetch (e.g. after an external edit)."""
        self._logger.debug("Profile refresh requested for %s", identity.id)
        return await self.load_profile(identity, force=True)

    async def ensure_profile(self, identity: Identity) -> ProvisioningResult:
        """Run the retry-protected creation path for *identity*.

        Never raises for store errors: the outcome is reported in the
        returned ``ProvisioningResult`` and mirrored into the store.
        """
        task = self._creations.get(identity.id)
        if task is None or task.done():
            task = self._tasks.spawn(
                self._provision(identity), name=f"profile-create:{identity.id}",
            )
            self._creations[identity.id] = task
            task.add_done_callback(
                lambda t, key=identity.id: self._forget(self._creations, key, t)
            )
        return await asyncio.shield(task)

    # ------------------------------------------------------------------
    # Private implementation
    # ------------------------------------------------------------------

    async def _load(self, identity: Identity) -> Optional[ProfileRecord]:
        if self._is_current(identity):
            self._store.set_profile_status(ProfileStatus.FETCHING)

        try:
            profile = await self._fetch(identity)
        except TRANSIENT_ERRORS as exc:
            _code, message = classify_error(exc)
            self._logger.error(
                "Profile fetch for %s failed after retries: %s", identity.id, exc,
                extra={"event": "PROFILE_FETCH_FAILED", "user_id": identity.id},
            )
            if self._is_current(identity):
                self._store.set_profile_status(ProfileStatus.ERROR, message)
            return None

        if profile is None and self._config.PROFILE_AUTO_CREATE_TRIGGER:
            # Give the server-side trigger a chance before racing it.
            await asyncio.sleep(self._config.PROFILE_TRIGGER_GRACE_S)
            try:
                profile = await self._fetch(identity)
            except TRANSIENT_ERRORS as exc:
                self._logger.warning(
                    "Re-fetch after trigger grace failed for %s: %s", identity.id, exc,
                )

        if profile is not None:
            self._publish(identity, profile)
            return profile

        if self._is_current(identity):
            self._store.set_profile_status(ProfileStatus.MISSING)
        result = await self.ensure_profile(identity)
        return result.profile

    async def _fetch(self, identity: Identity) -> Optional[ProfileRecord]:
        """Fetch the row, retrying transient errors.  ``None`` when absent."""
        delays = backoff_delays(
            self._config.PROFILE_RETRY_BASE_DELAY_S,
            self._config.PROFILE_RETRY_MAX_DELAY_S,
            self._config.PROFILE_CREATE_MAX_ATTEMPTS,
        )
        while True:
            try:
                return await with_timeout(
                    self._repo.get_by_id(identity.id),
                    self._config.REQUEST_TIMEOUT_S,
                    operation="profile fetch",
                )
            except ProfileNotFoundError:
                return None
            except TRANSIENT_ERRORS as exc:
                delay = next(delays, None)
                if delay is None:
                    raise
                self._logger.warning(
                    "Profile fetch failed (%s); retrying in %.1fs", exc, delay,
                )
                await asyncio.sleep(delay)

    async def _provision(self, identity: Identity) -> ProvisioningResult:
        try:
            return await self._create_with_retry(identity)
        except Exception as exc:
            self._logger.error(
                "Unexpected error provisioning profile for %s: %s",
                identity.id,
                exc,
                exc_info=True,
            )
            raise ProfileProvisioningError(
                f"Unexpected error during profile provisioning: {exc}",
                original_error=exc,
            ) from exc

    async def _create_with_retry(self, identity: Identity) -> ProvisioningResult:
        placeholder = ProfileRecord(
            id=identity.id,
            email=identity.email,
            role=identity.role_hint or self._config.DEFAULT_PROFILE_ROLE,
            display_name=None,
        )
        delays = backoff_delays(
            self._config.PROFILE_RETRY_BASE_DELAY_S,
            self._config.PROFILE_RETRY_MAX_DELAY_S,
            self._config.PROFILE_CREATE_MAX_ATTEMPTS,
        )
        last_error: Optional[Exception] = None

        for attempt in range(1, self._config.PROFILE_CREATE_MAX_ATTEMPTS + 1):
            try:
                created = await with_timeout(
                    self._repo.insert(placeholder),
                    self._config.REQUEST_TIMEOUT_S,
                    operation="profile insert",
                )
            except ProfileConflictError:
                existing = await self._fetch_after_conflict(identity)
                if existing is not None:
                    return self._succeed(
                        identity, existing, ProvisioningOutcome.FETCHED_EXISTING, attempt,
                    )
                last_error = ProfileStoreError("profile row exists but could not be read")
            except TRANSIENT_ERRORS as exc:
                last_error = exc
                self._logger.warning(
                    "Profile insert attempt %d/%d for %s failed: %s",
                    attempt,
                    self._config.PROFILE_CREATE_MAX_ATTEMPTS,
                    identity.id,
                    exc,
                )
            else:
                return self._succeed(identity, created, ProvisioningOutcome.CREATED, attempt)

            delay = next(delays, None)
            if delay is None:
                break
            await asyncio.sleep(delay)

        return self._fail(identity, last_error)

    async def _fetch_after_conflict(self, identity: Identity) -> Optional[ProfileRecord]:
        self._logger.info(
            "Profile for %s already exists (concurrent creation); fetching it.", identity.id,
        )
        try:
            return await with_timeout(
                self._repo.get_by_id(identity.id),
                self._config.REQUEST_TIMEOUT_S,
                operation="profile fetch",
            )
        except TRANSIENT_ERRORS as exc:
            self._logger.warning(
                "Could not read existing profile for %s: %s", identity.id, exc,
            )
            return None

    def _succeed(
        self,
        identity: Identity,
        profile: ProfileRecord,
        outcome: ProvisioningOutcome,
        attempts: int,
    ) -> ProvisioningResult:
        action = "PROFILE_CREATE" if outcome == ProvisioningOutcome.CREATED else "PROFILE_RACE_RESOLVED"
        log_audit_event(
            logger=self._logger,
            action=action,
            entity_type="Profile",
            entity_id=profile.id,
            user_id=identity.id,
            details={"role": str(profile.role), "attempts": attempts},
        )
        self._publish(identity, profile)
        return ProvisioningResult(outcome=outcome, profile=profile, attempts=attempts)

    def _fail(self, identity: Identity, error: Optional[Exception]) -> ProvisioningResult:
        error_code, _message = classify_error(error or ProfileStoreError("unknown"))
        self._logger.error(
            "Profile creation for %s failed after %d attempts: %s",
            identity.id,
            self._config.PROFILE_CREATE_MAX_ATTEMPTS,
            error,
            extra={"event": "PROFILE_CREATE_FAILED", "user_id": identity.id},
        )
        log_audit_event(
            logger=self._logger,
            action="PROFILE_CREATE_FAILED",
            entity_type="Profile",
            entity_id=identity.id,
            user_id=identity.id,
            details={"error_code": str(error_code)},
        )
        if self._is_current(identity):
            self._store.set_profile_status(ProfileStatus.ERROR, RETRY_MESSAGE)
        return ProvisioningResult(
            outcome=ProvisioningOutcome.FAILED,
            attempts=self._config.PROFILE_CREATE_MAX_ATTEMPTS,
            error_code=error_code,
            error_message=RETRY_MESSAGE,
        )

    def _publish(self, identity: Identity, profile: ProfileRecord) -> None:
        if self._is_current(identity):
            self._store.set_profile(profile)
        else:
            self._logger.debug("Discarding profile for non-current identity %s", identity.id)

    def _is_current(self, identity: Identity) -> bool:
        current = self._store.get_state().identity
        return current is not None and current.id == identity.id

    @staticmethod
    def _forget(registry: dict[str, asyncio.Task], key: str, task: asyncio.Task) -> None:
        if registry.get(key) is task:
            del registry[key]
