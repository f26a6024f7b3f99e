"""
Profile Completion Form.

Backs the onboarding screen.  On mount it makes sure a profile row exists
(running the retry-protected creation path if the load has not produced
one).  ``submit()`` writes the user's details and publishes the updated
row to the ``SessionStore``.

The form never navigates.  Once the stored profile becomes complete the
``OnboardingRouter`` notices on the same notification and leaves the
onboarding route.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from authflow.config import AppConfig
from authflow.errors import OperationTimeoutError, ProfileNotFoundError, ProfileStoreError
from authflow.logger import StructuredLogger
from authflow.models.auth_models import RETRY_MESSAGE, AuthErrorCode, SubmitResult, classify_error
from authflow.models.enums import ProfileStatus
from authflow.models.identity import Identity
from authflow.models.profile import ProfileUpdate
from authflow.repositories.profile_repository import ProfileStore
from authflow.services.base_service import BaseService
from authflow.services.profile_provisioning import ProfileProvisioningService
from authflow.session_store import SessionStore
from authflow.utils.audit import log_audit_event
from authflow.utils.retry import with_timeout
from authflow.utils.tasks import TaskRunner


class ProfileCompletionForm(BaseService):
    """Onboarding form controller.

    Parameters
    ----------
    store:
        Process-wide session store (reads identity, writes ``profile``).
    repo:
        Profile store used for the update.
    provisioning:
        Creation path for a missing row.
    tasks:
        Runner for the mount-time load.
    config:
        Supplies ``REQUEST_TIMEOUT_S``.
    logger:
        Structured JSON logger.
    """

    def __init__(
        self,
        store: SessionStore,
        repo: ProfileStore,
        provisioning: ProfileProvisioningService,
        tasks: TaskRunner,
        config: AppConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._store = store
        self._repo = repo
        self._provisioning = provisioning
        self._tasks = tasks
        self._config = config
        self._mounted: bool = False
        self._load_task: Optional[asyncio.Task[Any]] = None
        self.submitting: bool = False

    def mount(self) -> None:
        if self._mounted:
            return
        self._mounted = True

        state = self._store.get_state()
        if state.identity is None or state.profile is not None:
            return
        if state.profile_status == ProfileStatus.FETCHING:
            # A load is already running; its creation path covers us.
            return
        self._logger.info(
            "No profile on the onboarding form for %s; running creation path.",
            state.identity.id,
        )
        self._load_task = self._tasks.spawn(
            self._provisioning.load_profile(state.identity),
            name=f"onboarding-profile:{state.identity.id}",
        )

    def unmount(self) -> None:
        self._mounted = False
        if self._load_task is not None and not self._load_task.done():
            # Only the wait is cancelled; the shared load keeps running.
            self._load_task.cancel()
        self._load_task = None

    @property
    def mounted(self) -> bool:
        return self._mounted

    async def submit(self, update: ProfileUpdate) -> SubmitResult:
        """Persist *update* and publish the updated profile.

        Returns a ``SubmitResult``; store failures never raise.
        """
        state = self._store.get_state()
        identity = state.identity
        if identity is None:
            return SubmitResult(
                success=False,
                error_code=AuthErrorCode.NOT_AUTHENTICATED,
                error_message="Your session has ended. Please sign in again.",
            )
        if update.display_name is None:
            return SubmitResult(
                success=False,
                error_code=AuthErrorCode.VALIDATION_ERROR,
                error_message="Please enter your name.",
            )
        if self.submitting:
            return SubmitResult(
                success=False,
                error_code=AuthErrorCode.SUBMIT_IN_PROGRESS,
                error_message="Your details are already being saved.",
            )

        self.submitting = True
        try:
            return await self._persist(identity, state.profile is None, update)
        finally:
            self.submitting = False

    async def _persist(
        self,
        identity: Identity,
        needs_row: bool,
        update: ProfileUpdate,
    ) -> SubmitResult:
        if needs_row:
            provisioned = await self._provisioning.ensure_profile(identity)
            if not provisioned.success:
                return SubmitResult(
                    success=False,
                    error_code=provisioned.error_code,
                    error_message=provisioned.error_message,
                )

        try:
            updated = await with_timeout(
                self._repo.update(identity.id, update),
                self._config.REQUEST_TIMEOUT_S,
                operation="profile update",
            )
        except ProfileNotFoundError as exc:
            self._logger.error("Profile row for %s vanished: %s", identity.id, exc)
            return SubmitResult(
                success=False,
                error_code=AuthErrorCode.PROFILE_UNAVAILABLE,
                error_message=RETRY_MESSAGE,
            )
        except (ProfileStoreError, OperationTimeoutError) as exc:
            error_code, message = classify_error(exc)
            self._logger.warning("Profile update for %s failed: %s", identity.id, exc)
            return SubmitResult(success=False, error_code=error_code, error_message=message)

        current = self._store.get_state().identity
        if current is not None and current.id == identity.id:
            self._store.set_profile(updated)

        log_audit_event(
            logger=self._logger,
            action="PROFILE_COMPLETED",
            entity_type="Profile",
            entity_id=updated.id,
            user_id=identity.id,
            details={"fields": ",".join(sorted(update.to_payload()))},
        )
        return SubmitResult(success=True, profile=updated)
