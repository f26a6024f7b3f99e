"""
Session Services Package.

Contains the session bootstrapper, the profile provisioning path, the
verification callback handler, the onboarding router and the profile
completion form.

The ``create_services()`` factory wires them together around one
``SessionStore`` and one ``TaskRunner``, returning a typed dict that the
shell can consume without knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from authflow.config import AppConfig
from authflow.logger import StructuredLogger, get_logger
from authflow.providers.identity_provider import IdentityProvider
from authflow.repositories.profile_repository import ProfileStore
from authflow.services.onboarding_router import OnboardingRouter
from authflow.services.profile_completion import ProfileCompletionForm
from authflow.services.profile_provisioning import ProfileProvisioningService
from authflow.services.session_bootstrapper import SessionBootstrapper
from authflow.services.verification_callback import VerificationCallbackHandler
from authflow.session_store import SessionStore
from authflow.ui.navigation import NavigationHost
from authflow.utils.tasks import TaskRunner


class ServiceContainer(TypedDict):
    """Typed container for the wired session services."""

    store: SessionStore
    tasks: TaskRunner
    provisioning_service: ProfileProvisioningService
    session_bootstrapper: SessionBootstrapper
    onboarding_router: OnboardingRouter
    verification_callback: VerificationCallbackHandler
    profile_completion_form: ProfileCompletionForm


def create_services(
    provider: IdentityProvider,
    profiles: ProfileStore,
    navigator: NavigationHost,
    config: AppConfig,
    logger: Optional[StructuredLogger] = None,
) -> ServiceContainer:
    """
    Wire the store and every session service together.

    This is the single composition root for the service layer.  The
    entry point calls it once at startup; tests call it with in-memory
    collaborators.

    Args:
        provider: Identity provider port (Supabase Auth in production).
        profiles: Profile store port (Supabase ``profiles`` table).
        navigator: Navigation host the router and handler drive.
        config: Application configuration.
        logger: Shared logger; a ``"services"`` logger when omitted.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = logger or get_logger("services")

    # ------------------------------------------------------------------
    # 1. Shared state
    # ------------------------------------------------------------------
    store = SessionStore(logger=logger)
    tasks = TaskRunner(logger=logger)

    # ------------------------------------------------------------------
    # 2. Leaf services
    # ------------------------------------------------------------------
    provisioning_service = ProfileProvisioningService(
        repo=profiles,
        store=store,
        tasks=tasks,
        config=config,
        logger=logger,
    )
    onboarding_router = OnboardingRouter(
        store=store,
        navigator=navigator,
        logger=logger,
    )

    # ------------------------------------------------------------------
    # 3. Orchestration services
    # ------------------------------------------------------------------
    session_bootstrapper = SessionBootstrapper(
        provider=provider,
        provisioning=provisioning_service,
        store=store,
        tasks=tasks,
        config=config,
        logger=logger,
    )
    verification_callback = VerificationCallbackHandler(
        provider=provider,
        store=store,
        router=onboarding_router,
        navigator=navigator,
        tasks=tasks,
        config=config,
        logger=logger,
    )
    profile_completion_form = ProfileCompletionForm(
        store=store,
        repo=profiles,
        provisioning=provisioning_service,
        tasks=tasks,
        config=config,
        logger=logger,
    )

    logger.info("All session services initialised successfully.")

    return ServiceContainer(
        store=store,
        tasks=tasks,
        provisioning_service=provisioning_service,
        session_bootstrapper=session_bootstrapper,
        onboarding_router=onboarding_router,
        verification_callback=verification_callback,
        profile_completion_form=profile_completion_form,
    )
