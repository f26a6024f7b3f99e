"""Application Host Shell.

The headless composition host that orchestrates the client lifecycle:
boot → route-driven mounting of the session components → reload / shutdown.

All dependencies are injected via the constructor.  The shell contains
no business logic; it decides only *which* components are mounted for the
current route:

========================  ==============================================
Route                     Mounted components
========================  ==============================================
verification landing      ``VerificationCallbackHandler``
onboarding form           ``OnboardingRouter`` + ``ProfileCompletionForm``
any other protected path  ``OnboardingRouter``
other public paths        nothing
========================  ==============================================

Every route change unmounts the previous components before mounting the
next ones, the way a router remounts route elements.
"""

from __future__ import annotations

from typing import Callable, Optional, Protocol

from authflow.config import AppConfig
from authflow.errors import IdentityProviderError, OperationTimeoutError
from authflow.logger import StructuredLogger
from authflow.providers.identity_provider import IdentityProvider
from authflow.routes import ONBOARDING_ROUTE, VERIFICATION_CALLBACK_ROUTE, is_public_route
from authflow.services import ServiceContainer
from authflow.ui.error_boundary import ErrorBoundary
from authflow.ui.navigation import NavigationHost
from authflow.utils.retry import with_timeout


class Mountable(Protocol):
    def mount(self) -> object: ...

    def unmount(self) -> None: ...


class AppShell:
    """Host Shell: boots the session flow and mounts route components.

    Lifecycle
    ---------
    1. ``boot()``: wire the error boundary, complete a pending verification
       redirect, mount the current route, start the session bootstrapper.
    2. Route changes: unmount the previous components, mount the new ones.
    3. Unexpected error: unmount everything and show the fallback view.
    4. ``reload()``: tear down, reset the store, boot again.
    5. ``shutdown()``: tear down and cancel background work.

    Parameters
    ----------
    config:
        Application configuration.
    services:
        Fully-wired service container.
    provider:
        Identity provider (for the transport-level redirect exchange).
    navigator:
        Navigation host whose route changes drive mounting.
    logger:
        Structured logger instance.
    error_boundary:
        Fallback handler; one is created when omitted.
    """

    def __init__(
        self,
        config: AppConfig,
        services: ServiceContainer,
        provider: IdentityProvider,
        navigator: NavigationHost,
        logger: StructuredLogger,
        error_boundary: Optional[ErrorBoundary] = None,
    ) -> None:
        self._config = config
        self._services = services
        self._provider = provider
        self._navigator = navigator
        self._logger = logger
        self._boundary = error_boundary or ErrorBoundary(logger)

        self._booted: bool = False
        self._route_unsubscribe: Optional[Callable[[], None]] = None
        self._mounted: list[Mountable] = []
        self._route_generation: int = 0

    # ==================================================================
    # Lifecycle
    # ==================================================================

    async def boot(self) -> None:
        """Start the session flow for the current URL.  Idempotent."""
        if self._booted:
            return
        self._booted = True

        self._boundary.set_failure_handler(self._show_fallback)
        self._services["store"].set_error_handler(self._boundary.capture)
        self._services["tasks"].set_error_handler(self._boundary.capture)

        if self._navigator.current_path() == VERIFICATION_CALLBACK_ROUTE:
            self._services["tasks"].spawn(
                self._complete_redirect(self._navigator.current_url()),
                name="redirect-exchange",
            )

        self._route_unsubscribe = self._navigator.subscribe(self._on_route_change)
        self._mount_route(self._navigator.current_path())

        await self._services["session_bootstrapper"].start()
        self._logger.info("Application shell booted.", extra={"event": "SHELL_BOOTED"})

    async def reload(self) -> None:
        """Full reload: tear everything down, reset the store, boot again."""
        self._logger.info("Reloading application.", extra={"event": "SHELL_RELOAD"})
        self._teardown()
        self._services["store"].reset()
        self._boundary.reset()
        await self.boot()

    async def shutdown(self) -> None:
        """Stop the session flow and wait for background work to finish."""
        self._teardown()
        await self._services["tasks"].drain()
        self._logger.info("Application shell stopped.", extra={"event": "SHELL_STOPPED"})

    # ==================================================================
    # Introspection
    # ==================================================================

    @property
    def showing_fallback(self) -> bool:
        return self._boundary.has_error

    @property
    def error_boundary(self) -> ErrorBoundary:
        return self._boundary

    @property
    def mounted_components(self) -> tuple[Mountable, ...]:
        return tuple(self._mounted)

    # ==================================================================
    # Route mounting
    # ==================================================================

    def _on_route_change(self, path: str) -> None:
        if self._boundary.has_error:
            return
        self._mount_route(path)

    def _components_for(self, path: str) -> list[Mountable]:
        if path == VERIFICATION_CALLBACK_ROUTE:
            return [self._services["verification_callback"]]
        if path == ONBOARDING_ROUTE:
            return [
                self._services["onboarding_router"],
                self._services["profile_completion_form"],
            ]
        if is_public_route(path):
            return []
        return [self._services["onboarding_router"]]

    def _mount_route(self, path: str) -> None:
        self._route_generation += 1
        generation = self._route_generation
        self._unmount_all()

        for component in self._components_for(path):
            # Tracked before mount() so a navigation made while mounting
            # unmounts it along with the rest.
            self._mounted.append(component)
            component.mount()
            if generation != self._route_generation:
                return

    def _unmount_all(self) -> None:
        while self._mounted:
            self._mounted.pop().unmount()

    # ==================================================================
    # Private helpers
    # ==================================================================

    async def _complete_redirect(self, url: str) -> None:
        try:
            await with_timeout(
                self._provider.complete_redirect(url),
                self._config.REQUEST_TIMEOUT_S,
                operation="complete_redirect",
            )
        except (IdentityProviderError, OperationTimeoutError) as exc:
            # The callback screen times out and offers a new link.
            self._logger.warning("Verification redirect exchange failed: %s", exc)

    def _show_fallback(self, _exc: BaseException) -> None:
        self._logger.error(
            "Switching to fallback view.", extra={"event": "SHELL_FALLBACK"},
        )
        self._unmount_all()

    def _teardown(self) -> None:
        self._unmount_all()
        if self._route_unsubscribe is not None:
            self._route_unsubscribe()
            self._route_unsubscribe = None
        self._services["session_bootstrapper"].stop()
        self._services["tasks"].cancel_all()
        self._booted = False
