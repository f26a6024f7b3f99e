"""
Navigation Host.

``NavigationHost`` is the port the session flow navigates through.
``HistoryNavigator`` keeps an in-process history stack with
replace-semantics, the way a browser router does, and notifies the
``AppShell`` after every change so it can remount route components.
"""

from __future__ import annotations

from typing import Callable, Protocol

from authflow.logger import StructuredLogger
from authflow.routes import LANDING_ROUTE, path_of

RouteListener = Callable[[str], None]


class NavigationHost(Protocol):
    """Port interface for imperative navigation."""

    def navigate(self, path: str, *, replace: bool = False) -> None:
        """Go to *path*; with ``replace`` the current history entry is overwritten."""
        ...

    def current_path(self) -> str:
        """Path of the current entry (no query / fragment)."""
        ...

    def current_url(self) -> str:
        """Full current entry including query and fragment."""
        ...

    def subscribe(self, listener: RouteListener) -> Callable[[], None]:
        """Call *listener* with the new path after every navigation."""
        ...


class HistoryNavigator:
    """In-process history stack implementing ``NavigationHost``.

    Parameters
    ----------
    logger:
        Structured logger for navigation events.
    initial_url:
        Entry the process was opened on (e.g. the verification link).
    """

    def __init__(self, logger: StructuredLogger, initial_url: str = LANDING_ROUTE) -> None:
        self._logger = logger
        self._entries: list[str] = [initial_url]
        self._listeners: list[RouteListener] = []

    # ------------------------------------------------------------------
    # NavigationHost
    # ------------------------------------------------------------------

    def navigate(self, path: str, *, replace: bool = False) -> None:
        if replace:
            self._entries[-1] = path
        else:
            self._entries.append(path)

        self._logger.info(
            "Navigated to %s", path,
            extra={"event": "NAVIGATE", "path": path, "replace": replace},
        )
        new_path = path_of(path)
        for listener in list(self._listeners):
            listener(new_path)

    def current_path(self) -> str:
        return path_of(self._entries[-1])

    def current_url(self) -> str:
        return self._entries[-1]

    def subscribe(self, listener: RouteListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def history(self) -> tuple[str, ...]:
        """Snapshot of the history stack, oldest first."""
        return tuple(self._entries)

    def back(self) -> None:
        """Pop the current entry (no-op on the first one)."""
        if len(self._entries) > 1:
            self._entries.pop()
            new_path = self.current_path()
            for listener in list(self._listeners):
                listener(new_path)
