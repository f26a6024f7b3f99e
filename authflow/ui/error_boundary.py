"""
Error Boundary.

Top-of-tree catch for unexpected failures (a listener raising during a
store notification, a background task dying).  Provider and store errors
are handled where they occur and never get here; whatever does is logged
with its traceback and turns the shell into a fallback view that offers a
full reload.  The user never sees a silent blank screen.
"""

from __future__ import annotations

from typing import Callable, Optional

from authflow.logger import StructuredLogger

FALLBACK_MESSAGE: str = "Something went wrong. Reload the app to continue."


class ErrorBoundary:
    """Records the first unexpected error and triggers the fallback view."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger = logger
        self._error: Optional[BaseException] = None
        self._on_failure: Optional[Callable[[BaseException], None]] = None

    def set_failure_handler(self, handler: Optional[Callable[[BaseException], None]]) -> None:
        self._on_failure = handler

    def capture(self, exc: BaseException) -> None:
        """Handle an unexpected exception (idempotent once tripped)."""
        self._logger.critical(
            "Unhandled error reached the error boundary: %s", exc,
            exc_info=exc,
            extra={"event": "ERROR_BOUNDARY"},
        )
        if self._error is not None:
            return
        self._error = exc
        if self._on_failure is not None:
            self._on_failure(exc)

    def reset(self) -> None:
        self._error = None

    @property
    def has_error(self) -> bool:
        return self._error is not None

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def fallback_message(self) -> Optional[str]:
        return FALLBACK_MESSAGE if self._error is not None else None
