"""
Background Task Runner.

Every coroutine the session flow starts in the background (hydration
after a session event, profile loads, the callback poll loop) is created
through ``TaskRunner.spawn`` so that:

- a reference is held until the task finishes;
- an unexpected exception is logged with its traceback and handed to the
  installed error handler (the shell's ``ErrorBoundary``) instead of
  vanishing as "Task exception was never retrieved";
- ``cancel_all()`` can stop everything on shutdown or full reload.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine, Optional

from authflow.logger import StructuredLogger

__all__ = ["TaskRunner"]


class TaskRunner:
    """Owns the background tasks of one running client."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger = logger
        self._tasks: set[asyncio.Task[Any]] = set()
        self._error_handler: Optional[Callable[[BaseException], None]] = None

    def set_error_handler(self, handler: Optional[Callable[[BaseException], None]]) -> None:
        self._error_handler = handler

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        """Schedule *coro* on the running loop and track it."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    async def drain(self) -> None:
        """Wait until every tracked task (including ones spawned meanwhile) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        self._logger.error(
            "Background task %s failed: %s", task.get_name(), exc,
            exc_info=exc,
            extra={"event": "TASK_FAILED", "task": task.get_name()},
        )
        if self._error_handler is not None:
            self._error_handler(exc)
