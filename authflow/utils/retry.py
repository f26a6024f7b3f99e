"""Bounded waits and exponential backoff for provider / store calls."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Iterator, TypeVar

from authflow.errors import OperationTimeoutError

__all__ = ["backoff_delays", "with_timeout"]

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], timeout_s: float, *, operation: str) -> T:
    """Await *awaitable* for at most *timeout_s* seconds.

    Raises:
        OperationTimeoutError: If the bound is exceeded.  The pending call
            is cancelled first.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_s)
    except asyncio.TimeoutError as exc:
        raise OperationTimeoutError(
            f"{operation} timed out after {timeout_s:g}s",
            original_error=exc,
        ) from exc


def backoff_delays(base_s: float, max_s: float, attempts: int) -> Iterator[float]:
    """Yield the wait before each retry: ``base, 2*base, 4*base, ...`` capped at *max_s*.

    *attempts* counts every try including the first, so ``attempts - 1``
    delays are produced.

    >>> list(backoff_delays(1.0, 4.0, 4))
    [1.0, 2.0, 4.0]
    """
    for retry_index in range(max(attempts - 1, 0)):
        yield min(base_s * (2 ** retry_index), max_s)
