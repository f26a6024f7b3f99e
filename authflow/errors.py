"""
Session-flow exceptions.

Adapters translate Supabase / PostgREST failures into these types at the
boundary where they occur, so services only ever reason about the
categories below:

- transient (``ProfileStoreError``, ``IdentityProviderError``,
  ``OperationTimeoutError``): retried with bounded backoff;
- conflict (``ProfileConflictError``): not a failure, resolved by re-fetch;
- unexpected: anything else, escalated to the ``ErrorBoundary``.
"""

from __future__ import annotations

from typing import Optional


class AuthFlowError(Exception):
    """Base class for every error raised by authflow adapters and services."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.message: str = message
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


class IdentityProviderError(AuthFlowError):
    """The identity provider rejected or failed a request."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, original_error=original_error)
        self.code: Optional[str] = code


class ProfileStoreError(AuthFlowError):
    """A profile store request failed for a reason other than those below."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, original_error=original_error)
        self.code: Optional[str] = code


class ProfileConflictError(ProfileStoreError):
    """Uniqueness violation: a profile row for this identity already exists."""


class ProfileNotFoundError(ProfileStoreError):
    """No profile row exists for the requested identity."""


class OperationTimeoutError(AuthFlowError):
    """An awaited provider / store call exceeded its time bound."""


class ProfileProvisioningError(AuthFlowError):
    """Profile creation failed after every retry was exhausted."""
