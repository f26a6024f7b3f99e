"""
Session-Flow Result Models.

Pydantic models and enumerations for the contracts between the
session services and the screens that consume them.

Every operation a screen can trigger (profile creation, profile
submission, verification resend) returns a structured, inspectable
result rather than raw strings or exception side-channels.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional

from pydantic import BaseModel

from authflow.errors import OperationTimeoutError
from authflow.models.enums import ProvisioningOutcome
from authflow.models.profile import ProfileRecord


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

class AuthErrorCode(StrEnum):
    """Exhaustive enumeration of session-flow error categories.

    Used by the adapters to classify Supabase errors and by the
    screens to decide which feedback and affordance to display.
    """

    NETWORK_ERROR = "network_error"
    TIMEOUT_ERROR = "timeout_error"
    RATE_LIMITED = "rate_limited"
    ALREADY_CONFIRMED = "already_confirmed"
    LINK_EXPIRED = "link_expired"
    NOT_AUTHENTICATED = "not_authenticated"
    PERMISSION_DENIED = "permission_denied"
    VALIDATION_ERROR = "validation_error"
    PROFILE_UNAVAILABLE = "profile_unavailable"
    SUBMIT_IN_PROGRESS = "submit_in_progress"
    UNKNOWN_ERROR = "unknown_error"


# ---------------------------------------------------------------------------
# Supabase error-code mapping
# ---------------------------------------------------------------------------

SUPABASE_ERROR_MAP: dict[str, tuple[AuthErrorCode, str]] = {
    "rate limit": (
        AuthErrorCode.RATE_LIMITED,
        "Too many requests. Please wait a few minutes before trying again.",
    ),
    "over_email_send_rate_limit": (
        AuthErrorCode.RATE_LIMITED,
        "Too many requests. Please wait a few minutes before trying again.",
    ),
    "already confirmed": (
        AuthErrorCode.ALREADY_CONFIRMED,
        "This email is already verified. Try signing in.",
    ),
    "otp_expired": (
        AuthErrorCode.LINK_EXPIRED,
        "Verification link expired or already used. Please request a new one.",
    ),
    "flow_state_not_found": (
        AuthErrorCode.LINK_EXPIRED,
        "Verification link expired or already used. Please request a new one.",
    ),
    "42501": (
        AuthErrorCode.PERMISSION_DENIED,
        "Your account is not allowed to do that. Please sign in again.",
    ),
}

RETRY_MESSAGE: str = (
    "We couldn't set up your profile. Please check your connection and retry."
)


def classify_error(exc: Exception) -> tuple[AuthErrorCode, str]:
    """Map a provider / store exception to an error code and human message.

    Looks at an explicit ``code`` attribute first, then at the lower-cased
    message, mirroring how the Supabase clients surface their errors.
    """
    if isinstance(exc, (TimeoutError, OperationTimeoutError)):
        return AuthErrorCode.TIMEOUT_ERROR, "The server took too long to respond. Please retry."
    if isinstance(exc, ConnectionError):
        return AuthErrorCode.NETWORK_ERROR, "Cannot reach the server. Check your internet connection."

    code = str(getattr(exc, "code", "") or "").lower()
    error_str = str(exc).lower()

    for code_key, (error_code, human_message) in SUPABASE_ERROR_MAP.items():
        if code_key == code or code_key in error_str:
            return error_code, human_message

    return AuthErrorCode.UNKNOWN_ERROR, "An unexpected error occurred. Please try again."


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------

class ProvisioningResult(BaseModel):
    """Outcome of the retry-protected profile creation path.

    ``CREATED`` and ``FETCHED_EXISTING`` are both successes: the latter
    means a concurrent writer won the insert race.
    """

    outcome: ProvisioningOutcome
    profile: Optional[ProfileRecord] = None
    attempts: int = 0
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome != ProvisioningOutcome.FAILED


class SubmitResult(BaseModel):
    """Result of a profile-completion form submission."""

    success: bool
    profile: Optional[ProfileRecord] = None
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None


class ResendResult(BaseModel):
    """Result of a verification-email resend request."""

    success: bool
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None
