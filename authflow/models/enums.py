"""
Shared Enumerations for authflow Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents,
so a stored ``"coach"`` compares equal to ``ProfileRole.COACH``.
"""

from __future__ import annotations
from enum import StrEnum


class ProfileRole(StrEnum):
    """Account types a profile can be created with."""

    APPLICANT = "applicant"
    COACH = "coach"
    ORGANIZATION = "organization"


class ProfileStatus(StrEnum):
    """Lifecycle of the profile load for the current identity.

    ``MISSING`` means the fetch completed and no row could be found or
    created; ``ERROR`` means the creation path gave up after retries and
    the user must be offered a retry.
    """

    IDLE = "idle"
    FETCHING = "fetching"
    MISSING = "missing"
    LOADED = "loaded"
    ERROR = "error"


class SessionEvent(StrEnum):
    """Change notifications emitted by the identity provider."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


class CallbackState(StrEnum):
    """States of the verification callback handler.

    ``REDIRECTED``, ``TIMED_OUT`` and ``LINK_REJECTED`` are terminal;
    ``TIMED_OUT`` can be left through an explicit retry.
    """

    IDLE = "idle"
    POLLING = "polling"
    SESSION_FOUND = "session_found"
    AWAITING_PROFILE = "awaiting_profile"
    REDIRECTED = "redirected"
    TIMED_OUT = "timed_out"
    LINK_REJECTED = "link_rejected"


class RouteDecision(StrEnum):
    """What the onboarding router rendered for the latest state."""

    LOADING = "loading"
    LANDING = "landing"
    WAITING_FOR_PROFILE = "waiting_for_profile"
    ONBOARDING = "onboarding"
    PROMPT_COMPLETION = "prompt_completion"
    MAIN_APP = "main_app"


class ProvisioningOutcome(StrEnum):
    """Result of the retry-protected profile creation path."""

    CREATED = "created"
    FETCHED_EXISTING = "fetched_existing"
    FAILED = "failed"
