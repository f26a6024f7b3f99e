"""
Data Models Package.

Re-exports the session-flow models:
    from authflow.models import Identity, AuthSession, ProfileRecord, SessionState
    from authflow.models import ProfileRole, ProfileStatus, RouteDecision
"""

from authflow.models.auth_models import (
    AuthErrorCode,
    ProvisioningResult,
    ResendResult,
    SubmitResult,
)
from authflow.models.enums import (
    CallbackState,
    ProfileRole,
    ProfileStatus,
    ProvisioningOutcome,
    RouteDecision,
    SessionEvent,
)
from authflow.models.identity import AuthSession, Identity
from authflow.models.profile import ProfileRecord, ProfileUpdate
from authflow.models.session_state import SessionState

__all__ = [
    "AuthErrorCode",
    "AuthSession",
    "CallbackState",
    "Identity",
    "ProfileRecord",
    "ProfileRole",
    "ProfileStatus",
    "ProfileUpdate",
    "ProvisioningOutcome",
    "ProvisioningResult",
    "ResendResult",
    "RouteDecision",
    "SessionEvent",
    "SessionState",
    "SubmitResult",
]
