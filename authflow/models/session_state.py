"""
Session State Model.

The single snapshot read by every component.  Snapshots are frozen: the
``SessionStore`` swaps in a new instance on each write, so a reader holds
either the old or the new state, never a mix of both.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from authflow.models.enums import ProfileStatus
from authflow.models.identity import Identity
from authflow.models.profile import ProfileRecord


class SessionState(BaseModel):
    """Process-wide session snapshot.

    Attributes
    ----------
    identity:
        The authenticated user, or ``None`` when signed out.
    profile:
        The identity's profile row once loaded.
    is_loading:
        ``True`` until the first session query has completed.
    has_redirected_to_onboarding:
        One-shot flag: the automatic onboarding redirect already happened
        in this sign-in session.  Lives here (not in the router) so it
        survives router remounts.
    profile_status:
        Progress of the profile load for ``identity``.
    profile_fetched_at:
        Monotonic loop time of the last completed profile load.
    profile_error:
        User-facing message when ``profile_status`` is ``ERROR``.
    """

    identity: Optional[Identity] = None
    profile: Optional[ProfileRecord] = None
    is_loading: bool = True
    has_redirected_to_onboarding: bool = False
    profile_status: ProfileStatus = ProfileStatus.IDLE
    profile_fetched_at: Optional[float] = None
    profile_error: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def is_onboarding_complete(self) -> bool:
        """``True`` when a profile is loaded and has a display name."""
        return self.profile is not None and self.profile.is_complete
