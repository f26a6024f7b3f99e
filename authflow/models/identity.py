"""
Identity Models.

Provider-neutral views of the authenticated user and session.  The
Supabase adapter converts GoTrue ``User`` / ``Session`` objects into
these so nothing above the adapter imports ``supabase`` types.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from authflow.models.enums import ProfileRole


class Identity(BaseModel):
    """Opaque authenticated-user handle.

    Immutable for the lifetime of a session.  ``role_hint`` is the account
    type chosen at sign-up (user metadata); it only seeds the placeholder
    profile and is never trusted for anything else.
    """

    id: str
    email: Optional[str] = None
    role_hint: Optional[ProfileRole] = None

    model_config = {"frozen": True}


class AuthSession(BaseModel):
    """An established provider session."""

    identity: Identity
    access_token: str = ""
    refresh_token: str = ""
    expires_at: Optional[int] = None

    model_config = {"frozen": True}
