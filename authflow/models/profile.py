"""
Profile Model.

Pydantic model for a row of the ``profiles`` table: one row per identity,
keyed by the identity id.  A row without a display name is an
*incomplete* profile; that single predicate drives onboarding routing.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from authflow.models.enums import ProfileRole


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class ProfileRecord(BaseModel):
    """Application-level user record, distinct from the identity.

    Placeholder rows created before onboarding store an empty string in
    ``display_name``; it is normalised to ``None`` so both shapes count as
    incomplete.
    """

    id: str
    email: Optional[str] = None
    role: ProfileRole
    display_name: Optional[str] = None

    # Role-specific attributes, all optional.
    location: Optional[str] = None
    nationality: Optional[str] = None
    bio: Optional[str] = None
    position: Optional[str] = None  # applicant
    specialization: Optional[str] = None  # coach
    organization_name: Optional[str] = None  # organization
    website: Optional[str] = None  # organization

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "frozen": True, "extra": "ignore"}

    @field_validator("display_name", mode="before")
    @classmethod
    def normalise_display_name(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    @property
    def is_complete(self) -> bool:
        """``True`` once the user has supplied a display name."""
        return self.display_name is not None


class ProfileUpdate(BaseModel):
    """Partial update submitted by the profile-completion form.

    Only fields that were explicitly set are sent to the store
    (``model_dump(exclude_unset=True)``).
    """

    display_name: Optional[str] = None
    location: Optional[str] = None
    nationality: Optional[str] = None
    bio: Optional[str] = None
    position: Optional[str] = None
    specialization: Optional[str] = None
    organization_name: Optional[str] = None
    website: Optional[str] = None

    @field_validator("display_name", mode="before")
    @classmethod
    def normalise_display_name(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    def to_payload(self) -> dict[str, Optional[str]]:
        """Return the column → value mapping for the store update."""
        return self.model_dump(exclude_unset=True)
