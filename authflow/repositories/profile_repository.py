"""
Profile Repository.

Handles all profile-row access through the Supabase async client.
One row per identity; ``id`` is both the primary key and the identity id,
so the uniqueness constraint on ``id`` is what arbitrates a creation race.
"""

from __future__ import annotations

from typing import Optional, Protocol

from authflow.database import SupabaseManager
from authflow.errors import ProfileNotFoundError, ProfileStoreError
from authflow.logger import StructuredLogger
from authflow.models.profile import ProfileRecord, ProfileUpdate
from authflow.repositories.base_repository import BaseRepository


class ProfileStore(Protocol):
    """Port interface for the profile record store.

    Every method raises ``ProfileStoreError`` (or a subclass) on failure:
    ``ProfileConflictError`` when an insert hits the uniqueness constraint,
    ``ProfileNotFoundError`` when the row does not exist.
    """

    async def insert(self, record: ProfileRecord) -> ProfileRecord: ...

    async def get_by_id(self, profile_id: str) -> ProfileRecord: ...

    async def update(self, profile_id: str, changes: ProfileUpdate) -> ProfileRecord: ...


class SupabaseProfileRepository(BaseRepository):
    """Data access layer for ``ProfileRecord`` rows.

    **No ``delete()`` method.**  Profiles are created once and then only
    updated by the completion form.
    """

    TABLE = "profiles"

    def __init__(
        self,
        db: SupabaseManager,
        logger: StructuredLogger,
        table: Optional[str] = None,
    ) -> None:
        super().__init__(db, logger)
        if table:
            self.TABLE = table

    async def insert(self, record: ProfileRecord) -> ProfileRecord:
        """Insert *record*; a duplicate id raises ``ProfileConflictError``."""
        data = record.model_dump(mode="json", exclude_none=True)
        operation_name = f"insert ({self.TABLE})"
        try:
            response = await self.client.table(self.TABLE).insert(data).execute()
        except Exception as exc:
            raise self._translate_error(exc, operation_name) from exc

        if not response.data:
            raise ProfileStoreError(f"{operation_name}: no row returned")
        created = ProfileRecord(**response.data[0])
        self._logger.info("Profile inserted: %s", created.id)
        return created

    async def get_by_id(self, profile_id: str) -> ProfileRecord:
        """Fetch a profile by primary key."""
        operation_name = f"get_by_id ({self.TABLE})"
        try:
            response = (
                await self.client.table(self.TABLE)
                .select("*")
                .eq("id", profile_id)
                .maybe_single()
                .execute()
            )
        except Exception as exc:
            raise self._translate_error(exc, operation_name) from exc

        # Newer postgrest clients return ``None`` instead of raising on zero rows.
        if response is None or not response.data:
            raise ProfileNotFoundError(f"{operation_name}: no profile for {profile_id}")
        return ProfileRecord(**response.data)

    async def update(self, profile_id: str, changes: ProfileUpdate) -> ProfileRecord:
        """Apply the fields set on *changes* and return the updated row."""
        operation_name = f"update ({self.TABLE})"
        payload = changes.to_payload()
        try:
            response = (
                await self.client.table(self.TABLE)
                .update(payload)
                .eq("id", profile_id)
                .execute()
            )
        except Exception as exc:
            raise self._translate_error(exc, operation_name) from exc

        if not response.data:
            raise ProfileNotFoundError(f"{operation_name}: no profile for {profile_id}")
        updated = ProfileRecord(**response.data[0])
        self._logger.info(
            "Profile updated: %s (%s)", profile_id, ", ".join(sorted(payload)),
        )
        return updated
