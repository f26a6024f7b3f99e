"""
Base Repository.

Provides shared infrastructure for all repositories:
- SupabaseManager reference
- Logger reference
- Translation of PostgREST failures into ``ProfileStoreError`` subtypes
"""

from __future__ import annotations

from supabase import AsyncClient

from authflow.database import SupabaseManager
from authflow.errors import ProfileConflictError, ProfileNotFoundError, ProfileStoreError
from authflow.logger import StructuredLogger

# PostgreSQL unique_violation.
UNIQUE_VIOLATION_CODE: str = "23505"
# PostgREST "JSON object requested, multiple (or no) rows returned".
NO_ROWS_CODES: frozenset[str] = frozenset({"PGRST116", "204"})


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    TABLE: str = ""

    def __init__(self, db: SupabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def client(self) -> AsyncClient:
        """Returns the Supabase client.  Raises ``RuntimeError`` when offline."""
        return self._db.client

    def _translate_error(self, exc: Exception, operation_name: str) -> ProfileStoreError:
        """Map a PostgREST / transport exception onto the store error hierarchy.

        Parameters
        ----------
        exc:
            The exception raised by the Supabase client.
        operation_name:
            Human-readable label for log messages, e.g.
            ``"insert (profiles)"``.
        """
        code = str(getattr(exc, "code", "") or "")

        if code == UNIQUE_VIOLATION_CODE:
            self._logger.info("Uniqueness violation on %s.", operation_name)
            return ProfileConflictError(
                f"{operation_name}: row already exists",
                code=code,
                original_error=exc,
            )
        if code in NO_ROWS_CODES:
            return ProfileNotFoundError(
                f"{operation_name}: no matching row",
                code=code,
                original_error=exc,
            )

        self._logger.warning(
            "Supabase unavailable for %s: %s", operation_name, exc,
            extra={"event": "STORE_ERROR", "code": code or None},
        )
        return ProfileStoreError(
            f"{operation_name} failed: {exc}",
            code=code or None,
            original_error=exc,
        )
