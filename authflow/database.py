"""
Supabase Client Manager.

Owns the single async Supabase client shared by the identity provider
and the profile repository.  Auth and PostgREST calls must go through the
same client: the profile queries are authorised by the session the auth
half establishes.

This module only manages the client *connection*; it contains no query
logic.

Usage (dependency injection at app startup)::

    from authflow.database import SupabaseManager
    from authflow.logger import StructuredLogger

    db = SupabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        logger=StructuredLogger(name="database"),
    )
    await db.connect()
    # Inject `db` into the provider / repository that need it.
"""

from __future__ import annotations

from typing import Optional

from supabase import AsyncClient, AsyncClientOptions, acreate_client

from authflow.logger import StructuredLogger


class SupabaseManager:
    """Manages the async connection to the Supabase project.

    When ``supabase_url`` or ``supabase_key`` is empty the client is
    **not** created.  The ``client`` property then raises
    ``RuntimeError``, which the adapters translate into provider / store
    errors so the session flow surfaces a retryable failure instead of
    crashing.

    Parameters
    ----------
    supabase_url:
        The Supabase project URL (e.g. ``https://xyz.supabase.co``).
    supabase_key:
        The anonymous key.  Row-level security decides what it can touch.
    logger:
        A ``StructuredLogger`` instance for structured JSON log output.
    """

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        logger: StructuredLogger,
    ) -> None:
        self._url: str = supabase_url
        self._key: str = supabase_key
        self._logger: StructuredLogger = logger
        self._client: Optional[AsyncClient] = None

    async def connect(self) -> None:
        """Create the async client.  Safe to call more than once."""
        if self._client is not None:
            return

        if not (self._url and self._key):
            self._logger.warning(
                "Supabase credentials not configured; client not created."
            )
            return

        try:
            # PKCE: the verification link carries a ``code`` that is
            # exchanged for a session by the identity provider adapter.
            self._client = await acreate_client(
                self._url,
                self._key,
                options=AsyncClientOptions(flow_type="pkce"),
            )
            self._logger.info("Supabase client initialized.")
        except (ValueError, TypeError) as exc:
            self._logger.warning(
                "Supabase credential format error: %s. Client not created.",
                exc,
            )
        except Exception as exc:
            self._logger.error(
                "Unexpected Supabase initialization failure: %s.",
                exc,
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def client(self) -> AsyncClient:
        """Return the initialised Supabase client.

        Raises
        ------
        RuntimeError
            If the client was not initialised.
        """
        if self._client is None:
            raise RuntimeError(
                "Supabase client is not initialised. "
                "Check SUPABASE_URL and SUPABASE_ANON_KEY."
            )
        return self._client

    @property
    def is_online(self) -> bool:
        """``True`` when the Supabase client is available."""
        return self._client is not None
