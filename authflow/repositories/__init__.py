"""Profile store port and its Supabase repository."""

from authflow.repositories.base_repository import BaseRepository
from authflow.repositories.profile_repository import ProfileStore, SupabaseProfileRepository

__all__ = ["BaseRepository", "ProfileStore", "SupabaseProfileRepository"]
