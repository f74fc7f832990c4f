"""
Repository Layer Package.

Provides data-access abstractions over the Supabase ``profiles`` table.
Services never build PostgREST queries themselves.

Usage:
    from storefront.repositories.profile_repository import ProfileRepository
"""

from storefront.repositories.base_repository import BaseRepository
from storefront.repositories.profile_repository import (
    ProfileConflictError,
    ProfileQueryError,
    ProfileRepository,
    ProfileRepositoryError,
    ProfileWriteError,
)

__all__ = [
    "BaseRepository",
    "ProfileConflictError",
    "ProfileQueryError",
    "ProfileRepository",
    "ProfileRepositoryError",
    "ProfileWriteError",
]
