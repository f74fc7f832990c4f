"""
Profile Repository.

Handles all ``profiles`` data access via Supabase PostgREST.

Lookups distinguish "row absent" (``None``) from "query failed"
(``ProfileQueryError``); inserts surface unique-key collisions as
``ProfileConflictError`` so callers can treat them as "row present".
"""

from __future__ import annotations

from typing import Any, Optional

from postgrest.exceptions import APIError
from pydantic import ValidationError

from storefront.models.enums import UserRole
from storefront.models.profile import Profile
from storefront.repositories.base_repository import BaseRepository

# PostgreSQL unique_violation
_UNIQUE_VIOLATION: str = "23505"
# Older PostgREST clients report an empty ``maybe_single`` result this way.
_NO_CONTENT: str = "204"


class ProfileRepositoryError(Exception):
    """Base class for profile data-access failures."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.message: str = message
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


class ProfileQueryError(ProfileRepositoryError):
    """The select failed (transport, permission, malformed response)."""


class ProfileWriteError(ProfileRepositoryError):
    """An insert or update failed."""


class ProfileConflictError(ProfileWriteError):
    """Insert hit the primary-key uniqueness constraint."""


def _is_unique_violation(exc: Exception) -> bool:
    code = getattr(exc, "code", None)
    if code == _UNIQUE_VIOLATION:
        return True
    return "duplicate key" in str(exc).lower()


def _row_to_profile(
    row: Any,
    error_cls: type[ProfileRepositoryError],
    context: str,
) -> Profile:
    try:
        return Profile.model_validate(row)
    except ValidationError as exc:
        raise error_cls(f"{context}: malformed profile row: {exc}", original_error=exc) from exc


class ProfileRepository(BaseRepository):
    """Data access layer for Profile rows.

    **No ``delete()`` method.**  Profiles are never removed in normal
    operation; suspension is the supported way to revoke access.
    """

    TABLE = "profiles"

    async def get_by_id(self, user_id: str) -> Optional[Profile]:
        """Fetch a profile by primary key.

        Returns:
            The Profile, or ``None`` when no row exists.

        Raises:
            ProfileQueryError: If the query itself failed.
        """
        try:
            response = await self._run(
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("id", user_id)
                .maybe_single()
                .execute()
            )
        except APIError as exc:
            if getattr(exc, "code", None) == _NO_CONTENT:
                return None
            raise ProfileQueryError(
                f"Profile lookup failed for {user_id}: {exc}", original_error=exc,
            ) from exc
        except Exception as exc:
            raise ProfileQueryError(
                f"Profile lookup failed for {user_id}: {exc}", original_error=exc,
            ) from exc

        if response is None or not response.data:
            return None
        return _row_to_profile(
            response.data, ProfileQueryError, f"Profile lookup failed for {user_id}",
        )

    async def get_all(self) -> list[Profile]:
        """Fetch all profiles, newest first.

        Rows that fail validation (e.g. an unknown ``role``) are logged
        and left out, so one bad row does not hide the rest.

        Raises:
            ProfileQueryError: If the query failed.
        """
        try:
            response = await self._run(
                self.supabase.table(self.TABLE)
                .select("*")
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as exc:
            raise ProfileQueryError(
                f"Profile listing failed: {exc}", original_error=exc,
            ) from exc
        profiles: list[Profile] = []
        for row in response.data or []:
            try:
                profiles.append(Profile.model_validate(row))
            except ValidationError as exc:
                self._logger.warning(
                    "Skipping malformed profile row %s: %s",
                    row.get("id") if isinstance(row, dict) else None, exc,
                    extra={"event": "PROFILE_ROW_INVALID"},
                )
        return profiles

    async def insert(self, profile: Profile) -> Profile:
        """Insert a new profile row.

        Returns:
            The inserted row as echoed by the server, or *profile* when
            the server returns no representation.

        Raises:
            ProfileConflictError: A row with this id already exists.
            ProfileWriteError: Any other failure.
        """
        try:
            response = await self._run(
                self.supabase.table(self.TABLE)
                .insert(profile.insert_payload())
                .execute()
            )
        except Exception as exc:
            if _is_unique_violation(exc):
                raise ProfileConflictError(
                    f"Profile {profile.id} already exists", original_error=exc,
                ) from exc
            raise ProfileWriteError(
                f"Profile insert failed for {profile.id}: {exc}", original_error=exc,
            ) from exc

        self._logger.info("Profile inserted: %s", profile.id)
        if response is not None and response.data:
            return _row_to_profile(
                response.data[0], ProfileWriteError, f"Profile insert for {profile.id}",
            )
        return profile

    async def update(self, user_id: str, changes: dict[str, Any]) -> Optional[Profile]:
        """Apply *changes* to the row keyed by *user_id*.

        Returns:
            The updated row, or ``None`` when the server matched no row
            (absent, or hidden by row-level security).

        Raises:
            ProfileWriteError: If the update failed.
        """
        try:
            response = await self._run(
                self.supabase.table(self.TABLE)
                .update(changes)
                .eq("id", user_id)
                .execute()
            )
        except Exception as exc:
            raise ProfileWriteError(
                f"Profile update failed for {user_id}: {exc}", original_error=exc,
            ) from exc

        if response is None or not response.data:
            return None
        return _row_to_profile(
            response.data[0], ProfileWriteError, f"Profile update failed for {user_id}",
        )

    async def update_role(self, user_id: str, new_role: UserRole) -> Optional[Profile]:
        """Update a user's role. Returns the updated row or ``None``."""
        return await self.update(user_id, {"role": str(new_role)})

    async def set_suspended(self, user_id: str, suspended: bool) -> Optional[Profile]:
        """Set the suspension flag. Returns the updated row or ``None``."""
        return await self.update(user_id, {"is_suspended": suspended})
