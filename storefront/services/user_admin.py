"""
User Administration Service.

Handles administrative profile operations: listing, role changes and
suspension, plus two maintenance commands that run with the service-role
client (backfilling missing profiles and promoting an administrator).

Architectural notes:
    - Interactive operations go through the end-user repository, so
      row-level security still applies; the caller must also hold an
      ``admin`` profile in ``AuthState``.
    - Maintenance operations go through the service-role repository and
      are meant for the command line only.
    - The ``profiles`` row is authoritative for the role.  Identity
      metadata is never updated here.
"""

from __future__ import annotations

from typing import Any, Optional

from storefront.auth import AuthState
from storefront.database import SupabaseManager
from storefront.logger import StructuredLogger
from storefront.models.auth_models import ServiceResult
from storefront.models.enums import UserRole
from storefront.models.identity import Identity
from storefront.models.profile import Profile
from storefront.repositories.profile_repository import (
    ProfileConflictError,
    ProfileRepository,
    ProfileRepositoryError,
)
from storefront.services.base_service import BaseService
from storefront.services.profile_reconciler import build_default_profile
from storefront.utils.audit import log_audit_event

_MAINTENANCE_ACTOR: str = "maintenance"

# Auth admin listing is paginated server-side (default 50 per page).
_IDENTITY_PAGE_SIZE: int = 100


class UserAdminService(BaseService):
    """Service layer for admin profile management operations."""

    def __init__(
        self,
        repo: ProfileRepository,
        admin_repo: ProfileRepository,
        db: SupabaseManager,
        state: AuthState,
        logger: StructuredLogger,
        identity_page_size: int = _IDENTITY_PAGE_SIZE,
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._admin_repo = admin_repo
        self._db = db
        self._state = state
        self._page_size = identity_page_size

    # ==================================================================
    # Interactive (admin session)
    # ==================================================================

    async def list_users(self) -> ServiceResult[list[Profile]]:
        """Fetch all profiles for the admin console, newest first."""
        denied = self._require_admin("list users")
        if denied is not None:
            return denied

        try:
            profiles = await self._repo.get_all()
        except ProfileRepositoryError as exc:
            self._logger.error("Failed to fetch profiles: %s", exc)
            return ServiceResult(
                success=False,
                error=f"Database error fetching users: {exc}",
                status_code=500,
            )
        return ServiceResult(success=True, data=profiles)

    async def update_user_role(
        self,
        user_id: str,
        new_role: str,
    ) -> ServiceResult[Profile]:
        """Change a user's role.

        Args:
            user_id: Identity id of the target user.
            new_role: One of ``customer``, ``staff``, ``admin``.
        """
        denied = self._require_admin("update user roles")
        if denied is not None:
            return denied

        try:
            validated_role = UserRole(new_role)
        except ValueError:
            return ServiceResult(
                success=False,
                error=f"Invalid role specified: '{new_role}'. "
                      f"Must be one of: {', '.join(r.value for r in UserRole)}.",
                status_code=400,
            )

        existing = await self._load_target(user_id)
        if isinstance(existing, ServiceResult):
            return existing

        try:
            updated = await self._repo.update_role(user_id, validated_role)
        except ProfileRepositoryError as exc:
            self._logger.error("Repository update_role failed for %s: %s", user_id, exc)
            return ServiceResult(
                success=False,
                error=f"Could not update role: {exc}",
                status_code=500,
            )
        if updated is None:
            return ServiceResult(
                success=False,
                error="Failed to update role in database.",
                status_code=500,
            )

        log_audit_event(
            logger=self._logger,
            action="UPDATE_ROLE",
            entity_type="Profile",
            entity_id=user_id,
            user_id=self._state.user_id or "",
            details={
                "old_role": str(existing.role),
                "new_role": str(validated_role),
            },
        )
        self._refresh_own_profile(updated)
        return ServiceResult(success=True, data=updated)

    async def set_user_suspended(
        self,
        user_id: str,
        suspended: bool,
    ) -> ServiceResult[Profile]:
        """Suspend or reinstate a user.  Admins cannot suspend themselves."""
        denied = self._require_admin("suspend users")
        if denied is not None:
            return denied

        if suspended and user_id == self._state.user_id:
            return ServiceResult(
                success=False,
                error="Administrators cannot suspend their own account.",
                status_code=400,
            )

        existing = await self._load_target(user_id)
        if isinstance(existing, ServiceResult):
            return existing

        try:
            updated = await self._repo.set_suspended(user_id, suspended)
        except ProfileRepositoryError as exc:
            self._logger.error("Repository set_suspended failed for %s: %s", user_id, exc)
            return ServiceResult(
                success=False,
                error=f"Could not update suspension: {exc}",
                status_code=500,
            )
        if updated is None:
            return ServiceResult(
                success=False,
                error="Failed to update suspension in database.",
                status_code=500,
            )

        log_audit_event(
            logger=self._logger,
            action="SUSPEND_USER" if suspended else "REINSTATE_USER",
            entity_type="Profile",
            entity_id=user_id,
            user_id=self._state.user_id or "",
            details={"was_suspended": existing.is_suspended},
        )
        return ServiceResult(success=True, data=updated)

    # ==================================================================
    # Maintenance (service-role client)
    # ==================================================================

    async def ensure_profiles(self) -> ServiceResult[dict[str, int]]:
        """Create a default profile for every identity that has none.

        Metadata ``role`` is ignored here: backfilled profiles are always
        ``customer``.  Existing rows are left untouched.

        Returns:
            Counts under ``total``, ``created``, ``existing``, ``failed``.
        """
        identities = await self._list_identities()
        if isinstance(identities, ServiceResult):
            return identities

        counts = {"total": len(identities), "created": 0, "existing": 0, "failed": 0}

        for identity in identities:
            try:
                if await self._admin_repo.get_by_id(identity.id) is not None:
                    counts["existing"] += 1
                    continue
                profile = build_default_profile(
                    identity.id, identity, trust_metadata_role=False,
                )
                await self._admin_repo.insert(profile)
            except ProfileConflictError:
                counts["existing"] += 1
                continue
            except ProfileRepositoryError as exc:
                self._logger.error(
                    "Could not backfill profile for %s (%s): %s",
                    identity.id, identity.email, exc,
                )
                counts["failed"] += 1
                continue

            counts["created"] += 1
            log_audit_event(
                logger=self._logger,
                action="PROFILE_CREATE",
                entity_type="Profile",
                entity_id=identity.id,
                user_id=_MAINTENANCE_ACTOR,
                details={"role": str(profile.role), "source": "ensure_profiles"},
            )

        self._logger.info(
            "Profile backfill finished: %d identities, %d created, %d existing, %d failed.",
            counts["total"], counts["created"], counts["existing"], counts["failed"],
            extra={"event": "ENSURE_PROFILES"},
        )
        return ServiceResult(
            success=counts["failed"] == 0,
            data=counts,
            error=None if counts["failed"] == 0 else f"{counts['failed']} profile(s) failed.",
            status_code=200 if counts["failed"] == 0 else 207,
        )

    async def promote_admin(self, email: str) -> ServiceResult[Profile]:
        """Give the identity registered under *email* the ``admin`` role.

        Creates the profile when it does not exist yet.
        """
        target_email = (email or "").strip().lower()
        if not target_email:
            return ServiceResult(
                success=False, error="Email address is required.", status_code=400,
            )

        identities = await self._list_identities()
        if isinstance(identities, ServiceResult):
            return identities

        identity = next(
            (i for i in identities if (i.email or "").lower() == target_email),
            None,
        )
        if identity is None:
            return ServiceResult(
                success=False,
                error=f"No account registered for {target_email}.",
                status_code=404,
            )

        try:
            existing = await self._admin_repo.get_by_id(identity.id)
            if existing is None:
                seed = build_default_profile(
                    identity.id, identity, trust_metadata_role=False,
                )
                result = await self._admin_repo.insert(
                    seed.model_copy(update={"role": UserRole.ADMIN}),
                )
                old_role: Optional[str] = None
            else:
                result = await self._admin_repo.update_role(identity.id, UserRole.ADMIN)
                old_role = str(existing.role)
        except ProfileRepositoryError as exc:
            self._logger.error("Admin promotion failed for %s: %s", target_email, exc)
            return ServiceResult(
                success=False,
                error=f"Could not promote {target_email}: {exc}",
                status_code=500,
            )

        if result is None:
            return ServiceResult(
                success=False,
                error="Failed to update role in database.",
                status_code=500,
            )

        log_audit_event(
            logger=self._logger,
            action="UPDATE_ROLE",
            entity_type="Profile",
            entity_id=identity.id,
            user_id=_MAINTENANCE_ACTOR,
            details={"old_role": old_role, "new_role": str(UserRole.ADMIN)},
        )
        return ServiceResult(success=True, data=result)

    # ==================================================================
    # Private helpers
    # ==================================================================

    def _require_admin(self, action: str) -> Optional[ServiceResult[Any]]:
        if not self._state.is_authenticated:
            return ServiceResult(
                success=False, error="User not authenticated", status_code=401,
            )
        if not self._state.is_admin:
            self._logger.warning(
                "Non-admin %s attempted to %s.", self._state.user_id, action,
                extra={"event": "ACCESS_DENIED", "user_id": self._state.user_id},
            )
            return ServiceResult(
                success=False,
                error=f"Only admin users can {action}.",
                status_code=403,
            )
        return None

    async def _load_target(self, user_id: str) -> Profile | ServiceResult[Any]:
        try:
            existing = await self._repo.get_by_id(user_id)
        except ProfileRepositoryError as exc:
            self._logger.error("Profile lookup failed for %s: %s", user_id, exc)
            return ServiceResult(
                success=False,
                error=f"Database error: {exc}",
                status_code=500,
            )
        if existing is None:
            return ServiceResult(success=False, error="User not found.", status_code=404)
        return existing

    async def _list_identities(self) -> list[Identity] | ServiceResult[Any]:
        """Collect every auth identity, one page at a time until a short page."""
        users: list[Any] = []
        page = 1
        try:
            while True:
                batch = await self._db.run(
                    self._db.admin.auth.admin.list_users(
                        page=page, per_page=self._page_size,
                    )
                ) or []
                users.extend(batch)
                if len(batch) < self._page_size:
                    break
                page += 1
        except RuntimeError as exc:
            return ServiceResult(success=False, error=str(exc), status_code=500)
        except Exception as exc:
            self._logger.error("Failed to list auth identities: %s", exc)
            return ServiceResult(
                success=False,
                error=f"Could not list users: {exc}",
                status_code=500,
            )
        self._logger.debug("Listed %d auth identities over %d page(s).", len(users), page)
        return [Identity.from_supabase(user) for user in users]

    def _refresh_own_profile(self, updated: Profile) -> None:
        # An admin editing their own row sees the change immediately.
        if updated.id == self._state.user_id:
            self._state.set_profile(updated)
