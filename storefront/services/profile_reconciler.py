"""
Profile Reconciliation Service.

Ensures that every signed-in identity has exactly one ``profiles`` row and
that the row is loaded into ``AuthState``.

Reconciliation strategy:
    - Mark "profile fetch attempted" before any network call, so gated
      views wait instead of redirecting while the lookup is in flight.
    - Row present: load it.  Identity metadata is never consulted again.
    - Row absent: build a default from identity metadata (a one-time
      bootstrap hint) and insert it.
    - Insert collided on the primary key: another reconciliation won the
      race.  Re-fetch and treat the row as present.
    - Insert succeeded: apply the optimistic value, then re-read after a
      short delay so server-computed columns replace it.
    - Failures are logged and surfaced as a toast.  Nothing propagates and
      nothing is retried automatically.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from storefront.auth import AuthState
from storefront.logger import StructuredLogger
from storefront.models.enums import UserRole
from storefront.models.identity import Identity
from storefront.models.profile import Profile
from storefront.repositories.profile_repository import (
    ProfileConflictError,
    ProfileQueryError,
    ProfileRepository,
    ProfileWriteError,
)
from storefront.services.base_service import BaseService
from storefront.services.notifications import NotificationCenter
from storefront.utils.audit import log_audit_event


def build_default_profile(
    user_id: str,
    identity: Optional[Identity],
    *,
    trust_metadata_role: bool = True,
) -> Profile:
    """Construct the profile inserted for an identity that has none.

    Priority order:
        role      -- metadata ``role`` when it names a known role, else customer
        full_name -- metadata ``full_name``, else the email local-part, else null
        phone     -- metadata ``phone``, else null
    """
    role = UserRole.CUSTOMER
    full_name: Optional[str] = None
    phone: Optional[str] = None

    if identity is not None:
        suggested = identity.metadata_str("role")
        if trust_metadata_role and suggested in {r.value for r in UserRole}:
            role = UserRole(suggested)
        full_name = identity.metadata_str("full_name") or identity.email_local_part
        phone = identity.metadata_str("phone")

    return Profile(id=user_id, full_name=full_name, phone=phone, role=role)


class ProfileReconcilerService(BaseService):
    """Resolves one Profile per identity, creating it when absent.

    Parameters
    ----------
    repo:
        Profile data access (end-user client, row-level security applies).
    state:
        Shared auth state; results are applied only while their identity
        is still the current one.
    notifications:
        Toast sink for fetch / insert failures.
    logger:
        Structured logger.
    refetch_delay_s:
        Delay before the authoritative re-read after an insert.
    """

    def __init__(
        self,
        repo: ProfileRepository,
        state: AuthState,
        notifications: NotificationCenter,
        logger: StructuredLogger,
        refetch_delay_s: float = 0.5,
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._state = state
        self._notifications = notifications
        self._refetch_delay_s = refetch_delay_s
        self._pending: set[asyncio.Task[None]] = set()
        self._closed: bool = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def reconcile(
        self,
        user_id: str,
        identity: Optional[Identity] = None,
    ) -> Optional[Profile]:
        """Fetch or lazily create the profile for *user_id*.

        Args:
            user_id: Identity id; must be non-empty.
            identity: In-memory identity used only to bootstrap defaults.

        Returns:
            The resolved profile, or ``None`` when resolution failed.

        Raises:
            ValueError: If *user_id* is empty.
        """
        if not user_id:
            raise ValueError("user_id must be a non-empty string")
        if self._closed:
            return None

        self._state.mark_profile_fetch_attempted()

        try:
            existing = await self._repo.get_by_id(user_id)
        except ProfileQueryError as exc:
            self._logger.error(
                "Profile fetch failed for %s: %s", user_id, exc,
                extra={"event": "PROFILE_FETCH_FAILED", "user_id": user_id},
            )
            self._notifications.error(
                "Could not load your profile",
                "Some features may be unavailable. Please try again later.",
            )
            return None

        if existing is not None:
            self._logger.debug("Profile loaded for %s (role: %s)", user_id, existing.role)
            self._apply(existing)
            return existing

        self._logger.info(
            "No profile for %s; creating default.", user_id,
            extra={"event": "PROFILE_MISSING", "user_id": user_id},
        )
        return await self._insert(build_default_profile(user_id, identity))

    async def ensure_profile(
        self,
        user_id: str,
        identity: Optional[Identity] = None,
    ) -> Optional[Profile]:
        """Insert the default profile without looking first.

        Used right after registration, when the row almost certainly does
        not exist yet.  A collision falls back to a fetch, exactly as in
        :meth:`reconcile`.

        The row is written even after :meth:`close`; only the local state
        update is skipped then.
        """
        if not user_id:
            raise ValueError("user_id must be a non-empty string")
        if self._closed:
            self._logger.warning(
                "Reconciler closed; creating profile for %s without updating local state.",
                user_id,
                extra={"event": "PROFILE_CREATE_DETACHED", "user_id": user_id},
            )
        else:
            self._state.mark_profile_fetch_attempted()
        return await self._insert(build_default_profile(user_id, identity))

    async def wait_idle(self) -> None:
        """Wait for every scheduled re-fetch to finish."""
        while True:
            pending = [task for task in self._pending if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def resume(self) -> None:
        """Accept work again after :meth:`close` (listener re-attach)."""
        self._closed = False

    async def close(self) -> None:
        """Cancel scheduled re-fetches; later results are never applied."""
        self._closed = True
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending.clear()

    # ------------------------------------------------------------------
    # Private implementation
    # ------------------------------------------------------------------

    async def _insert(self, profile: Profile) -> Optional[Profile]:
        try:
            created = await self._repo.insert(profile)
        except ProfileConflictError as exc:
            self._logger.warning(
                "Profile for %s already exists (concurrent creation); re-fetching. %s",
                profile.id,
                exc,
            )
            return await self._fetch_after_conflict(profile.id)
        except ProfileWriteError as exc:
            self._logger.error(
                "Profile creation failed for %s: %s", profile.id, exc,
                extra={"event": "PROFILE_INSERT_FAILED", "user_id": profile.id},
            )
            self._notifications.error(
                "Could not create your profile",
                "Some features may be unavailable until this is resolved.",
            )
            return None

        log_audit_event(
            logger=self._logger,
            action="PROFILE_CREATE",
            entity_type="Profile",
            entity_id=profile.id,
            user_id=profile.id,
            details={"role": str(created.role), "full_name": created.full_name},
        )

        self._apply(created)
        self._schedule_refetch(profile.id)
        return created

    async def _fetch_after_conflict(self, user_id: str) -> Optional[Profile]:
        try:
            existing = await self._repo.get_by_id(user_id)
        except ProfileQueryError as exc:
            self._logger.error("Profile re-fetch failed for %s: %s", user_id, exc)
            self._notifications.error(
                "Could not load your profile",
                "Some features may be unavailable. Please try again later.",
            )
            return None

        if existing is None:
            # Conflict reported but the row is invisible to this session.
            self._logger.error(
                "Profile for %s reported as existing but could not be read.", user_id,
            )
            self._notifications.error(
                "Could not load your profile",
                "Some features may be unavailable. Please try again later.",
            )
            return None

        self._apply(existing)
        return existing

    def _schedule_refetch(self, user_id: str) -> None:
        if self._closed:
            return
        task = asyncio.create_task(
            self._delayed_refetch(user_id), name=f"profile-refetch-{user_id}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _delayed_refetch(self, user_id: str) -> None:
        await asyncio.sleep(self._refetch_delay_s)
        try:
            fresh = await self._repo.get_by_id(user_id)
        except ProfileQueryError as exc:
            # The optimistic value stays; no toast for a background read.
            self._logger.warning("Post-insert re-fetch failed for %s: %s", user_id, exc)
            return
        if fresh is None:
            self._logger.warning("Post-insert re-fetch found no profile for %s.", user_id)
            return
        self._apply(fresh)

    def _apply(self, profile: Profile) -> None:
        if self._closed:
            return
        self._state.set_profile(profile)
