"""
Session Listener.

Keeps ``AuthState`` in step with Supabase Auth.

The auth client invokes state-change callbacks while holding its own
internal lock, so the callback here does no I/O: it mirrors the session
synchronously and hands the identity to a reconciliation worker through
an ``asyncio.Queue``.  The worker runs the (network-bound) profile
reconciliation on its own task, after the callback has returned.

Lifecycle::

    listener = SessionListener(db, state, reconciler, notifications, logger)
    await listener.attach()   # subscribes, then restores any existing session
    ...
    await listener.detach()   # unsubscribes; no state updates afterwards
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from storefront.auth import AuthState
from storefront.database import SupabaseManager
from storefront.logger import StructuredLogger
from storefront.models.enums import SessionEvent
from storefront.models.identity import Identity, SessionInfo
from storefront.services.base_service import BaseService
from storefront.services.notifications import NotificationCenter
from storefront.services.profile_reconciler import ProfileReconcilerService

_CLEARING_EVENTS: frozenset[str] = frozenset(
    {SessionEvent.SIGNED_OUT, SessionEvent.USER_DELETED}
)


class SessionListener(BaseService):
    """Mirrors the remote session and drives profile reconciliation.

    Parameters
    ----------
    db:
        Connected ``SupabaseManager``; its end-user client emits the events.
    state:
        Shared auth state (this listener is one of its writers).
    reconciler:
        Profile reconciliation service.
    notifications:
        Toast sink for a failed initial session check.
    logger:
        Structured logger.
    """

    def __init__(
        self,
        db: SupabaseManager,
        state: AuthState,
        reconciler: ProfileReconcilerService,
        notifications: NotificationCenter,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._db = db
        self._state = state
        self._reconciler = reconciler
        self._notifications = notifications
        self._queue: Optional[asyncio.Queue[Identity]] = None
        self._worker: Optional[asyncio.Task[None]] = None
        self._subscription: Optional[Any] = None
        self._attached: bool = False

    @property
    def is_attached(self) -> bool:
        return self._attached

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def attach(self) -> None:
        """Subscribe to auth events, then restore any already-active session.

        ``state.is_loading`` is ``True`` from here until the initial
        check resolves, whether it succeeds or fails.  A restored session
        has its profile reconciled before loading clears.
        """
        if self._attached:
            self._logger.debug("Session listener already attached.")
            return

        auth = self._db.client.auth

        self._attached = True
        self._reconciler.resume()
        self._state.begin_loading()

        self._queue = asyncio.Queue()
        self._subscription = auth.on_auth_state_change(
            self._on_auth_state_change,
        )
        self._worker = asyncio.create_task(
            self._run_worker(self._queue), name="profile-reconcile-worker",
        )
        self._logger.info("Session listener attached.")

        try:
            await self._initial_check()
        finally:
            if self._attached:
                self._state.finish_loading()

    async def detach(self) -> None:
        """Unsubscribe and stop all pending reconciliation work.

        Safe to call when not attached.
        """
        if not self._attached:
            return
        self._attached = False

        if self._subscription is not None:
            try:
                self._subscription.unsubscribe()
            except Exception as exc:
                self._logger.warning("Auth subscription unsubscribe failed: %s", exc)
            self._subscription = None

        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None

        await self._reconciler.close()
        self._queue = None
        self._logger.info("Session listener detached.")

    async def drain(self) -> None:
        """Wait until every queued reconciliation and re-fetch has finished."""
        if self._queue is not None:
            await self._queue.join()
        await self._reconciler.wait_idle()

    # ------------------------------------------------------------------
    # Auth callback (synchronous, no I/O)
    # ------------------------------------------------------------------

    def _on_auth_state_change(self, event: Any, session: Any) -> None:
        if not self._attached or self._queue is None:
            return

        name = str(event)
        info = SessionInfo.from_supabase(session)
        self._logger.info(
            "Auth state changed: %s", name,
            extra={
                "event": "AUTH_STATE_CHANGE",
                "auth_event": name,
                "user_id": info.identity.id if info else None,
            },
        )

        if info is None or name in _CLEARING_EVENTS:
            self._state.clear()
            return

        self._state.apply_session(info)
        self._queue.put_nowait(info.identity)

    # ------------------------------------------------------------------
    # Private implementation
    # ------------------------------------------------------------------

    async def _initial_check(self) -> None:
        try:
            raw_session = await self._db.run(self._db.client.auth.get_session())
        except Exception as exc:
            self._logger.error(
                "Initial session check failed: %s", exc,
                extra={"event": "SESSION_RESTORE_FAILED"},
            )
            self._notifications.error(
                "Could not restore your session",
                "Please sign in again.",
            )
            return

        session = SessionInfo.from_supabase(raw_session)
        if session is None:
            # A sign-in event may already have populated state meanwhile.
            self._logger.debug("No active session on attach.")
            return

        self._state.apply_session(session)
        await self._reconciler.reconcile(session.identity.id, session.identity)

    async def _run_worker(self, queue: asyncio.Queue[Identity]) -> None:
        while True:
            identity = await queue.get()
            try:
                if self._state.user_id != identity.id:
                    self._logger.debug(
                        "Skipping reconciliation for %s; identity changed.", identity.id,
                    )
                    continue
                await self._reconciler.reconcile(identity.id, identity)
            except Exception as exc:
                self._logger.exception(
                    "Unexpected reconciliation failure for %s: %s", identity.id, exc,
                )
            finally:
                queue.task_done()
