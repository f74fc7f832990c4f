"""
Authentication & Session State.

Provides an injectable ``AuthState`` that mirrors the Supabase session,
the signed-in identity and its ``profiles`` row for the lifetime of the
client process.

Writers are limited to ``SessionListener``, ``ProfileReconcilerService``
and ``AuthService``.  Everything else reads the derived selectors
(``is_authenticated``, ``is_admin``, ``is_staff``, ``phase``), which are
computed from current state on every access and cannot be set directly.

Usage::

    state = AuthState(logger=get_logger("storefront.state"))
    unsubscribe = state.subscribe(lambda s: print(s.phase))
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from storefront.logger import StructuredLogger
from storefront.models.enums import AuthPhase, UserRole
from storefront.models.identity import Identity, SessionInfo
from storefront.models.profile import Profile

StateListener = Callable[["AuthState"], None]


class AuthState:
    """Single-writer container for session, identity and profile.

    All access happens on the event-loop thread, so no locking is used.
    """

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger
        self._session: Optional[SessionInfo] = None
        self._identity: Optional[Identity] = None
        self._profile: Optional[Profile] = None
        self._has_started: bool = False
        self._is_loading: bool = False
        self._profile_fetch_attempted: bool = False
        self._listeners: list[StateListener] = []

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def session(self) -> Optional[SessionInfo]:
        return self._session

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def profile(self) -> Optional[Profile]:
        return self._profile

    @property
    def user_id(self) -> Optional[str]:
        return self._identity.id if self._identity is not None else None

    @property
    def is_loading(self) -> bool:
        """``True`` from attach until the initial session check resolves."""
        return self._is_loading

    @property
    def profile_fetch_attempted(self) -> bool:
        return self._profile_fetch_attempted

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None

    @property
    def is_admin(self) -> bool:
        return self._profile is not None and self._profile.role == UserRole.ADMIN

    @property
    def is_staff(self) -> bool:
        return self._profile is not None and self._profile.role == UserRole.STAFF

    @property
    def phase(self) -> AuthPhase:
        if not self._has_started:
            return AuthPhase.UNINITIALIZED
        if self._is_loading:
            return AuthPhase.LOADING
        if self._identity is None:
            return AuthPhase.UNAUTHENTICATED
        if self._profile is None:
            return AuthPhase.AUTHENTICATED_NO_PROFILE
        return AuthPhase.AUTHENTICATED_WITH_PROFILE

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register *listener* for change notifications.

        Returns a zero-argument callable that removes the listener.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Write side (listener / reconciler / facade only)
    # ------------------------------------------------------------------

    def begin_loading(self) -> None:
        self._has_started = True
        self._is_loading = True
        self._notify()

    def finish_loading(self) -> None:
        self._is_loading = False
        self._notify()

    def apply_session(self, session: Optional[SessionInfo]) -> None:
        """Mirror a session (or its absence).

        The profile and the fetch flag survive only while the identity id
        stays the same (e.g. token refresh), so a stale role can never
        leak across users.
        """
        new_identity = session.identity if session is not None else None
        if new_identity is None or self.user_id != new_identity.id:
            self._profile = None
            self._profile_fetch_attempted = False
        self._session = session
        self._identity = new_identity
        self._notify()

    def mark_profile_fetch_attempted(self) -> None:
        if not self._profile_fetch_attempted:
            self._profile_fetch_attempted = True
            self._notify()

    def set_profile(self, profile: Profile) -> bool:
        """Replace the profile if it belongs to the current identity.

        Returns ``False`` (and changes nothing) for a stale result.
        """
        if self.user_id != profile.id:
            self._logger.debug(
                "Discarding profile for %s; current identity is %s.",
                profile.id,
                self.user_id,
            )
            return False
        self._profile = profile
        self._notify()
        return True

    def merge_profile(self, changes: dict[str, Any]) -> None:
        """Merge *changes* into the current profile (no-op without one)."""
        if self._profile is None or not changes:
            return
        merged = {**self._profile.model_dump(), **changes}
        self._profile = Profile.model_validate(merged)
        self._notify()

    def clear(self) -> None:
        """Drop session, identity and profile; reset the fetch flag."""
        self._session = None
        self._identity = None
        self._profile = None
        self._profile_fetch_attempted = False
        self._notify()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as exc:
                self._logger.warning(
                    "Auth state listener %r failed: %s", listener, exc,
                    exc_info=True,
                )
