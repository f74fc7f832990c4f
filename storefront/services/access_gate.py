"""Access Gate.

Central registry of role-restricted storefront areas, plus the decision
function that views call before rendering one.

Adding a new restricted area = one ``register()`` call.
Paths that match no registered area are public.
"""

from __future__ import annotations

from typing import Optional

from storefront.auth import AuthState
from storefront.logger import StructuredLogger
from storefront.models.enums import AccessDecision, UserRole


class AreaEntry:
    """Metadata for a single restricted area.

    Attributes
    ----------
    prefix:
        Path prefix guarded by this entry (e.g. ``'/admin'``).
    display_name:
        Human-readable name used in logs and navigation.
    required_roles:
        Profile roles that may enter the area.
    """

    __slots__ = ("prefix", "display_name", "required_roles")

    def __init__(
        self,
        prefix: str,
        display_name: str,
        required_roles: frozenset[UserRole],
    ) -> None:
        self.prefix = prefix
        self.display_name = display_name
        self.required_roles = required_roles

    def matches(self, path: str) -> bool:
        return path == self.prefix or path.startswith(self.prefix + "/")


class AreaRegistry:
    """Manages the collection of restricted areas.

    Parameters
    ----------
    logger:
        Structured logger for registration events.
    """

    def __init__(self, logger: StructuredLogger) -> None:
        self._entries: dict[str, AreaEntry] = {}
        self._logger = logger

    def register(
        self,
        prefix: str,
        display_name: str,
        required_roles: frozenset[UserRole],
    ) -> None:
        """Register a restricted area.

        Parameters
        ----------
        prefix:
            Path prefix; a trailing slash is ignored.
        display_name:
            Label used in logs.
        required_roles:
            Roles permitted to access the area.  Must not be empty.
        """
        prefix = "/" + prefix.strip("/")
        if not required_roles:
            raise ValueError(f"Area '{prefix}' must allow at least one role.")
        if prefix in self._entries:
            self._logger.warning("Area '%s' already registered; overwriting.", prefix)
        self._entries[prefix] = AreaEntry(
            prefix=prefix,
            display_name=display_name,
            required_roles=required_roles,
        )
        self._logger.info("Area registered: %s (%s)", prefix, display_name)

    def find(self, path: str) -> Optional[AreaEntry]:
        """Return the most specific area guarding *path*, or ``None``."""
        normalized = "/" + path.split("?", 1)[0].strip("/")
        candidates = [e for e in self._entries.values() if e.matches(normalized)]
        if not candidates:
            return None
        return max(candidates, key=lambda entry: len(entry.prefix))

    def get_areas_for_role(self, role: UserRole) -> list[AreaEntry]:
        """Return areas visible to *role*, preserving registration order."""
        return [e for e in self._entries.values() if role in e.required_roles]


def build_default_registry(logger: StructuredLogger) -> AreaRegistry:
    """The storefront's two restricted areas: admin console and staff desk."""
    registry = AreaRegistry(logger=logger)
    registry.register("/admin", "Admin", frozenset({UserRole.ADMIN}))
    registry.register("/staff", "Staff", frozenset({UserRole.STAFF}))
    return registry


class AccessGate:
    """Decides whether the current user may render a given path.

    Decision order:
        LOADING         -- initial session check still running
        ALLOW           -- path is public
        REDIRECT_LOGIN  -- no identity
        PENDING         -- profile lookup not attempted yet
        DENY            -- no profile, suspended, or role not permitted
        ALLOW           -- otherwise

    Role checks read the profile only; identity metadata is never
    consulted.
    """

    def __init__(
        self,
        state: AuthState,
        registry: AreaRegistry,
        logger: StructuredLogger,
    ) -> None:
        self._state = state
        self._registry = registry
        self._logger = logger

    def check(self, path: str) -> AccessDecision:
        state = self._state
        if state.is_loading:
            return AccessDecision.LOADING

        area = self._registry.find(path)
        if area is None:
            return AccessDecision.ALLOW

        if not state.is_authenticated:
            return AccessDecision.REDIRECT_LOGIN

        profile = state.profile
        if profile is None:
            if not state.profile_fetch_attempted:
                return AccessDecision.PENDING
            self._deny(path, "no profile")
            return AccessDecision.DENY

        if profile.is_suspended:
            self._deny(path, "suspended")
            return AccessDecision.DENY

        if profile.role not in area.required_roles:
            self._deny(path, f"role {profile.role}")
            return AccessDecision.DENY

        return AccessDecision.ALLOW

    def can_access(self, path: str) -> bool:
        return self.check(path) == AccessDecision.ALLOW

    def _deny(self, path: str, reason: str) -> None:
        self._logger.warning(
            "Access denied to %s for %s (%s).", path, self._state.user_id, reason,
            extra={"event": "ACCESS_DENIED", "user_id": self._state.user_id},
        )
