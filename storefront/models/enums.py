"""
Shared Enumerations for Storefront Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents,
so code like ``if role == 'admin'`` continues to work.
"""

from __future__ import annotations
from enum import StrEnum


class UserRole(StrEnum):
    """Authorization tiers stored on the ``profiles`` row."""

    CUSTOMER = "customer"
    STAFF = "staff"
    ADMIN = "admin"


class SessionEvent(StrEnum):
    """Auth state-change events emitted by Supabase Auth.

    ``SIGNED_OUT`` and ``USER_DELETED`` always clear local state.  Every
    other event mirrors the session it carries, or clears when it has none.
    """

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    INITIAL_SESSION = "INITIAL_SESSION"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"
    USER_DELETED = "USER_DELETED"
    MFA_CHALLENGE_VERIFIED = "MFA_CHALLENGE_VERIFIED"


class AuthPhase(StrEnum):
    """Combined state of the session listener and profile reconciler."""

    UNINITIALIZED = "UNINITIALIZED"
    LOADING = "LOADING"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    AUTHENTICATED_NO_PROFILE = "AUTHENTICATED_NO_PROFILE"
    AUTHENTICATED_WITH_PROFILE = "AUTHENTICATED_WITH_PROFILE"


class AccessDecision(StrEnum):
    """Outcome of a role-gated area check.

    ``LOADING`` and ``PENDING`` are waiting states: the caller renders a
    spinner and must not redirect.
    """

    ALLOW = "ALLOW"
    LOADING = "LOADING"
    PENDING = "PENDING"
    REDIRECT_LOGIN = "REDIRECT_LOGIN"
    DENY = "DENY"


class NotificationVariant(StrEnum):
    """Visual style of a transient toast."""

    DEFAULT = "default"
    DESTRUCTIVE = "destructive"
