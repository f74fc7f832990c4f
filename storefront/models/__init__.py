"""
Data Models Package.

Re-exports all Pydantic models:
    from storefront.models import Profile, ProfileUpdate, Identity, SessionInfo
    from storefront.models import UserRole, AuthPhase, AuthResult
"""

from __future__ import annotations

from storefront.models.auth_models import (
    AuthErrorCode,
    AuthResult,
    ServiceResult,
    ValidationResult,
)
from storefront.models.enums import (
    AccessDecision,
    AuthPhase,
    NotificationVariant,
    SessionEvent,
    UserRole,
)
from storefront.models.identity import Identity, SessionInfo
from storefront.models.profile import Profile, ProfileUpdate

__all__ = [
    "AccessDecision",
    "AuthErrorCode",
    "AuthPhase",
    "AuthResult",
    "Identity",
    "NotificationVariant",
    "Profile",
    "ProfileUpdate",
    "ServiceResult",
    "SessionEvent",
    "SessionInfo",
    "UserRole",
    "ValidationResult",
]
