"""
Authentication Service.

Single entry point for every credential operation in the storefront:
login, registration, logout, self-service profile updates and identity
metadata updates.

Sits between the views and Supabase Auth so that forms stay thin.  All
methods return typed ``AuthResult`` models; views never inspect raw
exceptions.  Session and profile state are *not* written on login: the
``SessionListener`` owns that path through its own subscription.
"""

from __future__ import annotations

import re
from typing import Any, Optional, Union

import httpx
from pydantic import ValidationError
from supabase_auth.errors import AuthRetryableError

from storefront.auth import AuthState
from storefront.database import SupabaseManager
from storefront.logger import StructuredLogger
from storefront.models.auth_models import (
    SUPABASE_ERROR_MAP,
    AuthErrorCode,
    AuthResult,
    ValidationResult,
)
from storefront.models.enums import UserRole
from storefront.models.identity import Identity
from storefront.models.profile import ProfileUpdate
from storefront.repositories.profile_repository import ProfileRepository, ProfileWriteError
from storefront.services.base_service import BaseService
from storefront.services.notifications import NotificationCenter
from storefront.services.profile_reconciler import ProfileReconcilerService


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_EMAIL_RE: re.Pattern[str] = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)

# Supabase Auth's default minimum.
_MIN_PASSWORD_LENGTH: int = 6

# C0 controls, DEL and C1 controls.
_CONTROL_CHAR_RE: re.Pattern[str] = re.compile(r"[\x00-\x1f\x7f-\x9f]")

# The auth client reports transport failures and 502/503/504 as AuthRetryableError.
_NETWORK_ERRORS: tuple[type[BaseException], ...] = (
    AuthRetryableError,
    ConnectionError,
    TimeoutError,
    httpx.TransportError,
)

_NETWORK_MESSAGE: str = "Cannot reach the server. Check your internet connection."


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class AuthService(BaseService):
    """Auth facade.

    Parameters
    ----------
    db:
        Connected ``SupabaseManager``.
    state:
        Shared auth state; written only by ``logout`` and ``update_profile``.
    reconciler:
        Used for the eager profile insert after registration and for
        explicit refreshes.
    repo:
        Profile data access for self-service updates.
    notifications:
        Toast sink for success feedback.
    logger:
        Structured JSON logger.
    """

    def __init__(
        self,
        db: SupabaseManager,
        state: AuthState,
        reconciler: ProfileReconcilerService,
        repo: ProfileRepository,
        notifications: NotificationCenter,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._db = db
        self._state = state
        self._reconciler = reconciler
        self._repo = repo
        self._notifications = notifications

    # ==================================================================
    # Validation helpers
    # ==================================================================

    @staticmethod
    def validate_email(email: str) -> ValidationResult:
        """Validate an email address against a simplified RFC 5322 regex."""
        if not email or not email.strip():
            return ValidationResult(
                is_valid=False,
                error_message="Email address is required.",
            )
        if not _EMAIL_RE.match(email.strip()):
            return ValidationResult(
                is_valid=False,
                error_message="Please enter a valid email address.",
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def validate_password(password: str) -> ValidationResult:
        """Enforce the minimum length Supabase Auth accepts."""
        if len(password or "") < _MIN_PASSWORD_LENGTH:
            return ValidationResult(
                is_valid=False,
                error_message=(
                    f"Password must be at least {_MIN_PASSWORD_LENGTH} characters."
                ),
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def validate_name(name: str, field_label: str = "Full name") -> ValidationResult:
        """Reject blank names and names containing control characters."""
        stripped = (name or "").strip()
        if not stripped:
            return ValidationResult(
                is_valid=False,
                error_message=f"{field_label} is required.",
            )
        if _CONTROL_CHAR_RE.search(stripped):
            return ValidationResult(
                is_valid=False,
                error_message=(
                    f"{field_label} contains invalid characters. "
                    "Only printable characters are allowed."
                ),
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def normalize_email(email: str) -> str:
        """Normalise an email address: strip whitespace and lowercase."""
        return (email or "").strip().lower()

    # ==================================================================
    # Login
    # ==================================================================

    async def login(self, email: str, password: str) -> AuthResult:
        """Sign in with email and password.

        Returns as soon as Supabase accepts the credentials.  The profile
        is resolved afterwards by the session listener, so callers must
        not assume ``state.profile`` is ready here.
        """
        email = self.normalize_email(email)
        if not email or not password:
            return AuthResult.failure(
                AuthErrorCode.VALIDATION_ERROR,
                "Email and password are required.",
            )

        try:
            response = await self._db.run(
                self._db.client.auth.sign_in_with_password({
                    "email": email,
                    "password": password,
                })
            )
        except Exception as exc:
            return self._classify_error(
                exc,
                operation="LOGIN",
                fallback_message="An unexpected error occurred. Please try again later.",
            )

        user = getattr(response, "user", None)
        user_id: Optional[str] = getattr(user, "id", None)

        self._logger.info(
            "User authenticated: %s", email,
            extra={"event": "LOGIN", "email": email, "user_id": user_id},
        )
        self._notifications.info("Logged in successfully", "Welcome back!")

        return AuthResult(success=True, user_id=user_id, email=email)

    # ==================================================================
    # Registration
    # ==================================================================

    async def register(
        self,
        email: str,
        password: str,
        full_name: str,
        phone: Optional[str] = None,
    ) -> AuthResult:
        """Register a new customer via Supabase ``sign_up()``.

        Submits ``role=customer`` in the identity metadata, then creates
        the profile row right away instead of waiting for the listener,
        so role-dependent views are correct immediately.
        """
        for check in (
            self.validate_name(full_name),
            self.validate_email(email),
            self.validate_password(password),
        ):
            if not check.is_valid:
                return AuthResult.failure(
                    AuthErrorCode.VALIDATION_ERROR, check.error_message or "",
                )

        email = self.normalize_email(email)
        full_name = full_name.strip()
        phone = phone.strip() if phone and phone.strip() else None

        try:
            response = await self._db.run(
                self._db.client.auth.sign_up({
                    "email": email,
                    "password": password,
                    "options": {
                        "data": {
                            "full_name": full_name,
                            "phone": phone,
                            "role": str(UserRole.CUSTOMER),
                        },
                    },
                })
            )
        except Exception as exc:
            return self._classify_error(
                exc,
                operation="REGISTER",
                fallback_message="Registration could not be completed. Please try again later.",
            )

        user = getattr(response, "user", None)
        if user is None:
            self._logger.warning(
                "Sign-up for %s returned no user.", email,
                extra={"event": "REGISTER_FAILED", "email": email},
            )
            return AuthResult.failure(
                AuthErrorCode.UNKNOWN_ERROR,
                "Registration could not be completed. Please try again later.",
            )

        identity = Identity.from_supabase(user)
        # Failures here are logged and toasted by the reconciler; the
        # account itself exists, so registration still succeeds.
        await self._reconciler.ensure_profile(identity.id, identity)

        self._logger.info(
            "User registered: %s (%s).", full_name, email,
            extra={"event": "REGISTER", "email": email, "user_id": identity.id},
        )
        self._notifications.info("Account created successfully", "You are now logged in")

        return AuthResult(
            success=True,
            user_id=identity.id,
            email=email,
            full_name=full_name,
            role=UserRole.CUSTOMER,
        )

    # ==================================================================
    # Logout
    # ==================================================================

    async def logout(self) -> None:
        """Revoke the server session, then clear local state unconditionally."""
        user_id = self._state.user_id or "unknown"

        try:
            await self._db.run(self._db.client.auth.sign_out())
        except Exception as exc:
            self._logger.warning(
                "Server-side sign_out failed for %s: %s", user_id, exc,
            )

        self._state.clear()

        self._logger.info(
            "User logged out: %s", user_id,
            extra={"event": "LOGOUT", "user_id": user_id},
        )
        self._notifications.info("Logged out", "You have been logged out successfully")

    # ==================================================================
    # Profile
    # ==================================================================

    async def update_profile(
        self,
        fields: Union[ProfileUpdate, dict[str, Any]],
    ) -> AuthResult:
        """Persist a partial profile update, then merge it locally.

        The merge is optimistic: the profile is not re-fetched.
        """
        user_id = self._state.user_id
        if user_id is None:
            return AuthResult.failure(
                AuthErrorCode.NOT_AUTHENTICATED, "User not authenticated",
            )

        try:
            update = (
                fields if isinstance(fields, ProfileUpdate)
                else ProfileUpdate.model_validate(fields)
            )
        except ValidationError as exc:
            return AuthResult.failure(
                AuthErrorCode.VALIDATION_ERROR,
                f"Invalid profile fields: {exc.errors()[0]['msg']}",
            )

        changes = update.changes()
        if not changes:
            return self._profile_result(user_id)

        try:
            updated = await self._repo.update(user_id, changes)
        except ProfileWriteError as exc:
            self._logger.error(
                "Update profile error for %s: %s", user_id, exc,
                extra={"event": "PROFILE_UPDATE_FAILED", "user_id": user_id},
            )
            if isinstance(exc.original_error, _NETWORK_ERRORS):
                return AuthResult.failure(AuthErrorCode.NETWORK_ERROR, _NETWORK_MESSAGE)
            return AuthResult.failure(
                AuthErrorCode.UNKNOWN_ERROR, "Your profile could not be updated.",
            )

        if updated is None:
            self._logger.warning(
                "Profile update for %s matched no row.", user_id,
            )

        self._state.merge_profile(changes)
        self._logger.info(
            "Profile updated for %s: %s", user_id, ", ".join(sorted(changes)),
            extra={"event": "PROFILE_UPDATE", "user_id": user_id},
        )
        self._notifications.info(
            "Profile updated", "Your profile has been updated successfully",
        )
        return self._profile_result(user_id)

    async def refresh_profile(self) -> AuthResult:
        """Re-run reconciliation for the signed-in identity."""
        identity = self._state.identity
        if identity is None:
            return AuthResult.failure(
                AuthErrorCode.NOT_AUTHENTICATED, "User not authenticated",
            )

        profile = await self._reconciler.reconcile(identity.id, identity)
        if profile is None:
            return AuthResult.failure(
                AuthErrorCode.UNKNOWN_ERROR, "Your profile could not be loaded.",
            )
        return self._profile_result(identity.id)

    async def update_identity_metadata(self, data: dict[str, Any]) -> AuthResult:
        """Amend the identity's metadata bag.

        The resulting ``USER_UPDATED`` event reaches the session listener.
        The profile row stays authoritative for the role.
        """
        user_id = self._state.user_id
        if user_id is None:
            return AuthResult.failure(
                AuthErrorCode.NOT_AUTHENTICATED, "User not authenticated",
            )

        try:
            await self._db.run(self._db.client.auth.update_user({"data": data}))
        except Exception as exc:
            return self._classify_error(
                exc,
                operation="UPDATE_METADATA",
                fallback_message="Your account details could not be updated.",
            )

        self._logger.info(
            "Identity metadata updated for %s: %s", user_id, ", ".join(sorted(data)),
            extra={"event": "UPDATE_METADATA", "user_id": user_id},
        )
        return AuthResult(success=True, user_id=user_id)

    # ==================================================================
    # Private helpers
    # ==================================================================

    def _profile_result(self, user_id: str) -> AuthResult:
        profile = self._state.profile
        return AuthResult(
            success=True,
            user_id=user_id,
            email=self._state.identity.email if self._state.identity else None,
            full_name=profile.full_name if profile else None,
            role=profile.role if profile else None,
        )

    def _classify_error(
        self,
        exc: Exception,
        *,
        operation: str,
        fallback_message: str,
    ) -> AuthResult:
        """Map a Supabase or network exception to a structured ``AuthResult``.

        The API error ``code`` wins; otherwise the lower-cased message is
        scanned for the known keys.
        """
        if isinstance(exc, _NETWORK_ERRORS):
            self._logger.warning(
                "Network error during %s: %s", operation, exc,
                extra={"event": f"{operation}_NETWORK_ERROR"},
            )
            return AuthResult.failure(AuthErrorCode.NETWORK_ERROR, _NETWORK_MESSAGE)

        code = getattr(exc, "code", None)
        mapped = SUPABASE_ERROR_MAP.get(code) if isinstance(code, str) else None
        if mapped is None:
            error_str = str(exc).lower()
            for code_key, candidate in SUPABASE_ERROR_MAP.items():
                if code_key in error_str:
                    code, mapped = code_key, candidate
                    break

        if mapped is not None:
            error_code, human_message = mapped
            self._logger.warning(
                "%s error (%s): %s", operation, code, exc,
                extra={"event": f"{operation}_FAILED", "error_code": str(code)},
            )
            return AuthResult.failure(error_code, human_message)

        self._logger.warning(
            "Unknown %s error: %s", operation, exc,
            extra={"event": f"{operation}_FAILED", "error_code": "unknown"},
        )
        return AuthResult.failure(AuthErrorCode.UNKNOWN_ERROR, fallback_message)
