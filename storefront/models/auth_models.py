"""
Authentication Pipeline Models.

Pydantic models and enumerations for the request/response contracts
between ``AuthService`` and the views that call it.

Every auth operation returns a structured, inspectable result rather than
raising; views render ``error_message`` inline on the form.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

from storefront.models.enums import UserRole

T = TypeVar("T")


# error classification

class AuthErrorCode(StrEnum):
    """Exhaustive enumeration of authentication error categories."""

    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_NOT_CONFIRMED = "email_not_confirmed"
    EMAIL_ALREADY_EXISTS = "email_already_exists"
    NOT_AUTHENTICATED = "not_authenticated"
    NETWORK_ERROR = "network_error"
    VALIDATION_ERROR = "validation_error"
    UNKNOWN_ERROR = "unknown_error"


# supabase error-code mapping

# Keys are matched against the API error ``code`` first, then as
# substrings of the lower-cased exception text.
SUPABASE_ERROR_MAP: dict[str, tuple[AuthErrorCode, str]] = {
    "invalid_credentials": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "invalid login credentials": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "invalid_grant": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "email_not_confirmed": (
        AuthErrorCode.EMAIL_NOT_CONFIRMED,
        "Please confirm your email address before signing in.",
    ),
    "email not confirmed": (
        AuthErrorCode.EMAIL_NOT_CONFIRMED,
        "Please confirm your email address before signing in.",
    ),
    "user_already_exists": (
        AuthErrorCode.EMAIL_ALREADY_EXISTS,
        "An account with this email already exists. Try signing in.",
    ),
    "already registered": (
        AuthErrorCode.EMAIL_ALREADY_EXISTS,
        "An account with this email already exists. Try signing in.",
    ),
}


# validation result

class ValidationResult(BaseModel):
    """Result of a single client-side field validation check."""

    is_valid: bool
    error_message: Optional[str] = None


# unified auth response

class AuthResult(BaseModel):
    """Unified response for login, registration and profile operations.

    Attributes
    ----------
    success:
        Whether the call succeeded.
    error_code:
        Failure category; unset on success.
    error_message:
        Message suitable for showing next to the form.
    user_id:
        Identity id returned by Supabase Auth.
    email:
        Lower-cased, trimmed email.
    full_name:
        Display name, when known.
    role:
        Profile role, when known.
    """

    success: bool
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[UserRole] = None

    @classmethod
    def failure(cls, code: AuthErrorCode, message: str) -> "AuthResult":
        return cls(success=False, error_code=code, error_message=message)


# service envelope

class ServiceResult(BaseModel, Generic[T]):
    """Outcome of an administrative call, e.g. ``ServiceResult[list[Profile]]``.

    ``status_code`` follows HTTP conventions (400, 401, 403, 404, 207, 500).
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    status_code: int = 200
