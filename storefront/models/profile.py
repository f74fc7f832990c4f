"""
Profile Model.

Pydantic models for rows of the ``profiles`` table, one per identity.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, field_validator

from storefront.models.enums import UserRole


class Profile(BaseModel):
    """Application-level profile row.

    ``role`` is nullable text in the table.  A null role reads as
    ``customer``; other values are matched case-insensitively against
    ``UserRole`` and anything unrecognised fails validation.
    """

    id: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: UserRole = UserRole.CUSTOMER
    is_suspended: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None
    last_updated_by: Optional[str] = None

    model_config = {"from_attributes": True, "extra": "ignore"}

    @field_validator("role", mode="before")
    @classmethod
    def _default_role(cls, value: Any) -> Any:
        if value is None:
            return UserRole.CUSTOMER
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("is_suspended", mode="before")
    @classmethod
    def _default_suspended(cls, value: Any) -> Any:
        return False if value is None else value

    def insert_payload(self) -> dict[str, Any]:
        """Columns written on insert; server-computed fields are left out."""
        return {
            "id": self.id,
            "full_name": self.full_name,
            "phone": self.phone,
            "role": str(self.role),
        }


class ProfileUpdate(BaseModel):
    """Partial update.  Only explicitly-set fields are written or merged."""

    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[UserRole] = None
    is_suspended: Optional[bool] = None

    model_config = {"extra": "forbid"}

    def changes(self) -> dict[str, Any]:
        """Return the explicitly-set fields as a JSON-ready dict."""
        return self.model_dump(mode="json", exclude_unset=True)
