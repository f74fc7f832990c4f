"""
Identity & Session Models.

Local mirrors of the Supabase Auth ``User`` and ``Session`` objects.  The
client never owns these; they are rebuilt from every auth event.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class Identity(BaseModel):
    """The auth-service account record: stable id, email, metadata bag."""

    id: str = Field(..., min_length=1)
    email: Optional[str] = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @classmethod
    def from_supabase(cls, user: Any) -> "Identity":
        """Build from a ``supabase_auth.types.User`` (or any look-alike)."""
        return cls(
            id=user.id,
            email=getattr(user, "email", None),
            user_metadata=dict(getattr(user, "user_metadata", None) or {}),
        )

    def metadata_str(self, key: str) -> Optional[str]:
        """Return a non-blank string metadata value, else ``None``."""
        value = self.user_metadata.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    @property
    def email_local_part(self) -> Optional[str]:
        if not self.email or "@" not in self.email:
            return None
        local = self.email.split("@", 1)[0]
        return local or None


class SessionInfo(BaseModel):
    """Opaque session tokens plus the identity they belong to."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None
    identity: Identity

    model_config = {"frozen": True}

    @classmethod
    def from_supabase(cls, session: Any) -> Optional["SessionInfo"]:
        """Build from a ``supabase_auth.types.Session``; ``None`` passes through."""
        if session is None or getattr(session, "user", None) is None:
            return None
        return cls(
            access_token=session.access_token,
            refresh_token=getattr(session, "refresh_token", None),
            expires_at=getattr(session, "expires_at", None),
            identity=Identity.from_supabase(session.user),
        )
