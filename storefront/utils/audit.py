"""
Audit trail for profile changes.

Profile creation, role changes, suspensions and promotions each produce
one ``AUDIT:`` log line whose body is the JSON form of an ``AuditEvent``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from storefront.logger import StructuredLogger

__all__ = ["AuditEvent", "log_audit_event"]

# Scalars only.
DetailValue = Union[str, int, float, bool, None]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuditEvent(BaseModel):
    """Who did what to which profile, and when."""

    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=_utc_now)

    def emit(self, logger: StructuredLogger) -> None:
        logger.info(
            "AUDIT: %s",
            self.model_dump_json(),
            extra={"event": "AUDIT", "action": self.action},
        )


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
) -> AuditEvent:
    """Build an ``AuditEvent``, write it to *logger* and return it.

    ``action`` is an upper-case verb such as ``PROFILE_CREATE`` or
    ``UPDATE_ROLE``; ``user_id`` is the actor, ``entity_id`` the profile
    that changed.  Invalid detail values raise ``pydantic.ValidationError``.
    """
    event = AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    event.emit(logger)
    return event
