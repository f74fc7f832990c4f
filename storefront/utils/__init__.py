"""Shared utility functions and models for the storefront client."""

from storefront.utils.audit import AuditEvent, log_audit_event

__all__ = [
    "AuditEvent",
    "log_audit_event",
]
