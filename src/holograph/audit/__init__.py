"""Audit subsystem — async JSONL log of mutation outcomes."""

from holograph.audit.schemas import AuditEvent
from holograph.audit.schemas import AuditEventType
from holograph.audit.store import AuditLogger

__all__ = [
    "AuditEvent",
    "AuditEventType",
    "AuditLogger",
]
