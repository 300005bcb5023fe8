"""Audit module - hash-chained, append-only decision trail."""

from adaptive_auth.governance.audit.background_writer import AuditRetryWriter
from adaptive_auth.governance.audit.config import create_audit_logger, create_audit_store
from adaptive_auth.governance.audit.logger import AuditLogger
from adaptive_auth.governance.audit.schemas import AuditEntry, AuditEventType, RiskEvent
from adaptive_auth.governance.audit.store import (
    AuditLogIntegrityError,
    AuditStore,
    FileAuditStore,
    InMemoryAuditStore,
)

__all__ = [
    "AuditEntry",
    "AuditEventType",
    "AuditLogIntegrityError",
    "AuditLogger",
    "AuditRetryWriter",
    "AuditStore",
    "FileAuditStore",
    "InMemoryAuditStore",
    "RiskEvent",
    "create_audit_logger",
    "create_audit_store",
]
