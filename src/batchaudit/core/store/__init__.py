"""Audit store: SQLAlchemy Core persistence for audit events."""

from batchaudit.core.store.database import AuditDatabase
from batchaudit.core.store.schema import audit_events_table, metadata
from batchaudit.core.store.store import SqlAuditStore

__all__ = [
    "AuditDatabase",
    "SqlAuditStore",
    "audit_events_table",
    "metadata",
]
