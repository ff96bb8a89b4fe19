# src/batchaudit/core/store/schema.py
"""SQLAlchemy table definitions for the audit store.

Uses SQLAlchemy Core (not ORM) for explicit control over queries
and compatibility with multiple database backends.
"""

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    MetaData,
    String,
    Table,
    Text,
)

# Shared metadata for all tables
metadata = MetaData()

# === Audit Events ===
# Append-only: rows are inserted by the recorder and never updated or deleted here.

audit_events_table = Table(
    "audit_events",
    metadata,
    Column("audit_id", String(36), primary_key=True),
    Column("correlation_id", String(36), nullable=False),
    Column("source_system", String(64), nullable=False),
    Column("module_name", String(128)),
    Column("process_name", String(128)),
    Column("source_entity", String(256)),
    Column("destination_entity", String(256)),
    Column("key_identifier", String(256)),
    Column("checkpoint_stage", String(32), nullable=False),
    Column("event_timestamp", DateTime(timezone=True), nullable=False),
    Column("status", String(16), nullable=False),
    Column("message", Text),
    Column("details_json", Text),
)

Index("ix_audit_events_correlation_ts", audit_events_table.c.correlation_id, audit_events_table.c.event_timestamp)
Index("ix_audit_events_source_stage", audit_events_table.c.source_system, audit_events_table.c.checkpoint_stage)
Index("ix_audit_events_module_status", audit_events_table.c.module_name, audit_events_table.c.status)
Index("ix_audit_events_timestamp", audit_events_table.c.event_timestamp)
