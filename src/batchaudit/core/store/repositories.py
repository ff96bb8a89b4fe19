"""Repository layer for stored audit events.

Handles the seam between SQLAlchemy rows (strings) and domain objects
(UUIDs and strict enum types). This is NOT a trust boundary: the audit
store is our own data, so a bad stored value raises.
"""

import uuid
from datetime import UTC
from typing import Any

from sqlalchemy.engine import Row as SARow

from batchaudit.contracts.audit import AuditEvent
from batchaudit.contracts.enums import AuditStatus, CheckpointStage
from batchaudit.core.store._helpers import coerce_enum, ensure_utc


class AuditEventRepository:
    """Repository for AuditEvent records."""

    def load(self, row: SARow[Any]) -> AuditEvent:
        """Load AuditEvent from database row.

        Converts string fields to UUIDs and enums. Crashes on invalid data.
        """
        return AuditEvent(
            audit_id=uuid.UUID(row.audit_id),
            correlation_id=uuid.UUID(row.correlation_id),
            source_system=row.source_system,
            module_name=row.module_name,
            process_name=row.process_name,
            source_entity=row.source_entity,
            destination_entity=row.destination_entity,
            key_identifier=row.key_identifier,
            checkpoint_stage=coerce_enum(row.checkpoint_stage, CheckpointStage),
            event_timestamp=ensure_utc(row.event_timestamp),
            status=coerce_enum(row.status, AuditStatus),
            message=row.message,
            details_json=row.details_json,
        )

    def dump(self, event: AuditEvent) -> dict[str, Any]:
        """Column values for inserting a fully populated event."""
        if event.audit_id is None or event.event_timestamp is None or event.correlation_id is None or event.status is None:
            raise ValueError("AuditEvent must have audit_id, event_timestamp, correlation_id and status before storage")
        return {
            "audit_id": str(event.audit_id),
            "correlation_id": str(event.correlation_id),
            "source_system": event.source_system,
            "module_name": event.module_name,
            "process_name": event.process_name,
            "source_entity": event.source_entity,
            "destination_entity": event.destination_entity,
            "key_identifier": event.key_identifier,
            "checkpoint_stage": event.checkpoint_stage.value,
            "event_timestamp": ensure_utc(event.event_timestamp).astimezone(UTC),
            "status": event.status.value,
            "message": event.message,
            "details_json": event.details_json,
        }
