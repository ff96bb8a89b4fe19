"""Audit trail contracts.

These are strict contracts - enum fields must hold enum members. The store's
repository layer converts stored strings back to enums on read.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from batchaudit.contracts.enums import AuditStatus, CheckpointStage


def _validate_enum(value: object, enum_type: type, field_name: str) -> None:
    """Reject non-enum values; None passes and is caught by required-field checks."""
    if value is not None and not isinstance(value, enum_type):
        raise TypeError(f"{field_name} must be {enum_type.__name__}, got {type(value).__name__}: {value!r}")


@dataclass(frozen=True)
class AuditEvent:
    """One observation at one checkpoint for one pipeline run.

    correlation_id, source_system and status may be None on construction so the
    recorder can report them as validation failures; a persisted event always
    has them. The recorder likewise rejects a missing checkpoint_stage. audit_id and event_timestamp are filled by the recorder when
    absent, and a caller-supplied timestamp is kept for replayed events.
    """

    correlation_id: UUID | str | None
    source_system: str | None
    checkpoint_stage: CheckpointStage
    status: AuditStatus | None
    module_name: str | None = None
    process_name: str | None = None
    source_entity: str | None = None
    destination_entity: str | None = None
    key_identifier: str | None = None
    message: str | None = None
    details_json: str | None = None
    audit_id: UUID | None = None
    event_timestamp: datetime | None = None

    def __post_init__(self) -> None:
        _validate_enum(self.checkpoint_stage, CheckpointStage, "checkpoint_stage")
        _validate_enum(self.status, AuditStatus, "status")

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready mapping used by the CLI and report exports."""
        return {
            "audit_id": str(self.audit_id) if self.audit_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "source_system": self.source_system,
            "module_name": self.module_name,
            "process_name": self.process_name,
            "source_entity": self.source_entity,
            "destination_entity": self.destination_entity,
            "key_identifier": self.key_identifier,
            "checkpoint_stage": self.checkpoint_stage.value,
            "event_timestamp": self.event_timestamp.isoformat() if self.event_timestamp else None,
            "status": self.status.value if self.status else None,
            "message": self.message,
            "details_json": self.details_json,
        }
