"""All status codes, stages, and kinds used across subsystem boundaries.

Checkpoint and status tokens are part of the stored audit trail. Their string
values are fixed; adding a member is a schema change, not a configuration change.
"""

from enum import StrEnum


class CheckpointStage(StrEnum):
    """Fixed transition points of the batch pipeline, in pipeline order.

    Stored in database (audit_events.checkpoint_stage).
    """

    RHEL_LANDING = "RHEL_LANDING"
    SQLLOADER_START = "SQLLOADER_START"
    SQLLOADER_COMPLETE = "SQLLOADER_COMPLETE"
    LOGIC_APPLIED = "LOGIC_APPLIED"
    FILE_GENERATED = "FILE_GENERATED"

    @property
    def position(self) -> int:
        """Zero-based position of this stage in pipeline order."""
        return PIPELINE_ORDER.index(self)

    @property
    def checkpoint_number(self) -> int:
        """Logical checkpoint (1-4). Loader start and complete share checkpoint 2."""
        return _CHECKPOINT_NUMBERS[self]

    @property
    def label(self) -> str:
        """Human-readable stage name used in synthesized messages."""
        return _STAGE_LABELS[self]


PIPELINE_ORDER: tuple[CheckpointStage, ...] = tuple(CheckpointStage)

_CHECKPOINT_NUMBERS: dict[CheckpointStage, int] = {
    CheckpointStage.RHEL_LANDING: 1,
    CheckpointStage.SQLLOADER_START: 2,
    CheckpointStage.SQLLOADER_COMPLETE: 2,
    CheckpointStage.LOGIC_APPLIED: 3,
    CheckpointStage.FILE_GENERATED: 4,
}

_STAGE_LABELS: dict[CheckpointStage, str] = {
    CheckpointStage.RHEL_LANDING: "File landing",
    CheckpointStage.SQLLOADER_START: "Loader start",
    CheckpointStage.SQLLOADER_COMPLETE: "Loader completion",
    CheckpointStage.LOGIC_APPLIED: "Business logic",
    CheckpointStage.FILE_GENERATED: "File generation",
}


class AuditStatus(StrEnum):
    """Outcome of the operation observed at a checkpoint.

    Stored in database (audit_events.status).
    """

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    WARNING = "WARNING"


class DiscrepancyType(StrEnum):
    """Kind of inconsistency found between checkpoints."""

    RECORD_COUNT_MISMATCH = "RECORD_COUNT_MISMATCH"
    CONTROL_TOTAL_MISMATCH = "CONTROL_TOTAL_MISMATCH"
    MISSING_AUDIT_EVENTS = "MISSING_AUDIT_EVENTS"
    DATA_INTEGRITY_VIOLATION = "DATA_INTEGRITY_VIOLATION"
    PROCESSING_TIMEOUT = "PROCESSING_TIMEOUT"
    DATA_FORMAT_ERROR = "DATA_FORMAT_ERROR"
    OTHER = "OTHER"


class DiscrepancySeverity(StrEnum):
    """Impact level of a discrepancy.

    CRITICAL is reserved for manual escalation; detection never assigns it.
    """

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANKS[self]


_SEVERITY_RANKS: dict[DiscrepancySeverity, int] = {
    DiscrepancySeverity.LOW: 0,
    DiscrepancySeverity.MEDIUM: 1,
    DiscrepancySeverity.HIGH: 2,
    DiscrepancySeverity.CRITICAL: 3,
}


class DiscrepancyStatus(StrEnum):
    """Resolution lifecycle of a discrepancy. Detection always creates OPEN."""

    OPEN = "OPEN"
    INVESTIGATING = "INVESTIGATING"
    RESOLVED = "RESOLVED"
    FALSE_POSITIVE = "FALSE_POSITIVE"
    ACKNOWLEDGED = "ACKNOWLEDGED"


class ReportStatus(StrEnum):
    """Overall verdict of a reconciliation report."""

    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    FAILURE = "FAILURE"
    IN_PROGRESS = "IN_PROGRESS"
    UNKNOWN = "UNKNOWN"


class ReportDetail(StrEnum):
    """Presentation variant of a reconciliation report."""

    SUMMARY = "summary"
    STANDARD = "standard"
    DETAILED = "detailed"


class RetryTier(StrEnum):
    """Named backoff configuration applied to a class of persistence operations."""

    DEFAULT = "default"
    AGGRESSIVE = "aggressive"
    QUICK = "quick"


class ErrorCategory(StrEnum):
    """Outward-facing failure category assigned at the error boundary."""

    CLIENT_ERROR = "client_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INTERNAL_ERROR = "internal_error"
