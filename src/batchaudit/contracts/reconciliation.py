"""Reconciliation contracts: discrepancies, per-checkpoint aggregates, reports.

A ReconciliationReport holds the complete aggregation for one correlation id.
Presentation variants are projections of it (see batchaudit.engine.reports)
and never carry data the report does not.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from batchaudit.contracts.enums import (
    AuditStatus,
    CheckpointStage,
    DiscrepancySeverity,
    DiscrepancyStatus,
    DiscrepancyType,
    ReportStatus,
)

MEDIUM_SEVERITY_LIMIT = Decimal(10)


def parse_number(value: str | None) -> Decimal | None:
    """Parse a finite number from its text form, or None when it is not one."""
    if value is None:
        return None
    try:
        number = Decimal(value.strip())
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def compute_difference(expected: str | None, actual: str | None) -> Decimal | None:
    """|expected - actual| when both values are numeric, else None."""
    expected_number = parse_number(expected)
    actual_number = parse_number(actual)
    if expected_number is None or actual_number is None:
        return None
    return abs(expected_number - actual_number)


def severity_for(difference: Decimal | None) -> DiscrepancySeverity:
    """LOW at zero, MEDIUM up to 10, HIGH above. Unknown magnitude is MEDIUM."""
    if difference is None:
        return DiscrepancySeverity.MEDIUM
    if difference == 0:
        return DiscrepancySeverity.LOW
    if difference <= MEDIUM_SEVERITY_LIMIT:
        return DiscrepancySeverity.MEDIUM
    return DiscrepancySeverity.HIGH


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _decimal_text(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class DataDiscrepancy:
    """An inconsistency between two checkpoints (or within one) of a run.

    from_stage is the stage that supplied the expected value, checkpoint_stage
    the stage where the actual value was observed. They are equal for
    single-stage findings such as failed events.
    """

    discrepancy_id: UUID
    correlation_id: UUID
    discrepancy_type: DiscrepancyType
    severity: DiscrepancySeverity
    checkpoint_stage: CheckpointStage
    from_stage: CheckpointStage
    expected_value: str | None
    actual_value: str | None
    difference: Decimal | None
    description: str
    detected_at: datetime | None
    source_system: str | None = None
    module_name: str | None = None
    key_identifier: str | None = None
    status: DiscrepancyStatus = DiscrepancyStatus.OPEN

    def to_dict(self) -> dict[str, Any]:
        return {
            "discrepancy_id": str(self.discrepancy_id),
            "correlation_id": str(self.correlation_id),
            "discrepancy_type": self.discrepancy_type.value,
            "severity": self.severity.value,
            "from_stage": self.from_stage.value,
            "checkpoint_stage": self.checkpoint_stage.value,
            "expected_value": self.expected_value,
            "actual_value": self.actual_value,
            "difference": _decimal_text(self.difference),
            "description": self.description,
            "detected_at": _iso(self.detected_at),
            "source_system": self.source_system,
            "module_name": self.module_name,
            "key_identifier": self.key_identifier,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class CheckpointSummary:
    """Aggregate of all events observed at one stage.

    Stages with no events are still present, with zero counts and no timing.
    """

    stage: CheckpointStage
    event_count: int
    record_count: int
    has_record_count: bool
    control_total: Decimal | None
    status: AuditStatus | None
    first_event_at: datetime | None
    last_event_at: datetime | None

    @property
    def duration_ms(self) -> int | None:
        if self.first_event_at is None or self.last_event_at is None:
            return None
        return int((self.last_event_at - self.first_event_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "event_count": self.event_count,
            "record_count": self.record_count,
            "control_total": _decimal_text(self.control_total),
            "status": self.status.value if self.status else None,
            "start_time": _iso(self.first_event_at),
            "end_time": _iso(self.last_event_at),
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True)
class ReportSummary:
    """Top-line metrics for one run."""

    total_records_processed: int
    total_events: int
    successful_events: int
    failed_events: int
    warning_events: int
    success_rate: float
    data_integrity_valid: bool
    critical_issues_count: int
    total_processing_time_ms: int | None


@dataclass(frozen=True)
class PerformanceMetrics:
    """Throughput figures derived from event timestamps and record counts."""

    total_processing_time_ms: int | None
    records_per_second: float | None
    average_processing_time_per_record_ms: float | None
    events_per_checkpoint: dict[CheckpointStage, int]


@dataclass(frozen=True)
class ReconciliationReport:
    """Complete reconciliation of one pipeline run.

    as_of is the latest event timestamp in the trail, so reconciling an
    unchanged trail always yields an identical report.
    """

    correlation_id: UUID
    source_system: str | None
    as_of: datetime | None
    pipeline_start: datetime | None
    pipeline_end: datetime | None
    overall_status: ReportStatus
    checkpoints: tuple[CheckpointSummary, ...]
    discrepancies: tuple[DataDiscrepancy, ...]
    rollup_severity: DiscrepancySeverity | None
    summary: ReportSummary
    performance: PerformanceMetrics

    @property
    def checkpoint_counts(self) -> dict[CheckpointStage, int]:
        return {checkpoint.stage: checkpoint.record_count for checkpoint in self.checkpoints}

    @property
    def control_totals(self) -> dict[CheckpointStage, Decimal | None]:
        return {checkpoint.stage: checkpoint.control_total for checkpoint in self.checkpoints}

    def checkpoint(self, stage: CheckpointStage) -> CheckpointSummary:
        for checkpoint in self.checkpoints:
            if checkpoint.stage == stage:
                return checkpoint
        raise KeyError(stage)


@dataclass(frozen=True)
class AuditStatistics:
    """Event volumes and outcome rates across all runs in a period."""

    period_start: datetime
    period_end: datetime
    total_events: int
    successful_events: int
    failed_events: int
    warning_events: int
    success_rate: float
    failure_rate: float
    warning_rate: float
    events_by_source_system: dict[str, int] = field(default_factory=dict)
    events_by_module: dict[str, int] = field(default_factory=dict)
    events_by_checkpoint_stage: dict[str, int] = field(default_factory=dict)
    events_by_status: dict[str, int] = field(default_factory=dict)
    average_events_per_day: float = 0.0
    peak_events_per_day: int = 0
    peak_date: date | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "total_events": self.total_events,
            "successful_events": self.successful_events,
            "failed_events": self.failed_events,
            "warning_events": self.warning_events,
            "success_rate": self.success_rate,
            "failure_rate": self.failure_rate,
            "warning_rate": self.warning_rate,
            "events_by_source_system": dict(self.events_by_source_system),
            "events_by_module": dict(self.events_by_module),
            "events_by_checkpoint_stage": dict(self.events_by_checkpoint_stage),
            "events_by_status": dict(self.events_by_status),
            "average_events_per_day": self.average_events_per_day,
            "peak_events_per_day": self.peak_events_per_day,
            "peak_date": self.peak_date.isoformat() if self.peak_date else None,
        }
