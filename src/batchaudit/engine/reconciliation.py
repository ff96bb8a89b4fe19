# src/batchaudit/engine/reconciliation.py
"""ReconciliationEngine: end-to-end consistency checks over one run's trail.

Reads the ordered trail for a correlation id and, in one pass:
1. Aggregates every checkpoint stage (stages without events stay visible)
2. Compares record counts and control totals between adjacent stages
3. Flags gaps in the checkpoint sequence and failed events
4. Rolls severities up into an overall status

The result depends only on the stored trail: reconciling an unchanged trail
twice yields equal reports (discrepancy ids are name-based, timestamps come
from the trail, ordering is total).
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from batchaudit.contracts.audit import AuditEvent
from batchaudit.contracts.details import COUNT_FIELDS
from batchaudit.contracts.enums import (
    PIPELINE_ORDER,
    AuditStatus,
    CheckpointStage,
    DiscrepancySeverity,
    DiscrepancyType,
    ReportStatus,
)
from batchaudit.contracts.errors import AuditCorrelationError, AuditError, AuditPersistenceError, AuditValidationError
from batchaudit.contracts.reconciliation import (
    CheckpointSummary,
    DataDiscrepancy,
    PerformanceMetrics,
    ReconciliationReport,
    ReportSummary,
    compute_difference,
    severity_for,
)
from batchaudit.contracts.store import AuditStore
from batchaudit.core.canonical import details_from_json
from batchaudit.core.correlation import parse_correlation_id
from batchaudit.engine.retry import PersistenceRetryPolicy, RetryPolicyConfig

logger = structlog.get_logger(__name__)

DEFAULT_CONTROL_TOTAL_EPSILON = Decimal("0.01")

_DISCREPANCY_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "urn:batchaudit:discrepancy")

_STATUS_WEIGHT: dict[AuditStatus, int] = {
    AuditStatus.SUCCESS: 0,
    AuditStatus.WARNING: 1,
    AuditStatus.FAILURE: 2,
}

_TYPE_ORDER: dict[DiscrepancyType, int] = {kind: index for index, kind in enumerate(DiscrepancyType)}


class _MalformedDetails(ValueError):
    """A stored payload value has no numeric reading."""


@dataclass(frozen=True)
class _EventFigures:
    record_count: int | None
    control_total: Decimal | None
    malformed: bool


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, int | float | str):
        raise _MalformedDetails(f"not a number: {value!r}")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise _MalformedDetails(f"not a number: {value!r}") from e
    if not number.is_finite():
        raise _MalformedDetails(f"not finite: {value!r}")
    return number


def _event_figures(event: AuditEvent) -> _EventFigures:
    """Record count and control total carried by one event's details.

    Count: first present of COUNT_FIELDS. Total: control_total_amount, else
    debits plus credits. Payloads that are not JSON objects, or hold
    non-numeric figures, are reported as malformed.
    """
    try:
        payload = details_from_json(event.details_json)
        record_count: int | None = None
        for name in COUNT_FIELDS:
            if payload.get(name) is not None:
                count = _to_decimal(payload[name])
                if count != count.to_integral_value():
                    raise _MalformedDetails(f"{name} is not a whole number: {payload[name]!r}")
                record_count = int(count)
                break

        control_total: Decimal | None = None
        if payload.get("control_total_amount") is not None:
            control_total = _to_decimal(payload["control_total_amount"])
        else:
            parts = [payload.get("control_total_debits"), payload.get("control_total_credits")]
            present = [_to_decimal(part) for part in parts if part is not None]
            if present:
                control_total = sum(present, Decimal(0))
    except ValueError:
        # json.JSONDecodeError and _MalformedDetails are both ValueErrors
        return _EventFigures(record_count=None, control_total=None, malformed=True)
    return _EventFigures(record_count=record_count, control_total=control_total, malformed=False)


def _ordered(events: Iterable[AuditEvent]) -> list[AuditEvent]:
    return sorted(events, key=lambda e: (e.event_timestamp, str(e.audit_id)))


class ReconciliationEngine:
    """Reconciles the persisted audit trail of a pipeline run.

    Read-only. May run while the same run is still writing; a partial trail
    shows up as IN_PROGRESS, UNKNOWN or as gaps, never as an error.

    Example:
        engine = ReconciliationEngine(SqlAuditStore(db))
        report = engine.reconcile(correlation_id)
        if report.overall_status is ReportStatus.FAILURE:
            ...
    """

    def __init__(
        self,
        store: AuditStore,
        *,
        retry_policy: PersistenceRetryPolicy | None = None,
        control_total_epsilon: Decimal | float | str = DEFAULT_CONTROL_TOTAL_EPSILON,
    ) -> None:
        self._store = store
        self._retry_policy = retry_policy or PersistenceRetryPolicy(RetryPolicyConfig.quick())
        self._epsilon = Decimal(str(control_total_epsilon))

    def reconcile(self, correlation_id: uuid.UUID | str | None) -> ReconciliationReport:
        """Build the reconciliation report for one run.

        An unknown correlation id yields an UNKNOWN report with zero counts.

        Raises:
            AuditValidationError: correlation_id is absent or malformed
            AuditRetryExhaustedError: the trail could not be read within the retry budget
            AuditPersistenceError: the store failed fatally
        """
        run_id = self._require_correlation_id(correlation_id)
        events = _ordered(self._read_trail(run_id))
        figures = {event.audit_id: _event_figures(event) for event in events}

        checkpoints = self._aggregate(events, figures)
        as_of = events[-1].event_timestamp if events else None
        source_system = events[0].source_system if events else None

        discrepancies = sorted(
            [
                *self._count_mismatches(run_id, checkpoints, source_system, as_of),
                *self._control_total_mismatches(run_id, checkpoints, source_system, as_of),
                *self._missing_checkpoints(run_id, checkpoints, source_system, as_of),
                *self._failed_events(run_id, events, as_of),
                *self._malformed_payloads(run_id, events, figures, as_of),
            ],
            key=_discrepancy_sort_key,
        )
        rollup = rollup_severity(discrepancies)
        report = ReconciliationReport(
            correlation_id=run_id,
            source_system=source_system,
            as_of=as_of,
            pipeline_start=events[0].event_timestamp if events else None,
            pipeline_end=as_of,
            overall_status=self._overall_status(events, checkpoints, rollup),
            checkpoints=checkpoints,
            discrepancies=tuple(discrepancies),
            rollup_severity=rollup,
            summary=self._summary(events, checkpoints, discrepancies),
            performance=self._performance(events, checkpoints),
        )
        logger.info(
            "Reconciliation completed",
            correlation_id=str(run_id),
            event_count=len(events),
            discrepancy_count=len(discrepancies),
            overall_status=report.overall_status.value,
        )
        return report

    def validate_data_integrity(self, correlation_id: uuid.UUID | str | None) -> bool:
        """True when reconciliation finds no discrepancy of any kind."""
        return not self.reconcile(correlation_id).discrepancies

    # === Reading ===

    @staticmethod
    def _require_correlation_id(value: uuid.UUID | str | None) -> uuid.UUID:
        if value is None:
            raise AuditValidationError("Correlation ID cannot be null", field_name="correlation_id")
        try:
            return parse_correlation_id(value)
        except AuditCorrelationError as e:
            raise AuditValidationError(f"Malformed correlation ID: {value!r}", field_name="correlation_id", invalid_value=value) from e

    def _read_trail(self, correlation_id: uuid.UUID) -> Sequence[AuditEvent]:
        try:
            return self._retry_policy.execute(
                lambda: list(self._store.list_by_correlation_id(correlation_id)),
                "list_by_correlation_id",
            )
        except AuditError:
            raise
        except Exception as e:
            raise AuditPersistenceError("Failed to read audit trail") from e

    # === Aggregation ===

    @staticmethod
    def _aggregate(events: Sequence[AuditEvent], figures: dict[uuid.UUID | None, _EventFigures]) -> tuple[CheckpointSummary, ...]:
        summaries: list[CheckpointSummary] = []
        for stage in PIPELINE_ORDER:
            stage_events = [event for event in events if event.checkpoint_stage == stage]
            counts = [figures[e.audit_id].record_count for e in stage_events if figures[e.audit_id].record_count is not None]
            totals = [figures[e.audit_id].control_total for e in stage_events if figures[e.audit_id].control_total is not None]
            statuses = [e.status for e in stage_events if e.status is not None]
            summaries.append(
                CheckpointSummary(
                    stage=stage,
                    event_count=len(stage_events),
                    record_count=sum(c for c in counts if c is not None),
                    has_record_count=bool(counts),
                    control_total=sum((t for t in totals if t is not None), Decimal(0)) if totals else None,
                    status=max(statuses, key=lambda s: _STATUS_WEIGHT[s]) if statuses else None,
                    first_event_at=stage_events[0].event_timestamp if stage_events else None,
                    last_event_at=stage_events[-1].event_timestamp if stage_events else None,
                )
            )
        return tuple(summaries)

    # === Detection ===

    def _count_mismatches(
        self,
        run_id: uuid.UUID,
        checkpoints: Sequence[CheckpointSummary],
        source_system: str | None,
        as_of: Any,
    ) -> list[DataDiscrepancy]:
        counted = [c for c in checkpoints if c.has_record_count]
        found = []
        for upstream, downstream in zip(counted, counted[1:], strict=False):
            if upstream.record_count == downstream.record_count:
                continue
            found.append(
                _discrepancy(
                    run_id,
                    DiscrepancyType.RECORD_COUNT_MISMATCH,
                    upstream.stage,
                    downstream.stage,
                    expected=str(upstream.record_count),
                    actual=str(downstream.record_count),
                    description=(
                        f"Record count changed from {upstream.record_count} at {upstream.stage.value} "
                        f"to {downstream.record_count} at {downstream.stage.value}"
                    ),
                    detected_at=as_of,
                    source_system=source_system,
                )
            )
        return found

    def _control_total_mismatches(
        self,
        run_id: uuid.UUID,
        checkpoints: Sequence[CheckpointSummary],
        source_system: str | None,
        as_of: Any,
    ) -> list[DataDiscrepancy]:
        totalled = [(c.stage, c.control_total) for c in checkpoints if c.control_total is not None]
        found = []
        for (from_stage, expected), (stage, actual) in zip(totalled, totalled[1:], strict=False):
            if abs(expected - actual) <= self._epsilon:
                continue
            found.append(
                _discrepancy(
                    run_id,
                    DiscrepancyType.CONTROL_TOTAL_MISMATCH,
                    from_stage,
                    stage,
                    expected=str(expected),
                    actual=str(actual),
                    description=f"Control total changed from {expected} at {from_stage.value} to {actual} at {stage.value}",
                    detected_at=as_of,
                    source_system=source_system,
                )
            )
        return found

    @staticmethod
    def _missing_checkpoints(
        run_id: uuid.UUID,
        checkpoints: Sequence[CheckpointSummary],
        source_system: str | None,
        as_of: Any,
    ) -> list[DataDiscrepancy]:
        """Checkpoints skipped between two observed ones.

        Loader start and completion form one checkpoint, so a loader that only
        reported completion is not a gap. Checkpoints after the last observed
        one are not reached yet and are not reported.
        """
        observed = sorted({c.stage.checkpoint_number for c in checkpoints if c.event_count > 0})
        if len(observed) < 2:
            return []
        found = []
        for number in range(observed[0] + 1, observed[-1]):
            if number in observed:
                continue
            gap_stage = next(stage for stage in PIPELINE_ORDER if stage.checkpoint_number == number)
            previous = [c for c in checkpoints if c.event_count > 0 and c.stage.checkpoint_number < number][-1]
            found.append(
                _discrepancy(
                    run_id,
                    DiscrepancyType.MISSING_AUDIT_EVENTS,
                    previous.stage,
                    gap_stage,
                    expected="events present",
                    actual="no events",
                    description=f"No audit events at {gap_stage.value} although {previous.stage.value} and later checkpoints reported",
                    detected_at=as_of,
                    source_system=source_system,
                )
            )
        return found

    @staticmethod
    def _failed_events(run_id: uuid.UUID, events: Sequence[AuditEvent], as_of: Any) -> list[DataDiscrepancy]:
        return [
            _discrepancy(
                run_id,
                DiscrepancyType.DATA_INTEGRITY_VIOLATION,
                event.checkpoint_stage,
                event.checkpoint_stage,
                expected=AuditStatus.SUCCESS.value,
                actual=AuditStatus.FAILURE.value,
                description=f"Failed event at {event.checkpoint_stage.value}: {event.message or 'no message'}",
                detected_at=as_of,
                source_system=event.source_system,
                module_name=event.module_name,
                key_identifier=event.key_identifier,
                audit_id=event.audit_id,
            )
            for event in events
            if event.status == AuditStatus.FAILURE
        ]

    @staticmethod
    def _malformed_payloads(
        run_id: uuid.UUID,
        events: Sequence[AuditEvent],
        figures: dict[uuid.UUID | None, _EventFigures],
        as_of: Any,
    ) -> list[DataDiscrepancy]:
        return [
            _discrepancy(
                run_id,
                DiscrepancyType.DATA_FORMAT_ERROR,
                event.checkpoint_stage,
                event.checkpoint_stage,
                expected="numeric details payload",
                actual="unreadable details payload",
                description=f"Details of event {event.audit_id} at {event.checkpoint_stage.value} could not be read",
                detected_at=as_of,
                source_system=event.source_system,
                module_name=event.module_name,
                key_identifier=event.key_identifier,
                audit_id=event.audit_id,
            )
            for event in events
            if figures[event.audit_id].malformed
        ]

    # === Verdict and metrics ===

    @staticmethod
    def _overall_status(
        events: Sequence[AuditEvent],
        checkpoints: Sequence[CheckpointSummary],
        rollup: DiscrepancySeverity | None,
    ) -> ReportStatus:
        if not events:
            return ReportStatus.UNKNOWN
        if rollup is not None:
            return ReportStatus.FAILURE if rollup.rank >= DiscrepancySeverity.HIGH.rank else ReportStatus.WARNING
        by_stage = {c.stage: c for c in checkpoints}
        loader_in_flight = (
            by_stage[CheckpointStage.SQLLOADER_START].event_count > 0
            and by_stage[CheckpointStage.SQLLOADER_COMPLETE].event_count == 0
            and by_stage[CheckpointStage.LOGIC_APPLIED].event_count == 0
            and by_stage[CheckpointStage.FILE_GENERATED].event_count == 0
        )
        if loader_in_flight:
            return ReportStatus.IN_PROGRESS
        if not any(c.has_record_count for c in checkpoints):
            return ReportStatus.UNKNOWN
        return ReportStatus.SUCCESS

    @staticmethod
    def _summary(
        events: Sequence[AuditEvent],
        checkpoints: Sequence[CheckpointSummary],
        discrepancies: Sequence[DataDiscrepancy],
    ) -> ReportSummary:
        successful = sum(1 for e in events if e.status == AuditStatus.SUCCESS)
        failed = sum(1 for e in events if e.status == AuditStatus.FAILURE)
        warnings = sum(1 for e in events if e.status == AuditStatus.WARNING)
        counted = [c for c in checkpoints if c.has_record_count]
        return ReportSummary(
            total_records_processed=counted[0].record_count if counted else 0,
            total_events=len(events),
            successful_events=successful,
            failed_events=failed,
            warning_events=warnings,
            success_rate=round(successful / len(events) * 100, 2) if events else 0.0,
            data_integrity_valid=not discrepancies,
            critical_issues_count=sum(1 for d in discrepancies if d.severity.rank >= DiscrepancySeverity.HIGH.rank),
            total_processing_time_ms=_span_ms(events),
        )

    @staticmethod
    def _performance(events: Sequence[AuditEvent], checkpoints: Sequence[CheckpointSummary]) -> PerformanceMetrics:
        total_ms = _span_ms(events)
        counted = [c for c in checkpoints if c.has_record_count]
        records_in = counted[0].record_count if counted else 0
        records_out = counted[-1].record_count if counted else 0
        records_per_second = round(records_out / (total_ms / 1000), 2) if total_ms else None
        per_record_ms = round(total_ms / records_in, 4) if total_ms is not None and records_in > 0 else None
        return PerformanceMetrics(
            total_processing_time_ms=total_ms,
            records_per_second=records_per_second,
            average_processing_time_per_record_ms=per_record_ms,
            events_per_checkpoint={c.stage: c.event_count for c in checkpoints},
        )


def _span_ms(events: Sequence[AuditEvent]) -> int | None:
    if not events or events[0].event_timestamp is None or events[-1].event_timestamp is None:
        return None
    return int((events[-1].event_timestamp - events[0].event_timestamp).total_seconds() * 1000)


def _discrepancy(
    run_id: uuid.UUID,
    kind: DiscrepancyType,
    from_stage: CheckpointStage,
    stage: CheckpointStage,
    *,
    expected: str,
    actual: str,
    description: str,
    detected_at: Any,
    source_system: str | None,
    module_name: str | None = None,
    key_identifier: str | None = None,
    audit_id: uuid.UUID | None = None,
) -> DataDiscrepancy:
    difference = compute_difference(expected, actual)
    identity = "|".join([str(run_id), kind.value, from_stage.value, stage.value, key_identifier or "", str(audit_id or "")])
    return DataDiscrepancy(
        discrepancy_id=uuid.uuid5(_DISCREPANCY_NAMESPACE, identity),
        correlation_id=run_id,
        discrepancy_type=kind,
        severity=severity_for(difference),
        checkpoint_stage=stage,
        from_stage=from_stage,
        expected_value=expected,
        actual_value=actual,
        difference=difference,
        description=description,
        detected_at=detected_at,
        source_system=source_system,
        module_name=module_name,
        key_identifier=key_identifier,
    )


def _discrepancy_sort_key(d: DataDiscrepancy) -> tuple[int, int, int, str, str]:
    return (d.checkpoint_stage.position, d.from_stage.position, _TYPE_ORDER[d.discrepancy_type], d.key_identifier or "", str(d.discrepancy_id))


def rollup_severity(discrepancies: Iterable[DataDiscrepancy]) -> DiscrepancySeverity | None:
    """Worst severity after resolving each (from stage, stage, type) group to one winner.

    Within a group the largest numeric difference wins; a numeric difference
    beats an unknown one; ties fall to the higher severity, then to the
    sort key. The result does not depend on input order.
    """
    groups: dict[tuple[CheckpointStage, CheckpointStage, DiscrepancyType], list[DataDiscrepancy]] = {}
    for d in sorted(discrepancies, key=_discrepancy_sort_key):
        groups.setdefault((d.from_stage, d.checkpoint_stage, d.discrepancy_type), []).append(d)
    if not groups:
        return None
    winners = [
        max(
            group,
            key=lambda d: (d.difference is not None, d.difference if d.difference is not None else Decimal(0), d.severity.rank),
        )
        for group in groups.values()
    ]
    return max((w.severity for w in winners), key=lambda s: s.rank)
