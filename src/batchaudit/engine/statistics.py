# src/batchaudit/engine/statistics.py
"""Period statistics across all pipeline runs."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from datetime import datetime

from batchaudit.contracts.audit import AuditEvent
from batchaudit.contracts.enums import AuditStatus
from batchaudit.contracts.errors import AuditError, AuditPersistenceError, AuditValidationError
from batchaudit.contracts.reconciliation import AuditStatistics
from batchaudit.contracts.store import AuditStore
from batchaudit.core.store._helpers import ensure_utc
from batchaudit.engine.retry import PersistenceRetryPolicy, RetryPolicyConfig


def _rate(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total else 0.0


class AuditStatisticsCalculator:
    """Event volumes, outcome rates and daily peaks for a time window."""

    def __init__(self, store: AuditStore, *, retry_policy: PersistenceRetryPolicy | None = None) -> None:
        self._store = store
        self._retry_policy = retry_policy or PersistenceRetryPolicy(RetryPolicyConfig.quick())

    def calculate(self, start: datetime, end: datetime) -> AuditStatistics:
        """Statistics for events with start <= event_timestamp <= end.

        Raises:
            AuditValidationError: start is after end
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if start > end:
            raise AuditValidationError("Start date must be before or equal to end date", field_name="start", invalid_value=start)
        events = self._read(start, end)

        by_status = Counter(e.status.value for e in events if e.status is not None)
        per_day = Counter(e.event_timestamp.date() for e in events if e.event_timestamp is not None)
        days = (end.date() - start.date()).days + 1
        total = len(events)
        # Earliest date wins a tie for the peak
        peak_date, peak_count = max(sorted(per_day.items()), key=lambda item: item[1]) if per_day else (None, 0)

        return AuditStatistics(
            period_start=start,
            period_end=end,
            total_events=total,
            successful_events=by_status[AuditStatus.SUCCESS.value],
            failed_events=by_status[AuditStatus.FAILURE.value],
            warning_events=by_status[AuditStatus.WARNING.value],
            success_rate=_rate(by_status[AuditStatus.SUCCESS.value], total),
            failure_rate=_rate(by_status[AuditStatus.FAILURE.value], total),
            warning_rate=_rate(by_status[AuditStatus.WARNING.value], total),
            events_by_source_system=dict(sorted(Counter(e.source_system or "" for e in events).items())),
            events_by_module=dict(sorted(Counter(e.module_name for e in events if e.module_name).items())),
            events_by_checkpoint_stage=dict(sorted(Counter(e.checkpoint_stage.value for e in events).items())),
            events_by_status=dict(sorted(by_status.items())),
            average_events_per_day=round(total / days, 2),
            peak_events_per_day=peak_count,
            peak_date=peak_date,
        )

    def _read(self, start: datetime, end: datetime) -> Sequence[AuditEvent]:
        try:
            return self._retry_policy.execute(lambda: list(self._store.list_between(start, end)), "list_between")
        except AuditError:
            raise
        except Exception as e:
            raise AuditPersistenceError("Failed to read audit events for statistics") from e
