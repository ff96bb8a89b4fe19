# src/batchaudit/contracts/store.py
"""AuditStore protocol for the append-only audit event store.

This protocol defines the read/write contracts used by:
- engine/recorder.py (the only writer)
- engine/reconciliation.py and engine/statistics.py (readers)

The SQL implementation lives in core/store/. Appends are not idempotent: a
write retried after an ambiguous failure may be stored twice.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from batchaudit.contracts.audit import AuditEvent
from batchaudit.contracts.enums import AuditStatus, CheckpointStage

MAX_PAGE_SIZE = 1000


@dataclass(frozen=True)
class AuditFilters:
    """Conjunctive filter for paginated event searches. None means unfiltered."""

    source_system: str | None = None
    module_name: str | None = None
    status: AuditStatus | None = None
    checkpoint_stage: CheckpointStage | None = None
    start: datetime | None = None
    end: datetime | None = None


@runtime_checkable
class AuditStore(Protocol):
    """Protocol for audit event storage backends.

    Every list operation returns events ordered by event timestamp ascending,
    with audit id as the tie-break.
    """

    def append(self, event: AuditEvent) -> None:
        """Durably write one fully populated event.

        Args:
            event: Event with audit_id and event_timestamp already assigned
        """
        ...

    def list_by_correlation_id(self, correlation_id: UUID) -> Sequence[AuditEvent]:
        """Full ordered trail of one pipeline run."""
        ...

    def list_by_source_system_and_checkpoint(self, source_system: str, stage: CheckpointStage) -> Sequence[AuditEvent]: ...

    def list_by_module_and_status(self, module_name: str, status: AuditStatus) -> Sequence[AuditEvent]: ...

    def count_by_correlation_id_and_status(self, correlation_id: UUID, status: AuditStatus) -> int: ...

    def list_between(self, start: datetime, end: datetime) -> Sequence[AuditEvent]:
        """Events with start <= event_timestamp <= end."""
        ...

    def list_with_filters(self, filters: AuditFilters, page: int, size: int) -> Sequence[AuditEvent]:
        """One page of matching events.

        Raises:
            AuditValidationError: page < 0 or size outside 1..MAX_PAGE_SIZE
        """
        ...

    def count_with_filters(self, filters: AuditFilters) -> int: ...
