# src/batchaudit/core/store/store.py
"""SQL implementation of the AuditStore protocol.

Storage exceptions (sqlalchemy.exc.*) propagate unchanged: the recorder and
reconciliation engine decide what to retry and how to wrap failures.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import ColumnElement, and_, func, select

from batchaudit.contracts.audit import AuditEvent
from batchaudit.contracts.enums import AuditStatus, CheckpointStage
from batchaudit.contracts.errors import AuditValidationError
from batchaudit.contracts.store import MAX_PAGE_SIZE, AuditFilters
from batchaudit.core.store._database_ops import DatabaseOps
from batchaudit.core.store._helpers import ensure_utc
from batchaudit.core.store.database import AuditDatabase
from batchaudit.core.store.repositories import AuditEventRepository
from batchaudit.core.store.schema import audit_events_table

_ORDERING = (audit_events_table.c.event_timestamp, audit_events_table.c.audit_id)


def _as_stored(value: datetime) -> datetime:
    return ensure_utc(value).astimezone(UTC)


class SqlAuditStore:
    """Append-only audit event store on SQLAlchemy Core.

    Example:
        db = AuditDatabase.in_memory()
        store = SqlAuditStore(db)
        store.append(event)
        trail = store.list_by_correlation_id(event.correlation_id)
    """

    def __init__(self, db: AuditDatabase) -> None:
        self._db = db
        self._ops = DatabaseOps(db)
        self._repository = AuditEventRepository()

    def append(self, event: AuditEvent) -> None:
        self._ops.execute_insert(audit_events_table.insert().values(**self._repository.dump(event)))

    def _list(self, *conditions: ColumnElement[bool]) -> list[AuditEvent]:
        query = select(audit_events_table).where(*conditions).order_by(*_ORDERING)
        return [self._repository.load(row) for row in self._ops.execute_fetchall(query)]

    def list_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return self._list(audit_events_table.c.correlation_id == str(correlation_id))

    def list_by_source_system_and_checkpoint(self, source_system: str, stage: CheckpointStage) -> list[AuditEvent]:
        return self._list(
            audit_events_table.c.source_system == source_system,
            audit_events_table.c.checkpoint_stage == stage.value,
        )

    def list_by_module_and_status(self, module_name: str, status: AuditStatus) -> list[AuditEvent]:
        return self._list(
            audit_events_table.c.module_name == module_name,
            audit_events_table.c.status == status.value,
        )

    def count_by_correlation_id_and_status(self, correlation_id: UUID, status: AuditStatus) -> int:
        query = select(func.count()).select_from(audit_events_table).where(
            audit_events_table.c.correlation_id == str(correlation_id),
            audit_events_table.c.status == status.value,
        )
        return int(self._ops.execute_scalar(query))

    def list_between(self, start: datetime, end: datetime) -> list[AuditEvent]:
        return self._list(
            audit_events_table.c.event_timestamp >= _as_stored(start),
            audit_events_table.c.event_timestamp <= _as_stored(end),
        )

    def list_with_filters(self, filters: AuditFilters, page: int, size: int) -> list[AuditEvent]:
        """One page of events matching every set filter field.

        Raises:
            AuditValidationError: page < 0 or size outside 1..MAX_PAGE_SIZE
        """
        if page < 0:
            raise AuditValidationError("Page number must be non-negative", field_name="page", invalid_value=page)
        if size <= 0 or size > MAX_PAGE_SIZE:
            raise AuditValidationError(f"Page size must be between 1 and {MAX_PAGE_SIZE}", field_name="size", invalid_value=size)
        query = select(audit_events_table)
        conditions = self._filter_conditions(filters)
        if conditions:
            query = query.where(*conditions)
        query = query.order_by(*_ORDERING).limit(size).offset(page * size)
        return [self._repository.load(row) for row in self._ops.execute_fetchall(query)]

    def count_with_filters(self, filters: AuditFilters) -> int:
        query = select(func.count()).select_from(audit_events_table)
        conditions = self._filter_conditions(filters)
        if conditions:
            query = query.where(*conditions)
        return int(self._ops.execute_scalar(query))

    def count_by_source_system(self, start: datetime, end: datetime) -> dict[str, int]:
        """Event counts per source system within [start, end]."""
        query = (
            select(audit_events_table.c.source_system, func.count())
            .where(
                and_(
                    audit_events_table.c.event_timestamp >= _as_stored(start),
                    audit_events_table.c.event_timestamp <= _as_stored(end),
                )
            )
            .group_by(audit_events_table.c.source_system)
            .order_by(audit_events_table.c.source_system)
        )
        return {row[0]: int(row[1]) for row in self._ops.execute_fetchall(query)}

    @staticmethod
    def _filter_conditions(filters: AuditFilters) -> list[ColumnElement[bool]]:
        columns = audit_events_table.c
        conditions: list[ColumnElement[bool]] = []
        equality: list[tuple[Any, str | None]] = [
            (columns.source_system, filters.source_system),
            (columns.module_name, filters.module_name),
            (columns.status, filters.status.value if filters.status else None),
            (columns.checkpoint_stage, filters.checkpoint_stage.value if filters.checkpoint_stage else None),
        ]
        for column, value in equality:
            if value is not None:
                conditions.append(column == value)
        if filters.start is not None:
            conditions.append(columns.event_timestamp >= _as_stored(filters.start))
        if filters.end is not None:
            conditions.append(columns.event_timestamp <= _as_stored(filters.end))
        return conditions
