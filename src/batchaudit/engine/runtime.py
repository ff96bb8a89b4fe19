# src/batchaudit/engine/runtime.py
"""Wiring of database, store and services from settings."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from batchaudit.contracts.enums import RetryTier
from batchaudit.contracts.errors import AuditConfigurationError
from batchaudit.core.config import BatchAuditSettings
from batchaudit.core.store import AuditDatabase, SqlAuditStore
from batchaudit.engine.reconciliation import ReconciliationEngine
from batchaudit.engine.recorder import CheckpointAuditRecorder
from batchaudit.engine.retry import PersistenceRetryPolicy, RetryPolicyConfig
from batchaudit.engine.statistics import AuditStatisticsCalculator


def build_policy(settings: BatchAuditSettings, tier: RetryTier) -> PersistenceRetryPolicy:
    """Retry policy for one tier with configured parameters."""
    return PersistenceRetryPolicy(RetryPolicyConfig.from_settings(settings.retry.for_tier(tier), tier))


@dataclass
class AuditRuntime:
    """Open database plus the services that use it. Close when done."""

    db: AuditDatabase
    store: SqlAuditStore
    recorder: CheckpointAuditRecorder
    reconciliation: ReconciliationEngine
    statistics: AuditStatisticsCalculator

    @classmethod
    def open(cls, settings: BatchAuditSettings, *, database_url: str | None = None) -> Self:
        """Connect, bootstrap the schema under the aggressive tier, and build services.

        Args:
            settings: Validated settings
            database_url: Overrides settings.database.url

        Raises:
            AuditConfigurationError: The database URL is empty
            AuditRetryExhaustedError: The database stayed unreachable during bootstrap
        """
        url = database_url or settings.database.url
        if not url.strip():
            raise AuditConfigurationError("Database URL must not be empty", configuration_key="database.url", configuration_value=url)
        db = AuditDatabase.from_url(
            url,
            echo=settings.database.echo,
            busy_timeout_ms=settings.database.busy_timeout_ms,
            create_tables=False,
        )
        try:
            build_policy(settings, RetryTier.AGGRESSIVE).execute(db.create_tables, "create_tables")
        except Exception:
            db.close()
            raise
        store = SqlAuditStore(db)
        return cls(
            db=db,
            store=store,
            recorder=CheckpointAuditRecorder(
                store,
                retry_policy=build_policy(settings, settings.recorder.retry_tier),
                payload_warn_bytes=settings.recorder.payload_warn_bytes,
            ),
            reconciliation=ReconciliationEngine(
                store,
                retry_policy=build_policy(settings, settings.reconciliation.read_retry_tier),
                control_total_epsilon=Decimal(str(settings.reconciliation.control_total_epsilon)),
            ),
            statistics=AuditStatisticsCalculator(store, retry_policy=build_policy(settings, settings.reconciliation.read_retry_tier)),
        )

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()
