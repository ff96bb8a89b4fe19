"""Core infrastructure: audit store, canonical encoding, configuration, correlation, logging."""

from batchaudit.core.canonical import (
    CANONICAL_VERSION,
    canonical_json,
    details_from_json,
    details_to_json,
    stable_hash,
)
from batchaudit.core.config import (
    BatchAuditSettings,
    DatabaseSettings,
    LoggingSettings,
    ReconciliationSettings,
    RecorderSettings,
    RetrySettings,
    RetryTierSettings,
    load_settings,
)
from batchaudit.core.correlation import CorrelationContext, correlation_context, parse_correlation_id
from batchaudit.core.logging import configure_logging, get_logger

__all__ = [
    "CANONICAL_VERSION",
    "BatchAuditSettings",
    "CorrelationContext",
    "DatabaseSettings",
    "LoggingSettings",
    "ReconciliationSettings",
    "RecorderSettings",
    "RetrySettings",
    "RetryTierSettings",
    "canonical_json",
    "configure_logging",
    "correlation_context",
    "details_from_json",
    "details_to_json",
    "get_logger",
    "load_settings",
    "parse_correlation_id",
    "stable_hash",
]
