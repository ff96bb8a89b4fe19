"""Shared contracts for cross-boundary data types.

This package is a leaf: it imports nothing from core or engine. Settings
classes live in batchaudit.core.config.
"""

from batchaudit.contracts.audit import AuditEvent
from batchaudit.contracts.details import COUNT_FIELDS, NON_NEGATIVE_FIELDS, AuditDetails, negative_payload_fields
from batchaudit.contracts.enums import (
    PIPELINE_ORDER,
    AuditStatus,
    CheckpointStage,
    DiscrepancySeverity,
    DiscrepancyStatus,
    DiscrepancyType,
    ErrorCategory,
    ReportDetail,
    ReportStatus,
    RetryTier,
)
from batchaudit.contracts.errors import (
    AuditConfigurationError,
    AuditCorrelationError,
    AuditError,
    AuditPersistenceError,
    AuditRetryExhaustedError,
    AuditSerializationError,
    AuditValidationError,
    FailureResponse,
    classify_failure,
    exit_code_for,
)
from batchaudit.contracts.reconciliation import (
    AuditStatistics,
    CheckpointSummary,
    DataDiscrepancy,
    PerformanceMetrics,
    ReconciliationReport,
    ReportSummary,
    compute_difference,
    severity_for,
)
from batchaudit.contracts.store import MAX_PAGE_SIZE, AuditFilters, AuditStore

__all__ = [
    "COUNT_FIELDS",
    "MAX_PAGE_SIZE",
    "NON_NEGATIVE_FIELDS",
    "PIPELINE_ORDER",
    "AuditConfigurationError",
    "AuditCorrelationError",
    "AuditDetails",
    "AuditError",
    "AuditEvent",
    "AuditFilters",
    "AuditPersistenceError",
    "AuditRetryExhaustedError",
    "AuditSerializationError",
    "AuditStatistics",
    "AuditStatus",
    "AuditStore",
    "AuditValidationError",
    "CheckpointStage",
    "CheckpointSummary",
    "DataDiscrepancy",
    "DiscrepancySeverity",
    "DiscrepancyStatus",
    "DiscrepancyType",
    "ErrorCategory",
    "FailureResponse",
    "PerformanceMetrics",
    "ReconciliationReport",
    "ReportDetail",
    "ReportStatus",
    "ReportSummary",
    "RetryTier",
    "classify_failure",
    "compute_difference",
    "exit_code_for",
    "negative_payload_fields",
    "severity_for",
]
