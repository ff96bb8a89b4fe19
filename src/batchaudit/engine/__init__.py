"""Audit engine: retry policy, checkpoint recorder, reconciliation, statistics."""

from batchaudit.engine.reconciliation import ReconciliationEngine, rollup_severity
from batchaudit.engine.recorder import CheckpointAuditRecorder, loader_stage_for, status_phrase
from batchaudit.engine.reports import detailed_view, project, render_report, report_fingerprint, standard_view, summary_view
from batchaudit.engine.retry import PersistenceRetryPolicy, RetryPolicyConfig, is_transient
from batchaudit.engine.runtime import AuditRuntime, build_policy
from batchaudit.engine.statistics import AuditStatisticsCalculator

__all__ = [
    "AuditRuntime",
    "AuditStatisticsCalculator",
    "CheckpointAuditRecorder",
    "PersistenceRetryPolicy",
    "ReconciliationEngine",
    "RetryPolicyConfig",
    "build_policy",
    "detailed_view",
    "is_transient",
    "loader_stage_for",
    "project",
    "render_report",
    "report_fingerprint",
    "rollup_severity",
    "standard_view",
    "status_phrase",
    "summary_view",
]
