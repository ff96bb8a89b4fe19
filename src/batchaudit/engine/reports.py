# src/batchaudit/engine/reports.py
"""Presentation variants of a ReconciliationReport.

Summary, standard and detailed views are pure projections of one report:
none of them touches the store or re-runs detection. Rendered output is
RFC 8785 canonical JSON, so equal reports render to identical bytes.
"""

from __future__ import annotations

from typing import Any, assert_never

from batchaudit.contracts.enums import ReportDetail
from batchaudit.contracts.reconciliation import ReconciliationReport
from batchaudit.core.canonical import canonical_json, stable_hash


def _iso(value: Any) -> str | None:
    return value.isoformat() if value is not None else None


def summary_view(report: ReconciliationReport) -> dict[str, Any]:
    """Top-line metrics only."""
    summary = report.summary
    return {
        "report_type": ReportDetail.SUMMARY.value,
        "correlation_id": str(report.correlation_id),
        "source_system": report.source_system,
        "as_of": _iso(report.as_of),
        "overall_status": report.overall_status.value,
        "total_processing_time_ms": summary.total_processing_time_ms,
        "total_records_processed": summary.total_records_processed,
        "success_rate": summary.success_rate,
        "data_integrity_valid": summary.data_integrity_valid,
        "critical_issues_count": summary.critical_issues_count,
    }


def standard_view(report: ReconciliationReport) -> dict[str, Any]:
    """Counts, totals and the number of discrepancies."""
    summary = report.summary
    return {
        "report_type": ReportDetail.STANDARD.value,
        "correlation_id": str(report.correlation_id),
        "source_system": report.source_system,
        "as_of": _iso(report.as_of),
        "overall_status": report.overall_status.value,
        "pipeline_start": _iso(report.pipeline_start),
        "pipeline_end": _iso(report.pipeline_end),
        "checkpoint_counts": {stage.value: count for stage, count in report.checkpoint_counts.items()},
        "control_totals": {stage.value: str(total) if total is not None else None for stage, total in report.control_totals.items()},
        "discrepancy_count": len(report.discrepancies),
        "summary": {
            "successful_events": summary.successful_events,
            "failed_events": summary.failed_events,
            "warning_events": summary.warning_events,
            "success_rate": summary.success_rate,
        },
    }


def detailed_view(report: ReconciliationReport) -> dict[str, Any]:
    """Everything in the standard view plus discrepancies, timing and throughput."""
    summary = report.summary
    performance = report.performance
    view = standard_view(report)
    view["report_type"] = ReportDetail.DETAILED.value
    view["rollup_severity"] = report.rollup_severity.value if report.rollup_severity else None
    view["discrepancies"] = [d.to_dict() for d in report.discrepancies]
    view["summary"] = {
        "total_events": summary.total_events,
        "successful_events": summary.successful_events,
        "failed_events": summary.failed_events,
        "warning_events": summary.warning_events,
        "success_rate": summary.success_rate,
        "total_records_processed": summary.total_records_processed,
        "total_processing_time_ms": summary.total_processing_time_ms,
        "data_integrity_valid": summary.data_integrity_valid,
        "critical_issues_count": summary.critical_issues_count,
        "average_processing_time_per_record_ms": performance.average_processing_time_per_record_ms,
    }
    view["checkpoint_details"] = [checkpoint.to_dict() for checkpoint in report.checkpoints]
    view["performance_metrics"] = {
        "total_processing_time_ms": performance.total_processing_time_ms,
        "records_per_second": performance.records_per_second,
        "average_processing_time_per_record_ms": performance.average_processing_time_per_record_ms,
        "events_per_checkpoint": {stage.value: count for stage, count in performance.events_per_checkpoint.items()},
    }
    return view


def project(report: ReconciliationReport, detail: ReportDetail) -> dict[str, Any]:
    """Select a presentation variant and stamp it with the report fingerprint."""
    match detail:
        case ReportDetail.SUMMARY:
            view = summary_view(report)
        case ReportDetail.STANDARD:
            view = standard_view(report)
        case ReportDetail.DETAILED:
            view = detailed_view(report)
        case _:
            assert_never(detail)
    view["fingerprint"] = report_fingerprint(report)
    return view


def report_fingerprint(report: ReconciliationReport) -> str:
    """SHA-256 of the canonical detailed view. Equal trails give equal fingerprints."""
    return stable_hash(detailed_view(report))


def render_report(report: ReconciliationReport, detail: ReportDetail = ReportDetail.STANDARD) -> str:
    """Canonical JSON text of one presentation variant."""
    return canonical_json(project(report, detail))
