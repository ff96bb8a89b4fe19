"""
batchaudit: Correlated audit trail and reconciliation for batch data pipelines.

Every pipeline run is tagged with a correlation id and records one audit event
at each checkpoint it crosses. The trail can later be reconciled to prove that
record counts and control totals survived every stage intact.
"""

__version__ = "0.1.0"
