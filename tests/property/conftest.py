# tests/property/conftest.py
"""Shared Hypothesis strategies for property-based tests.

Usage:
    from tests.property.conftest import record_counts, severities

    @given(count=record_counts)
    def test_counts_round_trip(count: int) -> None:
        ...
"""

from __future__ import annotations

from decimal import Decimal

from hypothesis import strategies as st

from batchaudit.contracts import AuditStatus, CheckpointStage, DiscrepancySeverity, DiscrepancyType

# =============================================================================
# Audit trail values
# =============================================================================

record_counts = st.integers(min_value=0, max_value=10**9)

control_totals = st.decimals(min_value=Decimal(0), max_value=Decimal("1e12"), places=2, allow_nan=False, allow_infinity=False)

statuses = st.sampled_from(list(AuditStatus))

stages = st.sampled_from(list(CheckpointStage))

# Stages that carry record counts in a run without loader-start noise
counted_stages = (
    CheckpointStage.RHEL_LANDING,
    CheckpointStage.SQLLOADER_COMPLETE,
    CheckpointStage.LOGIC_APPLIED,
    CheckpointStage.FILE_GENERATED,
)

# One record count per counted stage, pipeline order
stage_counts = st.lists(st.integers(min_value=0, max_value=5000), min_size=len(counted_stages), max_size=len(counted_stages))

# =============================================================================
# Discrepancies
# =============================================================================

severities = st.sampled_from(list(DiscrepancySeverity))

discrepancy_types = st.sampled_from(list(DiscrepancyType))

differences = st.none() | st.decimals(min_value=Decimal(0), max_value=Decimal(10**6), places=2, allow_nan=False, allow_infinity=False)

# Identifier-like text for detail payload keys
payload_keys = st.text(alphabet=st.characters(categories=("Ll", "Lu", "Nd"), max_codepoint=0x17F), min_size=1, max_size=12)

# JSON-safe scalar payload values
payload_values = (
    st.none()
    | st.booleans()
    | st.integers(min_value=-(2**53 - 1), max_value=2**53 - 1)
    | st.floats(allow_nan=False, allow_infinity=False)
    | st.text(max_size=40)
)
