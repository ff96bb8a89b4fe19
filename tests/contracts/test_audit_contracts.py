# tests/contracts/test_audit_contracts.py
"""Tests for audit event, detail payload and stage contracts."""

import json
import uuid
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from batchaudit.contracts import (
    PIPELINE_ORDER,
    AuditDetails,
    AuditEvent,
    AuditStatus,
    CheckpointStage,
    DiscrepancySeverity,
    negative_payload_fields,
)


class TestCheckpointStage:
    """Pipeline order and logical checkpoint numbering."""

    def test_pipeline_order(self) -> None:
        assert PIPELINE_ORDER == (
            CheckpointStage.RHEL_LANDING,
            CheckpointStage.SQLLOADER_START,
            CheckpointStage.SQLLOADER_COMPLETE,
            CheckpointStage.LOGIC_APPLIED,
            CheckpointStage.FILE_GENERATED,
        )

    def test_positions_follow_order(self) -> None:
        assert [stage.position for stage in PIPELINE_ORDER] == [0, 1, 2, 3, 4]

    def test_loader_stages_share_checkpoint_two(self) -> None:
        assert [stage.checkpoint_number for stage in PIPELINE_ORDER] == [1, 2, 2, 3, 4]

    def test_stored_tokens_are_fixed(self) -> None:
        assert CheckpointStage("SQLLOADER_COMPLETE") is CheckpointStage.SQLLOADER_COMPLETE
        assert AuditStatus("WARNING") is AuditStatus.WARNING

    def test_unknown_token_rejected(self) -> None:
        with pytest.raises(ValueError):
            CheckpointStage("LOADER_DONE")


class TestSeverityRank:
    def test_ranks_ascend(self) -> None:
        ranks = [s.rank for s in (DiscrepancySeverity.LOW, DiscrepancySeverity.MEDIUM, DiscrepancySeverity.HIGH, DiscrepancySeverity.CRITICAL)]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == 4


class TestAuditEvent:
    """Strict enum typing on the event contract."""

    def test_rejects_string_stage(self) -> None:
        with pytest.raises(TypeError, match="checkpoint_stage must be CheckpointStage"):
            AuditEvent(
                correlation_id=uuid.uuid4(),
                source_system="GL",
                checkpoint_stage="RHEL_LANDING",  # type: ignore[arg-type]
                status=AuditStatus.SUCCESS,
            )

    def test_rejects_string_status(self) -> None:
        with pytest.raises(TypeError, match="status must be AuditStatus"):
            AuditEvent(
                correlation_id=uuid.uuid4(),
                source_system="GL",
                checkpoint_stage=CheckpointStage.RHEL_LANDING,
                status="SUCCESS",  # type: ignore[arg-type]
            )

    def test_missing_status_allowed_on_construction(self) -> None:
        event = AuditEvent(correlation_id=None, source_system=None, checkpoint_stage=CheckpointStage.LOGIC_APPLIED, status=None)

        assert event.status is None
        assert event.to_dict()["status"] is None

    def test_to_dict_is_json_ready(self) -> None:
        run_id = uuid.uuid4()
        audit_id = uuid.uuid4()
        event = AuditEvent(
            audit_id=audit_id,
            correlation_id=run_id,
            source_system="GL",
            checkpoint_stage=CheckpointStage.FILE_GENERATED,
            status=AuditStatus.WARNING,
            event_timestamp=datetime(2026, 1, 5, 12, 0, tzinfo=UTC),
        )

        data = event.to_dict()

        assert data["audit_id"] == str(audit_id)
        assert data["correlation_id"] == str(run_id)
        assert data["checkpoint_stage"] == "FILE_GENERATED"
        assert data["status"] == "WARNING"
        assert data["event_timestamp"] == "2026-01-05T12:00:00+00:00"
        json.dumps(data)


class TestAuditDetails:
    """Ordered, sparse detail payloads."""

    def test_unset_fields_omitted(self) -> None:
        assert AuditDetails(record_count=1000).to_dict() == {"record_count": 1000}

    def test_declaration_order_preserved(self) -> None:
        details = AuditDetails(rule_applied="dedupe", record_count_after=995, record_count_before=1000, file_size_bytes=10)

        assert list(details.to_dict()) == ["file_size_bytes", "record_count_before", "record_count_after", "rule_applied"]

    def test_decimal_amounts_become_strings(self) -> None:
        details = AuditDetails(control_total_amount=Decimal("1234.50"))

        assert details.to_dict() == {"control_total_amount": "1234.50"}

    def test_extra_keys_follow_declared_fields(self) -> None:
        details = AuditDetails(record_count=3, extra={"zeta": 1, "alpha": 2})

        assert list(details.to_dict()) == ["record_count", "zeta", "alpha"]

    def test_extra_key_collision_rejected(self) -> None:
        with pytest.raises(ValueError, match="record_count"):
            AuditDetails(record_count=3, extra={"record_count": 4}).to_dict()

    def test_negative_fields_reported(self) -> None:
        details = AuditDetails(rows_loaded=-1, record_count=5, control_total_debits=Decimal("-0.01"))

        assert negative_payload_fields(details.to_dict()) == ["rows_loaded", "control_total_debits"]

    def test_zero_is_not_negative(self) -> None:
        assert negative_payload_fields(AuditDetails(rows_rejected=0, control_total_amount=Decimal(0)).to_dict()) == []


class TestNegativePayloadFields:
    """Negative figures in raw decoded payloads."""

    @pytest.mark.parametrize(
        ("payload", "expected"),
        [
            ({"record_count": -5}, ["record_count"]),
            ({"record_count": "-5"}, ["record_count"]),
            ({"control_total_amount": " -12.50 "}, ["control_total_amount"]),
            ({"rows_read": -0.5, "rows_loaded": 3}, ["rows_read"]),
            ({"record_count": "-0"}, []),
            ({"record_count": "abc"}, []),
            ({"record_count": "NaN"}, []),
            ({"record_count": True}, []),
            ({"record_count": None}, []),
            ({"unrelated": -1}, []),
        ],
    )
    def test_numbers_and_numeric_strings_read(self, payload: dict[str, object], expected: list[str]) -> None:
        assert negative_payload_fields(payload) == expected
