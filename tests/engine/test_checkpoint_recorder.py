# tests/engine/test_checkpoint_recorder.py
"""Tests for CheckpointAuditRecorder."""

import json
import uuid
from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from structlog.testing import capture_logs

from batchaudit.contracts import (
    AuditDetails,
    AuditEvent,
    AuditPersistenceError,
    AuditRetryExhaustedError,
    AuditSerializationError,
    AuditStatus,
    AuditValidationError,
    CheckpointStage,
)
from batchaudit.core.correlation import correlation_context
from batchaudit.core.store import SqlAuditStore
from batchaudit.engine.clock import MockClock
from batchaudit.engine.recorder import CheckpointAuditRecorder, loader_stage_for, status_phrase
from tests.audit_helpers import FailingStore, connection_timeout_error, no_sleep_policy


def _event(run_id: uuid.UUID | str | None, **overrides: object) -> AuditEvent:
    fields: dict[str, object] = {
        "correlation_id": run_id,
        "source_system": "GL",
        "checkpoint_stage": CheckpointStage.RHEL_LANDING,
        "status": AuditStatus.SUCCESS,
    }
    fields.update(overrides)
    return AuditEvent(**fields)  # type: ignore[arg-type]


class TestRecord:
    """Generic record() path."""

    def test_fills_identity_and_timestamp(self, recorder: CheckpointAuditRecorder, store: SqlAuditStore, run_id: uuid.UUID) -> None:
        before = datetime.now(UTC)

        persisted = recorder.record(_event(run_id))

        assert isinstance(persisted.audit_id, uuid.UUID)
        assert persisted.event_timestamp is not None and persisted.event_timestamp >= before
        assert store.list_by_correlation_id(run_id) == [persisted]

    def test_string_correlation_id_parsed(self, recorder: CheckpointAuditRecorder, run_id: uuid.UUID) -> None:
        persisted = recorder.record(_event(str(run_id)))

        assert persisted.correlation_id == run_id

    def test_supplied_timestamp_kept(self, recorder: CheckpointAuditRecorder, run_id: uuid.UUID) -> None:
        replayed_at = datetime(2025, 12, 31, 23, 0, tzinfo=timezone(timedelta(hours=-5)))

        persisted = recorder.record(_event(run_id, event_timestamp=replayed_at))

        assert persisted.event_timestamp == replayed_at

    def test_naive_timestamp_treated_as_utc(self, recorder: CheckpointAuditRecorder, run_id: uuid.UUID) -> None:
        persisted = recorder.record(_event(run_id, event_timestamp=datetime(2026, 1, 1, 8, 0)))

        assert persisted.event_timestamp == datetime(2026, 1, 1, 8, 0, tzinfo=UTC)

    def test_message_synthesized(self, recorder: CheckpointAuditRecorder, run_id: uuid.UUID) -> None:
        plain = recorder.record(_event(run_id, status=AuditStatus.WARNING, checkpoint_stage=CheckpointStage.LOGIC_APPLIED))
        keyed = recorder.record(_event(run_id, status=AuditStatus.FAILURE, key_identifier="acct-9"))

        assert plain.message == "Business logic completed with warnings"
        assert keyed.message == "File landing failed: acct-9"

    def test_explicit_message_kept(self, recorder: CheckpointAuditRecorder, run_id: uuid.UUID) -> None:
        assert recorder.record(_event(run_id, message="custom")).message == "custom"

    @pytest.mark.parametrize(
        ("overrides", "field"),
        [
            ({"correlation_id": None}, "correlation_id"),
            ({"correlation_id": "   "}, "correlation_id"),
            ({"correlation_id": "run-42"}, "correlation_id"),
            ({"source_system": None}, "source_system"),
            ({"source_system": " "}, "source_system"),
            ({"status": None}, "status"),
            ({"checkpoint_stage": None}, "checkpoint_stage"),
            ({"checkpoint_stage": None, "message": "landed"}, "checkpoint_stage"),
            ({"details_json": '{"record_count": -5}'}, "record_count"),
            ({"details_json": '{"record_count": "-5"}'}, "record_count"),
            ({"details_json": '{"rows_loaded": 10, "control_total_amount": "-0.01"}'}, "control_total_amount"),
            ({"details_json": "[1, 2]"}, "details_json"),
            ({"details_json": "{not json"}, "details_json"),
        ],
    )
    def test_invalid_event_writes_nothing(
        self,
        recorder: CheckpointAuditRecorder,
        store: SqlAuditStore,
        run_id: uuid.UUID,
        overrides: dict[str, object],
        field: str,
    ) -> None:
        event = _event(run_id, **overrides)

        with pytest.raises(AuditValidationError) as exc_info:
            recorder.record(event)

        assert exc_info.value.field_name == field
        assert store.list_by_correlation_id(run_id) == []

    def test_negative_string_figure_never_reaches_reconciliation(
        self, recorder: CheckpointAuditRecorder, store: SqlAuditStore, run_id: uuid.UUID
    ) -> None:
        for stage in (CheckpointStage.RHEL_LANDING, CheckpointStage.SQLLOADER_COMPLETE):
            with pytest.raises(AuditValidationError, match="cannot be negative: record_count") as exc_info:
                recorder.record(_event(run_id, checkpoint_stage=stage, details_json='{"record_count": "-5"}'))
            assert exc_info.value.invalid_value == "-5"

        assert store.list_by_correlation_id(run_id) == []

    def test_non_negative_string_figures_accepted(self, recorder: CheckpointAuditRecorder, store: SqlAuditStore, run_id: uuid.UUID) -> None:
        recorder.record(_event(run_id, details_json='{"record_count": "10", "control_total_amount": "0.00"}'))

        assert len(store.list_by_correlation_id(run_id)) == 1

    def test_null_event_rejected(self, recorder: CheckpointAuditRecorder) -> None:
        with pytest.raises(AuditValidationError, match="cannot be null"):
            recorder.record(None)

    def test_oversized_payload_warned_and_written(self, store: SqlAuditStore, run_id: uuid.UUID) -> None:
        recorder = CheckpointAuditRecorder(store, retry_policy=no_sleep_policy(), payload_warn_bytes=64)
        payload = json.dumps({"blob": "x" * 200})

        with capture_logs() as logs:
            recorder.record(_event(run_id, details_json=payload))

        warnings = [entry for entry in logs if entry["event"] == "Audit details payload exceeds size threshold"]
        assert len(warnings) == 1
        assert warnings[0]["log_level"] == "warning"
        assert warnings[0]["threshold_bytes"] == 64
        assert len(store.list_by_correlation_id(run_id)) == 1

    def test_small_payload_not_warned(self, recorder: CheckpointAuditRecorder, run_id: uuid.UUID) -> None:
        with capture_logs() as logs:
            recorder.record(_event(run_id, details_json='{"record_count": 1}'))

        assert not [entry for entry in logs if entry["log_level"] == "warning"]


class TestPersistenceFailures:
    """Store failures surface as retry exhaustion or persistence errors."""

    def test_transient_outage_exhausts_default_budget(self, run_id: uuid.UUID) -> None:
        clock = MockClock()
        failing = FailingStore(connection_timeout_error)
        recorder = CheckpointAuditRecorder(failing, retry_policy=no_sleep_policy(clock=clock))

        with pytest.raises(AuditRetryExhaustedError) as exc_info:
            recorder.record(_event(run_id))

        assert exc_info.value.attempt_count == 3
        assert exc_info.value.max_attempts == 3
        assert failing.calls == 3
        assert clock.sleeps == [1.0, 2.0]
        assert failing.events == []

    def test_recovers_within_budget(self, run_id: uuid.UUID) -> None:
        failing = FailingStore(connection_timeout_error, failures=2)
        recorder = CheckpointAuditRecorder(failing, retry_policy=no_sleep_policy())

        persisted = recorder.record(_event(run_id))

        assert failing.calls == 3
        assert failing.events == [persisted]

    def test_fatal_failure_wrapped_after_one_attempt(self, run_id: uuid.UUID) -> None:
        failing = FailingStore(lambda: RuntimeError("CHECK constraint failed: status"))
        recorder = CheckpointAuditRecorder(failing, retry_policy=no_sleep_policy())

        with pytest.raises(AuditPersistenceError, match="Failed to persist audit event") as exc_info:
            recorder.record(_event(run_id))

        assert failing.calls == 1
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.retryable is False


class TestHelpers:
    """Checkpoint helpers build the right event."""

    def test_file_transfer(self, recorder: CheckpointAuditRecorder, run_id: uuid.UUID) -> None:
        event = recorder.record_file_transfer(
            correlation_id=run_id,
            source_system="GL",
            file_name="gl_20260302.dat",
            process_name="landing",
            status=AuditStatus.SUCCESS,
            details=AuditDetails(file_size_bytes=2048, file_hash_sha256="ab" * 32, record_count=1000),
        )

        assert event.checkpoint_stage is CheckpointStage.RHEL_LANDING
        assert event.module_name == "FILE_TRANSFER"
        assert event.source_entity == "gl_20260302.dat"
        assert event.message == "File transfer succeeded: gl_20260302.dat"
        assert json.loads(event.details_json or "{}")["record_count"] == 1000

    def test_file_transfer_explicit_source_entity(self, recorder: CheckpointAuditRecorder, run_id: uuid.UUID) -> None:
        event = recorder.record_file_transfer(
            correlation_id=run_id,
            source_system="GL",
            file_name="gl.dat",
            process_name="landing",
            status=AuditStatus.SUCCESS,
            source_entity="sftp://gl-host/out/gl.dat",
        )

        assert event.source_entity == "sftp://gl-host/out/gl.dat"

    @pytest.mark.parametrize(
        ("process_name", "status", "stage"),
        [
            ("sqlldr_start", AuditStatus.SUCCESS, CheckpointStage.SQLLOADER_START),
            ("begin_load", AuditStatus.FAILURE, CheckpointStage.SQLLOADER_START),
            ("init_and_finish", AuditStatus.SUCCESS, CheckpointStage.SQLLOADER_START),
            ("load_complete", AuditStatus.FAILURE, CheckpointStage.SQLLOADER_COMPLETE),
            ("load_done", AuditStatus.SUCCESS, CheckpointStage.SQLLOADER_COMPLETE),
            ("nightly_load", AuditStatus.SUCCESS, CheckpointStage.SQLLOADER_COMPLETE),
            ("nightly_load", AuditStatus.FAILURE, CheckpointStage.SQLLOADER_START),
            ("nightly_load", AuditStatus.WARNING, CheckpointStage.SQLLOADER_START),
        ],
    )
    def test_loader_stage_selection(self, process_name: str, status: AuditStatus, stage: CheckpointStage) -> None:
        assert loader_stage_for(process_name, status) is stage

    def test_loader_operation(self, recorder: CheckpointAuditRecorder, run_id: uuid.UUID) -> None:
        event = recorder.record_loader_operation(
            correlation_id=run_id,
            source_system="GL",
            table_name="STG_GL_LINES",
            process_name="load_complete",
            status=AuditStatus.SUCCESS,
            details=AuditDetails(rows_read=1000, rows_loaded=1000, rows_rejected=0),
        )

        assert event.checkpoint_stage is CheckpointStage.SQLLOADER_COMPLETE
        assert event.module_name == "SQL_LOADER"
        assert event.destination_entity == "STG_GL_LINES"
        assert event.message == "Loader operation succeeded for table: STG_GL_LINES"

    def test_business_rule_message_names_entity(self, recorder: CheckpointAuditRecorder, run_id: uuid.UUID) -> None:
        event = recorder.record_business_rule(
            correlation_id=run_id,
            source_system="GL",
            module_name="DEDUPE",
            process_name="apply_rules",
            status=AuditStatus.WARNING,
            details=AuditDetails(rule_applied="dedupe", entity_identifier="ACC-1", record_count_before=1000, record_count_after=995),
        )

        assert event.checkpoint_stage is CheckpointStage.LOGIC_APPLIED
        assert event.module_name == "DEDUPE"
        assert event.message == "Business rule application completed with warnings in module: DEDUPE for entity: ACC-1"

    def test_file_generation(self, recorder: CheckpointAuditRecorder, run_id: uuid.UUID) -> None:
        event = recorder.record_file_generation(
            correlation_id=run_id,
            source_system="GL",
            file_name="gl_out.csv",
            process_name="extract",
            status=AuditStatus.FAILURE,
        )

        assert event.checkpoint_stage is CheckpointStage.FILE_GENERATED
        assert event.module_name == "FILE_GENERATOR"
        assert event.destination_entity == "gl_out.csv"
        assert event.message == "File generation failed: gl_out.csv"
        assert event.details_json is None

    def test_helpers_use_bound_correlation_id(self, recorder: CheckpointAuditRecorder, store: SqlAuditStore, run_id: uuid.UUID) -> None:
        with correlation_context.scoped(run_id):
            event = recorder.record_file_transfer(source_system="GL", file_name="a.dat", process_name="landing", status=AuditStatus.SUCCESS)

        assert event.correlation_id == run_id
        assert len(store.list_by_correlation_id(run_id)) == 1

    def test_explicit_id_beats_bound_id(self, recorder: CheckpointAuditRecorder, run_id: uuid.UUID) -> None:
        with correlation_context.scoped(uuid.uuid4()):
            event = recorder.record_file_transfer(
                correlation_id=run_id, source_system="GL", file_name="a.dat", process_name="landing", status=AuditStatus.SUCCESS
            )

        assert event.correlation_id == run_id

    def test_helper_without_any_id_rejected(self, recorder: CheckpointAuditRecorder) -> None:
        with correlation_context.scoped(None), pytest.raises(AuditValidationError, match="Correlation ID is required"):
            recorder.record_file_generation(source_system="GL", file_name="out.csv", process_name="extract", status=AuditStatus.SUCCESS)

    @pytest.mark.parametrize(
        ("kwargs", "field"),
        [
            ({"source_system": ""}, "source_system"),
            ({"table_name": "  "}, "table_name"),
            ({"process_name": ""}, "process_name"),
            ({"status": None}, "status"),
            ({"details": AuditDetails(rows_loaded=-1)}, "rows_loaded"),
            ({"details": AuditDetails(control_total_amount=Decimal("-5.00"))}, "control_total_amount"),
        ],
    )
    def test_loader_validation_writes_nothing(
        self,
        recorder: CheckpointAuditRecorder,
        store: SqlAuditStore,
        run_id: uuid.UUID,
        kwargs: dict[str, object],
        field: str,
    ) -> None:
        arguments: dict[str, object] = {
            "correlation_id": run_id,
            "source_system": "GL",
            "table_name": "STG",
            "process_name": "load_complete",
            "status": AuditStatus.SUCCESS,
        }
        arguments.update(kwargs)

        with pytest.raises(AuditValidationError) as exc_info:
            recorder.record_loader_operation(**arguments)  # type: ignore[arg-type]

        assert exc_info.value.field_name == field
        assert store.list_by_correlation_id(run_id) == []

    def test_unserializable_details_write_nothing(self, recorder: CheckpointAuditRecorder, store: SqlAuditStore, run_id: uuid.UUID) -> None:
        with pytest.raises(AuditSerializationError):
            recorder.record_business_rule(
                correlation_id=run_id,
                source_system="GL",
                module_name="ENRICH",
                process_name="apply",
                status=AuditStatus.SUCCESS,
                details=AuditDetails(rule_output={"ratio": float("nan")}),
            )

        assert store.list_by_correlation_id(run_id) == []


class TestStatusPhrase:
    def test_every_status_has_a_phrase(self) -> None:
        assert [status_phrase(s) for s in AuditStatus] == ["succeeded", "failed", "completed with warnings"]
