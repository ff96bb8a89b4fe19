# src/batchaudit/engine/recorder.py
"""CheckpointAuditRecorder: the single write path into the audit store.

Each call validates its inputs, builds one AuditEvent, and appends it through
a PersistenceRetryPolicy. Failure modes reach the caller as:
- AuditValidationError: bad input, nothing written
- AuditSerializationError: details cannot be encoded, nothing written
- AuditRetryExhaustedError: store stayed unavailable for the whole retry budget
- AuditPersistenceError: store failed fatally (cause chained)
"""

from __future__ import annotations

import dataclasses
from typing import assert_never
from uuid import UUID

import structlog

from batchaudit.contracts.audit import AuditEvent
from batchaudit.contracts.details import AuditDetails, negative_payload_fields
from batchaudit.contracts.enums import AuditStatus, CheckpointStage
from batchaudit.contracts.errors import (
    AuditCorrelationError,
    AuditError,
    AuditPersistenceError,
    AuditValidationError,
)
from batchaudit.contracts.store import AuditStore
from batchaudit.core.canonical import details_from_json, details_to_json
from batchaudit.core.correlation import correlation_context, parse_correlation_id
from batchaudit.core.store._helpers import ensure_utc, generate_id, now
from batchaudit.engine.retry import PersistenceRetryPolicy, RetryPolicyConfig

logger = structlog.get_logger(__name__)

FILE_TRANSFER_MODULE = "FILE_TRANSFER"
SQL_LOADER_MODULE = "SQL_LOADER"
FILE_GENERATOR_MODULE = "FILE_GENERATOR"

DEFAULT_PAYLOAD_WARN_BYTES = 10240

_LOADER_START_KEYWORDS = ("start", "begin", "init")
_LOADER_COMPLETE_KEYWORDS = ("complete", "finish", "end", "done")


def status_phrase(status: AuditStatus) -> str:
    """Verb phrase for synthesized messages. Total over AuditStatus."""
    match status:
        case AuditStatus.SUCCESS:
            return "succeeded"
        case AuditStatus.FAILURE:
            return "failed"
        case AuditStatus.WARNING:
            return "completed with warnings"
        case _:
            assert_never(status)


def loader_stage_for(process_name: str, status: AuditStatus) -> CheckpointStage:
    """Pick loader start or completion from the process name, falling back to status.

    Start keywords win when a name contains both kinds.
    """
    name = process_name.lower()
    if any(keyword in name for keyword in _LOADER_START_KEYWORDS):
        return CheckpointStage.SQLLOADER_START
    if any(keyword in name for keyword in _LOADER_COMPLETE_KEYWORDS):
        return CheckpointStage.SQLLOADER_COMPLETE
    return CheckpointStage.SQLLOADER_COMPLETE if status == AuditStatus.SUCCESS else CheckpointStage.SQLLOADER_START


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


class CheckpointAuditRecorder:
    """Validated, retried audit event writes, one per checkpoint call.

    Helpers take the correlation id explicitly or fall back to the id bound in
    the calling context (see batchaudit.core.correlation).

    Example:
        recorder = CheckpointAuditRecorder(SqlAuditStore(db))
        with correlation_context.scoped(run_id):
            recorder.record_file_transfer(
                source_system="GL",
                file_name="gl_20260101.dat",
                process_name="landing",
                status=AuditStatus.SUCCESS,
                details=AuditDetails(record_count=1000),
            )
    """

    def __init__(
        self,
        store: AuditStore,
        *,
        retry_policy: PersistenceRetryPolicy | None = None,
        payload_warn_bytes: int = DEFAULT_PAYLOAD_WARN_BYTES,
    ) -> None:
        self._store = store
        self._retry_policy = retry_policy or PersistenceRetryPolicy(RetryPolicyConfig.default())
        self._payload_warn_bytes = payload_warn_bytes

    # === Generic entry point ===

    def record(self, event: AuditEvent | None) -> AuditEvent:
        """Validate, complete and persist one event.

        Fills audit_id and event_timestamp when absent; a supplied timestamp is
        kept. Synthesizes a message when none is given. details_json must be a
        JSON object whose count and control total fields, numbers or numeric
        strings, are not negative.

        Returns:
            The event exactly as persisted

        Raises:
            AuditValidationError: event absent, a required field missing, or
                details_json malformed or holding a negative figure
            AuditRetryExhaustedError: transient store failures outlasted the retry budget
            AuditPersistenceError: the store failed fatally
        """
        if event is None:
            raise AuditValidationError("Audit event cannot be null", field_name="event")
        correlation_id = self._require_correlation_id(event.correlation_id)
        if _is_blank(event.source_system):
            raise AuditValidationError("Source system is required", field_name="source_system", invalid_value=event.source_system)
        if event.status is None:
            raise AuditValidationError("Audit status is required", field_name="status")
        if event.checkpoint_stage is None:
            raise AuditValidationError("Checkpoint stage is required", field_name="checkpoint_stage")
        self._validate_details_json(event.details_json)

        complete = dataclasses.replace(
            event,
            correlation_id=correlation_id,
            audit_id=event.audit_id or generate_id(),
            event_timestamp=ensure_utc(event.event_timestamp) if event.event_timestamp else now(),
            message=event.message if event.message is not None else self._generic_message(event.checkpoint_stage, event.status, event.key_identifier),
        )
        self._warn_if_oversized(complete)
        self._persist(complete)
        logger.debug(
            "Audit event recorded",
            audit_id=str(complete.audit_id),
            correlation_id=str(correlation_id),
            checkpoint_stage=complete.checkpoint_stage.value,
            status=complete.status.value if complete.status else None,
        )
        return complete

    # === Checkpoint helpers ===

    def record_file_transfer(
        self,
        *,
        file_name: str,
        process_name: str,
        status: AuditStatus,
        source_system: str,
        correlation_id: UUID | str | None = None,
        source_entity: str | None = None,
        destination_entity: str | None = None,
        key_identifier: str | None = None,
        message: str | None = None,
        details: AuditDetails | None = None,
    ) -> AuditEvent:
        """Record arrival of a source file on the landing host (RHEL_LANDING)."""
        correlation = self._helper_correlation_id(correlation_id)
        self._validate_helper_fields(source_system, "file_name", file_name, process_name, status)
        return self.record(
            AuditEvent(
                correlation_id=correlation,
                source_system=source_system,
                module_name=FILE_TRANSFER_MODULE,
                process_name=process_name,
                source_entity=source_entity if source_entity is not None else file_name,
                destination_entity=destination_entity,
                key_identifier=key_identifier,
                checkpoint_stage=CheckpointStage.RHEL_LANDING,
                status=status,
                message=message if message is not None else f"File transfer {status_phrase(status)}: {file_name}",
                details_json=details_to_json(details),
            )
        )

    def record_loader_operation(
        self,
        *,
        table_name: str,
        process_name: str,
        status: AuditStatus,
        source_system: str,
        correlation_id: UUID | str | None = None,
        source_entity: str | None = None,
        destination_entity: str | None = None,
        key_identifier: str | None = None,
        message: str | None = None,
        details: AuditDetails | None = None,
    ) -> AuditEvent:
        """Record a loader start or completion (SQLLOADER_START / SQLLOADER_COMPLETE).

        Negative row or record counts are rejected before anything is written.
        """
        correlation = self._helper_correlation_id(correlation_id)
        self._validate_helper_fields(source_system, "table_name", table_name, process_name, status)
        return self.record(
            AuditEvent(
                correlation_id=correlation,
                source_system=source_system,
                module_name=SQL_LOADER_MODULE,
                process_name=process_name,
                source_entity=source_entity,
                destination_entity=destination_entity if destination_entity is not None else table_name,
                key_identifier=key_identifier,
                checkpoint_stage=loader_stage_for(process_name, status),
                status=status,
                message=message if message is not None else f"Loader operation {status_phrase(status)} for table: {table_name}",
                details_json=details_to_json(details),
            )
        )

    def record_business_rule(
        self,
        *,
        module_name: str,
        process_name: str,
        status: AuditStatus,
        source_system: str,
        correlation_id: UUID | str | None = None,
        source_entity: str | None = None,
        destination_entity: str | None = None,
        key_identifier: str | None = None,
        message: str | None = None,
        details: AuditDetails | None = None,
    ) -> AuditEvent:
        """Record application of business logic by a module (LOGIC_APPLIED)."""
        correlation = self._helper_correlation_id(correlation_id)
        self._validate_helper_fields(source_system, "module_name", module_name, process_name, status)
        if message is None:
            message = f"Business rule application {status_phrase(status)} in module: {module_name}"
            if details is not None and details.entity_identifier:
                message += f" for entity: {details.entity_identifier}"
        return self.record(
            AuditEvent(
                correlation_id=correlation,
                source_system=source_system,
                module_name=module_name,
                process_name=process_name,
                source_entity=source_entity,
                destination_entity=destination_entity,
                key_identifier=key_identifier,
                checkpoint_stage=CheckpointStage.LOGIC_APPLIED,
                status=status,
                message=message,
                details_json=details_to_json(details),
            )
        )

    def record_file_generation(
        self,
        *,
        file_name: str,
        process_name: str,
        status: AuditStatus,
        source_system: str,
        correlation_id: UUID | str | None = None,
        source_entity: str | None = None,
        destination_entity: str | None = None,
        key_identifier: str | None = None,
        message: str | None = None,
        details: AuditDetails | None = None,
    ) -> AuditEvent:
        """Record generation of the pipeline's output file (FILE_GENERATED)."""
        correlation = self._helper_correlation_id(correlation_id)
        self._validate_helper_fields(source_system, "file_name", file_name, process_name, status)
        return self.record(
            AuditEvent(
                correlation_id=correlation,
                source_system=source_system,
                module_name=FILE_GENERATOR_MODULE,
                process_name=process_name,
                source_entity=source_entity,
                destination_entity=destination_entity if destination_entity is not None else file_name,
                key_identifier=key_identifier,
                checkpoint_stage=CheckpointStage.FILE_GENERATED,
                status=status,
                message=message if message is not None else f"File generation {status_phrase(status)}: {file_name}",
                details_json=details_to_json(details),
            )
        )

    # === Internals ===

    def _persist(self, event: AuditEvent) -> None:
        try:
            self._retry_policy.execute(lambda: self._store.append(event), "append_audit_event")
        except AuditError:
            raise
        except Exception as e:
            raise AuditPersistenceError("Failed to persist audit event") from e

    @staticmethod
    def _require_correlation_id(value: UUID | str | None) -> UUID:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise AuditValidationError("Correlation ID is required", field_name="correlation_id")
        try:
            return parse_correlation_id(value)
        except AuditCorrelationError as e:
            raise AuditValidationError(
                f"Malformed correlation ID: {value!r}",
                field_name="correlation_id",
                invalid_value=value,
            ) from e

    def _helper_correlation_id(self, value: UUID | str | None) -> UUID:
        return self._require_correlation_id(value if value is not None else correlation_context.current())

    @staticmethod
    def _validate_helper_fields(
        source_system: str,
        identifier_name: str,
        identifier: str,
        process_name: str,
        status: AuditStatus | None,
    ) -> None:
        if _is_blank(source_system):
            raise AuditValidationError("Source system is required", field_name="source_system", invalid_value=source_system)
        if _is_blank(identifier):
            raise AuditValidationError(f"{identifier_name} is required", field_name=identifier_name, invalid_value=identifier)
        if _is_blank(process_name):
            raise AuditValidationError("Process name is required", field_name="process_name", invalid_value=process_name)
        if status is None:
            raise AuditValidationError("Audit status is required", field_name="status")

    @staticmethod
    def _validate_details_json(details_json: str | None) -> None:
        try:
            payload = details_from_json(details_json)
        except ValueError as e:
            raise AuditValidationError("Audit details must be a JSON object", field_name="details_json", invalid_value=details_json) from e
        negative = negative_payload_fields(payload)
        if negative:
            raise AuditValidationError(
                f"Detail counts and control totals cannot be negative: {', '.join(negative)}",
                field_name=negative[0],
                invalid_value=payload[negative[0]],
            )

    @staticmethod
    def _generic_message(stage: CheckpointStage, status: AuditStatus | None, key_identifier: str | None) -> str | None:
        if status is None:
            return None
        message = f"{stage.label} {status_phrase(status)}"
        return f"{message}: {key_identifier}" if key_identifier else message

    def _warn_if_oversized(self, event: AuditEvent) -> None:
        if event.details_json is None:
            return
        size = len(event.details_json.encode("utf-8"))
        if size > self._payload_warn_bytes:
            logger.warning(
                "Audit details payload exceeds size threshold",
                correlation_id=str(event.correlation_id),
                checkpoint_stage=event.checkpoint_stage.value,
                size_bytes=size,
                threshold_bytes=self._payload_warn_bytes,
            )
