"""Error hierarchy for the audit core and its boundary classification.

Every AuditError subclass carries fixed metadata (error code, HTTP status,
retryability). Outer layers never inspect messages; they call classify_failure()
and act on the returned category.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, assert_never

from batchaudit.contracts.enums import ErrorCategory

# Message fragments that mark a storage failure as transient in every retry tier.
TRANSIENT_MESSAGE_PATTERNS: tuple[str, ...] = (
    "connection",
    "timeout",
    "timed out",
    "network",
    "unavailable",
    "deadlock",
    "resource busy",
    "lock wait timeout",
    "database is locked",
)

# Oracle deadlock and resource-busy codes.
TRANSIENT_VENDOR_CODES: tuple[str, ...] = (
    "ora-00060",
    "ora-00054",
)


def is_transient_message(text: str, vendor_codes: tuple[str, ...] = TRANSIENT_VENDOR_CODES) -> bool:
    """True when an error message names a transient storage condition."""
    message = text.lower()
    return any(pattern in message for pattern in TRANSIENT_MESSAGE_PATTERNS) or any(code in message for code in vendor_codes)


def iter_cause_chain(error: BaseException) -> list[BaseException]:
    """Return error followed by its explicit/implicit causes, without cycles."""
    chain: list[BaseException] = []
    current: BaseException | None = error
    while current is not None and not any(current is seen for seen in chain):
        chain.append(current)
        current = current.__cause__ if current.__cause__ is not None else current.__context__
    return chain


class AuditError(Exception):
    """Base class for all audit core failures."""

    error_code: ClassVar[str] = "AUDIT_ERROR"
    http_status: ClassVar[int] = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def retryable(self) -> bool:
        return False


class AuditValidationError(AuditError):
    """Caller supplied an invalid or incomplete audit request.

    Raised before any write is attempted.
    """

    error_code: ClassVar[str] = "AUDIT_VALIDATION_ERROR"
    http_status: ClassVar[int] = 400

    def __init__(self, message: str, *, field_name: str | None = None, invalid_value: Any = None) -> None:
        super().__init__(message)
        self.field_name = field_name
        self.invalid_value = invalid_value


class AuditPersistenceError(AuditError):
    """The backing store rejected or failed a write or read.

    Retryable only when the underlying cause looks transient.
    """

    error_code: ClassVar[str] = "AUDIT_PERSISTENCE_ERROR"
    http_status: ClassVar[int] = 500

    @property
    def retryable(self) -> bool:
        cause = self.__cause__
        if cause is None:
            return False
        return any(isinstance(link, ConnectionError | TimeoutError) or is_transient_message(str(link)) for link in iter_cause_chain(cause))


class AuditSerializationError(AuditPersistenceError):
    """Detail payload could not be encoded to its stored text form."""

    error_code: ClassVar[str] = "AUDIT_SERIALIZATION_ERROR"

    @property
    def retryable(self) -> bool:
        return False


class AuditConfigurationError(AuditError):
    """Audit settings are missing or inconsistent."""

    error_code: ClassVar[str] = "AUDIT_CONFIGURATION_ERROR"
    http_status: ClassVar[int] = 500

    def __init__(self, message: str, *, configuration_key: str | None = None, configuration_value: Any = None) -> None:
        super().__init__(message)
        self.configuration_key = configuration_key
        self.configuration_value = configuration_value


class AuditCorrelationError(AuditError):
    """A correlation id could not be generated, parsed, or bound."""

    error_code: ClassVar[str] = "AUDIT_CORRELATION_ERROR"
    http_status: ClassVar[int] = 400

    def __init__(self, message: str, *, correlation_id: str | None = None, operation: str | None = None) -> None:
        super().__init__(message)
        self.correlation_id = correlation_id
        self.operation = operation

    @property
    def retryable(self) -> bool:
        return self.operation is not None and "validation" not in self.operation.lower()


class AuditRetryExhaustedError(AuditError):
    """Retry budget spent on a still-transient failure.

    Terminal: this error is never retried, even by an outer retry policy.
    The last underlying failure is chained as __cause__.
    """

    error_code: ClassVar[str] = "AUDIT_RETRY_EXHAUSTED"
    http_status: ClassVar[int] = 503

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        attempt_count: int,
        max_attempts: int,
        elapsed_ms: int,
    ) -> None:
        super().__init__(f"{message} (operation: {operation}, attempts: {attempt_count}/{max_attempts}, duration: {elapsed_ms}ms)")
        self.operation = operation
        self.attempt_count = attempt_count
        self.max_attempts = max_attempts
        self.elapsed_ms = elapsed_ms


@dataclass(frozen=True)
class FailureResponse:
    """Outward-facing description of a failure, independent of transport."""

    category: ErrorCategory
    error_code: str
    http_status: int
    message: str
    retry_after_seconds: int | None = None


DEFAULT_RETRY_AFTER_SECONDS = 30


def classify_failure(error: BaseException, *, retry_after_seconds: int = DEFAULT_RETRY_AFTER_SECONDS) -> FailureResponse:
    """Map any failure raised by the audit core to an outward-facing category.

    Validation, correlation and serialization failures are client-correctable.
    Retry exhaustion means the store is unavailable and carries a retry-after hint.
    Everything else, including non-audit exceptions, is an internal error.
    """
    match error:
        case AuditValidationError() | AuditCorrelationError() | AuditSerializationError():
            return FailureResponse(ErrorCategory.CLIENT_ERROR, error.error_code, error.http_status, error.message)
        case AuditRetryExhaustedError():
            return FailureResponse(
                ErrorCategory.SERVICE_UNAVAILABLE,
                error.error_code,
                error.http_status,
                error.message,
                retry_after_seconds=retry_after_seconds,
            )
        case AuditError():
            return FailureResponse(ErrorCategory.INTERNAL_ERROR, error.error_code, error.http_status, error.message)
        case _:
            return FailureResponse(ErrorCategory.INTERNAL_ERROR, AuditError.error_code, AuditError.http_status, str(error))


def exit_code_for(category: ErrorCategory) -> int:
    """Process exit code for a failure category."""
    match category:
        case ErrorCategory.CLIENT_ERROR:
            return 2
        case ErrorCategory.SERVICE_UNAVAILABLE:
            return 3
        case ErrorCategory.INTERNAL_ERROR:
            return 1
        case _:
            assert_never(category)
