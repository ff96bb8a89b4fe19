# src/batchaudit/engine/retry.py
"""PersistenceRetryPolicy: transient-failure retry for audit store operations.

Provides tiered retry behavior on tenacity:
- Exponential backoff without jitter: initial * multiplier^(attempt-1), capped
- Bounded attempts (max_attempts counts the first try)
- Transient/fatal classification of the raised error and its cause chain
- Terminal AuditRetryExhaustedError when the budget is spent

Classification looks only at the error value (type, SQLSTATE attributes,
lowercased message text), never at the payload being written. Message
matching is vendor dependent; a store with structured error codes should
classify on those codes instead.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

import structlog
from sqlalchemy import exc as sa_exc
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from batchaudit.contracts.enums import RetryTier
from batchaudit.contracts.errors import (
    TRANSIENT_VENDOR_CODES,
    AuditError,
    AuditRetryExhaustedError,
    is_transient_message,
    iter_cause_chain,
)
from batchaudit.engine.clock import DEFAULT_CLOCK, Clock

if TYPE_CHECKING:
    from batchaudit.core.config import RetryTierSettings

T = TypeVar("T")

logger = structlog.get_logger(__name__)

# Storage-layer vocabulary: listener and session-loss codes.
AGGRESSIVE_VENDOR_CODES: tuple[str, ...] = (
    *TRANSIENT_VENDOR_CODES,
    "ora-12170",  # TNS connect timeout
    "ora-12541",  # no listener
    "ora-12514",  # listener does not know of service
    "ora-03113",  # end-of-file on communication channel
    "ora-03114",  # not connected to Oracle
)

# PostgreSQL SQLSTATEs exposed as .sqlstate/.pgcode on driver errors.
AGGRESSIVE_SQLSTATES: frozenset[str] = frozenset(
    {
        "40001",  # serialization_failure
        "40P01",  # deadlock_detected
        "08000",  # connection_exception
        "08006",  # connection_failure
        "57P01",  # admin_shutdown
    }
)

_TRANSIENT_TYPES: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    sa_exc.DisconnectionError,
    sa_exc.TimeoutError,
)


@dataclass(frozen=True)
class RetryPolicyConfig:
    """Runtime parameters for one retry tier.

    max_attempts is the TOTAL number of tries, not the number of retries.
    So max_attempts=3 means: try, retry, retry (3 total).
    """

    tier: RetryTier
    max_attempts: int
    initial_delay: float
    multiplier: float
    max_delay: float
    vendor_codes: tuple[str, ...] = TRANSIENT_VENDOR_CODES
    sqlstates: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay <= 0 or self.max_delay < self.initial_delay:
            raise ValueError("delays must satisfy 0 < initial_delay <= max_delay")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")

    def delay_after(self, attempt: int) -> float:
        """Backoff slept after failed attempt number `attempt` (1-based)."""
        return min(self.initial_delay * self.multiplier ** (attempt - 1), self.max_delay)

    @classmethod
    def default(cls) -> RetryPolicyConfig:
        """Generic audit writes: 3 attempts, 1s, x2.0, 30s cap."""
        return cls(tier=RetryTier.DEFAULT, max_attempts=3, initial_delay=1.0, multiplier=2.0, max_delay=30.0)

    @classmethod
    def aggressive(cls) -> RetryPolicyConfig:
        """Storage-layer operations: 5 attempts, 0.5s, x1.5, 15s cap, broader vocabulary."""
        return cls(
            tier=RetryTier.AGGRESSIVE,
            max_attempts=5,
            initial_delay=0.5,
            multiplier=1.5,
            max_delay=15.0,
            vendor_codes=AGGRESSIVE_VENDOR_CODES,
            sqlstates=AGGRESSIVE_SQLSTATES,
        )

    @classmethod
    def quick(cls) -> RetryPolicyConfig:
        """Low-latency paths: 2 attempts, 0.1s, x2.0, 1s cap."""
        return cls(tier=RetryTier.QUICK, max_attempts=2, initial_delay=0.1, multiplier=2.0, max_delay=1.0)

    @classmethod
    def for_tier(cls, tier: RetryTier) -> RetryPolicyConfig:
        factories = {
            RetryTier.DEFAULT: cls.default,
            RetryTier.AGGRESSIVE: cls.aggressive,
            RetryTier.QUICK: cls.quick,
        }
        return factories[tier]()

    @classmethod
    def from_settings(cls, settings: RetryTierSettings, tier: RetryTier) -> RetryPolicyConfig:
        """Factory from validated tier settings; the tier fixes the error vocabulary."""
        vocabulary = cls.for_tier(tier)
        return cls(
            tier=tier,
            max_attempts=settings.max_attempts,
            initial_delay=settings.initial_delay_seconds,
            multiplier=settings.multiplier,
            max_delay=settings.max_delay_seconds,
            vendor_codes=vocabulary.vendor_codes,
            sqlstates=vocabulary.sqlstates,
        )


def _sqlstate(error: BaseException) -> str | None:
    for attribute in ("sqlstate", "pgcode"):
        value = getattr(error, attribute, None)
        if isinstance(value, str):
            return value
    return None


def is_transient(error: BaseException, config: RetryPolicyConfig | None = None) -> bool:
    """True when error (or anything in its cause chain) is a transient storage failure.

    AuditError instances answer for themselves through .retryable, so a
    validation failure or an exhausted retry is never retried by an outer policy.
    Constraint violations are always fatal.
    """
    config = config or RetryPolicyConfig.default()
    if isinstance(error, AuditError):
        return error.retryable

    chain = iter_cause_chain(error)
    if any(isinstance(link, sa_exc.IntegrityError) for link in chain):
        return False

    for link in chain:
        if isinstance(link, _TRANSIENT_TYPES):
            return True
        if isinstance(link, sa_exc.DBAPIError) and link.connection_invalidated:
            return True
        sqlstate = _sqlstate(link)
        if sqlstate is not None and sqlstate.upper() in config.sqlstates:
            return True
        if is_transient_message(str(link), config.vendor_codes):
            return True
    return False


class PersistenceRetryPolicy:
    """Executes store operations under one retry tier.

    Backoff sleeps the calling thread. Callers that must not block should run
    the call on a worker.

    Example:
        policy = PersistenceRetryPolicy(RetryPolicyConfig.default())
        policy.execute(lambda: store.append(event), "append_event")
    """

    def __init__(
        self,
        config: RetryPolicyConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        self._config = config
        self._sleep = sleep
        self._clock = clock

    @property
    def config(self) -> RetryPolicyConfig:
        return self._config

    @classmethod
    def for_tier(
        cls,
        tier: RetryTier,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Clock = DEFAULT_CLOCK,
    ) -> PersistenceRetryPolicy:
        return cls(RetryPolicyConfig.for_tier(tier), sleep=sleep, clock=clock)

    def is_retryable(self, error: BaseException) -> bool:
        return is_transient(error, self._config)

    def execute(self, operation: Callable[[], T], operation_name: str) -> T:
        """Run operation, retrying transient failures.

        Args:
            operation: Zero-argument callable performing one store operation
            operation_name: Diagnostic tag for logs and the exhaustion error

        Returns:
            Result of operation

        Raises:
            AuditRetryExhaustedError: Every attempt failed transiently
            Exception: The first non-transient failure, unchanged
        """
        config = self._config
        started = self._clock.monotonic()

        def _log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "Persistence operation failed, retrying",
                operation=operation_name,
                tier=config.tier.value,
                attempt=retry_state.attempt_number,
                max_attempts=config.max_attempts,
                delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
                error=str(error),
            )

        try:
            for attempt_state in Retrying(
                stop=stop_after_attempt(config.max_attempts),
                wait=wait_exponential(multiplier=config.initial_delay, exp_base=config.multiplier, max=config.max_delay),
                retry=retry_if_exception(self.is_retryable),
                before_sleep=_log_retry,
                sleep=self._sleep,
                reraise=False,  # RetryError is converted to AuditRetryExhaustedError below
            ):
                with attempt_state:
                    result = operation()
                    attempt_number = attempt_state.retry_state.attempt_number
                    if attempt_number > 1:
                        logger.info(
                            "Persistence operation succeeded after retry",
                            operation=operation_name,
                            tier=config.tier.value,
                            attempts=attempt_number,
                            duration_ms=self._elapsed_ms(started),
                        )
                    return result
        except RetryError as e:
            last_error = e.last_attempt.exception()
            attempts = e.last_attempt.attempt_number
            elapsed_ms = self._elapsed_ms(started)
            logger.error(
                "Persistence operation failed after all retries",
                operation=operation_name,
                tier=config.tier.value,
                attempts=attempts,
                max_attempts=config.max_attempts,
                duration_ms=elapsed_ms,
                error=str(last_error),
            )
            raise AuditRetryExhaustedError(
                "Persistence retry budget exhausted",
                operation=operation_name,
                attempt_count=attempts,
                max_attempts=config.max_attempts,
                elapsed_ms=elapsed_ms,
            ) from last_error

        # Should not reach here - Retrying always returns or raises
        raise RuntimeError("Unexpected state in retry loop")  # pragma: no cover

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock.monotonic() - started) * 1000)
