# tests/conftest.py
"""Shared test fixtures and helpers.

Store fixtures use an in-memory SQLite database with tables created, so each
test starts with an empty audit trail. Retry policies built here sleep on a
MockClock, so backoff never blocks a test.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Iterator

import pytest
from hypothesis import Phase, Verbosity, settings

from batchaudit.contracts import RetryTier
from batchaudit.core.store import AuditDatabase, SqlAuditStore
from batchaudit.engine.clock import MockClock
from batchaudit.engine.reconciliation import ReconciliationEngine
from batchaudit.engine.recorder import CheckpointAuditRecorder
from tests.audit_helpers import no_sleep_policy

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Store fixtures
# =============================================================================


@pytest.fixture
def audit_db() -> Iterator[AuditDatabase]:
    db = AuditDatabase.in_memory()
    yield db
    db.close()


@pytest.fixture
def store(audit_db: AuditDatabase) -> SqlAuditStore:
    return SqlAuditStore(audit_db)


@pytest.fixture
def mock_clock() -> MockClock:
    return MockClock()


@pytest.fixture
def recorder(store: SqlAuditStore, mock_clock: MockClock) -> CheckpointAuditRecorder:
    return CheckpointAuditRecorder(store, retry_policy=no_sleep_policy(RetryTier.DEFAULT, mock_clock))


@pytest.fixture
def engine(store: SqlAuditStore) -> ReconciliationEngine:
    return ReconciliationEngine(store, retry_policy=no_sleep_policy(RetryTier.QUICK))


@pytest.fixture
def run_id() -> uuid.UUID:
    return uuid.uuid4()
