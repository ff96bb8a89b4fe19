# src/batchaudit/core/correlation.py
"""Correlation id scoping for the current execution context.

Bindings live in a contextvars.ContextVar, so:
- each thread starts unbound;
- asyncio tasks see a copy of their creator's context at creation time;
- propagating into a worker thread is explicit (contextvars.copy_context().run).

Rebinding in one context never changes what another context observes.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TypeVar

from batchaudit.contracts.errors import AuditCorrelationError

T = TypeVar("T")

_current_correlation_id: ContextVar[uuid.UUID | None] = ContextVar("batchaudit_correlation_id", default=None)


def parse_correlation_id(value: uuid.UUID | str) -> uuid.UUID:
    """Coerce a UUID or its string form.

    Raises:
        AuditCorrelationError: Value is not a UUID
    """
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except ValueError as exc:
        raise AuditCorrelationError(
            f"Malformed correlation id: {value!r}",
            correlation_id=str(value),
            operation="validation",
        ) from exc


class CorrelationContext:
    """Generate, bind and scope correlation ids.

    All state is the module-level ContextVar; instances are stateless handles
    and any number of them observe the same binding within one context.
    """

    def generate(self) -> uuid.UUID:
        """Create a random (version 4) id, bind it, and return it."""
        correlation_id = uuid.uuid4()
        _current_correlation_id.set(correlation_id)
        return correlation_id

    def current(self) -> uuid.UUID | None:
        return _current_correlation_id.get()

    def has_correlation_id(self) -> bool:
        return _current_correlation_id.get() is not None

    def set(self, correlation_id: uuid.UUID | str | None) -> None:
        """Bind an id to the current context. None clears the binding.

        Raises:
            AuditCorrelationError: correlation_id is a malformed string
        """
        if correlation_id is None:
            self.clear()
            return
        _current_correlation_id.set(parse_correlation_id(correlation_id))

    def clear(self) -> None:
        _current_correlation_id.set(None)

    @contextmanager
    def scoped(self, correlation_id: uuid.UUID | str | None) -> Iterator[uuid.UUID | None]:
        """Bind correlation_id for the with-block, then restore the prior binding.

        The prior binding (including no binding) is restored on every exit
        path, and exceptions from the block propagate unchanged.
        """
        parsed = parse_correlation_id(correlation_id) if correlation_id is not None else None
        token = _current_correlation_id.set(parsed)
        try:
            yield parsed
        finally:
            _current_correlation_id.reset(token)

    def run_scoped(self, correlation_id: uuid.UUID | str | None, fn: Callable[[], T]) -> T:
        """Run fn with correlation_id bound; see scoped()."""
        with self.scoped(correlation_id):
            return fn()


correlation_context = CorrelationContext()
