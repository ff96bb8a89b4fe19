"""Typed detail payload attached to audit events.

Field declaration order is the serialized key order. Unset fields are omitted,
then any extra keys follow in insertion order.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from decimal import Decimal, InvalidOperation
from typing import Any

# Payload keys that hold record counts, in the order reconciliation prefers them.
COUNT_FIELDS: tuple[str, ...] = ("record_count", "record_count_after", "rows_loaded", "rows_read")

NON_NEGATIVE_FIELDS: tuple[str, ...] = (
    "file_size_bytes",
    "rows_read",
    "rows_loaded",
    "rows_rejected",
    "record_count",
    "record_count_before",
    "record_count_after",
    "control_total_debits",
    "control_total_credits",
    "control_total_amount",
)


def _is_negative(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, str):
        try:
            value = Decimal(value.strip())
        except InvalidOperation:
            return False
    if isinstance(value, Decimal):
        return value.is_finite() and value < 0
    return isinstance(value, int | float) and value < 0


def negative_payload_fields(payload: Mapping[str, Any]) -> list[str]:
    """Names of count or amount keys whose value reads as a negative number.

    JSON numbers and numeric strings are both read; values with no numeric
    reading are left for reconciliation to report as malformed.
    """
    return [name for name in NON_NEGATIVE_FIELDS if _is_negative(payload.get(name))]


@dataclass
class AuditDetails:
    """Structured metrics captured at a checkpoint.

    File checkpoints carry size and hash, loader checkpoints carry row counts,
    business-rule checkpoints carry rule input and output. Control totals are
    Decimal so that amounts reconcile exactly.
    """

    file_size_bytes: int | None = None
    file_hash_sha256: str | None = None
    rows_read: int | None = None
    rows_loaded: int | None = None
    rows_rejected: int | None = None
    record_count: int | None = None
    record_count_before: int | None = None
    record_count_after: int | None = None
    control_total_debits: Decimal | None = None
    control_total_credits: Decimal | None = None
    control_total_amount: Decimal | None = None
    rule_applied: str | None = None
    entity_identifier: str | None = None
    transformation_details: str | None = None
    rule_input: dict[str, Any] | None = None
    rule_output: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Ordered mapping of set fields followed by extra keys.

        Decimal amounts become strings so no precision is lost in text form.
        """
        result: dict[str, Any] = {}
        for f in fields(self):
            if f.name == "extra":
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            result[f.name] = str(value) if isinstance(value, Decimal) else value
        for key, value in self.extra.items():
            if key in result:
                raise ValueError(f"extra key '{key}' collides with a declared detail field")
            result[key] = value
        return result
