# src/batchaudit/core/canonical.py
"""
Text encodings for audit data.

Two encodings live here:
1. Detail payloads: order-preserving JSON, because stored payloads are read
   back by people and by reconciliation in the order they were written.
2. Canonical JSON per RFC 8785/JCS (rfc8785 package) for reconciliation
   reports, so that an unchanged trail always renders to identical bytes and
   the report fingerprint is stable.

IMPORTANT: NaN and Infinity are strictly REJECTED in both encodings.
"""

from __future__ import annotations

import hashlib
import json
import math
from collections.abc import Mapping
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

import rfc8785

from batchaudit.contracts.details import AuditDetails
from batchaudit.contracts.errors import AuditSerializationError

CANONICAL_VERSION = "sha256-rfc8785-v1"


def _normalize_value(obj: Any) -> Any:
    """Convert a single value to a JSON-safe primitive.

    Raises:
        ValueError: If value is a non-finite float or Decimal
    """
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            raise ValueError(f"Cannot encode non-finite float: {obj}. Use None for missing values, not NaN.")
        return obj

    if obj is None or isinstance(obj, str | int | bool):
        return obj

    if isinstance(obj, Enum):
        return obj.value

    if isinstance(obj, datetime):
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=UTC)
        return obj.astimezone(UTC).isoformat()

    if isinstance(obj, date):
        return obj.isoformat()

    if isinstance(obj, UUID):
        return str(obj)

    if isinstance(obj, Decimal):
        if not obj.is_finite():
            raise ValueError(f"Cannot encode non-finite Decimal: {obj}. Use None for missing values, not NaN/Infinity.")
        return str(obj)

    return obj


def _normalize(data: Any) -> Any:
    """Recursively normalize a data structure, keeping mapping key order."""
    if isinstance(data, Mapping):
        return {_normalize_key(k): _normalize(v) for k, v in data.items()}
    if isinstance(data, list | tuple):
        return [_normalize(v) for v in data]
    return _normalize_value(data)


def _normalize_key(key: Any) -> str:
    if isinstance(key, str):
        return key
    if isinstance(key, Enum):
        return str(key.value)
    raise TypeError(f"Mapping keys must be strings, got {type(key).__name__}: {key!r}")


def canonical_json(obj: Any) -> str:
    """Produce canonical JSON (no whitespace, sorted keys).

    Raises:
        ValueError: If data contains NaN, Infinity, or other non-finite values
        TypeError: If data contains types that cannot be serialized
    """
    normalized = _normalize(obj)
    result: bytes = rfc8785.dumps(normalized)
    return result.decode("utf-8")


def stable_hash(obj: Any, version: str = CANONICAL_VERSION) -> str:
    """SHA-256 hex digest of the canonical JSON of obj."""
    canonical = canonical_json(obj)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def details_to_json(details: AuditDetails | Mapping[str, Any] | None) -> str | None:
    """Encode a detail payload to its stored text form.

    Key order is preserved. None stays None so events without details store NULL.

    Raises:
        AuditSerializationError: Payload holds values with no JSON form
    """
    if details is None:
        return None
    try:
        payload = details.to_dict() if isinstance(details, AuditDetails) else details
        return json.dumps(_normalize(payload), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise AuditSerializationError("Failed to serialize audit details to JSON") from exc


def details_from_json(text: str | None) -> dict[str, Any]:
    """Decode a stored detail payload. NULL and blank payloads decode to {}.

    Raises:
        ValueError: Stored text is not a JSON object
    """
    if text is None or not text.strip():
        return {}
    decoded = json.loads(text)
    if not isinstance(decoded, dict):
        raise ValueError(f"Detail payload must be a JSON object, got {type(decoded).__name__}")
    return decoded
