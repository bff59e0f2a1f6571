"""JSON encoding for snapshot payloads.

Adapters return loosely typed records (Decimals from exchange clients, datetimes,
occasionally NaN from upstream math). Payloads must always serialize, so values
JSON cannot represent are coerced instead of failing the tick. Non-finite numbers
become null, which accessors surface as None and the distiller skips.
"""

from __future__ import annotations

import json
import math
from datetime import date, datetime
from decimal import Decimal
from typing import Any


def _prepare(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _prepare(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_prepare(v) for v in value]
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, Decimal):
        # Keep full precision; adapters parse it back in normalize()
        return str(value) if value.is_finite() else None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def dumps_payload(records: Any) -> str:
    """Serialize a list of raw adapter records to compact JSON text."""
    return json.dumps(_prepare(records), separators=(",", ":"), default=str)


def loads_payload(payload: str | bytes | None) -> list[Any]:
    """Parse a stored payload; anything other than a non-empty JSON list yields []."""
    if not payload:
        return []
    try:
        data = json.loads(payload)
    except (TypeError, ValueError):
        return []
    return data if isinstance(data, list) else []
