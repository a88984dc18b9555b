from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any


def parse_timestamp(value: Any) -> datetime | None:
    """
    Best-effort timestamp normalization.

    Accepts:
    - datetime (naive treated as UTC)
    - ISO8601 strings (Z supported; the provider omits the offset and means UTC)
    - unix timestamps (int/float)

    Returns None for anything unparseable so callers can treat it as missing data.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    return None


def as_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value is None:
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return default


def as_float(value: Any, default: float = 0.0, *, divisor: int = 1) -> float:
    if value is None:
        return default
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return default
    if divisor <= 0:
        divisor = 1
    return float(amount / Decimal(divisor))
