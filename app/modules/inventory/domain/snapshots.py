from decimal import Decimal
from typing import Any, Mapping, Optional

DIFF_FIELDS = ("label", "status", "region", "plan_type", "monthly_cost")


def _comparable(value: Any) -> Any:
    # Numeric(12, 4) round-trips as Decimal; fresh costs may be float or Decimal.
    if isinstance(value, (Decimal, float)) and not isinstance(value, bool):
        return round(float(value), 4)
    return value


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return value


def compute_diff(
    previous: Optional[Mapping[str, Any]], current: Mapping[str, Any]
) -> Optional[dict[str, dict[str, Any]]]:
    """
    Field-level diff between a resource's previous and current state.

    Returns `{field: {"from": old, "to": new}}` for changed fields only, or None
    when nothing changed or the resource has no predecessor.
    """
    if previous is None:
        return None

    diff: dict[str, dict[str, Any]] = {}
    for name in DIFF_FIELDS:
        before, after = previous.get(name), current.get(name)
        if _comparable(before) != _comparable(after):
            diff[name] = {"from": _json_safe(before), "to": _json_safe(after)}

    before_specs = previous.get("specs") or {}
    after_specs = current.get("specs") or {}
    if before_specs != after_specs:
        diff["specs"] = {"from": before_specs, "to": after_specs}

    return diff or None
