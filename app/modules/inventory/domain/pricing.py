"""
Monthly run-rate pricing for collected resources.

Instance, cluster and database prices come from the provider's type catalogues;
volumes, load balancers and object storage use flat published rates from settings.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Mapping, Sequence

from app.shared.adapters.feed_utils import as_decimal

_MONEY_QUANT = Decimal("0.0001")
LKE_HA_TYPE_ID = "lke-ha"


def money(value: Any) -> Decimal:
    return as_decimal(value).quantize(_MONEY_QUANT, rounding=ROUND_HALF_UP)


def type_monthly_price(type_payload: Mapping[str, Any] | None) -> Decimal:
    if not type_payload:
        return Decimal("0")
    price = type_payload.get("price") or {}
    return money(price.get("monthly") or type_payload.get("monthly_price") or 0)


def monthly_price_table(types: Iterable[Mapping[str, Any]]) -> dict[str, Decimal]:
    """Map type id -> monthly price for catalogues shaped like `/lke/types`."""
    return {
        str(item["id"]): type_monthly_price(item) for item in types if item.get("id")
    }


def cluster_monthly_cost(
    pools: Sequence[Mapping[str, Any]],
    price_table: Mapping[str, Decimal],
    high_availability: bool,
) -> Decimal:
    total = Decimal("0")
    for pool in pools:
        price = price_table.get(str(pool.get("type")))
        if price is not None:
            total += price * int(pool.get("count") or 0)
    if high_availability and LKE_HA_TYPE_ID in price_table:
        total += price_table[LKE_HA_TYPE_ID]
    return money(total)


def database_price_table(
    types: Iterable[Mapping[str, Any]],
) -> dict[str, dict[str, Decimal]]:
    """Map database type id -> {engine: monthly price per node}."""
    table: dict[str, dict[str, Decimal]] = {}
    for item in types:
        type_id = item.get("id")
        if not type_id:
            continue
        per_engine: dict[str, Decimal] = {}
        for engine, offers in (item.get("engines") or {}).items():
            if isinstance(offers, list) and offers:
                per_engine[engine] = money((offers[0].get("price") or {}).get("monthly"))
        table[str(type_id)] = per_engine
    return table


def database_monthly_cost(
    engine: str,
    type_id: str | None,
    cluster_size: int,
    price_table: Mapping[str, Mapping[str, Decimal]],
) -> Decimal:
    per_node = price_table.get(str(type_id), {}).get(engine, Decimal("0"))
    return money(per_node * max(1, cluster_size))


def volume_monthly_cost(size_gb: Any, rate_per_gb: float) -> Decimal:
    return money(as_decimal(size_gb) * as_decimal(rate_per_gb))


def object_storage_pool_cost(
    total_gb: float,
    bucket_count: int,
    *,
    base_monthly: float,
    included_gb: float,
    overage_per_gb: float,
) -> Decimal:
    """Account-wide object storage charge: flat base up to the included quota, then per-GB."""
    if bucket_count == 0:
        return Decimal("0")
    if total_gb <= included_gb:
        return money(base_monthly)
    overage = as_decimal(total_gb) - as_decimal(included_gb)
    return money(as_decimal(base_monthly) + overage * as_decimal(overage_per_gb))


def apportion_pool_cost(sizes_gb: Sequence[float], pool_cost: Decimal) -> list[Decimal]:
    """
    Split the pool cost across buckets by size share.

    Buckets that are all empty share the pool cost evenly.
    """
    if not sizes_gb:
        return []
    total = sum(sizes_gb)
    if total <= 0:
        return [money(pool_cost / len(sizes_gb)) for _ in sizes_gb]
    return [money(pool_cost * as_decimal(size) / as_decimal(total)) for size in sizes_gb]
