from decimal import Decimal

from app.modules.inventory.domain import pricing


def test_type_monthly_price_reads_nested_price():
    assert pricing.type_monthly_price({"price": {"monthly": 24}}) == Decimal("24.0000")
    assert pricing.type_monthly_price(None) == Decimal("0")
    assert pricing.type_monthly_price({"price": {}}) == Decimal("0.0000")


def test_cluster_cost_adds_ha_control_plane():
    table = pricing.monthly_price_table(
        [{"id": "g6-standard-2", "price": {"monthly": 24}}, {"id": "lke-ha", "price": {"monthly": 60}}]
    )
    pools = [{"type": "g6-standard-2", "count": 3}, {"type": "unknown-plan", "count": 5}]

    assert pricing.cluster_monthly_cost(pools, table, high_availability=False) == Decimal("72.0000")
    assert pricing.cluster_monthly_cost(pools, table, high_availability=True) == Decimal("132.0000")


def test_database_cost_scales_with_cluster_size_and_unknown_engine_is_free():
    table = pricing.database_price_table(
        [{"id": "g6-dedicated-2", "engines": {"mysql": [{"price": {"monthly": 65}}]}}]
    )
    assert pricing.database_monthly_cost("mysql", "g6-dedicated-2", 3, table) == Decimal("195.0000")
    assert pricing.database_monthly_cost("postgresql", "g6-dedicated-2", 3, table) == Decimal("0.0000")
    assert pricing.database_monthly_cost("mysql", "g6-dedicated-2", 0, table) == Decimal("65.0000")


def test_volume_cost_is_size_times_rate():
    assert pricing.volume_monthly_cost(20, 0.10) == Decimal("2.0000")


def test_object_storage_pool_cost():
    kwargs = {"base_monthly": 5.0, "included_gb": 250.0, "overage_per_gb": 0.02}
    assert pricing.object_storage_pool_cost(0, 0, **kwargs) == Decimal("0")
    assert pricing.object_storage_pool_cost(100, 2, **kwargs) == Decimal("5.0000")
    assert pricing.object_storage_pool_cost(350, 2, **kwargs) == Decimal("7.0000")


def test_apportion_by_size_share():
    shares = pricing.apportion_pool_cost([30.0, 10.0], Decimal("8"))
    assert shares == [Decimal("6.0000"), Decimal("2.0000")]


def test_apportion_empty_buckets_evenly():
    assert pricing.apportion_pool_cost([0.0, 0.0], Decimal("5")) == [Decimal("2.5000"), Decimal("2.5000")]
    assert pricing.apportion_pool_cost([], Decimal("5")) == []
