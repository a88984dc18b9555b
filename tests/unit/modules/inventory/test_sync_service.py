"""
Tests for InventorySyncService persistence: identity carry-over, snapshots,
cost rollups, event ingestion and rollback on write failure.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.models.account import AccountEvent
from app.models.inventory import CostSummary, Resource, ResourceRelationship, ResourceSnapshot
from app.modules.inventory.domain.service import InventorySyncService
from app.shared.core.exceptions import PersistenceError, ResourceNotFoundError

SYNC_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
RESYNC_TIME = datetime(2024, 6, 1, 18, 0, tzinfo=timezone.utc)


def _service(db, client, at=SYNC_TIME):
    return InventorySyncService(db, client_factory=lambda token: client, clock=lambda: at)


async def _count(db, model, *criteria):
    return await db.scalar(select(func.count()).select_from(model).where(*criteria))


@pytest.mark.asyncio
async def test_sync_persists_inventory(db_session, account, fake_client):
    summary = await _service(db_session, fake_client).sync(account.id)

    assert summary.count == 9
    assert summary.relationships == 5
    assert summary.total_monthly_cost == pytest.approx(243.0)
    assert summary.events_ingested == 1
    assert summary.per_type_errors == {}

    assert await _count(db_session, Resource, Resource.account_id == account.id) == 9
    assert await _count(db_session, ResourceRelationship) == 5
    assert await _count(db_session, ResourceSnapshot) == 9

    cost = await db_session.scalar(select(CostSummary))
    assert cost.resource_count == 9
    assert cost.resource_breakdown["compute_instance"] == {"count": 2, "cost": 29.0}

    refreshed = await db_session.get(type(account), account.id)
    assert refreshed.last_sync_at is not None


@pytest.mark.asyncio
async def test_resync_keeps_ids_and_records_diffs(db_session, account, routes, make_fake_client):
    await _service(db_session, make_fake_client(routes)).sync(account.id)
    first_ids = dict((await db_session.execute(select(Resource.external_id, Resource.id))).all())

    routes["/linode/types/g6-standard-2"] = {"id": "g6-standard-2", "price": {"monthly": 36.0}}
    summary = await _service(db_session, make_fake_client(routes), RESYNC_TIME).sync(account.id)

    second_ids = dict((await db_session.execute(select(Resource.external_id, Resource.id))).all())
    assert second_ids == first_ids
    assert summary.events_ingested == 0

    latest = (
        await db_session.scalars(
            select(ResourceSnapshot).where(ResourceSnapshot.synced_at == RESYNC_TIME)
        )
    ).all()
    assert len(latest) == 9
    diffs = {s.external_id: s.diff for s in latest}
    assert diffs["101"] == {"monthly_cost": {"from": 24.0, "to": 36.0}}
    assert all(diff is None for ext_id, diff in diffs.items() if ext_id != "101")

    assert await _count(db_session, CostSummary) == 1
    assert await _count(db_session, AccountEvent) == 1


@pytest.mark.asyncio
async def test_removed_resources_disappear(db_session, account, routes, make_fake_client):
    await _service(db_session, make_fake_client(routes)).sync(account.id)

    routes["/volumes"] = []
    summary = await _service(db_session, make_fake_client(routes)).sync(account.id)

    assert summary.count == 8
    assert await _count(db_session, Resource, Resource.resource_type == "block_volume") == 0


@pytest.mark.asyncio
async def test_unknown_account_raises(db_session, fake_client):
    with pytest.raises(ResourceNotFoundError):
        await _service(db_session, fake_client).sync(uuid4())


@pytest.mark.asyncio
async def test_write_failure_rolls_back(db_session, account, fake_client):
    service = _service(db_session, fake_client)
    failure = OperationalError("INSERT", {}, Exception("disk full"))
    with patch.object(service, "_ingest_events", AsyncMock(side_effect=failure)):
        with pytest.raises(PersistenceError):
            await service.sync(account.id)

    assert await _count(db_session, Resource) == 0
