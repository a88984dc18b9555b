"""
Inventory sync: collect -> map relationships -> diff -> persist.

All provider calls complete before the first write. Resources, relationships,
snapshots, the daily cost summary, new events and `last_sync_at` are then
written in one transaction; any database error rolls the whole sync back.
"""

import time
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional
from uuid import UUID, uuid4

import structlog
from sqlalchemy import delete, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account import AccountEvent, ProviderAccount
from app.models.inventory import (
    CostSummary,
    Resource,
    ResourceRelationship,
    ResourceSnapshot,
)
from app.modules.inventory.domain.collector import ResourceCollector
from app.modules.inventory.domain.normalizers import normalize_event
from app.modules.inventory.domain.pricing import money
from app.modules.inventory.domain.relationships import PlacedResource, map_relationships
from app.modules.inventory.domain.snapshots import compute_diff
from app.schemas.inventory import CollectionResult, SyncSummary, dump_specs
from app.shared.adapters.linode import LinodeClient
from app.shared.core.config import Settings, get_settings
from app.shared.core.exceptions import PersistenceError, ResourceNotFoundError
from app.shared.core.ops_metrics import SYNC_DURATION, SYNC_RUNS

logger = structlog.get_logger()

ClientFactory = Callable[[Optional[str]], LinodeClient]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InventorySyncService:
    def __init__(
        self,
        db: AsyncSession,
        *,
        client_factory: Optional[ClientFactory] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.client_factory: ClientFactory = client_factory or (lambda token: LinodeClient(token))
        self.settings = settings or get_settings()
        self.clock = clock

    async def _get_account(self, account_id: UUID) -> ProviderAccount:
        account = await self.db.get(ProviderAccount, account_id)
        if account is None:
            raise ResourceNotFoundError(f"Provider account {account_id} not found")
        return account

    async def sync(self, account_id: UUID) -> SyncSummary:
        """Replace the account's inventory with a fresh collection from the provider."""
        start = time.perf_counter()
        account = await self._get_account(account_id)
        log = logger.bind(account_id=str(account_id))

        async with self.client_factory(account.api_token) as client:
            collector = ResourceCollector(client, self.settings)
            collection = await collector.collect()
            raw_events = await collector.fetch_events()

        try:
            summary = await self._persist(account, collection, raw_events)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            SYNC_RUNS.labels(status="failure").inc()
            log.error("inventory_sync_persist_failed", error=str(exc))
            raise PersistenceError(
                f"Inventory sync for account {account_id} could not be saved",
                details={"error": str(exc)},
            ) from exc

        SYNC_RUNS.labels(status="success").inc()
        SYNC_DURATION.observe(time.perf_counter() - start)
        log.info(
            "inventory_sync_completed",
            resources=summary.count,
            relationships=summary.relationships,
            failed_types=sorted(summary.per_type_errors),
        )
        return summary

    async def _load_previous(self, account_id: UUID) -> dict[str, dict[str, Any]]:
        rows = await self.db.execute(
            select(
                Resource.id,
                Resource.resource_type,
                Resource.external_id,
                Resource.label,
                Resource.status,
                Resource.region,
                Resource.plan_type,
                Resource.monthly_cost,
                Resource.specs,
            ).where(Resource.account_id == account_id)
        )
        return {f"{row.resource_type}:{row.external_id}": dict(row._mapping) for row in rows}

    async def _persist(
        self,
        account: ProviderAccount,
        collection: CollectionResult,
        raw_events: list[dict[str, Any]],
    ) -> SyncSummary:
        synced_at = self.clock()
        previous = await self._load_previous(account.id)

        placed: list[PlacedResource] = []
        resource_rows: list[dict[str, Any]] = []
        snapshot_rows: list[dict[str, Any]] = []
        for resource in collection.resources:
            prior = previous.get(resource.identity_key)
            resource_id = prior["id"] if prior else uuid4()
            placed.append(PlacedResource(id=resource_id, resource=resource))
            state = {
                "label": resource.label,
                "status": resource.status,
                "region": resource.region,
                "plan_type": resource.plan_type,
                "monthly_cost": resource.monthly_cost,
                "specs": dump_specs(resource.specs),
            }
            resource_rows.append(
                {
                    **state,
                    "id": resource_id,
                    "account_id": account.id,
                    "external_id": resource.external_id,
                    "resource_type": resource.resource_type.value,
                    "provider_created_at": resource.provider_created_at,
                    "created_at": synced_at,
                    "updated_at": synced_at,
                }
            )
            snapshot_rows.append(
                {
                    **state,
                    "resource_id": resource_id,
                    "account_id": account.id,
                    "external_id": resource.external_id,
                    "resource_type": resource.resource_type.value,
                    "diff": compute_diff(prior, state),
                    "synced_at": synced_at,
                }
            )

        edges = map_relationships(placed)

        await self.db.execute(
            delete(ResourceRelationship).where(ResourceRelationship.account_id == account.id)
        )
        await self.db.execute(delete(Resource).where(Resource.account_id == account.id))
        if resource_rows:
            await self.db.execute(insert(Resource), resource_rows)
        if edges:
            await self.db.execute(
                insert(ResourceRelationship),
                [
                    {
                        "account_id": account.id,
                        "source_id": edge.source_id,
                        "target_id": edge.target_id,
                        "relationship_type": edge.relationship_type.value,
                        "edge_metadata": edge.metadata,
                        "synced_at": synced_at,
                    }
                    for edge in edges
                ],
            )
        if snapshot_rows:
            await self.db.execute(insert(ResourceSnapshot), snapshot_rows)

        total_cost = await self._upsert_cost_summary(account.id, collection, synced_at)
        events_ingested = await self._ingest_events(account.id, raw_events)
        account.last_sync_at = synced_at

        return SyncSummary(
            account_id=str(account.id),
            count=len(collection.resources),
            relationships=len(edges),
            total_monthly_cost=float(total_cost),
            events_ingested=events_ingested,
            per_type_errors=dict(collection.per_type_errors),
        )

    async def _upsert_cost_summary(
        self, account_id: UUID, collection: CollectionResult, synced_at: datetime
    ) -> Decimal:
        breakdown: dict[str, dict[str, Any]] = defaultdict(lambda: {"count": 0, "cost": 0.0})
        total = Decimal("0")
        for resource in collection.resources:
            entry = breakdown[resource.resource_type.value]
            entry["count"] += 1
            entry["cost"] = round(entry["cost"] + float(resource.monthly_cost), 4)
            total += resource.monthly_cost
        total = money(total)

        cost_date = synced_at.date()
        existing = await self.db.scalar(
            select(CostSummary).where(
                CostSummary.account_id == account_id, CostSummary.cost_date == cost_date
            )
        )
        if existing is None:
            self.db.add(
                CostSummary(
                    account_id=account_id,
                    cost_date=cost_date,
                    total_cost=total,
                    resource_count=len(collection.resources),
                    resource_breakdown=dict(breakdown),
                )
            )
        else:
            existing.total_cost = total
            existing.resource_count = len(collection.resources)
            existing.resource_breakdown = dict(breakdown)
        return total

    async def _ingest_events(self, account_id: UUID, raw_events: list[dict[str, Any]]) -> int:
        events = [e for e in (normalize_event(raw) for raw in raw_events) if e is not None]
        if not events:
            return 0
        incoming_ids = {e["event_id"] for e in events}
        known = set(
            await self.db.scalars(
                select(AccountEvent.event_id).where(
                    AccountEvent.account_id == account_id,
                    AccountEvent.event_id.in_(incoming_ids),
                )
            )
        )
        new_rows: list[dict[str, Any]] = []
        for event in events:
            if event["event_id"] in known:
                continue
            known.add(event["event_id"])
            new_rows.append({**event, "account_id": account_id})
        if new_rows:
            await self.db.execute(insert(AccountEvent), new_rows)
        return len(new_rows)
