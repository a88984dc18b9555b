"""
Resource collection from the provider API.

Each resource type has a list endpoint plus optional enrichment calls. A failed
list endpoint skips that type (recorded in `per_type_errors`); a failed
enrichment call degrades to its documented default and collection continues.
Enrichment calls run concurrently, bounded by COLLECTOR_MAX_CONCURRENCY, and
results keep the order of the primary list response.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from decimal import Decimal
from typing import Any, Optional, TypeVar

import structlog
from pydantic import ValidationError

from app.models.inventory import ResourceType
from app.modules.inventory.domain import normalizers, pricing
from app.schemas.inventory import (
    CollectionResult,
    ControlPlaneAcl,
    NormalizedResource,
)
from app.shared.adapters.linode import LinodeClient
from app.shared.core.config import Settings, get_settings
from app.shared.core.exceptions import ExternalAPIError
from app.shared.core.ops_metrics import COLLECTION_TYPE_FAILURES, RESOURCES_COLLECTED

logger = structlog.get_logger()

T = TypeVar("T")
Item = dict[str, Any]


class ResourceCollector:
    """Collects and normalizes every supported resource type for one account."""

    def __init__(self, client: LinodeClient, settings: Optional[Settings] = None):
        self.client = client
        self.settings = settings or get_settings()
        self._semaphore = asyncio.Semaphore(self.settings.COLLECTOR_MAX_CONCURRENCY)
        self._type_collectors: dict[
            ResourceType, Callable[[], Awaitable[list[NormalizedResource]]]
        ] = {
            ResourceType.COMPUTE_INSTANCE: self._collect_instances,
            ResourceType.BLOCK_VOLUME: self._collect_volumes,
            ResourceType.LOAD_BALANCER: self._collect_load_balancers,
            ResourceType.K8S_CLUSTER: self._collect_clusters,
            ResourceType.OBJECT_BUCKET: self._collect_buckets,
            ResourceType.DATABASE: self._collect_databases,
            ResourceType.FIREWALL: self._collect_firewalls,
            ResourceType.VPC: self._collect_vpcs,
        }

    async def collect(self) -> CollectionResult:
        result = CollectionResult()
        seen: set[str] = set()
        for resource_type, collect_type in self._type_collectors.items():
            try:
                resources = await collect_type()
            except ExternalAPIError as exc:
                COLLECTION_TYPE_FAILURES.labels(resource_type=resource_type.value).inc()
                logger.warning(
                    "resource_type_collection_failed",
                    resource_type=resource_type.value,
                    error=exc.message,
                )
                result.per_type_errors[resource_type.value] = exc.message
                continue

            for resource in resources:
                if resource.identity_key in seen:
                    continue
                seen.add(resource.identity_key)
                result.resources.append(resource)
            RESOURCES_COLLECTED.labels(resource_type=resource_type.value).inc(
                len(resources)
            )
            logger.info(
                "resource_type_collected",
                resource_type=resource_type.value,
                count=len(resources),
            )
        return result

    async def fetch_events(self) -> list[Item]:
        """Most recent page of the account event feed; empty on failure."""
        try:
            return await self.client.list_page(
                "/account/events", page_size=self.settings.EVENTS_PAGE_SIZE
            )
        except ExternalAPIError as exc:
            logger.warning("account_events_fetch_failed", error=exc.message)
            return []

    # --- helpers ---

    async def _enrich(
        self,
        call: Callable[[], Awaitable[T]],
        default: T,
        *,
        resource_type: ResourceType,
        what: str,
        item_id: Any = None,
    ) -> T:
        async with self._semaphore:
            try:
                return await call()
            except ExternalAPIError as exc:
                logger.warning(
                    "resource_enrichment_failed",
                    resource_type=resource_type.value,
                    enrichment=what,
                    item_id=item_id,
                    error=exc.message,
                )
                return default

    async def _list_optional(
        self, path: str, *, resource_type: ResourceType, what: str, item_id: Any = None
    ) -> list[Item]:
        empty: list[Item] = []
        return await self._enrich(
            lambda: self.client.list_all(path),
            empty,
            resource_type=resource_type,
            what=what,
            item_id=item_id,
        )

    @staticmethod
    def _normalize_each(
        resource_type: ResourceType,
        items: Sequence[Item],
        build: Callable[[Item, Any], NormalizedResource],
        enrichments: Sequence[Any],
    ) -> list[NormalizedResource]:
        resources: list[NormalizedResource] = []
        for item, extra in zip(items, enrichments):
            try:
                resources.append(build(item, extra))
            except (ValidationError, KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "resource_normalization_failed",
                    resource_type=resource_type.value,
                    item_id=item.get("id"),
                    error=str(exc),
                )
        return resources

    # --- per-type collectors ---

    async def _collect_instances(self) -> list[NormalizedResource]:
        rtype = ResourceType.COMPUTE_INSTANCE
        instances = await self.client.list_all("/linode/instances")

        plan_ids = sorted({str(i["type"]) for i in instances if i.get("type")})
        plan_payloads = await asyncio.gather(
            *(
                self._enrich(
                    lambda plan=plan: self.client.get(f"/linode/types/{plan}"),
                    {},
                    resource_type=rtype,
                    what="type_price",
                    item_id=plan,
                )
                for plan in plan_ids
            )
        )
        prices = {
            plan: pricing.type_monthly_price(payload)
            for plan, payload in zip(plan_ids, plan_payloads)
        }

        firewalls = await asyncio.gather(
            *(
                self._list_optional(
                    f"/linode/instances/{i.get('id')}/firewalls",
                    resource_type=rtype,
                    what="attached_firewalls",
                    item_id=i.get("id"),
                )
                for i in instances
            )
        )
        return self._normalize_each(
            rtype,
            instances,
            lambda item, fws: normalizers.normalize_instance(
                item,
                monthly_cost=prices.get(str(item.get("type")), Decimal("0")),
                attached_firewalls=fws,
            ),
            firewalls,
        )

    async def _collect_volumes(self) -> list[NormalizedResource]:
        rtype = ResourceType.BLOCK_VOLUME
        volumes = await self.client.list_all("/volumes")
        rate = self.settings.VOLUME_GB_MONTHLY_USD
        return self._normalize_each(
            rtype,
            volumes,
            lambda item, _: normalizers.normalize_volume(
                item, monthly_cost=pricing.volume_monthly_cost(item.get("size"), rate)
            ),
            [None] * len(volumes),
        )

    async def _load_balancer_details(self, nb_id: Any) -> dict[str, Any]:
        rtype = ResourceType.LOAD_BALANCER
        configs, vpcs = await asyncio.gather(
            self._list_optional(
                f"/nodebalancers/{nb_id}/configs",
                resource_type=rtype,
                what="configs",
                item_id=nb_id,
            ),
            self._list_optional(
                f"/nodebalancers/{nb_id}/vpcs", resource_type=rtype, what="vpcs", item_id=nb_id
            ),
        )
        # Nodes are listed per config; a node behind several ports is counted once.
        per_config_nodes = await asyncio.gather(
            *(
                self._list_optional(
                    f"/nodebalancers/{nb_id}/configs/{c.get('id')}/nodes",
                    resource_type=rtype,
                    what="config_nodes",
                    item_id=nb_id,
                )
                for c in configs
            )
        )
        return {
            "configs": configs,
            "nodes": normalizers.dedupe_nodes(per_config_nodes),
            "vpcs": vpcs,
        }

    async def _collect_load_balancers(self) -> list[NormalizedResource]:
        rtype = ResourceType.LOAD_BALANCER
        balancers = await self.client.list_all("/nodebalancers")
        details = await asyncio.gather(
            *(self._load_balancer_details(nb.get("id")) for nb in balancers)
        )
        cost = pricing.money(self.settings.LOAD_BALANCER_MONTHLY_USD)
        return self._normalize_each(
            rtype,
            balancers,
            lambda item, extra: normalizers.normalize_load_balancer(
                item,
                monthly_cost=cost,
                configs=extra["configs"],
                nodes=extra["nodes"],
                vpcs=extra["vpcs"],
            ),
            details,
        )

    async def _control_plane_acl(self, cluster_id: Any) -> Optional[ControlPlaneAcl]:
        async with self._semaphore:
            try:
                payload = await self.client.get(f"/lke/clusters/{cluster_id}/control_plane_acl")
            except ExternalAPIError as exc:
                if exc.upstream_status == 400:
                    # The provider answers 400 for cluster tiers without ACL support.
                    return ControlPlaneAcl(supported=False)
                logger.warning(
                    "resource_enrichment_failed",
                    resource_type=ResourceType.K8S_CLUSTER.value,
                    enrichment="control_plane_acl",
                    item_id=cluster_id,
                    error=exc.message,
                )
                return None
        return normalizers.parse_control_plane_acl(payload)

    async def _collect_clusters(self) -> list[NormalizedResource]:
        rtype = ResourceType.K8S_CLUSTER
        lke_types = await self._list_optional("/lke/types", resource_type=rtype, what="lke_types")
        price_table = pricing.monthly_price_table(lke_types)

        clusters = await self.client.list_all("/lke/clusters")
        pools, acls = await asyncio.gather(
            asyncio.gather(
                *(
                    self._list_optional(
                        f"/lke/clusters/{c.get('id')}/pools",
                        resource_type=rtype,
                        what="pools",
                        item_id=c.get("id"),
                    )
                    for c in clusters
                )
            ),
            asyncio.gather(*(self._control_plane_acl(c.get("id")) for c in clusters)),
        )

        def build(item: Item, extra: tuple[list[Item], Optional[ControlPlaneAcl]]) -> NormalizedResource:
            cluster_pools, acl = extra
            ha = bool((item.get("control_plane") or {}).get("high_availability", False))
            return normalizers.normalize_cluster(
                item,
                monthly_cost=pricing.cluster_monthly_cost(cluster_pools, price_table, ha),
                pools=cluster_pools,
                control_plane_acl=acl,
            )

        return self._normalize_each(rtype, clusters, build, list(zip(pools, acls)))

    async def _collect_buckets(self) -> list[NormalizedResource]:
        rtype = ResourceType.OBJECT_BUCKET
        buckets = await self.client.list_all("/object-storage/buckets")
        access = await asyncio.gather(
            *(
                self._enrich(
                    lambda b=b: self.client.get(
                        f"/object-storage/buckets/{b.get('region')}/{b.get('label')}/access"
                    ),
                    None,
                    resource_type=rtype,
                    what="bucket_access",
                    item_id=normalizers.bucket_external_id(b),
                )
                for b in buckets
            )
        )
        resources = self._normalize_each(
            rtype,
            buckets,
            lambda item, acl: normalizers.normalize_bucket(item, access=acl),
            access,
        )

        # Pool cost is apportioned over the buckets collected in this sync.
        sizes = [r.specs.size for r in resources]  # type: ignore[attr-defined]
        pool_cost = pricing.object_storage_pool_cost(
            sum(sizes),
            len(resources),
            base_monthly=self.settings.OBJECT_STORAGE_BASE_MONTHLY_USD,
            included_gb=self.settings.OBJECT_STORAGE_INCLUDED_GB,
            overage_per_gb=self.settings.OBJECT_STORAGE_OVERAGE_GB_USD,
        )
        for resource, share in zip(resources, pricing.apportion_pool_cost(sizes, pool_cost)):
            resource.monthly_cost = share
        return resources

    async def _collect_databases(self) -> list[NormalizedResource]:
        rtype = ResourceType.DATABASE
        db_types = await self._list_optional(
            "/databases/types", resource_type=rtype, what="database_types"
        )
        price_table = pricing.database_price_table(db_types)

        databases = await self.client.list_all("/databases/instances")
        details = await asyncio.gather(
            *(
                self._enrich(
                    lambda d=d: self.client.get(
                        f"/databases/{d.get('engine') or 'mysql'}/instances/{d.get('id')}"
                    ),
                    None,
                    resource_type=rtype,
                    what="network_settings",
                    item_id=d.get("id"),
                )
                for d in databases
            )
        )
        return self._normalize_each(
            rtype,
            databases,
            lambda item, detail: normalizers.normalize_database(
                item,
                monthly_cost=pricing.database_monthly_cost(
                    item.get("engine") or "unknown",
                    item.get("type"),
                    int(item.get("cluster_size") or 1),
                    price_table,
                ),
                detail=detail,
            ),
            details,
        )

    async def _collect_firewalls(self) -> list[NormalizedResource]:
        rtype = ResourceType.FIREWALL
        firewalls = await self.client.list_all("/networking/firewalls")
        return self._normalize_each(
            rtype,
            firewalls,
            lambda item, _: normalizers.normalize_firewall(item),
            [None] * len(firewalls),
        )

    async def _collect_vpcs(self) -> list[NormalizedResource]:
        rtype = ResourceType.VPC
        vpcs = await self.client.list_all("/vpcs")
        return self._normalize_each(
            rtype,
            vpcs,
            lambda item, _: normalizers.normalize_vpc(item),
            [None] * len(vpcs),
        )
