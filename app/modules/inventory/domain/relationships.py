"""
Relationship inference between the resources of one sync.

Edges are resolved through provider ids embedded in specs:
- firewall -protects-> instance (instance's attached firewalls and firewall entity lists)
- volume -attached_to-> instance
- vpc -contains-> instance (per subnet) and vpc -contains-> database
Edges whose endpoint was not collected in this sync are dropped.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence
from uuid import UUID

from app.models.inventory import RelationshipType, ResourceType
from app.schemas.inventory import (
    DatabaseSpecs,
    FirewallSpecs,
    InstanceSpecs,
    NormalizedResource,
    VolumeSpecs,
    VpcSpecs,
)


@dataclass(frozen=True)
class PlacedResource:
    """A normalized resource together with the row id it is persisted under."""

    id: UUID
    resource: NormalizedResource


@dataclass(frozen=True)
class Edge:
    source_id: UUID
    target_id: UUID
    relationship_type: RelationshipType
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> str:
        return f"{self.source_id}:{self.target_id}:{self.relationship_type.value}"


class RelationshipMapper:
    def __init__(self, placed: Sequence[PlacedResource]):
        self._placed = list(placed)
        self._by_key = {p.resource.identity_key: p for p in self._placed}
        self._edges: list[Edge] = []
        self._seen: set[str] = set()

    def _lookup(self, resource_type: ResourceType, external_id: Any) -> Optional[PlacedResource]:
        if external_id is None:
            return None
        return self._by_key.get(f"{resource_type.value}:{external_id}")

    def _add(self, edge: Edge) -> None:
        if edge.key in self._seen:
            return
        self._seen.add(edge.key)
        self._edges.append(edge)

    def _of_type(self, resource_type: ResourceType) -> Iterable[PlacedResource]:
        return (p for p in self._placed if p.resource.resource_type == resource_type)

    def build(self) -> list[Edge]:
        self._map_firewalls()
        for placed in self._placed:
            specs = placed.resource.specs
            if isinstance(specs, VolumeSpecs):
                self._map_volume(placed, specs)
            elif isinstance(specs, VpcSpecs):
                self._map_vpc(placed, specs)
            elif isinstance(specs, DatabaseSpecs):
                self._map_database(placed, specs)
        return list(self._edges)

    def _map_firewalls(self) -> None:
        # Both signals describe the same edge; the dedup key keeps one.
        for placed in self._placed:
            specs = placed.resource.specs
            if isinstance(specs, InstanceSpecs):
                for attached in specs.attached_firewalls:
                    firewall = self._lookup(ResourceType.FIREWALL, attached.id)
                    if firewall:
                        self._add(Edge(firewall.id, placed.id, RelationshipType.PROTECTS))
            elif isinstance(specs, FirewallSpecs):
                for entity in specs.entities:
                    instance = self._lookup(ResourceType.COMPUTE_INSTANCE, entity.id)
                    if instance:
                        self._add(Edge(placed.id, instance.id, RelationshipType.PROTECTS))

    def _map_volume(self, placed: PlacedResource, specs: VolumeSpecs) -> None:
        instance = self._lookup(ResourceType.COMPUTE_INSTANCE, specs.instance_id)
        if instance:
            self._add(Edge(placed.id, instance.id, RelationshipType.ATTACHED_TO))

    def _map_vpc(self, placed: PlacedResource, specs: VpcSpecs) -> None:
        for subnet in specs.subnets:
            for instance_id in subnet.instance_ids:
                instance = self._lookup(ResourceType.COMPUTE_INSTANCE, instance_id)
                if instance:
                    self._add(
                        Edge(
                            placed.id,
                            instance.id,
                            RelationshipType.CONTAINS,
                            {
                                "subnet_label": subnet.label,
                                "subnet_ipv4": subnet.ipv4,
                                "subnet_id": subnet.id,
                                "region": placed.resource.region,
                            },
                        )
                    )

    def _map_database(self, placed: PlacedResource, specs: DatabaseSpecs) -> None:
        vpc = self._lookup(ResourceType.VPC, specs.vpc_id)
        if not vpc or not isinstance(vpc.resource.specs, VpcSpecs):
            return
        subnet = next(
            (s for s in vpc.resource.specs.subnets if s.id == specs.subnet_id), None
        )
        self._add(
            Edge(
                vpc.id,
                placed.id,
                RelationshipType.CONTAINS,
                {
                    "subnet_label": (subnet.label if subnet else None) or "default",
                    "subnet_ipv4": (subnet.ipv4 if subnet else None) or "",
                    "subnet_id": specs.subnet_id if specs.subnet_id is not None else -1,
                    "region": vpc.resource.region,
                    "member_type": "database",
                },
            )
        )


def map_relationships(placed: Sequence[PlacedResource]) -> list[Edge]:
    return RelationshipMapper(placed).build()
