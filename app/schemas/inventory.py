"""
Resource Inventory Schemas

Typed `specs` records for every resource type, plus the normalized resource
shape produced by the collector. Every specs record keeps attributes it does
not model in its pydantic "extra" map so they round-trip through persistence.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny

from app.models.inventory import ResourceType


class SpecsBase(BaseModel):
    model_config = ConfigDict(extra="allow")

    tags: List[str] = Field(default_factory=list)


class AttachedFirewall(BaseModel):
    id: int
    label: Optional[str] = None
    status: Optional[str] = None


class FirewallAddresses(BaseModel):
    model_config = ConfigDict(extra="allow")

    ipv4: List[str] = Field(default_factory=list)
    ipv6: List[str] = Field(default_factory=list)


class FirewallRule(BaseModel):
    model_config = ConfigDict(extra="allow")

    action: Optional[str] = None
    protocol: Optional[str] = None
    ports: Optional[str] = None
    addresses: FirewallAddresses = Field(default_factory=FirewallAddresses)
    label: Optional[str] = None
    description: Optional[str] = None

    @property
    def display_label(self) -> str:
        return self.label or "unnamed"


class FirewallEntity(BaseModel):
    id: int
    label: str = ""
    via_interface: bool = False


class InstanceSpecs(SpecsBase):
    vcpus: int = 0
    memory: int = 0
    disk: int = 0
    transfer: int = 0
    gpus: int = 0
    attached_firewalls: List[AttachedFirewall] = Field(default_factory=list)
    backups_enabled: Optional[bool] = None
    backups_last_successful: Optional[str] = None
    backups_available: bool = False
    disk_encryption: Optional[str] = None
    locks: List[str] = Field(default_factory=list)
    status: Optional[str] = None


class VolumeSpecs(SpecsBase):
    size: int = 0
    instance_id: Optional[int] = None
    instance_label: Optional[str] = None
    filesystem_path: Optional[str] = None
    encryption: Optional[str] = None


class LoadBalancerNode(BaseModel):
    id: int
    label: str = ""
    address: str = ""
    status: str = "unknown"
    instance_id: Optional[int] = None


class LoadBalancerConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    port: Optional[int] = None
    protocol: Optional[str] = None
    algorithm: Optional[str] = None
    stickiness: Optional[str] = None
    check: Optional[str] = None
    check_interval: Optional[int] = None
    check_timeout: Optional[int] = None
    check_attempts: Optional[int] = None
    check_passive: Optional[bool] = None
    cipher_suite: Optional[str] = None
    proxy_protocol: Optional[str] = None
    nodes_status: Dict[str, int] = Field(default_factory=lambda: {"up": 0, "down": 0})


class LoadBalancerVpc(BaseModel):
    vpc_id: Optional[int] = None
    subnet_id: Optional[int] = None
    ipv4_range: Optional[str] = None


class LoadBalancerSpecs(SpecsBase):
    ipv4: Optional[str] = None
    node_count: int = 0
    nodes: List[LoadBalancerNode] = Field(default_factory=list)
    configs: List[LoadBalancerConfig] = Field(default_factory=list)
    vpcs: List[LoadBalancerVpc] = Field(default_factory=list)


class NodePool(BaseModel):
    id: int
    type: Optional[str] = None
    count: int = 0


class ControlPlaneAcl(BaseModel):
    """Control-plane ACL as collected; `supported=False` when the cluster tier has none."""

    supported: bool = True
    enabled: bool = False
    ipv4: List[str] = Field(default_factory=list)
    ipv6: List[str] = Field(default_factory=list)


class ClusterSpecs(SpecsBase):
    k8s_version: Optional[str] = None
    node_count: int = 0
    pool_count: int = 0
    high_availability: bool = False
    audit_logs_enabled: Optional[bool] = None
    tier: str = "standard"
    pools: List[NodePool] = Field(default_factory=list)
    control_plane_acl: Optional[ControlPlaneAcl] = None


class BucketSpecs(SpecsBase):
    hostname: Optional[str] = None
    endpoint_type: Optional[str] = None
    objects: int = 0
    size: float = 0.0  # GB
    s3_endpoint: Optional[str] = None
    acl: Optional[str] = None
    cors_enabled: Optional[bool] = None


class DatabaseSpecs(SpecsBase):
    engine: str = "unknown"
    version: Optional[str] = None
    cluster_size: int = 1
    encrypted: bool = False
    port: Optional[int] = None
    hosts: Optional[Dict[str, Any]] = None
    platform: str = ""
    total_disk_size_gb: Optional[float] = None
    used_disk_size_gb: Optional[float] = None
    vpc_id: Optional[int] = None
    subnet_id: Optional[int] = None
    public_access: Optional[bool] = None
    allow_list: Optional[List[str]] = None


class FirewallSpecs(SpecsBase):
    inbound_policy: str = "ACCEPT"
    outbound_policy: str = "ACCEPT"
    inbound_rules: int = 0
    outbound_rules: int = 0
    inbound_rules_detail: List[FirewallRule] = Field(default_factory=list)
    outbound_rules_detail: List[FirewallRule] = Field(default_factory=list)
    entity_count: int = 0
    entities: List[FirewallEntity] = Field(default_factory=list)


class Subnet(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    label: Optional[str] = None
    ipv4: Optional[str] = None
    instance_count: int = 0
    instance_ids: List[int] = Field(default_factory=list)


class VpcSpecs(SpecsBase):
    description: str = ""
    subnet_count: int = 0
    subnets: List[Subnet] = Field(default_factory=list)
    instance_count: int = 0
    instance_ids: List[int] = Field(default_factory=list)


SPECS_BY_TYPE: Dict[str, Type[SpecsBase]] = {
    ResourceType.COMPUTE_INSTANCE.value: InstanceSpecs,
    ResourceType.BLOCK_VOLUME.value: VolumeSpecs,
    ResourceType.LOAD_BALANCER.value: LoadBalancerSpecs,
    ResourceType.K8S_CLUSTER.value: ClusterSpecs,
    ResourceType.OBJECT_BUCKET.value: BucketSpecs,
    ResourceType.DATABASE.value: DatabaseSpecs,
    ResourceType.FIREWALL.value: FirewallSpecs,
    ResourceType.VPC.value: VpcSpecs,
}


def parse_specs(resource_type: str, data: Optional[Dict[str, Any]]) -> SpecsBase:
    """Validate a persisted specs map into the typed record for its resource type."""
    model = SPECS_BY_TYPE.get(resource_type, SpecsBase)
    return model.model_validate(data or {})


def dump_specs(specs: SpecsBase) -> Dict[str, Any]:
    """JSON-safe specs map, including unmodelled extra attributes."""
    return specs.model_dump(mode="json")


class NormalizedResource(BaseModel):
    """A provider resource after normalization, before it is persisted."""

    external_id: str
    resource_type: ResourceType
    label: Optional[str] = None
    region: Optional[str] = None
    plan_type: Optional[str] = None
    monthly_cost: Decimal = Decimal("0")
    status: Optional[str] = None
    provider_created_at: Optional[datetime] = None
    specs: SerializeAsAny[SpecsBase]

    @property
    def identity_key(self) -> str:
        return f"{self.resource_type.value}:{self.external_id}"


class CollectionResult(BaseModel):
    resources: List[NormalizedResource] = Field(default_factory=list)
    per_type_errors: Dict[str, str] = Field(default_factory=dict)


class SyncSummary(BaseModel):
    account_id: str
    count: int
    relationships: int = 0
    total_monthly_cost: float = 0.0
    events_ingested: int = 0
    per_type_errors: Dict[str, str] = Field(default_factory=dict)
