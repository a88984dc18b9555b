"""
Provider payload -> NormalizedResource mapping, one function per resource type.

These are pure: every enrichment value (prices, attached firewalls, nodes,
ACLs) is fetched by the collector and passed in.
"""

from decimal import Decimal
from typing import Any, Mapping, Optional, Sequence

from app.models.inventory import ResourceType
from app.schemas.inventory import (
    BucketSpecs,
    ClusterSpecs,
    ControlPlaneAcl,
    DatabaseSpecs,
    FirewallEntity,
    FirewallSpecs,
    InstanceSpecs,
    LoadBalancerSpecs,
    NormalizedResource,
    VolumeSpecs,
    VpcSpecs,
)
from app.shared.adapters.feed_utils import as_float, parse_timestamp

_BYTES_PER_GB = 1024 * 1024 * 1024
_INTERFACE_ENTITY_TYPES = {"interface", "linode_interface"}


def _tags(raw: Mapping[str, Any]) -> list[str]:
    return [str(tag) for tag in raw.get("tags") or []]


def normalize_instance(
    raw: Mapping[str, Any],
    *,
    monthly_cost: Decimal,
    attached_firewalls: Sequence[Mapping[str, Any]],
) -> NormalizedResource:
    hw = raw.get("specs") or {}
    backups = raw.get("backups") or {}
    specs = InstanceSpecs(
        vcpus=hw.get("vcpus") or 0,
        memory=hw.get("memory") or 0,
        disk=hw.get("disk") or 0,
        transfer=hw.get("transfer") or 0,
        gpus=hw.get("gpus") or 0,
        tags=_tags(raw),
        attached_firewalls=[
            {"id": fw["id"], "label": fw.get("label"), "status": fw.get("status")}
            for fw in attached_firewalls
            if fw.get("id") is not None
        ],
        backups_enabled=bool(backups.get("enabled", False)),
        backups_last_successful=backups.get("last_successful"),
        backups_available=bool(backups.get("available", False)),
        disk_encryption=raw.get("disk_encryption"),
        locks=[str(lock) for lock in raw.get("locks") or []],
        status=raw.get("status"),
    )
    return NormalizedResource(
        external_id=str(raw["id"]),
        resource_type=ResourceType.COMPUTE_INSTANCE,
        label=raw.get("label"),
        region=raw.get("region"),
        plan_type=raw.get("type"),
        monthly_cost=monthly_cost,
        status=raw.get("status"),
        provider_created_at=parse_timestamp(raw.get("created")),
        specs=specs,
    )


def normalize_volume(raw: Mapping[str, Any], *, monthly_cost: Decimal) -> NormalizedResource:
    specs = VolumeSpecs(
        size=raw.get("size") or 0,
        tags=_tags(raw),
        instance_id=raw.get("linode_id") or None,
        instance_label=raw.get("linode_label") or None,
        filesystem_path=raw.get("filesystem_path") or None,
        encryption=raw.get("encryption") or None,
    )
    return NormalizedResource(
        external_id=str(raw["id"]),
        resource_type=ResourceType.BLOCK_VOLUME,
        label=raw.get("label"),
        region=raw.get("region"),
        monthly_cost=monthly_cost,
        status=raw.get("status"),
        provider_created_at=parse_timestamp(raw.get("created")),
        specs=specs,
    )


def _config_summary(config: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "id": config["id"],
        "port": config.get("port"),
        "protocol": config.get("protocol"),
        "algorithm": config.get("algorithm"),
        "stickiness": config.get("stickiness"),
        "check": config.get("check"),
        "check_interval": config.get("check_interval"),
        "check_timeout": config.get("check_timeout"),
        "check_attempts": config.get("check_attempts"),
        "check_passive": config.get("check_passive"),
        "cipher_suite": config.get("cipher_suite"),
        "proxy_protocol": config.get("proxy_protocol"),
        "nodes_status": config.get("nodes_status") or {"up": 0, "down": 0},
    }


def dedupe_nodes(per_config_nodes: Sequence[Sequence[Mapping[str, Any]]]) -> list[dict[str, Any]]:
    """Flatten backend nodes across configs, keeping the first occurrence of each node id."""
    seen: set[Any] = set()
    nodes: list[dict[str, Any]] = []
    for config_nodes in per_config_nodes:
        for node in config_nodes:
            node_id = node.get("id")
            if node_id is None or node_id in seen:
                continue
            seen.add(node_id)
            nodes.append(
                {
                    "id": node_id,
                    "label": node.get("label") or "",
                    "address": node.get("address") or "",
                    "status": node.get("status") or "unknown",
                    "instance_id": node.get("linode_id"),
                }
            )
    return nodes


def normalize_load_balancer(
    raw: Mapping[str, Any],
    *,
    monthly_cost: Decimal,
    configs: Sequence[Mapping[str, Any]],
    nodes: Sequence[Mapping[str, Any]],
    vpcs: Sequence[Mapping[str, Any]],
) -> NormalizedResource:
    specs = LoadBalancerSpecs(
        ipv4=raw.get("ipv4"),
        tags=_tags(raw),
        node_count=len(nodes),
        nodes=list(nodes),
        configs=[_config_summary(c) for c in configs if c.get("id") is not None],
        vpcs=[
            {
                "vpc_id": v.get("vpc_id"),
                "subnet_id": v.get("subnet_id"),
                "ipv4_range": v.get("ipv4_range"),
            }
            for v in vpcs
        ],
    )
    return NormalizedResource(
        external_id=str(raw["id"]),
        resource_type=ResourceType.LOAD_BALANCER,
        label=raw.get("label"),
        region=raw.get("region"),
        monthly_cost=monthly_cost,
        status="active",
        provider_created_at=parse_timestamp(raw.get("created")),
        specs=specs,
    )


def parse_control_plane_acl(payload: Mapping[str, Any]) -> ControlPlaneAcl:
    acl = payload.get("acl") or {}
    addresses = acl.get("addresses") or {}
    return ControlPlaneAcl(
        supported=True,
        enabled=bool(acl.get("enabled", False)),
        ipv4=list(addresses.get("ipv4") or []),
        ipv6=list(addresses.get("ipv6") or []),
    )


def normalize_cluster(
    raw: Mapping[str, Any],
    *,
    monthly_cost: Decimal,
    pools: Sequence[Mapping[str, Any]],
    control_plane_acl: Optional[ControlPlaneAcl],
) -> NormalizedResource:
    control_plane = raw.get("control_plane") or {}
    version = raw.get("k8s_version")
    specs = ClusterSpecs(
        k8s_version=version,
        node_count=sum(int(p.get("count") or 0) for p in pools),
        pool_count=len(pools),
        high_availability=bool(control_plane.get("high_availability", False)),
        audit_logs_enabled=control_plane.get("audit_logs_enabled"),
        tier=raw.get("tier") or "standard",
        tags=_tags(raw),
        pools=[
            {"id": p["id"], "type": p.get("type"), "count": p.get("count") or 0}
            for p in pools
            if p.get("id") is not None
        ],
        control_plane_acl=control_plane_acl,
    )
    return NormalizedResource(
        external_id=str(raw["id"]),
        resource_type=ResourceType.K8S_CLUSTER,
        label=raw.get("label"),
        region=raw.get("region"),
        plan_type=f"k8s-{version}" if version else None,
        monthly_cost=monthly_cost,
        status="active",
        provider_created_at=parse_timestamp(raw.get("created")),
        specs=specs,
    )


def bucket_external_id(raw: Mapping[str, Any]) -> str:
    return f"{raw.get('label')}-{raw.get('region')}"


def normalize_bucket(
    raw: Mapping[str, Any],
    *,
    access: Optional[Mapping[str, Any]],
) -> NormalizedResource:
    """Bucket cost is filled in afterwards, once the account's pool cost is known."""
    access = access or {}
    specs = BucketSpecs(
        hostname=raw.get("hostname"),
        endpoint_type=raw.get("endpoint_type"),
        objects=raw.get("objects") or 0,
        size=as_float(raw.get("size"), divisor=_BYTES_PER_GB),
        s3_endpoint=raw.get("s3_endpoint"),
        acl=access.get("acl"),
        cors_enabled=access.get("cors_enabled"),
    )
    return NormalizedResource(
        external_id=bucket_external_id(raw),
        resource_type=ResourceType.OBJECT_BUCKET,
        label=raw.get("label"),
        region=raw.get("region"),
        monthly_cost=Decimal("0"),
        status="active",
        provider_created_at=parse_timestamp(raw.get("created")),
        specs=specs,
    )


def normalize_database(
    raw: Mapping[str, Any],
    *,
    monthly_cost: Decimal,
    detail: Optional[Mapping[str, Any]],
) -> NormalizedResource:
    detail = detail or {}
    private_network = detail.get("private_network") or {}
    allow_list = detail.get("allow_list")
    if not isinstance(allow_list, list):
        allow_list = raw.get("allow_list") or []
    specs = DatabaseSpecs(
        engine=raw.get("engine") or "unknown",
        version=raw.get("version"),
        cluster_size=raw.get("cluster_size") or 1,
        encrypted=bool(raw.get("encrypted", False)),
        port=raw.get("port"),
        hosts=raw.get("hosts"),
        platform=raw.get("platform") or "",
        total_disk_size_gb=raw.get("total_disk_size_gb"),
        used_disk_size_gb=raw.get("used_disk_size_gb"),
        tags=_tags(raw),
        vpc_id=private_network.get("vpc_id"),
        subnet_id=private_network.get("subnet_id"),
        public_access=private_network.get("public_access"),
        allow_list=[str(cidr) for cidr in allow_list],
    )
    return NormalizedResource(
        external_id=str(raw["id"]),
        resource_type=ResourceType.DATABASE,
        label=raw.get("label"),
        region=raw.get("region"),
        plan_type=raw.get("type"),
        monthly_cost=monthly_cost,
        status=raw.get("status"),
        provider_created_at=parse_timestamp(raw.get("created")),
        specs=specs,
    )


def firewall_instance_entities(entities: Sequence[Mapping[str, Any]]) -> list[FirewallEntity]:
    """
    Reduce a firewall's entity list to the compute instances it protects.

    Interface entities count through their parent instance; each instance appears once.
    """
    seen: set[int] = set()
    members: list[FirewallEntity] = []
    for entity in entities:
        entity_type = entity.get("type")
        parent = entity.get("parent_entity") or {}
        if entity_type == "linode" and entity.get("id") is not None:
            instance_id, label, via_interface = entity["id"], entity.get("label"), False
        elif (
            entity_type in _INTERFACE_ENTITY_TYPES
            and parent.get("type") == "linode"
            and parent.get("id") is not None
        ):
            instance_id, label, via_interface = parent["id"], parent.get("label"), True
        else:
            continue
        if instance_id in seen:
            continue
        seen.add(instance_id)
        members.append(
            FirewallEntity(id=instance_id, label=label or "", via_interface=via_interface)
        )
    return members


def normalize_firewall(raw: Mapping[str, Any]) -> NormalizedResource:
    rules = raw.get("rules") or {}
    inbound = list(rules.get("inbound") or [])
    outbound = list(rules.get("outbound") or [])
    entities = firewall_instance_entities(raw.get("entities") or [])
    specs = FirewallSpecs(
        inbound_policy=rules.get("inbound_policy") or "ACCEPT",
        outbound_policy=rules.get("outbound_policy") or "ACCEPT",
        inbound_rules=len(inbound),
        outbound_rules=len(outbound),
        inbound_rules_detail=inbound,
        outbound_rules_detail=outbound,
        entity_count=len(entities),
        entities=entities,
        tags=_tags(raw),
    )
    return NormalizedResource(
        external_id=str(raw["id"]),
        resource_type=ResourceType.FIREWALL,
        label=raw.get("label"),
        monthly_cost=Decimal("0"),
        status=raw.get("status"),
        provider_created_at=parse_timestamp(raw.get("created")),
        specs=specs,
    )


def normalize_vpc(raw: Mapping[str, Any]) -> NormalizedResource:
    subnets = raw.get("subnets") or []
    member_ids: list[int] = []
    subnet_specs = []
    for subnet in subnets:
        ids = [m["id"] for m in subnet.get("linodes") or [] if m.get("id") is not None]
        for instance_id in ids:
            if instance_id not in member_ids:
                member_ids.append(instance_id)
        subnet_specs.append(
            {
                "id": subnet["id"],
                "label": subnet.get("label"),
                "ipv4": subnet.get("ipv4"),
                "instance_count": len(ids),
                "instance_ids": ids,
            }
        )
    specs = VpcSpecs(
        description=raw.get("description") or "",
        subnet_count=len(subnets),
        subnets=subnet_specs,
        instance_count=len(member_ids),
        instance_ids=member_ids,
        tags=_tags(raw),
    )
    return NormalizedResource(
        external_id=str(raw["id"]),
        resource_type=ResourceType.VPC,
        label=raw.get("label"),
        region=raw.get("region"),
        monthly_cost=Decimal("0"),
        status="active",
        provider_created_at=parse_timestamp(raw.get("created")),
        specs=specs,
    )


def _whole_seconds(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def normalize_event(raw: Mapping[str, Any]) -> Optional[dict[str, Any]]:
    """Column values for an AccountEvent row, or None when the event is unusable."""
    created = parse_timestamp(raw.get("created"))
    if raw.get("id") is None or not raw.get("action") or created is None:
        return None
    entity = raw.get("entity") or {}
    secondary = raw.get("secondary_entity") or {}
    return {
        "event_id": int(raw["id"]),
        "action": raw["action"],
        "entity_id": str(entity["id"]) if entity.get("id") is not None else None,
        "entity_type": entity.get("type"),
        "entity_label": entity.get("label"),
        "entity_url": entity.get("url"),
        "secondary_entity_id": (
            str(secondary["id"]) if secondary.get("id") is not None else None
        ),
        "secondary_entity_type": secondary.get("type"),
        "secondary_entity_label": secondary.get("label"),
        "message": raw.get("message"),
        "status": raw.get("status"),
        "username": raw.get("username"),
        "duration": _whole_seconds(raw.get("duration")),
        "percent_complete": raw.get("percent_complete"),
        "seen": bool(raw.get("seen", False)),
        "event_created": created,
    }
