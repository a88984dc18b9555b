"""
Tests for provider payload normalization.
"""
from decimal import Decimal

import pytest

from app.models.inventory import ResourceType
from app.modules.inventory.domain import normalizers
from app.schemas.inventory import (
    BucketSpecs,
    DatabaseSpecs,
    FirewallSpecs,
    InstanceSpecs,
    VpcSpecs,
    dump_specs,
    parse_specs,
)


def test_normalize_instance_maps_enrichments(routes):
    raw = routes["/linode/instances"][0]
    resource = normalizers.normalize_instance(
        raw, monthly_cost=Decimal("24"), attached_firewalls=routes["/linode/instances/101/firewalls"]
    )

    assert resource.resource_type == ResourceType.COMPUTE_INSTANCE
    assert resource.external_id == "101"
    assert resource.plan_type == "g6-standard-2"
    assert isinstance(resource.specs, InstanceSpecs)
    assert resource.specs.vcpus == 2
    assert resource.specs.backups_enabled is True
    assert [fw.id for fw in resource.specs.attached_firewalls] == [501]
    assert resource.provider_created_at.tzinfo is not None


def test_unmodelled_attributes_survive_a_round_trip():
    specs = parse_specs("compute_instance", {"vcpus": 4, "placement_group": {"id": 9}})
    assert isinstance(specs, InstanceSpecs)
    assert dump_specs(specs)["placement_group"] == {"id": 9}


def test_dedupe_nodes_counts_shared_node_once(routes):
    nodes = normalizers.dedupe_nodes(
        [routes["/nodebalancers/401/configs/11/nodes"], routes["/nodebalancers/401/configs/12/nodes"]]
    )
    assert [node["id"] for node in nodes] == [9001, 9002]
    assert nodes[0]["instance_id"] == 101


def test_firewall_entities_resolve_interfaces_to_parent_instance():
    raw = {
        "id": 5,
        "label": "fw",
        "rules": {"inbound": [], "outbound": []},
        "entities": [
            {"id": 11, "type": "linode", "label": "a"},
            {"id": 90, "type": "interface", "parent_entity": {"id": 11, "type": "linode", "label": "a"}},
            {"id": 91, "type": "linode_interface", "parent_entity": {"id": 12, "type": "linode", "label": "b"}},
            {"id": 70, "type": "nodebalancer", "label": "lb"},
        ],
    }
    resource = normalizers.normalize_firewall(raw)
    specs = resource.specs
    assert isinstance(specs, FirewallSpecs)
    assert [(e.id, e.via_interface) for e in specs.entities] == [(11, False), (12, True)]
    assert specs.entity_count == 2
    assert specs.inbound_policy == "ACCEPT"


def test_bucket_identity_and_size_in_gb(routes):
    raw = routes["/object-storage/buckets"][0]
    resource = normalizers.normalize_bucket(raw, access=None)
    assert resource.external_id == "assets-us-east-1"
    assert isinstance(resource.specs, BucketSpecs)
    assert resource.specs.size == 10.0
    assert resource.specs.acl is None


def test_database_reads_network_settings_from_detail(routes):
    raw = routes["/databases/instances"][0]
    resource = normalizers.normalize_database(
        raw, monthly_cost=Decimal("65"), detail=routes["/databases/mysql/instances/701"]
    )
    specs = resource.specs
    assert isinstance(specs, DatabaseSpecs)
    assert specs.vpc_id == 801
    assert specs.public_access is True
    assert specs.allow_list == ["0.0.0.0/0"]


def test_database_without_detail_leaves_public_access_unknown(routes):
    raw = routes["/databases/instances"][0]
    resource = normalizers.normalize_database(raw, monthly_cost=Decimal("0"), detail=None)
    assert resource.specs.public_access is None
    assert resource.specs.allow_list == []


def test_vpc_collects_unique_members(routes):
    resource = normalizers.normalize_vpc(routes["/vpcs"][0])
    specs = resource.specs
    assert isinstance(specs, VpcSpecs)
    assert specs.instance_ids == [101, 102]
    assert specs.subnets[0].instance_count == 2


def test_normalize_event_skips_unusable_entries():
    assert normalizers.normalize_event({"id": 3, "action": "", "created": "2024-01-01T00:00:00"}) is None
    event = normalizers.normalize_event(
        {"id": 4, "action": "volume_create", "created": "2024-01-01T00:00:00", "entity": {"id": 301}}
    )
    assert event["event_id"] == 4
    assert event["entity_id"] == "301"
    assert event["seen"] is False


@pytest.mark.parametrize(
    "duration,expected",
    [(None, None), (0, 0), (12.7, 12), ("45", 45), ("n/a", None)],
)
def test_normalize_event_duration(duration, expected):
    raw = {"id": 5, "action": "linode_boot", "created": "2024-01-01T00:00:00", "duration": duration}
    assert normalizers.normalize_event(raw)["duration"] == expected
    del raw["duration"]
    assert normalizers.normalize_event(raw)["duration"] is None
