"""
Tests for instance, storage, database, load balancer, cluster and general conditions.
"""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from app.models.compliance import ComplianceStatus
from app.modules.compliance.domain.conditions import conditions
from app.modules.compliance.domain.conditions.general import find_tag
from app.modules.compliance.domain.conditions.instance import plan_tier
from app.modules.compliance.domain.context import EvaluatedResource, EvaluationContext
from app.schemas.inventory import parse_specs

COMPLIANT = ComplianceStatus.COMPLIANT
NON_COMPLIANT = ComplianceStatus.NON_COMPLIANT
NOT_APPLICABLE = ComplianceStatus.NOT_APPLICABLE

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _resource(resource_type, specs=None, region="us-east", plan_type=None, status=None):
    return EvaluatedResource(
        id=uuid4(),
        external_id="1",
        resource_type=resource_type,
        label="res",
        region=region,
        plan_type=plan_type,
        status=status,
        specs=parse_specs(resource_type, specs or {}),
    )


def _evaluate(kind, resource, config=None):
    ctx = EvaluationContext(account_id=uuid4(), now=NOW, resources=[resource])
    return conditions.evaluate_resource(kind, resource, config or {}, ctx)


class TestHasTags:
    @pytest.mark.parametrize("tags", [["Owner:infra"], ["owner"], ["OWNER:Platform"]])
    def test_wildcard_value_accepts_any_form(self, tags):
        instance = _resource("compute_instance", {"tags": tags})
        verdict = _evaluate("has_tags", instance, {"required_tags": [{"key": "owner", "value": "*"}]})
        assert verdict.status == COMPLIANT

    def test_value_mismatch_is_reported(self):
        instance = _resource("compute_instance", {"tags": ["env:staging"]})
        verdict = _evaluate("has_tags", instance, {"required_tags": [{"key": "env", "value": "prod"}]})
        assert verdict.status == NON_COMPLIANT
        assert 'env (expected "prod", found "staging")' in verdict.detail

    def test_value_match_is_case_insensitive(self):
        instance = _resource("compute_instance", {"tags": ["Env:PROD"]})
        verdict = _evaluate("has_tags", instance, {"required_tags": [{"key": "env", "value": "prod"}]})
        assert verdict.status == COMPLIANT

    def test_missing_tag(self):
        verdict = _evaluate("has_tags", _resource("block_volume"), {"required_tags": [{"key": "owner"}]})
        assert verdict.status == NON_COMPLIANT
        assert verdict.detail == "Missing tags: owner"

    def test_min_tags_without_required_list(self):
        assert _evaluate("has_tags", _resource("block_volume")).status == NON_COMPLIANT
        tagged = _resource("block_volume", {"tags": ["a", "b"]})
        assert _evaluate("has_tags", tagged, {"min_tags": 2}).status == COMPLIANT

    def test_find_tag_does_not_match_prefixes(self):
        assert find_tag(["owners:x"], "owner") is None


def test_approved_regions():
    instance = _resource("compute_instance", region="eu-west")
    assert _evaluate("approved_regions", instance).status == NOT_APPLICABLE
    verdict = _evaluate("approved_regions", instance, {"approved_regions": ["us-east"]})
    assert verdict.status == NON_COMPLIANT
    assert _evaluate("approved_regions", _resource("vpc", region=None), {"approved_regions": ["us-east"]}).status == NOT_APPLICABLE


class TestInstanceConditions:
    def test_backups_unknown_is_not_applicable(self):
        assert _evaluate("linode_backups_enabled", _resource("compute_instance")).status == NOT_APPLICABLE

    def test_backup_recency_window(self):
        recent = (NOW - timedelta(hours=5)).isoformat()
        stale = (NOW - timedelta(days=10)).isoformat()
        ok = _resource("compute_instance", {"backups_enabled": True, "backups_last_successful": recent})
        old = _resource("compute_instance", {"backups_enabled": True, "backups_last_successful": stale})

        verdict = _evaluate("linode_backup_recency", ok)
        assert verdict.status == COMPLIANT
        assert "5h ago" in verdict.detail
        verdict = _evaluate("linode_backup_recency", old, {"max_age_days": 7})
        assert verdict.status == NON_COMPLIANT
        assert "10 day(s) ago" in verdict.detail

    def test_backup_recency_without_backups(self):
        verdict = _evaluate("linode_backup_recency", _resource("compute_instance", {"backups_enabled": False}))
        assert verdict.status == NON_COMPLIANT

    def test_disk_encryption(self):
        enabled = _resource("compute_instance", {"disk_encryption": "enabled"})
        disabled = _resource("compute_instance", {"disk_encryption": "disabled"})
        assert _evaluate("linode_disk_encryption", enabled).status == COMPLIANT
        assert _evaluate("linode_disk_encryption", disabled).status == NON_COMPLIANT

    def test_lock_configuration(self):
        unlocked = _resource("compute_instance")
        locked = _resource("compute_instance", {"locks": ["cannot_delete"]})
        config = {"required_lock_types": ["cannot_delete_with_subresources"]}
        assert _evaluate("linode_lock_configured", unlocked).status == NON_COMPLIANT
        assert _evaluate("linode_lock_configured", locked).status == COMPLIANT
        assert _evaluate("linode_lock_configured", locked, config).status == NON_COMPLIANT

    def test_offline_instance(self):
        offline = _resource("compute_instance", {"status": "offline"})
        assert _evaluate("linode_not_offline", offline).status == NON_COMPLIANT
        assert _evaluate("linode_not_offline", _resource("compute_instance")).status == NOT_APPLICABLE

    @pytest.mark.parametrize(
        "plan,tier",
        [("g6-standard-2", "standard"), ("g6-dedicated-8", "dedicated"), ("g1-gpu-rtx6000-1", "gpu-rtx6000")],
    )
    def test_plan_tier(self, plan, tier):
        assert plan_tier(plan) == tier

    def test_plan_tier_by_tag(self):
        config = {"tag": "env", "tag_value": "prod", "approved_tiers": ["dedicated"]}
        prod = _resource("compute_instance", {"tags": ["env:prod"]}, plan_type="g6-standard-2")
        dev = _resource("compute_instance", {"tags": ["env:dev"]}, plan_type="g6-standard-2")
        assert _evaluate("linode_plan_tier_by_tag", prod, config).status == NON_COMPLIANT
        assert _evaluate("linode_plan_tier_by_tag", dev, config).status == NOT_APPLICABLE


class TestStorageAndDatabase:
    def test_volume_attachment_and_encryption(self):
        attached = _resource("block_volume", {"instance_id": 101, "encryption": "enabled"})
        loose = _resource("block_volume", {})
        assert _evaluate("volume_attached", attached).status == COMPLIANT
        assert _evaluate("volume_attached", loose).status == NON_COMPLIANT
        assert _evaluate("volume_encryption_enabled", attached).status == COMPLIANT
        assert _evaluate("volume_encryption_enabled", loose).status == NOT_APPLICABLE

    def test_bucket_acl(self):
        public = _resource("object_bucket", {"acl": "public-read"})
        private = _resource("object_bucket", {"acl": "private"})
        assert _evaluate("bucket_acl_check", public).status == NON_COMPLIANT
        assert _evaluate("bucket_acl_check", private).status == COMPLIANT
        assert _evaluate("bucket_acl_check", _resource("object_bucket")).status == NOT_APPLICABLE

    def test_bucket_cors(self):
        cors = _resource("object_bucket", {"cors_enabled": True})
        assert _evaluate("bucket_cors_check", cors, {"require_cors_disabled": True}).status == NON_COMPLIANT
        assert _evaluate("bucket_cors_check", cors).status == COMPLIANT

    def test_database_public_access(self):
        public = _resource("database", {"public_access": True})
        assert _evaluate("db_public_access", public).status == NON_COMPLIANT
        assert _evaluate("db_public_access", public, {"allow_public_access": True}).status == COMPLIANT
        assert _evaluate("db_public_access", _resource("database")).status == NOT_APPLICABLE

    def test_database_allow_list(self):
        open_db = _resource("database", {"allow_list": ["0.0.0.0/0"]})
        closed = _resource("database", {"allow_list": ["203.0.113.5/32"]})
        verdict = _evaluate("db_allowlist_check", open_db)
        assert verdict.status == NON_COMPLIANT
        assert 'Unrestricted CIDR "0.0.0.0/0"' in verdict.detail
        assert _evaluate("db_allowlist_check", closed).status == COMPLIANT


class TestLoadBalancerAndCluster:
    def test_protocol_check(self):
        balancer = _resource(
            "load_balancer", {"configs": [{"id": 1, "port": 80, "protocol": "http"}, {"id": 2, "port": 443, "protocol": "https"}]}
        )
        verdict = _evaluate("nodebalancer_protocol_check", balancer, {"forbidden_protocols": ["http"]})
        assert verdict.status == NON_COMPLIANT
        assert 'Port 80 uses forbidden protocol "http"' in verdict.detail
        assert _evaluate("nodebalancer_protocol_check", _resource("load_balancer")).status == NOT_APPLICABLE

    def test_port_allowlist(self):
        balancer = _resource("load_balancer", {"configs": [{"id": 1, "port": 8080, "protocol": "http"}]})
        assert _evaluate("nodebalancer_port_allowlist", balancer, {"allowed_ports": [80, 443]}).status == NON_COMPLIANT
        assert _evaluate("nodebalancer_port_allowlist", balancer).status == NOT_APPLICABLE

    def test_min_node_count_applies_to_clusters_and_balancers(self):
        cluster = _resource("k8s_cluster", {"node_count": 1})
        balancer = _resource("load_balancer", {"node_count": 3})
        verdict = _evaluate("min_node_count", cluster, {"min_count": 2})
        assert verdict.status == NON_COMPLIANT
        assert verdict.detail.startswith("Cluster has 1 node(s)")
        assert _evaluate("min_node_count", balancer).detail == "Load balancer has 3 node(s)."

    def test_control_plane_acl(self):
        missing = _resource("k8s_cluster")
        unsupported = _resource("k8s_cluster", {"control_plane_acl": {"supported": False}})
        disabled = _resource("k8s_cluster", {"control_plane_acl": {"enabled": False}})
        wildcard = _resource("k8s_cluster", {"control_plane_acl": {"enabled": True, "ipv4": ["0.0.0.0/0"]}})
        restricted = _resource("k8s_cluster", {"control_plane_acl": {"enabled": True, "ipv4": ["203.0.113.0/24"]}})

        assert _evaluate("lke_control_plane_acl", missing).status == NOT_APPLICABLE
        assert _evaluate("lke_control_plane_acl", unsupported).status == NOT_APPLICABLE
        assert _evaluate("lke_control_plane_acl", disabled).status == NON_COMPLIANT
        assert _evaluate("lke_control_plane_acl", wildcard).status == NON_COMPLIANT
        assert _evaluate("lke_control_plane_acl", restricted).status == COMPLIANT

    def test_ha_and_audit_logs(self):
        cluster = _resource("k8s_cluster", {"high_availability": True})
        assert _evaluate("lke_control_plane_ha", cluster).status == COMPLIANT
        assert _evaluate("lke_audit_logs_enabled", cluster).status == NOT_APPLICABLE
        audited = _resource("k8s_cluster", {"audit_logs_enabled": False})
        assert _evaluate("lke_audit_logs_enabled", audited).status == NON_COMPLIANT
