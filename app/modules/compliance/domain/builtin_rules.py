"""
Built-in compliance rule catalogue.

Seeded as global rules (`account_id IS NULL`, `is_builtin = True`). Seeding is
idempotent per condition_type: a global rule with the same condition_type
is never duplicated, and operator edits to seeded rules are left alone.
"""

import copy
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.compliance import ComplianceRule, Severity
from app.models.inventory import ResourceType

logger = structlog.get_logger()

INSTANCE = ResourceType.COMPUTE_INSTANCE.value
VOLUME = ResourceType.BLOCK_VOLUME.value
LOAD_BALANCER = ResourceType.LOAD_BALANCER.value
CLUSTER = ResourceType.K8S_CLUSTER.value
BUCKET = ResourceType.OBJECT_BUCKET.value
DATABASE = ResourceType.DATABASE.value
FIREWALL = ResourceType.FIREWALL.value

CRITICAL = Severity.CRITICAL.value
WARNING = Severity.WARNING.value
INFO = Severity.INFO.value


BUILTIN_RULES: list[dict[str, Any]] = [
    {
        "name": "Linodes must have a firewall",
        "description": "Every Linode instance should be protected by at least one active firewall.",
        "resource_types": [INSTANCE],
        "condition_type": "firewall_attached",
        "condition_config": {},
        "severity": CRITICAL,
    },
    {
        "name": "No unrestricted inbound traffic",
        "description": (
            "Firewall rules should not allow unrestricted inbound access "
            "(0.0.0.0/0 or ::/0) on sensitive ports."
        ),
        "resource_types": [FIREWALL],
        "condition_type": "no_open_inbound",
        "condition_config": {"sensitive_ports": [22, 3389, 3306, 5432, 6379, 27017]},
        "severity": CRITICAL,
    },
    {
        "name": "Firewall must be attached",
        "description": "A firewall that is not attached to any Linode provides no value.",
        "resource_types": [FIREWALL],
        "condition_type": "firewall_has_targets",
        "condition_config": {},
        "severity": INFO,
    },
    {
        "name": "LKE clusters should have multiple nodes",
        "description": "Kubernetes clusters should have more than one node for high availability.",
        "resource_types": [CLUSTER],
        "condition_type": "min_node_count",
        "condition_config": {"min_count": 2},
        "severity": WARNING,
    },
    {
        "name": "Resources should have tags",
        "description": (
            "Resources must have owner, environment, and cost-center tags for "
            "accountability, automation, and cost tracking."
        ),
        "resource_types": [INSTANCE, VOLUME, LOAD_BALANCER, CLUSTER, DATABASE],
        "condition_type": "has_tags",
        "condition_config": {
            "required_tags": [
                {"key": "owner", "value": "*"},
                {"key": "environment", "value": "*"},
                {"key": "cost-center", "value": "*"},
            ]
        },
        "severity": INFO,
    },
    {
        "name": "Volumes should be attached",
        "description": "Unattached volumes still incur cost but provide no value.",
        "resource_types": [VOLUME],
        "condition_type": "volume_attached",
        "condition_config": {},
        "severity": INFO,
    },
    {
        "name": "No unrestricted database access",
        "description": "Managed databases should not have 0.0.0.0/0 or ::/0 in their IP allow list.",
        "resource_types": [DATABASE],
        "condition_type": "db_allowlist_check",
        "condition_config": {"forbidden_cidrs": ["0.0.0.0/0", "::/0"], "require_non_empty": False},
        "severity": CRITICAL,
    },
    {
        "name": "Databases must not have public access enabled",
        "description": "Managed databases with public_access enabled are reachable from outside the VPC.",
        "resource_types": [DATABASE],
        "condition_type": "db_public_access",
        "condition_config": {"allow_public_access": False},
        "severity": CRITICAL,
    },
    {
        "name": "Linode Backups Enabled",
        "description": "Verifies that automated backups are enabled for every Linode instance.",
        "resource_types": [INSTANCE],
        "condition_type": "linode_backups_enabled",
        "condition_config": {},
        "severity": CRITICAL,
    },
    {
        "name": "Linode Disk Encryption Enabled",
        "description": "Verifies that disk encryption is enabled on every Linode instance.",
        "resource_types": [INSTANCE],
        "condition_type": "linode_disk_encryption",
        "condition_config": {},
        "severity": CRITICAL,
    },
    {
        "name": "Linode Deletion Lock Configured",
        "description": "Verifies that at least one deletion lock is configured to protect the instance.",
        "resource_types": [INSTANCE],
        "condition_type": "linode_lock_configured",
        "condition_config": {"required_lock_types": []},
        "severity": WARNING,
    },
    {
        "name": "Linode Instance Not Offline",
        "description": "Flags any Linode instance that is currently in an offline state.",
        "resource_types": [INSTANCE],
        "condition_type": "linode_not_offline",
        "condition_config": {},
        "severity": WARNING,
    },
    {
        "name": "All Linodes must have a recent successful backup",
        "description": "Verifies that a successful backup has occurred within the last 7 days.",
        "resource_types": [INSTANCE],
        "condition_type": "linode_backup_recency",
        "condition_config": {"max_age_days": 7},
        "severity": WARNING,
    },
    {
        "name": "LKE Control Plane ACL Configured",
        "description": "Verifies that the LKE cluster control plane has an ACL enabled.",
        "resource_types": [CLUSTER],
        "condition_type": "lke_control_plane_acl",
        "condition_config": {},
        "severity": CRITICAL,
    },
    {
        "name": "Volume Encryption Enabled",
        "description": "Block storage volumes must have disk encryption enabled.",
        "resource_types": [VOLUME],
        "condition_type": "volume_encryption_enabled",
        "condition_config": {},
        "severity": CRITICAL,
    },
    {
        "name": "LKE Control Plane High Availability",
        "description": "LKE cluster control plane high availability must be enabled.",
        "resource_types": [CLUSTER],
        "condition_type": "lke_control_plane_ha",
        "condition_config": {},
        "severity": WARNING,
    },
    {
        "name": "LKE Audit Logs Enabled",
        "description": "LKE control plane audit logging must be enabled.",
        "resource_types": [CLUSTER],
        "condition_type": "lke_audit_logs_enabled",
        "condition_config": {},
        "severity": WARNING,
    },
    {
        "name": "Object Storage Bucket ACL",
        "description": (
            "Object storage bucket ACL must not allow public-read or public-read-write access."
        ),
        "resource_types": [BUCKET],
        "condition_type": "bucket_acl_check",
        "condition_config": {
            "required_acl": "",
            "forbidden_acls": ["public-read", "public-read-write", "authenticated-read"],
        },
        "severity": CRITICAL,
    },
    {
        "name": "All Users Must Have TFA Enabled",
        "description": "Every user on the account must have two-factor authentication enabled.",
        "resource_types": [],
        "condition_type": "tfa_users",
        "condition_config": {},
        "severity": CRITICAL,
    },
    {
        "name": "Account Login IP Restriction",
        "description": "Account logins must only be permitted from a configured IP allow list.",
        "resource_types": [],
        "condition_type": "login_allowed_ips",
        "condition_config": {},
        "severity": WARNING,
    },
    {
        "name": "Resources in Approved Regions",
        "description": "All resources must be deployed only in approved geographic regions.",
        "resource_types": [INSTANCE, VOLUME, CLUSTER, DATABASE, LOAD_BALANCER, BUCKET],
        "condition_type": "approved_regions",
        "condition_config": {"approved_regions": []},
        "severity": WARNING,
    },
    {
        "name": "Firewall Policy Requirements",
        "description": (
            "Firewall inbound and outbound policies must meet configurable security requirements."
        ),
        "resource_types": [INSTANCE],
        "condition_type": "firewall_rules_check",
        "condition_config": {
            "required_inbound_policy": "DROP",
            "required_outbound_policy": "",
            "blocked_ports": [],
            "allowed_source_ips": [],
            "require_no_open_ports": False,
        },
        "severity": WARNING,
    },
    {
        "name": "NodeBalancer Protocol Check",
        "description": "NodeBalancer ports must use only HTTPS protocol.",
        "resource_types": [LOAD_BALANCER],
        "condition_type": "nodebalancer_protocol_check",
        "condition_config": {"allowed_protocols": ["https"]},
        "severity": WARNING,
    },
    {
        "name": "NodeBalancer Allowed Ports",
        "description": "NodeBalancer must only listen on approved ports (default: 443).",
        "resource_types": [LOAD_BALANCER],
        "condition_type": "nodebalancer_port_allowlist",
        "condition_config": {"allowed_ports": [443]},
        "severity": WARNING,
    },
    {
        "name": "Firewall rules must not allow all ports",
        "description": "Detects inbound or outbound firewall rules that allow traffic on all ports.",
        "resource_types": [FIREWALL],
        "condition_type": "firewall_all_ports_allowed",
        "condition_config": {"check_inbound": True, "check_outbound": False, "actions": ["ACCEPT"]},
        "severity": WARNING,
    },
    {
        "name": "Every firewall rule must have a description",
        "description": (
            "Checks that all inbound and outbound firewall rules have a non-empty description."
        ),
        "resource_types": [FIREWALL],
        "condition_type": "firewall_rule_descriptions",
        "condition_config": {},
        "severity": WARNING,
    },
]


async def seed_builtin_rules(db: AsyncSession) -> int:
    """Insert any missing built-in rules. Returns the number of rules added."""
    existing = set(
        await db.scalars(
            select(ComplianceRule.condition_type).where(ComplianceRule.account_id.is_(None))
        )
    )
    added = 0
    for rule in BUILTIN_RULES:
        if rule["condition_type"] in existing:
            continue
        db.add(
            ComplianceRule(account_id=None, is_builtin=True, is_active=True, **copy.deepcopy(rule))
        )
        existing.add(rule["condition_type"])
        added += 1
    if added:
        await db.commit()
    logger.info("builtin_rules_seeded", added=added, total=len(BUILTIN_RULES))
    return added
