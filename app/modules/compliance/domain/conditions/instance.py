import re

from app.modules.compliance.domain.registry import conditions
from app.modules.compliance.domain.results import Verdict
from app.schemas.inventory import InstanceSpecs
from app.shared.adapters.feed_utils import parse_timestamp

_PLAN_GENERATION = re.compile(r"^g\d+-")
_PLAN_SIZE = re.compile(r"-\d+$")


@conditions.resource("linode_backups_enabled", specs=InstanceSpecs)
def backups_enabled(resource, specs: InstanceSpecs, config, ctx) -> Verdict:
    if specs.backups_enabled is None:
        return Verdict.not_applicable(
            "Backup status not available. Re-sync to fetch the latest instance data."
        )
    return Verdict.check(
        specs.backups_enabled,
        "Backups are enabled for this Linode.",
        "Backups are not enabled for this Linode.",
    )


def _short_date(value) -> str:
    return f"{value:%b} {value.day}, {value.year}"


@conditions.resource("linode_backup_recency", specs=InstanceSpecs)
def backup_recency(resource, specs: InstanceSpecs, config, ctx) -> Verdict:
    max_age_days = config.get("max_age_days", 7)
    if not specs.backups_enabled:
        return Verdict.non_compliant(
            "Backups are not enabled for this Linode, so no recent recovery point exists."
        )
    last_backup = parse_timestamp(specs.backups_last_successful)
    if last_backup is None:
        return Verdict.non_compliant(
            "Backups are enabled but no successful backup has been recorded yet. "
            "Re-sync to refresh data."
        )

    age_hours = (ctx.now - last_backup).total_seconds() / 3600
    age_days = age_hours / 24
    when = _short_date(last_backup)
    if age_days <= max_age_days:
        age = f"{round(age_hours)}h ago" if age_hours < 24 else f"{round(age_days)} day(s) ago"
        return Verdict.compliant(
            f"Last successful backup was {age} ({when}), within the {max_age_days}-day window."
        )
    return Verdict.non_compliant(
        f"Last successful backup was {round(age_days)} day(s) ago ({when}), "
        f"which exceeds the required {max_age_days}-day window."
    )


@conditions.resource("linode_disk_encryption", specs=InstanceSpecs)
def disk_encryption(resource, specs: InstanceSpecs, config, ctx) -> Verdict:
    if specs.disk_encryption is None:
        return Verdict.not_applicable(
            "Disk encryption status not available. Re-sync to fetch the latest instance data."
        )
    return Verdict.check(
        specs.disk_encryption == "enabled",
        "Disk encryption is enabled for this Linode.",
        f'Disk encryption is "{specs.disk_encryption}". It must be set to "enabled".',
    )


@conditions.resource("linode_lock_configured", specs=InstanceSpecs)
def lock_configured(resource, specs: InstanceSpecs, config, ctx) -> Verdict:
    locks = specs.locks
    required = list(config.get("required_lock_types") or [])
    if not locks:
        if required:
            return Verdict.non_compliant(f"No lock configured. Required: {', '.join(required)}.")
        return Verdict.non_compliant("No deletion lock is configured for this Linode.")
    if required:
        missing = [lock for lock in required if lock not in locks]
        if missing:
            return Verdict.non_compliant(
                f"Lock(s) present ({', '.join(locks)}) but missing required type(s): "
                f"{', '.join(missing)}."
            )
        return Verdict.compliant(f"Required lock(s) configured: {', '.join(locks)}.")
    return Verdict.compliant(f"Deletion lock is configured: {', '.join(locks)}.")


@conditions.resource("linode_not_offline", specs=InstanceSpecs)
def not_offline(resource, specs: InstanceSpecs, config, ctx) -> Verdict:
    status = specs.status or resource.status
    if not status:
        return Verdict.not_applicable(
            "Instance status not available. Re-sync to fetch the latest data."
        )
    return Verdict.check(
        status != "offline",
        f'Linode status is "{status}".',
        "Linode is offline.",
    )


def plan_tier(plan_type: str) -> str:
    """`g6-standard-2` -> `standard`, `g1-gpu-rtx6000-1` -> `gpu-rtx6000`."""
    return _PLAN_SIZE.sub("", _PLAN_GENERATION.sub("", plan_type))


@conditions.resource("linode_plan_tier_by_tag", specs=InstanceSpecs)
def plan_tier_by_tag(resource, specs: InstanceSpecs, config, ctx) -> Verdict:
    tag_key = (config.get("tag") or "").lower()
    tag_value = (config.get("tag_value") or "").lower()
    approved = list(config.get("approved_tiers") or [])
    if not tag_key or not approved:
        return Verdict.not_applicable(
            "Rule is not fully configured (tag key or approved tiers missing)."
        )

    def matches(tag: str) -> bool:
        tag = tag.lower()
        if tag_value:
            return tag == f"{tag_key}:{tag_value}"
        return tag == tag_key or tag.startswith(f"{tag_key}:")

    if not any(matches(tag) for tag in specs.tags):
        wanted = f"{tag_key}:{tag_value}" if tag_value else tag_key
        return Verdict.not_applicable(
            f'Linode does not have the tag "{wanted}", so the rule does not apply.'
        )

    plan = resource.plan_type or ""
    tier = plan_tier(plan)
    tiers = ", ".join(approved)
    if any(tier.startswith(t) for t in approved):
        return Verdict.compliant(f'Plan "{plan}" (tier: {tier}) is in the approved tiers: {tiers}.')
    return Verdict.non_compliant(
        f'Plan "{plan}" (tier: {tier}) is not in the approved tiers: {tiers}. '
        f"Upgrade to a {' or '.join(approved)} instance."
    )
