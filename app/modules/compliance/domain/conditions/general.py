"""Conditions that apply to any resource type."""

from typing import Any, Optional

from app.modules.compliance.domain.registry import conditions
from app.modules.compliance.domain.results import Verdict
from app.schemas.inventory import SpecsBase


def _is_wildcard(value: Optional[str]) -> bool:
    return not value or value == "*"


def find_tag(tags: list[str], key: str) -> Optional[str]:
    """First tag equal to `key` or of the form `key:value`, compared case-insensitively."""
    key = key.lower()
    for tag in tags:
        lowered = tag.lower()
        if lowered == key or lowered.startswith(f"{key}:"):
            return tag
    return None


def tag_value(tag: str) -> Optional[str]:
    _, sep, value = tag.partition(":")
    return value.strip() if sep else None


@conditions.resource("has_tags")
def has_tags(resource, specs: SpecsBase, config, ctx) -> Verdict:
    tags = specs.tags
    required: list[dict[str, Any]] = [t for t in config.get("required_tags") or [] if t.get("key")]
    if not required:
        min_tags = config.get("min_tags", 1)
        return Verdict.check(
            len(tags) >= min_tags,
            f"Has {len(tags)} tag(s): {', '.join(tags)}",
            f"Has no tags. At least {min_tags} tag(s) required.",
        )

    missing: list[str] = []
    wrong_values: list[str] = []
    for requirement in required:
        key, expected = requirement["key"], requirement.get("value")
        tag = find_tag(tags, key)
        if tag is None:
            missing.append(key)
            continue
        if _is_wildcard(expected):
            continue
        actual = tag_value(tag)
        if actual is None or actual.lower() != expected.lower():
            wrong_values.append(f'{key} (expected "{expected}", found "{actual or tag}")')

    if missing or wrong_values:
        parts = []
        if missing:
            parts.append(f"Missing tags: {', '.join(missing)}")
        if wrong_values:
            parts.append(f"Wrong values: {'; '.join(wrong_values)}")
        return Verdict.non_compliant(". ".join(parts))

    wanted = ", ".join(
        f"{t['key']}:*" if _is_wildcard(t.get("value")) else f"{t['key']}:{t['value']}"
        for t in required
    )
    return Verdict.compliant(f"All required tags present: {wanted}")


@conditions.resource("approved_regions")
def approved_regions(resource, specs: SpecsBase, config, ctx) -> Verdict:
    approved = list(config.get("approved_regions") or [])
    region = resource.region or ""
    if not approved:
        return Verdict.not_applicable("No approved regions configured for this rule.")
    if not region:
        return Verdict.not_applicable("Resource has no region information.")
    return Verdict.check(
        region in approved,
        f'Region "{region}" is approved.',
        f'Region "{region}" is not in the approved list: {", ".join(approved)}.',
    )
