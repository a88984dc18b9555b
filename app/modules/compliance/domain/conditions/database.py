from app.modules.compliance.domain.registry import conditions
from app.modules.compliance.domain.results import Verdict
from app.schemas.inventory import DatabaseSpecs

DEFAULT_FORBIDDEN_CIDRS = ["0.0.0.0/0", "::/0"]


@conditions.resource("db_public_access", specs=DatabaseSpecs)
def db_public_access(resource, specs: DatabaseSpecs, config, ctx) -> Verdict:
    if specs.public_access is None:
        return Verdict.not_applicable(
            "Public access data not available. Re-sync to fetch the latest database settings."
        )
    if not specs.public_access:
        return Verdict.compliant("Database does not have public access enabled.")
    if config.get("allow_public_access", False):
        return Verdict.compliant(
            "Database has public access enabled (permitted by rule configuration)."
        )
    return Verdict.non_compliant(
        "Database has public access enabled and is reachable outside the VPC."
    )


@conditions.resource("db_allowlist_check", specs=DatabaseSpecs)
def db_allowlist_check(resource, specs: DatabaseSpecs, config, ctx) -> Verdict:
    allow_list = specs.allow_list
    if allow_list is None:
        return Verdict.not_applicable(
            "Allow list data not available. Re-sync to fetch the latest database settings."
        )
    forbidden = config.get("forbidden_cidrs") or DEFAULT_FORBIDDEN_CIDRS

    violations = []
    if config.get("require_non_empty", False) and not allow_list:
        violations.append("Allow list is empty, so all IPs are permitted by default.")
    violations.extend(
        f'Unrestricted CIDR "{cidr}" is in the allow list.' for cidr in allow_list if cidr in forbidden
    )
    if violations:
        return Verdict.non_compliant(" ".join(violations))

    if not allow_list:
        return Verdict.compliant(
            "Allow list is empty (access restricted by default for this database)."
        )
    entries = "entry" if len(allow_list) == 1 else "entries"
    return Verdict.compliant(
        f"Allow list contains {len(allow_list)} {entries}: {', '.join(allow_list)}."
    )
