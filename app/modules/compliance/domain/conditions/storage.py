from app.modules.compliance.domain.registry import conditions
from app.modules.compliance.domain.results import Verdict
from app.schemas.inventory import BucketSpecs, VolumeSpecs

DEFAULT_FORBIDDEN_ACLS = ["public-read", "public-read-write", "authenticated-read"]


@conditions.resource("volume_attached", specs=VolumeSpecs)
def volume_attached(resource, specs: VolumeSpecs, config, ctx) -> Verdict:
    return Verdict.check(
        bool(specs.instance_id),
        f"Attached to Linode ID {specs.instance_id}.",
        "Volume is not attached to any Linode.",
    )


@conditions.resource("volume_encryption_enabled", specs=VolumeSpecs)
def volume_encryption_enabled(resource, specs: VolumeSpecs, config, ctx) -> Verdict:
    if specs.encryption is None:
        return Verdict.not_applicable(
            "Encryption status not available. Re-sync to fetch the latest volume data."
        )
    return Verdict.check(
        specs.encryption == "enabled",
        "Disk encryption is enabled for this volume.",
        f'Disk encryption is "{specs.encryption}". It must be set to "enabled" '
        "to protect data at rest.",
    )


@conditions.resource("bucket_acl_check", specs=BucketSpecs)
def bucket_acl_check(resource, specs: BucketSpecs, config, ctx) -> Verdict:
    acl = specs.acl
    if acl is None:
        return Verdict.not_applicable(
            "ACL data not available. Re-sync resources to fetch bucket access settings."
        )
    forbidden = config.get("forbidden_acls") or DEFAULT_FORBIDDEN_ACLS
    required = config.get("required_acl") or None
    if required and acl != required:
        return Verdict.non_compliant(f'Bucket ACL is "{acl}", expected "{required}".')
    if acl in forbidden:
        return Verdict.non_compliant(f'Bucket ACL is "{acl}", which is not permitted.')
    return Verdict.compliant(f'Bucket ACL is "{acl}".')


@conditions.resource("bucket_cors_check", specs=BucketSpecs)
def bucket_cors_check(resource, specs: BucketSpecs, config, ctx) -> Verdict:
    cors_enabled = specs.cors_enabled
    if cors_enabled is None:
        return Verdict.not_applicable(
            "CORS data not available. Re-sync resources to fetch bucket access settings."
        )
    if config.get("require_cors_disabled", False) and cors_enabled:
        return Verdict.non_compliant("CORS is enabled on this bucket; it must be disabled.")
    if config.get("require_cors_enabled", False) and not cors_enabled:
        return Verdict.non_compliant("CORS is disabled on this bucket; it must be enabled.")
    return Verdict.compliant(f"CORS is {'enabled' if cors_enabled else 'disabled'}.")
