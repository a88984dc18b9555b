from app.models.inventory import ResourceType
from app.modules.compliance.domain.registry import conditions
from app.modules.compliance.domain.results import Verdict
from app.schemas.inventory import ClusterSpecs, LoadBalancerSpecs

WILDCARD_CIDRS = frozenset({"0.0.0.0/0", "::/0"})


@conditions.resource("min_node_count", specs=(ClusterSpecs, LoadBalancerSpecs))
def min_node_count(resource, specs, config, ctx) -> Verdict:
    min_count = config.get("min_count", 2)
    node_count = specs.node_count
    noun = "Load balancer" if resource.resource_type == ResourceType.LOAD_BALANCER.value else "Cluster"
    return Verdict.check(
        node_count >= min_count,
        f"{noun} has {node_count} node(s).",
        f"{noun} has {node_count} node(s); minimum required is {min_count}.",
    )


@conditions.resource("lke_control_plane_ha", specs=ClusterSpecs)
def control_plane_ha(resource, specs: ClusterSpecs, config, ctx) -> Verdict:
    return Verdict.check(
        specs.high_availability,
        "Control plane high availability is enabled for this cluster.",
        "Control plane high availability is not enabled. Enable HA to ensure the API "
        "server remains available during node failures.",
    )


@conditions.resource("lke_audit_logs_enabled", specs=ClusterSpecs)
def audit_logs_enabled(resource, specs: ClusterSpecs, config, ctx) -> Verdict:
    if specs.audit_logs_enabled is None:
        return Verdict.not_applicable(
            "Audit logs status not available. Re-sync to fetch the latest cluster data."
        )
    return Verdict.check(
        specs.audit_logs_enabled,
        "Control plane audit logs are enabled for this cluster.",
        "Control plane audit logs are disabled. Enable audit logging to track API "
        "activity for security and compliance purposes.",
    )


@conditions.resource("lke_control_plane_acl", specs=ClusterSpecs)
def control_plane_acl(resource, specs: ClusterSpecs, config, ctx) -> Verdict:
    acl = specs.control_plane_acl
    if acl is None:
        return Verdict.not_applicable(
            "Control plane ACL status not available. Re-sync to fetch the latest cluster data."
        )
    if not acl.supported:
        return Verdict.not_applicable("This cluster does not support Control Plane ACL.")
    if not acl.enabled:
        return Verdict.non_compliant(
            "Control plane ACL is not enabled. The Kubernetes API server is accessible "
            "from any IP."
        )

    open_entries = [cidr for cidr in [*acl.ipv4, *acl.ipv6] if cidr in WILDCARD_CIDRS]
    if open_entries:
        return Verdict.non_compliant(
            "Control plane ACL is enabled but allows unrestricted access: "
            f"{', '.join(open_entries)}. Remove wildcard entries and restrict to known CIDRs."
        )
    allowed = ", ".join([*acl.ipv4, *acl.ipv6]) or "no addresses (deny all)"
    return Verdict.compliant(f"Control plane ACL is enabled and restricted to: {allowed}")
