from app.modules.compliance.domain.registry import conditions
from app.modules.compliance.domain.results import Verdict
from app.schemas.inventory import LoadBalancerSpecs

_NO_CONFIGS = "No port configurations found. Re-sync to fetch the latest NodeBalancer data."


@conditions.resource("nodebalancer_protocol_check", specs=LoadBalancerSpecs)
def protocol_check(resource, specs: LoadBalancerSpecs, config, ctx) -> Verdict:
    if not specs.configs:
        return Verdict.not_applicable(_NO_CONFIGS)
    allowed = [p.lower() for p in config.get("allowed_protocols") or []]
    forbidden = [p.lower() for p in config.get("forbidden_protocols") or []]

    violations = []
    for port_config in specs.configs:
        protocol = (port_config.protocol or "").lower()
        if forbidden and protocol in forbidden:
            violations.append(f'Port {port_config.port} uses forbidden protocol "{protocol}"')
        elif allowed and protocol not in allowed:
            violations.append(
                f'Port {port_config.port} uses disallowed protocol "{protocol}" '
                f"(allowed: {', '.join(allowed)})"
            )

    if violations:
        return Verdict.non_compliant("; ".join(violations) + ".")
    ports = ", ".join(f"port {c.port} ({c.protocol})" for c in specs.configs)
    return Verdict.compliant(f"All port configurations use compliant protocols: {ports}.")


@conditions.resource("nodebalancer_port_allowlist", specs=LoadBalancerSpecs)
def port_allowlist(resource, specs: LoadBalancerSpecs, config, ctx) -> Verdict:
    if not specs.configs:
        return Verdict.not_applicable(_NO_CONFIGS)
    allowed = [int(p) for p in config.get("allowed_ports") or []]
    if not allowed:
        return Verdict.not_applicable("No allowed ports configured for this rule.")

    violations = [
        f"Port {c.port} is not in the allowed list" for c in specs.configs if c.port not in allowed
    ]
    if violations:
        return Verdict.non_compliant(
            "; ".join(violations) + f". Allowed: {', '.join(str(p) for p in allowed)}."
        )
    ports = ", ".join(str(c.port) for c in specs.configs)
    return Verdict.compliant(f"All configured ports ({ports}) are in the allowed list.")
