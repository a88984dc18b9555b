"""
Firewall posture conditions.

Rules are matched against `inbound_rules_detail` / `outbound_rules_detail` as
collected. A rule "covers" a port when its protocol is ALL, its port
specification is empty, or one of its comma-separated ports or `a-b` ranges
contains the port.
"""

from typing import Any, Iterable, Optional

from app.modules.compliance.domain.registry import conditions
from app.modules.compliance.domain.results import Verdict
from app.schemas.inventory import FirewallRule, FirewallSpecs, InstanceSpecs

OPEN_SOURCES_V4 = frozenset({"0.0.0.0/0"})
OPEN_SOURCES_V6 = frozenset({"::/0", "2000::/3"})
DEFAULT_SENSITIVE_PORTS = [22, 3389, 3306, 5432]
DEFAULT_LATERAL_PORTS = [22, 3389, 3306, 5432, 5984, 6379, 9200, 27017]
PORT_SCOPED_PROTOCOLS = frozenset({"TCP", "ALL"})
PORTLESS_PROTOCOLS = frozenset({"ICMP", "IPENCAP"})
FULL_PORT_RANGE = "1-65535"


def _protocol(rule: FirewallRule) -> str:
    return (rule.protocol or "").upper()


def _action(rule: FirewallRule) -> str:
    return (rule.action or "").upper()


def port_spec_covers(ports: Optional[str], port: int) -> bool:
    text = (ports or "").strip()
    if not text:
        return True
    for segment in text.split(","):
        segment = segment.strip()
        if not segment:
            continue
        low, sep, high = segment.partition("-")
        try:
            if sep:
                if int(low) <= port <= int(high):
                    return True
            elif int(segment) == port:
                return True
        except ValueError:
            continue
    return False


def rule_covers_port(rule: FirewallRule, port: int) -> bool:
    return _protocol(rule) == "ALL" or port_spec_covers(rule.ports, port)


def is_open_to_all(rule: FirewallRule) -> bool:
    return bool(
        OPEN_SOURCES_V4.intersection(rule.addresses.ipv4)
        or OPEN_SOURCES_V6.intersection(rule.addresses.ipv6)
    )


def _accepting_tcp(rules: Iterable[FirewallRule]) -> Iterable[FirewallRule]:
    return (
        r for r in rules if _action(r) == "ACCEPT" and _protocol(r) in PORT_SCOPED_PROTOCOLS
    )


def _ports(config: dict[str, Any], key: str, default: list[int]) -> list[int]:
    return [int(p) for p in (config.get(key) or default)]


def is_private_ipv4(cidr: str) -> bool:
    if cidr.startswith("10.") or cidr.startswith("192.168."):
        return True
    if cidr.startswith("172."):
        octets = cidr.split(".")
        try:
            return 16 <= int(octets[1]) <= 31
        except (IndexError, ValueError):
            return False
    return False


@conditions.resource("firewall_attached", specs=InstanceSpecs)
def firewall_attached(resource, specs: InstanceSpecs, config, ctx) -> Verdict:
    labels = ctx.attached_firewall_labels(resource)
    return Verdict.check(
        bool(labels),
        f"Protected by firewall: {', '.join(labels)}",
        "No firewall is attached to this Linode.",
    )


@conditions.resource("firewall_has_targets", specs=FirewallSpecs)
def firewall_has_targets(resource, specs: FirewallSpecs, config, ctx) -> Verdict:
    count = specs.entity_count
    return Verdict.check(
        count > 0,
        f"Attached to {count} Linode(s).",
        "Firewall has no attached Linodes.",
    )


@conditions.resource("no_open_inbound", specs=FirewallSpecs)
def no_open_inbound(resource, specs: FirewallSpecs, config, ctx) -> Verdict:
    sensitive_ports = _ports(config, "sensitive_ports", DEFAULT_SENSITIVE_PORTS)
    violations = []
    for rule in _accepting_tcp(specs.inbound_rules_detail):
        if not is_open_to_all(rule):
            continue
        for port in sensitive_ports:
            if rule_covers_port(rule, port):
                violations.append(f"Port {port} open to all (rule: {rule.display_label})")

    if violations:
        return Verdict.non_compliant("; ".join(violations))
    if specs.inbound_policy.upper() == "ACCEPT" and not specs.inbound_rules_detail:
        return Verdict.non_compliant(
            "Inbound policy is ACCEPT with no rules, so all traffic is allowed."
        )
    return Verdict.compliant("No unrestricted inbound access detected.")


@conditions.resource("firewall_rules_check", specs=InstanceSpecs)
def firewall_rules_check(resource, specs: InstanceSpecs, config, ctx) -> Verdict:
    firewalls = ctx.protecting_firewalls(resource)
    if not firewalls:
        return Verdict.non_compliant("No firewall is attached to this Linode.")

    required_inbound = (config.get("required_inbound_policy") or "").upper()
    required_outbound = (config.get("required_outbound_policy") or "").upper()
    blocked_ports = _ports(config, "blocked_ports", [])
    allowed_sources = set(config.get("allowed_source_ips") or [])
    require_no_open_ports = bool(config.get("require_no_open_ports", False))

    violations = []
    for firewall in firewalls:
        fw_specs: FirewallSpecs = firewall.specs
        name = f'Firewall "{firewall.label}"'
        inbound_policy = (fw_specs.inbound_policy or "ACCEPT").upper()
        outbound_policy = (fw_specs.outbound_policy or "ACCEPT").upper()
        if required_inbound and inbound_policy != required_inbound:
            violations.append(
                f"{name}: inbound policy is {inbound_policy}, expected {required_inbound}"
            )
        if required_outbound and outbound_policy != required_outbound:
            violations.append(
                f"{name}: outbound policy is {outbound_policy}, expected {required_outbound}"
            )
        for rule in _accepting_tcp(fw_specs.inbound_rules_detail):
            open_to_all = is_open_to_all(rule)
            for port in blocked_ports:
                if rule_covers_port(rule, port):
                    violations.append(
                        f"{name}: port {port} is allowed inbound (rule: {rule.display_label})"
                    )
            if require_no_open_ports and open_to_all:
                violations.append(
                    f'{name}: rule "{rule.display_label}" allows unrestricted inbound traffic'
                )
            if allowed_sources and not open_to_all:
                sources = [*rule.addresses.ipv4, *rule.addresses.ipv6]
                if any(ip not in allowed_sources for ip in sources):
                    violations.append(
                        f'{name}: rule "{rule.display_label}" allows traffic from IPs '
                        "not in the allowed list"
                    )

    if violations:
        return Verdict.non_compliant("; ".join(violations))
    labels = ", ".join(fw.label or fw.external_id for fw in firewalls)
    return Verdict.compliant(f"Firewall rules compliant ({labels})")


@conditions.resource("firewall_rfc1918_lateral", specs=FirewallSpecs)
def firewall_rfc1918_lateral(resource, specs: FirewallSpecs, config, ctx) -> Verdict:
    sensitive_ports = _ports(config, "sensitive_ports", DEFAULT_LATERAL_PORTS)
    violations = []
    for rule in _accepting_tcp(specs.inbound_rules_detail):
        private_sources = [ip for ip in rule.addresses.ipv4 if is_private_ipv4(ip)]
        if not private_sources:
            continue
        for port in sensitive_ports:
            if rule_covers_port(rule, port):
                violations.append(
                    f'Rule "{rule.display_label}": port {port} accepts traffic from '
                    f"private range(s) {', '.join(private_sources)}"
                )

    if violations:
        return Verdict.non_compliant(f"Potential lateral movement: {'; '.join(violations)}.")
    if not specs.inbound_rules_detail:
        return Verdict.not_applicable("No inbound rules to evaluate.")
    return Verdict.compliant("No inbound rules accept RFC-1918 traffic on sensitive ports.")


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


@conditions.resource("firewall_rule_descriptions", specs=FirewallSpecs)
def firewall_rule_descriptions(resource, specs: FirewallSpecs, config, ctx) -> Verdict:
    rules = [*specs.inbound_rules_detail, *specs.outbound_rules_detail]
    if not rules:
        return Verdict.not_applicable("No rules to evaluate.")
    undescribed = [r for r in rules if not (r.description or "").strip()]
    if undescribed:
        names = ", ".join(f'"{r.display_label}"' for r in undescribed)
        verb = _plural(len(undescribed), "rule is", "rules are")
        return Verdict.non_compliant(f"{len(undescribed)} {verb} missing a description: {names}.")
    noun = _plural(len(rules), "rule", "rules")
    return Verdict.compliant(f"All {len(rules)} {noun} have descriptions set.")


def _fingerprint(rule: FirewallRule) -> str:
    ipv4 = ",".join(sorted(rule.addresses.ipv4))
    ipv6 = ",".join(sorted(rule.addresses.ipv6))
    return f"{_action(rule)}|{_protocol(rule)}|{rule.ports or ''}|{ipv4}|{ipv6}"


def _duplicates(rules: list[FirewallRule], direction: str) -> list[str]:
    seen: dict[str, str] = {}
    found = []
    for rule in rules:
        fingerprint = _fingerprint(rule)
        if fingerprint in seen:
            found.append(
                f'{direction} rule "{rule.display_label}" is identical to "{seen[fingerprint]}"'
            )
        else:
            seen[fingerprint] = rule.display_label
    return found


@conditions.resource("firewall_no_duplicate_rules", specs=FirewallSpecs)
def firewall_no_duplicate_rules(resource, specs: FirewallSpecs, config, ctx) -> Verdict:
    inbound, outbound = specs.inbound_rules_detail, specs.outbound_rules_detail
    if not inbound and not outbound:
        return Verdict.not_applicable("No rules to evaluate.")
    duplicates = _duplicates(inbound, "Inbound") + _duplicates(outbound, "Outbound")
    if duplicates:
        return Verdict.non_compliant(f"Duplicate rules detected: {'; '.join(duplicates)}.")
    total = len(inbound) + len(outbound)
    return Verdict.compliant(
        f"No duplicate rules found across {total} {_plural(total, 'rule', 'rules')}."
    )


def allows_all_ports(rule: FirewallRule) -> bool:
    protocol = _protocol(rule)
    if protocol in PORTLESS_PROTOCOLS:
        return False
    if protocol == "ALL":
        return True
    ports = (rule.ports or "").strip()
    return ports in ("", FULL_PORT_RANGE)


@conditions.resource("firewall_all_ports_allowed", specs=FirewallSpecs)
def firewall_all_ports_allowed(resource, specs: FirewallSpecs, config, ctx) -> Verdict:
    check_inbound = config.get("check_inbound", True)
    check_outbound = config.get("check_outbound", False)
    actions = {str(a).upper() for a in (config.get("actions") or ["ACCEPT"])}

    directions = []
    if check_inbound:
        directions.append(("Inbound", specs.inbound_rules_detail))
    if check_outbound:
        directions.append(("Outbound", specs.outbound_rules_detail))

    violations = []
    checked = 0
    for direction, rules in directions:
        checked += len(rules)
        for rule in rules:
            if _action(rule) not in actions or not allows_all_ports(rule):
                continue
            violations.append(
                f'{direction} rule "{rule.display_label}": allows all ports '
                f'(protocol: {(rule.protocol or "ALL").upper()}, ports: "{rule.ports or "any"}")'
            )

    if checked == 0:
        return Verdict.not_applicable("No rules to evaluate.")
    if violations:
        return Verdict.non_compliant("; ".join(violations))
    return Verdict.compliant(
        f"No rules allow all ports across {checked} {_plural(checked, 'rule', 'rules')} checked."
    )
