"""
Composite rule evaluation.

Composite rules combine the results of atomic rules with AND, OR, NOT or
IF_THEN. They run strictly after the atomic phase and read only the completed
`AtomicResults`; composites cannot reference other composites.

condition_config shapes:
    {"operator": "AND" | "OR", "rule_ids": [...]}
    {"operator": "NOT", "rule_ids": [<one id>]}
    {"operator": "IF_THEN", "if_rule_id": ..., "then_rule_id": ...}
"""

from typing import Any, Iterable, Mapping, Optional, Sequence
from uuid import UUID

from app.models.compliance import ComplianceRule, ComplianceStatus
from app.modules.compliance.domain.results import AtomicResults, CompositeResults, RuleResult

COMPLIANT = ComplianceStatus.COMPLIANT
NON_COMPLIANT = ComplianceStatus.NON_COMPLIANT
NOT_APPLICABLE = ComplianceStatus.NOT_APPLICABLE

OPERATORS = ("AND", "OR", "NOT", "IF_THEN")


def combine_and(statuses: Sequence[ComplianceStatus]) -> ComplianceStatus:
    if statuses and all(s == COMPLIANT for s in statuses):
        return COMPLIANT
    if any(s == NON_COMPLIANT for s in statuses):
        return NON_COMPLIANT
    return NOT_APPLICABLE


def combine_or(statuses: Sequence[ComplianceStatus]) -> ComplianceStatus:
    if any(s == COMPLIANT for s in statuses):
        return COMPLIANT
    if all(s == NOT_APPLICABLE for s in statuses):
        return NOT_APPLICABLE
    return NON_COMPLIANT


def invert(status: ComplianceStatus) -> ComplianceStatus:
    if status == COMPLIANT:
        return NON_COMPLIANT
    if status == NON_COMPLIANT:
        return COMPLIANT
    return NOT_APPLICABLE


def _parse_id(value: Any) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _status_list(names: Sequence[str], statuses: Sequence[ComplianceStatus]) -> str:
    return "; ".join(f"{name}: {status.value}" for name, status in zip(names, statuses))


def _ordered_resource_ids(results: Iterable[RuleResult]) -> list[UUID]:
    seen: dict[UUID, None] = {}
    for result in results:
        if result.resource_id is not None:
            seen.setdefault(result.resource_id, None)
    return list(seen)


class CompositeEvaluator:
    def __init__(self, rules_by_id: Mapping[UUID, ComplianceRule], atomic: AtomicResults):
        if not isinstance(atomic, AtomicResults):
            raise TypeError("Composite rules can only combine AtomicResults")
        self.rules_by_id = rules_by_id
        self.atomic = atomic

    def _name(self, rule_id: UUID) -> str:
        rule = self.rules_by_id.get(rule_id)
        return rule.name if rule else str(rule_id)

    @staticmethod
    def _account_result(rule: ComplianceRule, status: ComplianceStatus, detail: str) -> RuleResult:
        return RuleResult(rule_id=rule.id, resource_id=None, status=status, detail=detail)

    def _reference_problems(self, references: Sequence[Any]) -> Optional[str]:
        unknown, nested = [], []
        for raw in references:
            rule_id = _parse_id(raw)
            target = self.rules_by_id.get(rule_id) if rule_id else None
            if target is None:
                unknown.append(str(raw))
            elif target.is_composite:
                nested.append(target.name)
        problems = []
        if unknown:
            problems.append(f"references unknown rule(s): {', '.join(unknown)}")
        if nested:
            problems.append(f"cannot reference composite rule(s): {', '.join(nested)}")
        if not problems:
            return None
        return f"Composite rule {'; '.join(problems)}."

    def evaluate(self, rule: ComplianceRule) -> list[RuleResult]:
        config = dict(rule.condition_config or {})
        operator = str(config.get("operator") or "AND").upper()
        if operator not in OPERATORS:
            return [
                self._account_result(
                    rule, NOT_APPLICABLE, f'Unknown composite operator "{operator}".'
                )
            ]
        if operator == "IF_THEN":
            return self._if_then(rule, config)

        rule_ids = list(config.get("rule_ids") or [])
        if operator == "NOT" and not rule_ids:
            return [
                self._account_result(
                    rule, NOT_APPLICABLE, "NOT composite rule has no sub-rule specified."
                )
            ]
        problem = self._reference_problems(rule_ids[:1] if operator == "NOT" else rule_ids)
        if problem:
            return [self._account_result(rule, NOT_APPLICABLE, problem)]

        ids = [_parse_id(raw) for raw in rule_ids]
        if operator == "NOT":
            return self._not(rule, ids[0])
        return self._and_or(rule, operator, ids)

    def _not(self, rule: ComplianceRule, target_id: UUID) -> list[RuleResult]:
        sub_results = self.atomic.for_rule(target_id)
        if not sub_results:
            return [self._account_result(rule, NOT_APPLICABLE, "No results found for sub-rule.")]
        return [
            RuleResult(
                rule_id=rule.id,
                resource_id=sub.resource_id,
                subject=sub.subject,
                status=invert(sub.status),
                detail=f"NOT({sub.detail})",
            )
            for sub in sub_results
        ]

    def _and_or(self, rule: ComplianceRule, operator: str, ids: list[UUID]) -> list[RuleResult]:
        sub_results = [r for rule_id in ids for r in self.atomic.for_rule(rule_id)]
        resource_ids = _ordered_resource_ids(sub_results)
        account_level = [r for r in sub_results if r.is_account_level]
        names = [self._name(rule_id) for rule_id in ids]
        combine = combine_and if operator == "AND" else combine_or

        if not resource_ids and not account_level:
            return [self._account_result(rule, NOT_APPLICABLE, "No sub-rule results to combine.")]

        if not resource_ids:
            statuses = [r.status for r in account_level]
            labels = [self._name(r.rule_id) for r in account_level]
            return [
                self._account_result(
                    rule, combine(statuses), f"{operator}: {_status_list(labels, statuses)}"
                )
            ]

        results = []
        for resource_id in resource_ids:
            statuses = [self.atomic.status_of(rule_id, resource_id) for rule_id in ids]
            status = combine(statuses)
            if operator == "AND":
                detail = (
                    f"All conditions passed: {', '.join(names)}"
                    if status == COMPLIANT
                    else f"AND failed. Sub-rule statuses: {_status_list(names, statuses)}"
                )
            else:
                detail = (
                    f"OR passed. At least one condition met: {', '.join(names)}"
                    if status == COMPLIANT
                    else f"OR failed. No conditions met: {_status_list(names, statuses)}"
                )
            results.append(
                RuleResult(rule_id=rule.id, resource_id=resource_id, status=status, detail=detail)
            )
        return results

    def _if_then(self, rule: ComplianceRule, config: dict[str, Any]) -> list[RuleResult]:
        if_id = _parse_id(config.get("if_rule_id"))
        then_id = _parse_id(config.get("then_rule_id"))
        if_rule = self.rules_by_id.get(if_id) if if_id else None
        then_rule = self.rules_by_id.get(then_id) if then_id else None
        if if_rule is None or then_rule is None:
            return [
                self._account_result(
                    rule, NOT_APPLICABLE, "IF_THEN composite rule references missing sub-rules."
                )
            ]
        problem = self._reference_problems([if_id, then_id])
        if problem:
            return [self._account_result(rule, NOT_APPLICABLE, problem)]

        resource_ids = _ordered_resource_ids(
            [*self.atomic.for_rule(if_id), *self.atomic.for_rule(then_id)]
        )
        if not resource_ids:
            return [
                self._account_result(
                    rule, NOT_APPLICABLE, "No resources to evaluate for IF_THEN composite rule."
                )
            ]

        results = []
        for resource_id in resource_ids:
            triggered = self.atomic.status_of(if_id, resource_id) == NON_COMPLIANT
            satisfied = self.atomic.status_of(then_id, resource_id) == COMPLIANT
            if not triggered:
                status = NOT_APPLICABLE
                detail = f"IF condition ({if_rule.name}) not triggered, so the rule does not apply."
            elif satisfied:
                status = COMPLIANT
                detail = (
                    f"IF condition ({if_rule.name}) triggered and THEN condition "
                    f"({then_rule.name}) is satisfied."
                )
            else:
                status = NON_COMPLIANT
                detail = (
                    f"IF condition ({if_rule.name}) triggered but THEN condition "
                    f"({then_rule.name}) failed."
                )
            results.append(
                RuleResult(rule_id=rule.id, resource_id=resource_id, status=status, detail=detail)
            )
        return results


def evaluate_composites(
    composite_rules: Iterable[ComplianceRule],
    rules_by_id: Mapping[UUID, ComplianceRule],
    atomic: AtomicResults,
) -> CompositeResults:
    evaluator = CompositeEvaluator(rules_by_id, atomic)
    results: list[RuleResult] = []
    for rule in composite_rules:
        results.extend(evaluator.evaluate(rule))
    return CompositeResults(results)
