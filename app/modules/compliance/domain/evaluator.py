from typing import Iterable, Sequence

import structlog

from app.models.compliance import ComplianceRule
from app.modules.compliance.domain.conditions import conditions as default_registry
from app.modules.compliance.domain.context import EvaluatedResource, EvaluationContext
from app.modules.compliance.domain.registry import ConditionRegistry
from app.modules.compliance.domain.results import AtomicResults, RuleResult, Verdict

logger = structlog.get_logger()


class RuleEvaluator:
    """
    Runs every non-composite rule against the account's resources.

    Evaluator failures never escape: an unexpected exception inside a
    condition is reported as a not_applicable result carrying the error text.
    """

    def __init__(self, registry: ConditionRegistry = default_registry):
        self.registry = registry

    def _resource_verdict(
        self, rule: ComplianceRule, resource: EvaluatedResource, ctx: EvaluationContext
    ) -> Verdict:
        try:
            return self.registry.evaluate_resource(
                rule.condition_type, resource, dict(rule.condition_config or {}), ctx
            )
        except Exception as exc:  # noqa: BLE001 - a broken condition must not abort the run
            logger.warning(
                "compliance_condition_failed",
                rule_id=str(rule.id),
                condition_type=rule.condition_type,
                resource_id=str(resource.id),
                error=str(exc),
            )
            return Verdict.not_applicable(f"Evaluation error: {exc}")

    def evaluate_resource_rule(
        self, rule: ComplianceRule, ctx: EvaluationContext
    ) -> list[RuleResult]:
        resource_types = set(rule.resource_types or [])
        return [
            RuleResult.from_verdict(rule.id, resource.id, self._resource_verdict(rule, resource, ctx))
            for resource in ctx.resources
            if resource.resource_type in resource_types
        ]

    async def evaluate_account_rule(
        self, rule: ComplianceRule, ctx: EvaluationContext
    ) -> list[RuleResult]:
        check = self.registry.account_check(rule.condition_type)
        if check is None:
            return []
        try:
            verdicts: Sequence[Verdict] = await check(dict(rule.condition_config or {}), ctx)
        except Exception as exc:  # noqa: BLE001 - a broken condition must not abort the run
            logger.warning(
                "compliance_account_condition_failed",
                rule_id=str(rule.id),
                condition_type=rule.condition_type,
                error=str(exc),
            )
            verdicts = [Verdict.not_applicable(f"Evaluation error: {exc}")]
        return [RuleResult.from_verdict(rule.id, None, verdict) for verdict in verdicts]

    async def evaluate(
        self, rules: Iterable[ComplianceRule], ctx: EvaluationContext
    ) -> AtomicResults:
        results: list[RuleResult] = []
        for rule in rules:
            if rule.is_composite:
                continue
            if self.registry.is_account_level(rule.condition_type):
                results.extend(await self.evaluate_account_rule(rule, ctx))
            else:
                results.extend(self.evaluate_resource_rule(rule, ctx))
        return AtomicResults(results)
