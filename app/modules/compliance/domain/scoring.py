"""
Compliance score aggregation.

Acknowledged results are excluded from every count except
`acknowledged_count`. The score is the compliant share of the remaining
compliant + non_compliant results, or None when there are none.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence
from uuid import UUID

from app.models.compliance import ComplianceRule, ComplianceStatus


@dataclass(frozen=True)
class ScoredResult:
    rule_id: UUID
    status: ComplianceStatus
    acknowledged: bool


@dataclass(frozen=True)
class StatusCounts:
    compliant: int = 0
    non_compliant: int = 0
    not_applicable: int = 0

    @property
    def total(self) -> int:
        return self.compliant + self.non_compliant + self.not_applicable

    @property
    def score(self) -> Optional[float]:
        return compliance_score(self.compliant, self.non_compliant)


@dataclass(frozen=True)
class ScoreSummary:
    counts: StatusCounts
    acknowledged_count: int
    total_rules_evaluated: int
    rule_breakdown: list[dict[str, Any]] = field(default_factory=list)

    @property
    def score(self) -> Optional[float]:
        return self.counts.score


def compliance_score(compliant: int, non_compliant: int) -> Optional[float]:
    scoreable = compliant + non_compliant
    if scoreable == 0:
        return None
    return round(compliant / scoreable * 100, 2)


def count_statuses(results: Iterable[ScoredResult]) -> StatusCounts:
    compliant = non_compliant = not_applicable = 0
    for result in results:
        if result.status == ComplianceStatus.COMPLIANT:
            compliant += 1
        elif result.status == ComplianceStatus.NON_COMPLIANT:
            non_compliant += 1
        else:
            not_applicable += 1
    return StatusCounts(compliant, non_compliant, not_applicable)


def summarize(
    results: Sequence[ScoredResult], rules: Sequence[ComplianceRule]
) -> ScoreSummary:
    unacknowledged = [r for r in results if not r.acknowledged]
    by_rule: dict[UUID, list[ScoredResult]] = {}
    for result in unacknowledged:
        by_rule.setdefault(result.rule_id, []).append(result)

    breakdown = []
    for rule in rules:
        counts = count_statuses(by_rule.get(rule.id, ()))
        breakdown.append(
            {
                "rule_id": str(rule.id),
                "rule_name": rule.name,
                "severity": rule.severity,
                "compliant": counts.compliant,
                "non_compliant": counts.non_compliant,
                "not_applicable": counts.not_applicable,
                "score": counts.score,
            }
        )

    return ScoreSummary(
        counts=count_statuses(unacknowledged),
        acknowledged_count=len(results) - len(unacknowledged),
        total_rules_evaluated=len(rules),
        rule_breakdown=breakdown,
    )
