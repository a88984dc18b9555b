"""
Verdict and result-set types shared by the compliance evaluators.

`AtomicResults` and `CompositeResults` are deliberately separate types: the
composite phase only ever reads a completed `AtomicResults`.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Tuple
from uuid import UUID

from app.models.compliance import ComplianceStatus

ResultKey = Tuple[UUID, Optional[UUID], Optional[str]]


@dataclass(frozen=True)
class Verdict:
    status: ComplianceStatus
    detail: str
    # Only set by account-level conditions, e.g. "login:123" or "user:alice".
    subject: Optional[str] = None

    @classmethod
    def compliant(cls, detail: str, subject: Optional[str] = None) -> "Verdict":
        return cls(ComplianceStatus.COMPLIANT, detail, subject)

    @classmethod
    def non_compliant(cls, detail: str, subject: Optional[str] = None) -> "Verdict":
        return cls(ComplianceStatus.NON_COMPLIANT, detail, subject)

    @classmethod
    def not_applicable(cls, detail: str, subject: Optional[str] = None) -> "Verdict":
        return cls(ComplianceStatus.NOT_APPLICABLE, detail, subject)

    @classmethod
    def check(
        cls,
        passed: bool,
        passed_detail: str,
        failed_detail: str,
        subject: Optional[str] = None,
    ) -> "Verdict":
        if passed:
            return cls.compliant(passed_detail, subject)
        return cls.non_compliant(failed_detail, subject)


@dataclass(frozen=True)
class RuleResult:
    rule_id: UUID
    resource_id: Optional[UUID]
    status: ComplianceStatus
    detail: str
    subject: Optional[str] = None

    @property
    def key(self) -> ResultKey:
        return (self.rule_id, self.resource_id, self.subject)

    @property
    def is_account_level(self) -> bool:
        return self.resource_id is None

    @classmethod
    def from_verdict(
        cls, rule_id: UUID, resource_id: Optional[UUID], verdict: Verdict
    ) -> "RuleResult":
        return cls(
            rule_id=rule_id,
            resource_id=resource_id,
            status=verdict.status,
            detail=verdict.detail,
            subject=verdict.subject,
        )


class _ResultSet:
    def __init__(self, results: Iterable[RuleResult] = ()):
        self._results: Tuple[RuleResult, ...] = tuple(results)

    def __iter__(self) -> Iterator[RuleResult]:
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({len(self._results)} results)"


class AtomicResults(_ResultSet):
    """Completed output of every non-composite rule in one evaluation run."""

    def __init__(self, results: Iterable[RuleResult] = ()):
        super().__init__(results)
        self._by_rule: dict[UUID, list[RuleResult]] = {}
        self._by_resource: dict[Tuple[UUID, UUID], RuleResult] = {}
        for result in self._results:
            self._by_rule.setdefault(result.rule_id, []).append(result)
            if result.resource_id is not None:
                self._by_resource.setdefault((result.rule_id, result.resource_id), result)

    def for_rule(self, rule_id: UUID) -> Tuple[RuleResult, ...]:
        return tuple(self._by_rule.get(rule_id, ()))

    def get(self, rule_id: UUID, resource_id: UUID) -> Optional[RuleResult]:
        return self._by_resource.get((rule_id, resource_id))

    def status_of(self, rule_id: UUID, resource_id: UUID) -> ComplianceStatus:
        result = self.get(rule_id, resource_id)
        return result.status if result else ComplianceStatus.NOT_APPLICABLE


class CompositeResults(_ResultSet):
    """Output of the composite phase; never fed back into composite evaluation."""
