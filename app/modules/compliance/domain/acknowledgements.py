from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from app.models.compliance import ComplianceResult
from app.modules.compliance.domain.results import ResultKey, RuleResult


@dataclass(frozen=True)
class Acknowledgement:
    acknowledged_at: Optional[datetime]
    note: Optional[str]
    acknowledged_by: Optional[str]


class AcknowledgementIndex:
    """
    Acknowledgements that were in force before an evaluation run.

    Built from the current result rows during the read phase and applied to
    the freshly computed results during the merge phase. Keys are
    (rule_id, resource_id, subject).
    """

    def __init__(self, entries: Mapping[ResultKey, Acknowledgement]):
        self._entries = MappingProxyType(dict(entries))

    @classmethod
    def from_rows(cls, rows: Iterable[ComplianceResult]) -> "AcknowledgementIndex":
        entries: dict[ResultKey, Acknowledgement] = {}
        for row in rows:
            if not row.acknowledged:
                continue
            entries[(row.rule_id, row.resource_id, row.subject)] = Acknowledgement(
                acknowledged_at=row.acknowledged_at,
                note=row.acknowledged_note,
                acknowledged_by=row.acknowledged_by,
            )
        return cls(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: ResultKey) -> Optional[Acknowledgement]:
        return self._entries.get(key)

    def fields_for(self, result: RuleResult) -> dict[str, Any]:
        """Acknowledgement columns for a new result row."""
        ack = self._entries.get(result.key)
        if ack is None:
            return {
                "acknowledged": False,
                "acknowledged_at": None,
                "acknowledged_note": None,
                "acknowledged_by": None,
            }
        return {
            "acknowledged": True,
            "acknowledged_at": ack.acknowledged_at,
            "acknowledged_note": ack.note,
            "acknowledged_by": ack.acknowledged_by,
        }
