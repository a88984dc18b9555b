from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EvaluationSummary(BaseModel):
    """Outcome of one evaluation run. Counts exclude acknowledged results."""

    account_id: str
    evaluated: int
    compliant: int
    non_compliant: int
    not_applicable: int = 0
    acknowledged: int = 0
    score: float | None = None


class ComplianceResultResponse(BaseModel):
    id: UUID
    account_id: UUID
    rule_id: UUID
    resource_id: UUID | None
    subject: str | None
    status: str
    detail: str | None
    acknowledged: bool
    acknowledged_at: datetime | None
    acknowledged_note: str | None
    acknowledged_by: str | None
    evaluated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ScoreHistoryResponse(BaseModel):
    id: UUID
    evaluated_at: datetime
    total_results: int
    compliant_count: int
    non_compliant_count: int
    not_applicable_count: int
    acknowledged_count: int
    compliance_score: float | None
    total_rules_evaluated: int
    rule_breakdown: list[dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class AcknowledgeRequest(BaseModel):
    """Request body for acknowledging a compliance result."""

    note: str = Field(..., max_length=2000, description="Why the finding is accepted")
    acknowledged_by: str | None = Field(default=None, max_length=255)

    @field_validator("note")
    @classmethod
    def _note_not_blank(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("note must not be empty")
        return normalized


class RefreshRequest(BaseModel):
    """Request body for a manual refresh. Omitting account_ids refreshes every account."""

    account_ids: list[UUID] | None = None
    skip_sync: bool = False
    skip_eval: bool = False
