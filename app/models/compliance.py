from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid as PG_UUID,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.db.base import Base, JSONType


class ComplianceStatus(str, Enum):
    COMPLIANT = "compliant"
    NON_COMPLIANT = "non_compliant"
    NOT_APPLICABLE = "not_applicable"


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


COMPOSITE_CONDITION = "composite"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ComplianceRule(Base):
    """
    A configurable compliance check.

    `account_id` is NULL for global rules (the built-in catalogue). Composite
    rules carry `{"operator": ..., "rule_ids": [...]}` in `condition_config`.
    """

    __tablename__ = "compliance_rules"

    id: Mapped[UUID] = mapped_column(PG_UUID(), primary_key=True, default=uuid4)
    account_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("provider_accounts.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resource_types: Mapped[list[str]] = mapped_column(
        JSONType, default=list, nullable=False
    )
    condition_type: Mapped[str] = mapped_column(String(100), nullable=False)
    condition_config: Mapped[dict[str, Any]] = mapped_column(
        JSONType, default=dict, nullable=False
    )
    severity: Mapped[str] = mapped_column(
        String(20), default=Severity.WARNING.value, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_builtin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    @property
    def is_composite(self) -> bool:
        return self.condition_type == COMPOSITE_CONDITION


class ComplianceResult(Base):
    """
    Current verdict of one rule against one resource or account-level subject.

    The full set for an account is replaced on each evaluation run; only the
    acknowledgement columns carry over for an unchanged (rule, resource, subject).
    """

    __tablename__ = "compliance_results"
    __table_args__ = (
        Index("ix_compliance_results_account_rule", "account_id", "rule_id"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(), primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("provider_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rule_id: Mapped[UUID] = mapped_column(
        ForeignKey("compliance_rules.id", ondelete="CASCADE"), nullable=False
    )
    # Not a foreign key: resource ids are stable across syncs but rows are replaced.
    resource_id: Mapped[Optional[UUID]] = mapped_column(PG_UUID(), nullable=True)
    subject: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    acknowledged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    acknowledged_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    evaluated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class ComplianceScoreHistory(Base):
    """Append-only score snapshot written once per evaluation run."""

    __tablename__ = "compliance_score_history"
    __table_args__ = (
        Index("ix_score_history_account_evaluated", "account_id", "evaluated_at"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(), primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("provider_accounts.id", ondelete="CASCADE"), nullable=False
    )
    evaluated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    total_results: Mapped[int] = mapped_column(Integer, nullable=False)
    compliant_count: Mapped[int] = mapped_column(Integer, nullable=False)
    non_compliant_count: Mapped[int] = mapped_column(Integer, nullable=False)
    not_applicable_count: Mapped[int] = mapped_column(Integer, nullable=False)
    acknowledged_count: Mapped[int] = mapped_column(Integer, nullable=False)
    compliance_score: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2), nullable=True
    )
    total_rules_evaluated: Mapped[int] = mapped_column(Integer, nullable=False)
    rule_breakdown: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, default=list, nullable=False
    )


class ResourceComplianceHistory(Base):
    """Per-resource record of every rule verdict from one evaluation run."""

    __tablename__ = "resource_compliance_history"
    __table_args__ = (
        Index(
            "ix_resource_compliance_history_resource", "resource_id", "evaluated_at"
        ),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(), primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("provider_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    resource_id: Mapped[UUID] = mapped_column(PG_UUID(), nullable=False)
    evaluated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    # [{"rule_id", "rule_name", "severity", "status", "detail", "acknowledged"}]
    results: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, default=list, nullable=False
    )
