from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid as PG_UUID,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.db.base import Base, JSONType


class ResourceType(str, Enum):
    COMPUTE_INSTANCE = "compute_instance"
    BLOCK_VOLUME = "block_volume"
    LOAD_BALANCER = "load_balancer"
    DATABASE = "database"
    K8S_CLUSTER = "k8s_cluster"
    FIREWALL = "firewall"
    OBJECT_BUCKET = "object_bucket"
    VPC = "vpc"


class RelationshipType(str, Enum):
    PROTECTS = "protects"
    ATTACHED_TO = "attached_to"
    CONTAINS = "contains"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Resource(Base):
    """
    A normalized provider resource.

    Rows are owned by the inventory sync and replaced wholesale on every run;
    `id` is carried over from the previous row with the same type and external id.
    """

    __tablename__ = "resources"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "resource_type", "external_id", name="uq_resource_identity"
        ),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(), primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("provider_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    plan_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    monthly_cost: Mapped[Decimal] = mapped_column(
        Numeric(12, 4), default=Decimal("0"), nullable=False
    )
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    specs: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    provider_created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    @property
    def identity_key(self) -> str:
        return f"{self.resource_type}:{self.external_id}"


class ResourceRelationship(Base):
    __tablename__ = "resource_relationships"
    __table_args__ = (
        UniqueConstraint(
            "source_id", "target_id", "relationship_type", name="uq_resource_edge"
        ),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(), primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("provider_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    source_id: Mapped[UUID] = mapped_column(
        ForeignKey("resources.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_id: Mapped[UUID] = mapped_column(
        ForeignKey("resources.id", ondelete="CASCADE"), nullable=False, index=True
    )
    relationship_type: Mapped[str] = mapped_column(String(50), nullable=False)
    # `metadata` is reserved on declarative classes.
    edge_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONType, default=dict, nullable=False
    )
    synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class ResourceSnapshot(Base):
    """Append-only record of a resource's state at one sync, with its diff."""

    __tablename__ = "resource_snapshots"
    __table_args__ = (
        Index("ix_resource_snapshots_resource_synced", "resource_id", "synced_at"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(), primary_key=True, default=uuid4)
    # Not a foreign key: resource rows are replaced each sync, history stays.
    resource_id: Mapped[UUID] = mapped_column(PG_UUID(), nullable=False)
    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("provider_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    plan_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    monthly_cost: Mapped[Decimal] = mapped_column(
        Numeric(12, 4), default=Decimal("0"), nullable=False
    )
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    specs: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    diff: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class CostSummary(Base):
    """Daily monthly-run-rate rollup per account."""

    __tablename__ = "cost_summaries"
    __table_args__ = (
        UniqueConstraint("account_id", "cost_date", name="uq_cost_summary_day"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(), primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("provider_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    cost_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    resource_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # {"compute_instance": {"count": 3, "cost": 36.0}, ...}
    resource_breakdown: Mapped[dict[str, Any]] = mapped_column(
        JSONType, default=dict, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )
