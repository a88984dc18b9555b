from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Boolean,
    UniqueConstraint,
    Uuid as PG_UUID,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy_utils import StringEncryptedType
from sqlalchemy_utils.types.encrypted.encrypted_type import AesEngine

from app.models._encryption import get_encryption_key
from app.shared.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderAccount(Base):
    """A cloud provider account whose inventory is synced and evaluated."""

    __tablename__ = "provider_accounts"

    id: Mapped[UUID] = mapped_column(PG_UUID(), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    api_token: Mapped[Optional[str]] = mapped_column(
        StringEncryptedType(String(1024), get_encryption_key, AesEngine, "pkcs5"),
        nullable=True,
    )
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_evaluated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class AccountEvent(Base):
    """One entry of the provider's account activity feed."""

    __tablename__ = "account_events"
    __table_args__ = (
        UniqueConstraint("account_id", "event_id", name="uq_account_event"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(), primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("provider_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_id: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    entity_label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    entity_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    secondary_entity_id: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    secondary_entity_type: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    secondary_entity_label: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    percent_complete: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    seen: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    event_created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
