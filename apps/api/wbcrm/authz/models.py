from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wbcrm.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "crm_user"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="sdr", server_default="sdr")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class SharedEntity(Base):
    __tablename__ = "crm_shared_entity"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    shared_with_user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_user.id", ondelete="CASCADE"),
        nullable=False,
    )
    shared_by_user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_user.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    shared_with: Mapped[User] = relationship("User", foreign_keys=[shared_with_user_id], lazy="joined")
    shared_by: Mapped[User] = relationship("User", foreign_keys=[shared_by_user_id], lazy="joined")

    __table_args__ = (
        UniqueConstraint(
            "entity_type",
            "entity_id",
            "shared_with_user_id",
            name="uq_crm_shared_entity_grant",
        ),
        Index("ix_crm_shared_entity_lookup", "entity_type", "shared_with_user_id"),
        Index("ix_crm_shared_entity_entity", "entity_type", "entity_id"),
    )
