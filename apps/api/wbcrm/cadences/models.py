from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wbcrm.authz.models import new_id, utcnow
from wbcrm.core.database import Base
from wbcrm.crm.models import Activity


class Cadence(Base):
    __tablename__ = "crm_cadence"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    objective: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False, default=14, server_default="14")
    icp_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("catalog_icp.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft", server_default="draft")
    owner_id: Mapped[str] = mapped_column(String(36), ForeignKey("crm_user.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    steps: Mapped[list[CadenceStep]] = relationship(
        "CadenceStep",
        back_populates="cadence",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: [CadenceStep.day_number, CadenceStep.order],
    )


class CadenceStep(Base):
    __tablename__ = "crm_cadence_step"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    cadence_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_cadence.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day_number: Mapped[int] = mapped_column(Integer, nullable=False)
    channel: Mapped[str] = mapped_column(String(16), nullable=False)
    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    cadence: Mapped[Cadence] = relationship("Cadence", back_populates="steps")


class LeadCadence(Base):
    __tablename__ = "crm_lead_cadence"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    lead_id: Mapped[str] = mapped_column(String(36), ForeignKey("crm_lead.id", ondelete="CASCADE"), nullable=False)
    cadence_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_cadence.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active", server_default="active")
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    paused_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str] = mapped_column(String(36), ForeignKey("crm_user.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    cadence: Mapped[Cadence] = relationship("Cadence", lazy="joined")
    activities: Mapped[list[LeadCadenceActivity]] = relationship(
        "LeadCadenceActivity",
        back_populates="lead_cadence",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="LeadCadenceActivity.scheduled_date",
    )

    __table_args__ = (UniqueConstraint("lead_id", "cadence_id", name="uq_crm_lead_cadence"),)


class LeadCadenceActivity(Base):
    __tablename__ = "crm_lead_cadence_activity"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    lead_cadence_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_lead_cadence.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    cadence_step_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("crm_cadence_step.id", ondelete="SET NULL"),
        nullable=True,
    )
    activity_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_activity.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)

    lead_cadence: Mapped[LeadCadence] = relationship("LeadCadence", back_populates="activities")
    activity: Mapped[Activity] = relationship("Activity", lazy="joined")
