from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wbcrm.authz.models import new_id, utcnow
from wbcrm.catalog.models import ICP, Product
from wbcrm.core.database import Base


class LeadProduct(Base):
    __tablename__ = "crm_lead_product"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    lead_id: Mapped[str] = mapped_column(String(36), ForeignKey("crm_lead.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("catalog_product.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    interest_level: Mapped[str | None] = mapped_column(String(16), nullable=True)
    estimated_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    product: Mapped[Product] = relationship("Product", lazy="joined")

    __table_args__ = (UniqueConstraint("lead_id", "product_id", name="uq_crm_lead_product"),)


class OrganizationProduct(Base):
    __tablename__ = "crm_organization_product"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_organization.id", ondelete="CASCADE"),
        nullable=False,
    )
    product_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("catalog_product.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="interested", server_default="interested")
    first_purchase_at: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_purchase_at: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_purchases: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_revenue: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    product: Mapped[Product] = relationship("Product", lazy="joined")

    __table_args__ = (UniqueConstraint("organization_id", "product_id", name="uq_crm_organization_product"),)


class DealProduct(Base):
    __tablename__ = "crm_deal_product"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    deal_id: Mapped[str] = mapped_column(String(36), ForeignKey("crm_deal.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("catalog_product.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"), server_default="0")
    total_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_time: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    product: Mapped[Product] = relationship("Product", lazy="joined")

    __table_args__ = (UniqueConstraint("deal_id", "product_id", name="uq_crm_deal_product"),)


class PartnerProduct(Base):
    __tablename__ = "crm_partner_product"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    partner_id: Mapped[str] = mapped_column(String(36), ForeignKey("crm_partner.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("catalog_product.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expertise_level: Mapped[str | None] = mapped_column(String(16), nullable=True)
    can_refer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    can_deliver: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    commission_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    commission_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    product: Mapped[Product] = relationship("Product", lazy="joined")

    __table_args__ = (UniqueConstraint("partner_id", "product_id", name="uq_crm_partner_product"),)


class ICPLinkMixin:
    """Qualification fields shared by lead and organization ICP links."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    icp_id: Mapped[str] = mapped_column(String(36), ForeignKey("catalog_icp.id", ondelete="CASCADE"), nullable=False, index=True)
    match_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    icp_fit_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    real_decision_maker: Mapped[str | None] = mapped_column(String(32), nullable=True)
    real_decision_maker_other: Mapped[str | None] = mapped_column(String(100), nullable=True)
    perceived_urgency: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    business_moment: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    current_platforms: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    fragmentation_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    main_declared_pain: Mapped[str | None] = mapped_column(String(32), nullable=True)
    strategic_desire: Mapped[str | None] = mapped_column(String(32), nullable=True)
    perceived_technical_complexity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    purchase_trigger: Mapped[str | None] = mapped_column(String(500), nullable=True)
    non_closing_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)
    estimated_decision_time: Mapped[str | None] = mapped_column(String(32), nullable=True)
    expansion_potential: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


ICP_LINK_FIELDS = (
    "match_score",
    "notes",
    "icp_fit_status",
    "real_decision_maker",
    "real_decision_maker_other",
    "perceived_urgency",
    "business_moment",
    "current_platforms",
    "fragmentation_level",
    "main_declared_pain",
    "strategic_desire",
    "perceived_technical_complexity",
    "purchase_trigger",
    "non_closing_reason",
    "estimated_decision_time",
    "expansion_potential",
)


class LeadICP(ICPLinkMixin, Base):
    __tablename__ = "crm_lead_icp"

    lead_id: Mapped[str] = mapped_column(String(36), ForeignKey("crm_lead.id", ondelete="CASCADE"), nullable=False)

    icp: Mapped[ICP] = relationship("ICP", lazy="joined")

    __table_args__ = (UniqueConstraint("lead_id", "icp_id", name="uq_crm_lead_icp"),)


class OrganizationICP(ICPLinkMixin, Base):
    __tablename__ = "crm_organization_icp"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_organization.id", ondelete="CASCADE"),
        nullable=False,
    )

    icp: Mapped[ICP] = relationship("ICP", lazy="joined")

    __table_args__ = (UniqueConstraint("organization_id", "icp_id", name="uq_crm_organization_icp"),)
