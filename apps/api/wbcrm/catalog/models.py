from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wbcrm.authz.models import new_id, utcnow
from wbcrm.core.database import Base


class BusinessLine(Base):
    __tablename__ = "catalog_business_line"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str | None] = mapped_column(String(7), nullable=True)
    icon: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    products: Mapped[list[Product]] = relationship("Product", back_populates="business_line")


class Product(Base):
    __tablename__ = "catalog_product"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    business_line_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("catalog_business_line.id"),
        nullable=False,
        index=True,
    )
    base_price: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="BRL", server_default="BRL")
    pricing_type: Mapped[str] = mapped_column(String(16), nullable=False, default="fixed", server_default="fixed")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    business_line: Mapped[BusinessLine] = relationship("BusinessLine", back_populates="products")


class ICP(Base):
    __tablename__ = "catalog_icp"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft", server_default="draft")
    owner_id: Mapped[str] = mapped_column(String(36), ForeignKey("crm_user.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    versions: Mapped[list[ICPVersion]] = relationship(
        "ICPVersion",
        back_populates="icp",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ICPVersion.version_number.desc()",
    )


class ICPVersion(Base):
    __tablename__ = "catalog_icp_version"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    icp_id: Mapped[str] = mapped_column(String(36), ForeignKey("catalog_icp.id", ondelete="CASCADE"), nullable=False)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    changed_by_id: Mapped[str] = mapped_column(String(36), nullable=False)
    change_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    icp: Mapped[ICP] = relationship("ICP", back_populates="versions")

    __table_args__ = (UniqueConstraint("icp_id", "version_number", name="uq_catalog_icp_version_number"),)
