from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import HTTPException, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wbcrm.associations.models import (
    DealProduct,
    LeadICP,
    LeadProduct,
    OrganizationICP,
    OrganizationProduct,
    PartnerProduct,
)
from wbcrm.associations.schemas import (
    DealProductRead,
    ICPLinkCreate,
    ICPLinkUpdate,
    LeadICPRead,
    LeadProductRead,
    OrganizationICPRead,
    OrganizationProductRead,
    PartnerProductRead,
)
from wbcrm.catalog.service import CatalogService, catalog_service
from wbcrm.crm.models import Lead, Organization
from wbcrm.crm.schemas import LeadRead, OrganizationRead
from wbcrm.crm.service import (
    OwnedEntityService,
    deal_service,
    lead_repository,
    lead_service,
    organization_repository,
    organization_service,
    partner_service,
)
from wbcrm.platform.security import Principal


def _commit(session: Session, conflict_detail: str) -> None:
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=conflict_detail)


class ProductLinkService:
    """Products attached to a CRM record the caller can see.

    Access to a link follows access to its parent record.
    """

    model: type[Any]
    read_schema: type[BaseModel]
    parent_service: OwnedEntityService
    parent_field = ""
    nullable: frozenset[str] = frozenset()

    @property
    def label(self) -> str:
        return self.parent_service.label

    def list_products(self, session: Session, principal: Principal, parent_id: str) -> list[Any]:
        parent = self.parent_service._load(session, principal, parent_id)
        rows = session.scalars(
            select(self.model)
            .where(getattr(self.model, self.parent_field) == parent.id)
            .order_by(self.model.created_at.desc(), self.model.id.asc())
        ).all()
        return [self.read_schema.model_validate(row) for row in rows]

    def add_product(self, session: Session, principal: Principal, parent_id: str, dto: BaseModel) -> Any:
        parent = self.parent_service._load(session, principal, parent_id)
        values = dto.model_dump()
        product = CatalogService._get_product(session, values["product_id"])
        existing = session.scalar(
            select(self.model.id).where(
                getattr(self.model, self.parent_field) == parent.id,
                self.model.product_id == product.id,
            )
        )
        if existing is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"product already linked to {self.label}")

        link = self.model(**{self.parent_field: parent.id})
        for key, value in values.items():
            setattr(link, key, value)
        self._prepare(link, product)
        session.add(link)
        _commit(session, f"product already linked to {self.label}")
        session.refresh(link)

        link_read = self.read_schema.model_validate(link)
        self.parent_service._track(
            principal,
            "product_added",
            parent.id,
            None,
            link_read.model_dump(mode="json"),
            {"product_id": product.id},
        )
        return link_read

    def update_product(self, session: Session, principal: Principal, link_id: str, dto: BaseModel) -> Any:
        link = self._load_link(session, principal, link_id)
        before = self.read_schema.model_validate(link).model_dump(mode="json")

        for key, value in dto.model_dump(exclude_unset=True).items():
            if value is not None or key in self.nullable:
                setattr(link, key, value)
        self._prepare(link, link.product)
        session.commit()
        session.refresh(link)

        link_read = self.read_schema.model_validate(link)
        self.parent_service._track(
            principal,
            "product_updated",
            getattr(link, self.parent_field),
            before,
            link_read.model_dump(mode="json"),
            {"product_id": link.product_id},
        )
        return link_read

    def remove_product(self, session: Session, principal: Principal, link_id: str) -> None:
        link = self._load_link(session, principal, link_id)
        before = self.read_schema.model_validate(link).model_dump(mode="json")
        parent_id = getattr(link, self.parent_field)
        product_id = link.product_id
        session.delete(link)
        session.commit()
        self.parent_service._track(principal, "product_removed", parent_id, before, None, {"product_id": product_id})

    def _load_link(self, session: Session, principal: Principal, link_id: str) -> Any:
        link = session.scalar(select(self.model).where(self.model.id == link_id))
        parent = None
        if link is not None:
            parent = self.parent_service.repository.get_accessible(session, principal, getattr(link, self.parent_field))
        if parent is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{self.label} product not found")
        return link

    def _prepare(self, link: Any, product: Any) -> None:
        return None


class LeadProductService(ProductLinkService):
    model = LeadProduct
    read_schema = LeadProductRead
    parent_service = lead_service
    parent_field = "lead_id"
    nullable = frozenset({"interest_level", "estimated_value", "notes"})


class OrganizationProductService(ProductLinkService):
    model = OrganizationProduct
    read_schema = OrganizationProductRead
    parent_service = organization_service
    parent_field = "organization_id"
    nullable = frozenset({"first_purchase_at", "last_purchase_at", "notes"})


class DealProductService(ProductLinkService):
    model = DealProduct
    read_schema = DealProductRead
    parent_service = deal_service
    parent_field = "deal_id"
    nullable = frozenset({"unit_price", "description", "delivery_time"})

    def _prepare(self, link: Any, product: Any) -> None:
        if link.unit_price is None:
            link.unit_price = product.base_price or Decimal("0")
        discount = Decimal(link.discount or 0)
        line_total = Decimal(link.quantity) * Decimal(link.unit_price) * (1 - discount / 100)
        link.total_value = line_total.quantize(Decimal("0.01"))


class PartnerProductService(ProductLinkService):
    model = PartnerProduct
    read_schema = PartnerProductRead
    parent_service = partner_service
    parent_field = "partner_id"
    nullable = frozenset({"expertise_level", "commission_type", "commission_value", "notes"})


class ICPLinkService:
    """Qualification links between an ICP and a lead or organization."""

    model: type[Any]
    read_schema: type[BaseModel]
    parent_service: OwnedEntityService
    parent_field = ""

    @property
    def label(self) -> str:
        return self.parent_service.label

    def list_icps(self, session: Session, principal: Principal, parent_id: str) -> list[Any]:
        parent = self.parent_service._load(session, principal, parent_id)
        rows = session.scalars(
            select(self.model)
            .where(getattr(self.model, self.parent_field) == parent.id)
            .order_by(self.model.created_at.desc(), self.model.id.asc())
        ).all()
        return [self.read_schema.model_validate(row) for row in rows]

    def link_icp(self, session: Session, principal: Principal, parent_id: str, dto: ICPLinkCreate) -> Any:
        parent = self.parent_service._load(session, principal, parent_id)
        icp = catalog_service._load_icp(session, principal, dto.icp_id)
        if self._find(session, parent.id, icp.id) is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"icp already linked to {self.label}")

        link = self.model(**{self.parent_field: parent.id}, icp_id=icp.id, match_score=dto.match_score, notes=dto.notes)
        session.add(link)
        _commit(session, f"icp already linked to {self.label}")
        session.refresh(link)

        link_read = self.read_schema.model_validate(link)
        self.parent_service._track(principal, "icp_linked", parent.id, None, link_read.model_dump(mode="json"), {"icp_id": icp.id})
        return link_read

    def update_icp_link(
        self,
        session: Session,
        principal: Principal,
        parent_id: str,
        icp_id: str,
        dto: ICPLinkUpdate,
    ) -> Any:
        link = self._require_link(session, principal, parent_id, icp_id)
        before = self.read_schema.model_validate(link).model_dump(mode="json")

        for key, value in dto.model_dump(exclude_unset=True).items():
            setattr(link, key, value)
        session.commit()
        session.refresh(link)

        link_read = self.read_schema.model_validate(link)
        self.parent_service._track(
            principal,
            "icp_link_updated",
            parent_id,
            before,
            link_read.model_dump(mode="json"),
            {"icp_id": icp_id},
        )
        return link_read

    def unlink_icp(self, session: Session, principal: Principal, parent_id: str, icp_id: str) -> None:
        link = self._require_link(session, principal, parent_id, icp_id)
        before = self.read_schema.model_validate(link).model_dump(mode="json")
        session.delete(link)
        session.commit()
        self.parent_service._track(principal, "icp_unlinked", parent_id, before, None, {"icp_id": icp_id})

    def _require_link(self, session: Session, principal: Principal, parent_id: str, icp_id: str) -> Any:
        parent = self.parent_service._load(session, principal, parent_id)
        link = self._find(session, parent.id, icp_id)
        if link is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"icp not linked to {self.label}")
        return link

    def _find(self, session: Session, parent_id: str, icp_id: str) -> Any:
        return session.scalar(
            select(self.model).where(getattr(self.model, self.parent_field) == parent_id, self.model.icp_id == icp_id)
        )


class LeadICPService(ICPLinkService):
    model = LeadICP
    read_schema = LeadICPRead
    parent_service = lead_service
    parent_field = "lead_id"


class OrganizationICPService(ICPLinkService):
    model = OrganizationICP
    read_schema = OrganizationICPRead
    parent_service = organization_service
    parent_field = "organization_id"


def list_icp_leads(session: Session, principal: Principal, icp_id: str) -> list[LeadRead]:
    icp = catalog_service._load_icp(session, principal, icp_id)
    stmt = lead_repository.apply_scope_query(
        select(Lead).join(LeadICP, LeadICP.lead_id == Lead.id).where(LeadICP.icp_id == icp.id),
        session,
        principal,
    )
    rows = session.scalars(stmt.order_by(LeadICP.created_at.desc(), Lead.id.asc())).all()
    return [LeadRead.model_validate(row) for row in rows]


def list_icp_organizations(session: Session, principal: Principal, icp_id: str) -> list[OrganizationRead]:
    icp = catalog_service._load_icp(session, principal, icp_id)
    stmt = organization_repository.apply_scope_query(
        select(Organization)
        .join(OrganizationICP, OrganizationICP.organization_id == Organization.id)
        .where(OrganizationICP.icp_id == icp.id),
        session,
        principal,
    )
    rows = session.scalars(stmt.order_by(OrganizationICP.created_at.desc(), Organization.id.asc())).all()
    return [OrganizationRead.model_validate(row) for row in rows]


lead_product_service = LeadProductService()
organization_product_service = OrganizationProductService()
deal_product_service = DealProductService()
partner_product_service = PartnerProductService()
lead_icp_service = LeadICPService()
organization_icp_service = OrganizationICPService()
