from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from fastapi import HTTPException, status
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wbcrm import audit, events
from wbcrm.catalog.models import ICP, BusinessLine, ICPVersion, Product
from wbcrm.catalog.schemas import (
    BusinessLineCreate,
    BusinessLineRead,
    BusinessLineUpdate,
    ICPCreate,
    ICPRead,
    ICPUpdate,
    ICPVersionRead,
    ProductCreate,
    ProductRead,
    ProductUpdate,
    SlugCheckRead,
)
from wbcrm.catalog.slugs import SLUG_PATTERN, slugify, unique_slug
from wbcrm.core.rbac import require_admin
from wbcrm.platform.security import OwnedRepository, Principal, RecordNotVisibleError

INITIAL_VERSION_REASON = "Initial version"


def _slug_taken(session: Session, model: type[Any], slug: str, exclude_id: str | None = None) -> bool:
    stmt = select(model.id).where(model.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    return session.scalar(stmt.limit(1)) is not None


def _resolve_slug(session: Session, model: type[Any], name: str, requested: str | None, min_length: int = 1) -> str:
    if requested:
        if _slug_taken(session, model, requested):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="slug already exists")
        return requested

    slug = unique_slug(name, lambda candidate: _slug_taken(session, model, candidate))
    if len(slug) < min_length or not SLUG_PATTERN.match(slug):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="name does not produce a valid slug")
    return slug


def _updates(dto: BaseModel, nullable: set[str]) -> dict[str, Any]:
    return {key: value for key, value in dto.model_dump(exclude_unset=True).items() if value is not None or key in nullable}


def _commit(session: Session, conflict_detail: str) -> None:
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=conflict_detail)


def _audit(principal: Principal, entity_type: str, entity_id: str, action: str, before: Any, after: Any) -> None:
    audit.record(
        actor_user_id=principal.id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        before=before,
        after=after,
    )


@dataclass(slots=True)
class CatalogService:
    icp_repository: OwnedRepository[ICP] = field(default_factory=lambda: OwnedRepository(ICP))

    def list_business_lines(self, session: Session, *, active_only: bool = False) -> list[BusinessLineRead]:
        stmt = select(BusinessLine)
        if active_only:
            stmt = stmt.where(BusinessLine.is_active.is_(True))
        rows = session.scalars(stmt.order_by(BusinessLine.order.asc(), BusinessLine.name.asc())).all()
        return [BusinessLineRead.model_validate(row) for row in rows]

    def create_business_line(self, session: Session, principal: Principal, dto: BusinessLineCreate) -> BusinessLineRead:
        require_admin(principal)
        payload = dto.model_dump(mode="python")
        payload["slug"] = _resolve_slug(session, BusinessLine, dto.name, dto.slug)

        business_line = BusinessLine(**payload)
        session.add(business_line)
        _commit(session, "slug already exists")
        session.refresh(business_line)

        business_line_read = BusinessLineRead.model_validate(business_line)
        _audit(principal, "catalog.business_line", business_line.id, "create", None, business_line_read.model_dump(mode="json"))
        return business_line_read

    def update_business_line(
        self,
        session: Session,
        principal: Principal,
        business_line_id: str,
        dto: BusinessLineUpdate,
    ) -> BusinessLineRead:
        require_admin(principal)
        business_line = self._get_business_line(session, business_line_id)
        before = BusinessLineRead.model_validate(business_line).model_dump(mode="json")

        changes = _updates(dto, nullable={"description", "color", "icon"})
        if "slug" in changes and _slug_taken(session, BusinessLine, changes["slug"], exclude_id=business_line.id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="slug already exists")

        for field_name, value in changes.items():
            setattr(business_line, field_name, value)
        _commit(session, "slug already exists")
        session.refresh(business_line)

        business_line_read = BusinessLineRead.model_validate(business_line)
        _audit(principal, "catalog.business_line", business_line.id, "update", before, business_line_read.model_dump(mode="json"))
        return business_line_read

    def toggle_business_line(self, session: Session, principal: Principal, business_line_id: str) -> BusinessLineRead:
        require_admin(principal)
        business_line = self._get_business_line(session, business_line_id)
        business_line.is_active = not business_line.is_active
        session.commit()
        session.refresh(business_line)

        business_line_read = BusinessLineRead.model_validate(business_line)
        _audit(
            principal,
            "catalog.business_line",
            business_line.id,
            "toggle",
            {"is_active": not business_line.is_active},
            {"is_active": business_line.is_active},
        )
        return business_line_read

    def delete_business_line(self, session: Session, principal: Principal, business_line_id: str) -> None:
        require_admin(principal)
        business_line = self._get_business_line(session, business_line_id)
        product_count = session.scalar(
            select(func.count(Product.id)).where(Product.business_line_id == business_line.id)
        )
        if product_count:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"business line has {product_count} product(s)",
            )

        before = BusinessLineRead.model_validate(business_line).model_dump(mode="json")
        session.delete(business_line)
        session.commit()
        _audit(principal, "catalog.business_line", business_line_id, "delete", before, None)

    def list_products(
        self,
        session: Session,
        *,
        business_line_id: str | None = None,
        active_only: bool = False,
    ) -> list[ProductRead]:
        stmt = select(Product)
        if business_line_id:
            stmt = stmt.where(Product.business_line_id == business_line_id)
        if active_only:
            stmt = stmt.where(Product.is_active.is_(True))
        rows = session.scalars(stmt.order_by(Product.order.asc(), Product.name.asc())).all()
        return [ProductRead.model_validate(row) for row in rows]

    def create_product(self, session: Session, principal: Principal, dto: ProductCreate) -> ProductRead:
        require_admin(principal)
        self._get_business_line(session, dto.business_line_id)
        payload = dto.model_dump(mode="python")
        payload["slug"] = _resolve_slug(session, Product, dto.name, dto.slug)

        product = Product(**payload)
        session.add(product)
        _commit(session, "slug already exists")
        session.refresh(product)

        product_read = ProductRead.model_validate(product)
        _audit(principal, "catalog.product", product.id, "create", None, product_read.model_dump(mode="json"))
        return product_read

    def update_product(self, session: Session, principal: Principal, product_id: str, dto: ProductUpdate) -> ProductRead:
        require_admin(principal)
        product = self._get_product(session, product_id)
        before = ProductRead.model_validate(product).model_dump(mode="json")

        changes = _updates(dto, nullable={"description", "base_price"})
        if "business_line_id" in changes:
            self._get_business_line(session, changes["business_line_id"])
        if "slug" in changes and _slug_taken(session, Product, changes["slug"], exclude_id=product.id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="slug already exists")

        for field_name, value in changes.items():
            setattr(product, field_name, value)
        _commit(session, "slug already exists")
        session.refresh(product)

        product_read = ProductRead.model_validate(product)
        _audit(principal, "catalog.product", product.id, "update", before, product_read.model_dump(mode="json"))
        return product_read

    def delete_product(self, session: Session, principal: Principal, product_id: str) -> None:
        require_admin(principal)
        product = self._get_product(session, product_id)
        before = ProductRead.model_validate(product).model_dump(mode="json")
        session.delete(product)
        session.commit()
        _audit(principal, "catalog.product", product_id, "delete", before, None)

    def check_icp_slug(self, session: Session, *, slug: str | None, name: str | None) -> SlugCheckRead:
        candidate = slug or slugify(name or "")
        available = bool(candidate) and not _slug_taken(session, ICP, candidate)
        suggestion = candidate if available else unique_slug(candidate or (name or ""), lambda value: _slug_taken(session, ICP, value))
        return SlugCheckRead(slug=candidate, available=available, suggestion=suggestion)

    def list_icps(
        self,
        session: Session,
        principal: Principal,
        *,
        owner_selector: str | None = None,
        status_filter: str | None = None,
    ) -> list[ICPRead]:
        stmt = self.icp_repository.apply_scope_query(select(ICP), session, principal, owner_selector)
        if status_filter:
            stmt = stmt.where(ICP.status == status_filter)
        rows = session.scalars(stmt.order_by(ICP.updated_at.desc(), ICP.id.asc())).all()
        return [self._icp_read(session, row) for row in rows]

    def get_icp(self, session: Session, principal: Principal, icp_id: str) -> ICPRead:
        return self._icp_read(session, self._load_icp(session, principal, icp_id))

    def create_icp(self, session: Session, principal: Principal, dto: ICPCreate) -> ICPRead:
        slug = _resolve_slug(session, ICP, dto.name, dto.slug, min_length=2)
        icp = ICP(name=dto.name, slug=slug, content=dto.content, status=dto.status, owner_id=principal.id)
        session.add(icp)
        session.flush()
        self._append_version(session, principal, icp, 1, INITIAL_VERSION_REASON)
        _commit(session, "slug already exists")
        session.refresh(icp)

        icp_read = self._icp_read(session, icp)
        self._track(principal, "created", icp.id, None, icp_read.model_dump(mode="json"))
        return icp_read

    def update_icp(self, session: Session, principal: Principal, icp_id: str, dto: ICPUpdate) -> ICPRead:
        icp = self._load_icp(session, principal, icp_id)
        before = self._icp_read(session, icp).model_dump(mode="json")

        changes = dto.model_dump(exclude_unset=True, exclude={"change_reason"})
        changes = {key: value for key, value in changes.items() if value is not None}
        if "slug" in changes and changes["slug"] != icp.slug and _slug_taken(session, ICP, changes["slug"]):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="slug already exists")

        for field_name, value in changes.items():
            setattr(icp, field_name, value)
        self._append_version(session, principal, icp, self._next_version(session, icp.id), dto.change_reason)
        _commit(session, "slug already exists")
        session.refresh(icp)

        icp_read = self._icp_read(session, icp)
        self._track(principal, "updated", icp.id, before, icp_read.model_dump(mode="json"))
        return icp_read

    def list_icp_versions(self, session: Session, principal: Principal, icp_id: str) -> list[ICPVersionRead]:
        icp = self._load_icp(session, principal, icp_id)
        rows = session.scalars(
            select(ICPVersion).where(ICPVersion.icp_id == icp.id).order_by(ICPVersion.version_number.desc())
        ).all()
        return [ICPVersionRead.model_validate(row) for row in rows]

    def restore_icp_version(self, session: Session, principal: Principal, icp_id: str, version_number: int) -> ICPRead:
        icp = self._load_icp(session, principal, icp_id)
        snapshot = session.scalar(
            select(ICPVersion).where(ICPVersion.icp_id == icp.id, ICPVersion.version_number == version_number)
        )
        if snapshot is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="icp version not found")

        before = self._icp_read(session, icp).model_dump(mode="json")
        icp.name = snapshot.name
        icp.content = snapshot.content
        icp.status = snapshot.status
        self._append_version(
            session,
            principal,
            icp,
            self._next_version(session, icp.id),
            f"Restored from version {version_number}",
        )
        session.commit()
        session.refresh(icp)

        icp_read = self._icp_read(session, icp)
        self._track(principal, "restored", icp.id, before, icp_read.model_dump(mode="json"))
        return icp_read

    def delete_icp(self, session: Session, principal: Principal, icp_id: str) -> None:
        icp = self._load_icp(session, principal, icp_id)
        before = self._icp_read(session, icp).model_dump(mode="json")
        session.delete(icp)
        session.commit()
        self._track(principal, "deleted", icp_id, before, None)

    def _load_icp(self, session: Session, principal: Principal, icp_id: str) -> ICP:
        try:
            return self.icp_repository.require_accessible(session, principal, icp_id)
        except RecordNotVisibleError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="icp not found")

    @staticmethod
    def _next_version(session: Session, icp_id: str) -> int:
        last = session.scalar(select(func.max(ICPVersion.version_number)).where(ICPVersion.icp_id == icp_id))
        return (last or 0) + 1

    @staticmethod
    def _append_version(
        session: Session,
        principal: Principal,
        icp: ICP,
        version_number: int,
        change_reason: str | None,
    ) -> None:
        session.add(
            ICPVersion(
                icp_id=icp.id,
                version_number=version_number,
                name=icp.name,
                content=icp.content,
                status=icp.status,
                changed_by_id=principal.id,
                change_reason=change_reason,
            )
        )
        session.flush()

    def _icp_read(self, session: Session, icp: ICP) -> ICPRead:
        icp_read = ICPRead.model_validate(icp)
        icp_read.current_version = self._next_version(session, icp.id) - 1
        return icp_read

    @staticmethod
    def _track(principal: Principal, action: str, icp_id: str, before: Any, after: Any) -> None:
        _audit(principal, "catalog.icp", icp_id, action, before, after)
        events.publish(events.build_envelope(f"catalog.icp.{action}", principal.id, {"icp_id": icp_id}))

    @staticmethod
    def _get_business_line(session: Session, business_line_id: str) -> BusinessLine:
        business_line = session.scalar(select(BusinessLine).where(BusinessLine.id == business_line_id))
        if business_line is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="business line not found")
        return business_line

    @staticmethod
    def _get_product(session: Session, product_id: str) -> Product:
        product = session.scalar(select(Product).where(Product.id == product_id))
        if product is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="product not found")
        return product


catalog_service = CatalogService()
