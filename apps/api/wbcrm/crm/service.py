from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi import HTTPException, status
from pydantic import BaseModel
from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wbcrm import audit, events
from wbcrm.associations.models import ICP_LINK_FIELDS, DealProduct, LeadICP, OrganizationICP
from wbcrm.authz.models import utcnow
from wbcrm.crm.models import (
    Activity,
    Contact,
    Deal,
    DealStageHistory,
    Lead,
    LeadContact,
    Organization,
    Partner,
    Pipeline,
    Stage,
)
from wbcrm.crm.schemas import (
    ActivityCreate,
    ActivityRead,
    ActivityUpdate,
    ContactCreate,
    ContactRead,
    ContactUpdate,
    DealCreate,
    DealRead,
    DealStageHistoryRead,
    DealUpdate,
    LeadContactCreate,
    LeadContactRead,
    LeadContactUpdate,
    LeadConvertResult,
    LeadCreate,
    LeadRead,
    LeadUpdate,
    OrganizationCreate,
    OrganizationRead,
    OrganizationUpdate,
    PartnerCreate,
    PartnerRead,
    PartnerUpdate,
    PipelineCreate,
    PipelineRead,
    StageCreate,
    StageRead,
    StageUpdate,
)
from wbcrm.core.rbac import require_admin
from wbcrm.platform.security import EntityType, OwnedRepository, Principal, RecordNotVisibleError

CLOSED_DEAL_STATUSES = {"won", "lost"}
QUALIFIED_STAGE_PROBABILITY = 50

lead_repository: OwnedRepository[Lead] = OwnedRepository(Lead, EntityType.LEAD)
contact_repository: OwnedRepository[Contact] = OwnedRepository(Contact, EntityType.CONTACT)
organization_repository: OwnedRepository[Organization] = OwnedRepository(Organization, EntityType.ORGANIZATION)
partner_repository: OwnedRepository[Partner] = OwnedRepository(Partner, EntityType.PARTNER)
deal_repository: OwnedRepository[Deal] = OwnedRepository(Deal, EntityType.DEAL)
activity_repository: OwnedRepository[Activity] = OwnedRepository(Activity)


def _apply_changes(record: Any, changes: dict[str, Any]) -> None:
    for field_name, value in changes.items():
        setattr(record, field_name, value)


def _changes(dto: BaseModel, non_nullable: tuple[str, ...] = ()) -> dict[str, Any]:
    """Fields the client sent, minus explicit nulls on columns that cannot be null."""

    changes = dto.model_dump(exclude_unset=True)
    return {key: value for key, value in changes.items() if value is not None or key not in non_nullable}


def _search_pattern(value: str) -> str:
    return f"%{value.strip()}%"


class OwnedEntityService:
    """Shared load/audit plumbing for records scoped by ``owner_id``."""

    label = ""
    repository: OwnedRepository[Any]

    def _load(self, session: Session, principal: Principal, entity_id: str) -> Any:
        try:
            return self.repository.require_accessible(session, principal, entity_id)
        except RecordNotVisibleError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{self.label} not found")

    def _scoped(self, session: Session, principal: Principal, owner_selector: str | None = None) -> Select[Any]:
        return self.repository.apply_scope_query(select(self.repository.model), session, principal, owner_selector)

    def _track(
        self,
        principal: Principal,
        action: str,
        entity_id: str,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        audit.record(
            actor_user_id=principal.id,
            entity_type=f"crm.{self.label}",
            entity_id=entity_id,
            action=action,
            before=before,
            after=after,
        )
        events.publish(
            events.build_envelope(
                f"crm.{self.label}.{action}",
                principal.id,
                {f"{self.label}_id": entity_id, **(payload or {})},
            )
        )


class LeadService(OwnedEntityService):
    label = "lead"
    repository = lead_repository

    def list_leads(
        self,
        session: Session,
        principal: Principal,
        filters: dict[str, Any],
        owner_selector: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LeadRead]:
        stmt = self._scoped(session, principal, owner_selector)
        if filters.get("status"):
            stmt = stmt.where(Lead.status == filters["status"])
        if filters.get("quality"):
            stmt = stmt.where(Lead.quality == filters["quality"])
        if filters.get("search"):
            pattern = _search_pattern(str(filters["search"]))
            stmt = stmt.where(
                Lead.business_name.ilike(pattern) | Lead.registered_name.ilike(pattern) | Lead.email.ilike(pattern)
            )

        rows = session.scalars(stmt.order_by(Lead.created_at.desc(), Lead.id.asc()).offset(offset).limit(limit)).all()
        return [LeadRead.model_validate(row) for row in rows]

    def get_lead(self, session: Session, principal: Principal, lead_id: str) -> LeadRead:
        return LeadRead.model_validate(self._load(session, principal, lead_id))

    def create_lead(self, session: Session, principal: Principal, dto: LeadCreate) -> LeadRead:
        payload = dto.model_dump(exclude={"contacts"})
        lead = Lead(owner_id=principal.id)
        _apply_changes(lead, payload)
        session.add(lead)
        session.flush()

        primary_taken = False
        for contact_dto in dto.contacts:
            is_primary = contact_dto.is_primary and not primary_taken
            primary_taken = primary_taken or is_primary
            contact = LeadContact(lead_id=lead.id)
            _apply_changes(contact, contact_dto.model_dump(exclude={"is_primary"}))
            contact.is_primary = is_primary
            session.add(contact)

        session.commit()
        session.refresh(lead)
        lead_read = LeadRead.model_validate(lead)
        self._track(principal, "created", lead.id, None, lead_read.model_dump(mode="json"), {"status": lead.status})
        return lead_read

    def update_lead(self, session: Session, principal: Principal, lead_id: str, dto: LeadUpdate) -> LeadRead:
        lead = self._load(session, principal, lead_id)
        before = LeadRead.model_validate(lead).model_dump(mode="json")

        _apply_changes(lead, _changes(dto, ("business_name", "quality", "status")))
        session.commit()
        session.refresh(lead)

        lead_read = LeadRead.model_validate(lead)
        self._track(principal, "updated", lead.id, before, lead_read.model_dump(mode="json"), {"status": lead.status})
        return lead_read

    def delete_lead(self, session: Session, principal: Principal, lead_id: str) -> None:
        lead = self._load(session, principal, lead_id)
        if lead.converted_at is not None:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="converted lead cannot be deleted")

        before = LeadRead.model_validate(lead).model_dump(mode="json")
        session.delete(lead)
        session.commit()
        self._track(principal, "deleted", lead_id, before, None)

    def list_lead_contacts(self, session: Session, principal: Principal, lead_id: str) -> list[LeadContactRead]:
        lead = self._load(session, principal, lead_id)
        return [LeadContactRead.model_validate(item) for item in lead.contacts]

    def create_lead_contact(
        self,
        session: Session,
        principal: Principal,
        lead_id: str,
        dto: LeadContactCreate,
    ) -> LeadContactRead:
        lead = self._load(session, principal, lead_id)
        if dto.is_primary:
            self._clear_primary(session, lead.id)

        contact = LeadContact(lead_id=lead.id)
        _apply_changes(contact, dto.model_dump())
        session.add(contact)
        session.commit()
        session.refresh(contact)

        contact_read = LeadContactRead.model_validate(contact)
        self._track(principal, "contact_added", lead.id, None, contact_read.model_dump(mode="json"))
        return contact_read

    def update_lead_contact(
        self,
        session: Session,
        principal: Principal,
        lead_contact_id: str,
        dto: LeadContactUpdate,
    ) -> LeadContactRead:
        contact = self._load_lead_contact(session, principal, lead_contact_id)
        before = LeadContactRead.model_validate(contact).model_dump(mode="json")

        changes = _changes(dto, ("name", "is_primary"))
        if changes.get("is_primary"):
            self._clear_primary(session, contact.lead_id, exclude_id=contact.id)
        _apply_changes(contact, changes)
        session.commit()
        session.refresh(contact)

        contact_read = LeadContactRead.model_validate(contact)
        self._track(principal, "contact_updated", contact.lead_id, before, contact_read.model_dump(mode="json"))
        return contact_read

    def delete_lead_contact(self, session: Session, principal: Principal, lead_contact_id: str) -> None:
        contact = self._load_lead_contact(session, principal, lead_contact_id)
        if contact.converted_to_contact_id is not None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="converted lead contact cannot be deleted",
            )

        lead_id = contact.lead_id
        before = LeadContactRead.model_validate(contact).model_dump(mode="json")
        session.delete(contact)
        session.commit()
        self._track(principal, "contact_removed", lead_id, before, None)

    def convert_lead(self, session: Session, principal: Principal, lead_id: str) -> LeadConvertResult:
        lead = self._load(session, principal, lead_id)
        if lead.converted_at is not None or lead.converted_organization_id is not None:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="lead already converted")
        if not lead.contacts:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="lead needs at least one contact to convert",
            )

        organization = Organization(
            name=lead.business_name,
            legal_name=lead.registered_name,
            website=lead.website,
            phone=lead.phone,
            email=lead.email,
            city=lead.city,
            state=lead.state,
            country=lead.country,
            description=lead.description,
            source_lead_id=lead.id,
            owner_id=principal.id,
        )
        session.add(organization)
        session.flush()

        contact_ids: list[str] = []
        for lead_contact in lead.contacts:
            contact = Contact(
                name=lead_contact.name,
                email=lead_contact.email,
                phone=lead_contact.phone,
                whatsapp=lead_contact.whatsapp,
                role=lead_contact.role,
                organization_id=organization.id,
                is_primary=lead_contact.is_primary,
                source_lead_contact_id=lead_contact.id,
                owner_id=principal.id,
            )
            session.add(contact)
            session.flush()
            lead_contact.converted_to_contact_id = contact.id
            contact_ids.append(contact.id)

        icp_ids: list[str] = []
        for lead_icp in session.scalars(select(LeadICP).where(LeadICP.lead_id == lead.id)).all():
            organization_icp = OrganizationICP(organization_id=organization.id, icp_id=lead_icp.icp_id)
            _apply_changes(organization_icp, {name: getattr(lead_icp, name) for name in ICP_LINK_FIELDS})
            session.add(organization_icp)
            icp_ids.append(lead_icp.icp_id)

        before = LeadRead.model_validate(lead).model_dump(mode="json")
        lead.status = "qualified"
        lead.converted_at = utcnow()
        lead.converted_organization_id = organization.id
        session.commit()
        session.refresh(lead)

        lead_read = LeadRead.model_validate(lead)
        self._track(
            principal,
            "converted",
            lead.id,
            before,
            lead_read.model_dump(mode="json"),
            {"organization_id": organization.id, "contact_ids": contact_ids, "icp_ids": icp_ids},
        )
        return LeadConvertResult(lead=lead_read, organization_id=organization.id, contact_ids=contact_ids)

    def _load_lead_contact(self, session: Session, principal: Principal, lead_contact_id: str) -> LeadContact:
        contact = session.scalar(select(LeadContact).where(LeadContact.id == lead_contact_id))
        if contact is None or not self.repository.can_access_record(session, principal, contact.lead):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="lead contact not found")
        return contact

    @staticmethod
    def _clear_primary(session: Session, lead_id: str, exclude_id: str | None = None) -> None:
        stmt = update(LeadContact).where(LeadContact.lead_id == lead_id, LeadContact.is_primary.is_(True))
        if exclude_id is not None:
            stmt = stmt.where(LeadContact.id != exclude_id)
        session.execute(stmt.values(is_primary=False))


class ContactService(OwnedEntityService):
    label = "contact"
    repository = contact_repository

    def list_contacts(
        self,
        session: Session,
        principal: Principal,
        filters: dict[str, Any],
        owner_selector: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ContactRead]:
        stmt = self._scoped(session, principal, owner_selector)
        if filters.get("organization_id"):
            stmt = stmt.where(Contact.organization_id == filters["organization_id"])
        if filters.get("search"):
            pattern = _search_pattern(str(filters["search"]))
            stmt = stmt.where(Contact.name.ilike(pattern) | Contact.email.ilike(pattern))

        rows = session.scalars(stmt.order_by(Contact.name.asc(), Contact.id.asc()).offset(offset).limit(limit)).all()
        return [ContactRead.model_validate(row) for row in rows]

    def get_contact(self, session: Session, principal: Principal, contact_id: str) -> ContactRead:
        return ContactRead.model_validate(self._load(session, principal, contact_id))

    def create_contact(self, session: Session, principal: Principal, dto: ContactCreate) -> ContactRead:
        if dto.organization_id is not None:
            organization_service._load(session, principal, dto.organization_id)
            if dto.is_primary:
                self._clear_primary(session, dto.organization_id)

        contact = Contact(owner_id=principal.id)
        _apply_changes(contact, dto.model_dump())
        session.add(contact)
        session.commit()
        session.refresh(contact)

        contact_read = ContactRead.model_validate(contact)
        self._track(principal, "created", contact.id, None, contact_read.model_dump(mode="json"))
        return contact_read

    def update_contact(self, session: Session, principal: Principal, contact_id: str, dto: ContactUpdate) -> ContactRead:
        contact = self._load(session, principal, contact_id)
        before = ContactRead.model_validate(contact).model_dump(mode="json")

        changes = _changes(dto, ("name", "is_primary"))
        if changes.get("organization_id"):
            organization_service._load(session, principal, changes["organization_id"])
        organization_id = changes.get("organization_id", contact.organization_id)
        if changes.get("is_primary") and organization_id is not None:
            self._clear_primary(session, organization_id, exclude_id=contact.id)

        _apply_changes(contact, changes)
        session.commit()
        session.refresh(contact)

        contact_read = ContactRead.model_validate(contact)
        self._track(principal, "updated", contact.id, before, contact_read.model_dump(mode="json"))
        return contact_read

    def delete_contact(self, session: Session, principal: Principal, contact_id: str) -> None:
        contact = self._load(session, principal, contact_id)
        before = ContactRead.model_validate(contact).model_dump(mode="json")
        session.delete(contact)
        session.commit()
        self._track(principal, "deleted", contact_id, before, None)

    @staticmethod
    def _clear_primary(session: Session, organization_id: str, exclude_id: str | None = None) -> None:
        stmt = update(Contact).where(Contact.organization_id == organization_id, Contact.is_primary.is_(True))
        if exclude_id is not None:
            stmt = stmt.where(Contact.id != exclude_id)
        session.execute(stmt.values(is_primary=False))


class OrganizationService(OwnedEntityService):
    label = "organization"
    repository = organization_repository

    def list_organizations(
        self,
        session: Session,
        principal: Principal,
        filters: dict[str, Any],
        owner_selector: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[OrganizationRead]:
        stmt = self._scoped(session, principal, owner_selector)
        if filters.get("search"):
            pattern = _search_pattern(str(filters["search"]))
            stmt = stmt.where(Organization.name.ilike(pattern) | Organization.website.ilike(pattern))
        if filters.get("has_hosting") is not None:
            stmt = stmt.where(Organization.has_hosting.is_(bool(filters["has_hosting"])))

        rows = session.scalars(
            stmt.order_by(Organization.name.asc(), Organization.id.asc()).offset(offset).limit(limit)
        ).all()
        return [OrganizationRead.model_validate(row) for row in rows]

    def get_organization(self, session: Session, principal: Principal, organization_id: str) -> OrganizationRead:
        return OrganizationRead.model_validate(self._load(session, principal, organization_id))

    def create_organization(self, session: Session, principal: Principal, dto: OrganizationCreate) -> OrganizationRead:
        organization = Organization(owner_id=principal.id)
        _apply_changes(organization, dto.model_dump())
        session.add(organization)
        session.commit()
        session.refresh(organization)

        organization_read = OrganizationRead.model_validate(organization)
        self._track(principal, "created", organization.id, None, organization_read.model_dump(mode="json"))
        return organization_read

    def update_organization(
        self,
        session: Session,
        principal: Principal,
        organization_id: str,
        dto: OrganizationUpdate,
    ) -> OrganizationRead:
        organization = self._load(session, principal, organization_id)
        before = OrganizationRead.model_validate(organization).model_dump(mode="json")

        changes = _changes(dto, ("name", "has_hosting", "hosting_reminder_days"))
        _apply_changes(organization, changes)
        session.commit()
        session.refresh(organization)

        organization_read = OrganizationRead.model_validate(organization)
        self._track(principal, "updated", organization.id, before, organization_read.model_dump(mode="json"))
        return organization_read

    def delete_organization(self, session: Session, principal: Principal, organization_id: str) -> None:
        organization = self._load(session, principal, organization_id)
        before = OrganizationRead.model_validate(organization).model_dump(mode="json")
        session.delete(organization)
        session.commit()
        self._track(principal, "deleted", organization_id, before, None)


class PartnerService(OwnedEntityService):
    label = "partner"
    repository = partner_repository

    def list_partners(
        self,
        session: Session,
        principal: Principal,
        filters: dict[str, Any],
        owner_selector: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[PartnerRead]:
        stmt = self._scoped(session, principal, owner_selector)
        if filters.get("search"):
            pattern = _search_pattern(str(filters["search"]))
            stmt = stmt.where(
                Partner.name.ilike(pattern) | Partner.partner_type.ilike(pattern) | Partner.expertise.ilike(pattern)
            )

        rows = session.scalars(stmt.order_by(Partner.name.asc(), Partner.id.asc()).offset(offset).limit(limit)).all()
        return [PartnerRead.model_validate(row) for row in rows]

    def get_partner(self, session: Session, principal: Principal, partner_id: str) -> PartnerRead:
        return PartnerRead.model_validate(self._load(session, principal, partner_id))

    def create_partner(self, session: Session, principal: Principal, dto: PartnerCreate) -> PartnerRead:
        partner = Partner(owner_id=principal.id)
        _apply_changes(partner, dto.model_dump())
        session.add(partner)
        session.commit()
        session.refresh(partner)

        partner_read = PartnerRead.model_validate(partner)
        self._track(principal, "created", partner.id, None, partner_read.model_dump(mode="json"))
        return partner_read

    def update_partner(self, session: Session, principal: Principal, partner_id: str, dto: PartnerUpdate) -> PartnerRead:
        partner = self._load(session, principal, partner_id)
        before = PartnerRead.model_validate(partner).model_dump(mode="json")

        changes = _changes(dto, ("name", "partner_type"))
        _apply_changes(partner, changes)
        session.commit()
        session.refresh(partner)

        partner_read = PartnerRead.model_validate(partner)
        self._track(principal, "updated", partner.id, before, partner_read.model_dump(mode="json"))
        return partner_read

    def touch_partner(
        self, session: Session, principal: Principal, partner_id: str, today: date | None = None
    ) -> PartnerRead:
        """Stamp today as the last time someone reached the partner."""

        partner = self._load(session, principal, partner_id)
        before = PartnerRead.model_validate(partner).model_dump(mode="json")
        partner.last_contact_date = today or date.today()
        session.commit()
        session.refresh(partner)

        partner_read = PartnerRead.model_validate(partner)
        self._track(principal, "contacted", partner.id, before, partner_read.model_dump(mode="json"))
        return partner_read

    def delete_partner(self, session: Session, principal: Principal, partner_id: str) -> None:
        partner = self._load(session, principal, partner_id)
        before = PartnerRead.model_validate(partner).model_dump(mode="json")
        session.delete(partner)
        session.commit()
        self._track(principal, "deleted", partner_id, before, None)


class PipelineService:
    def list_pipelines(self, session: Session) -> list[PipelineRead]:
        rows = session.scalars(select(Pipeline).order_by(Pipeline.is_default.desc(), Pipeline.name.asc())).all()
        return [PipelineRead.model_validate(row) for row in rows]

    def get_pipeline(self, session: Session, pipeline_id: str) -> PipelineRead:
        return PipelineRead.model_validate(self._get_pipeline(session, pipeline_id))

    def create_pipeline(self, session: Session, principal: Principal, dto: PipelineCreate) -> PipelineRead:
        require_admin(principal)
        if dto.is_default:
            session.execute(update(Pipeline).where(Pipeline.is_default.is_(True)).values(is_default=False))

        pipeline = Pipeline(name=dto.name.strip(), is_default=dto.is_default)
        for stage_dto in dto.stages:
            pipeline.stages.append(Stage(name=stage_dto.name, order=stage_dto.order, probability=stage_dto.probability))
        session.add(pipeline)
        self._commit(session, "stage order already used in pipeline")
        session.refresh(pipeline)

        pipeline_read = PipelineRead.model_validate(pipeline)
        audit.record(
            actor_user_id=principal.id,
            entity_type="crm.pipeline",
            entity_id=pipeline.id,
            action="create",
            before=None,
            after=pipeline_read.model_dump(mode="json"),
        )
        return pipeline_read

    def add_stage(self, session: Session, principal: Principal, pipeline_id: str, dto: StageCreate) -> StageRead:
        require_admin(principal)
        pipeline = self._get_pipeline(session, pipeline_id)
        stage = Stage(pipeline_id=pipeline.id, name=dto.name, order=dto.order, probability=dto.probability)
        session.add(stage)
        self._commit(session, "stage order already used in pipeline")
        session.refresh(stage)
        return StageRead.model_validate(stage)

    def update_stage(self, session: Session, principal: Principal, stage_id: str, dto: StageUpdate) -> StageRead:
        require_admin(principal)
        stage = self._get_stage(session, stage_id)
        changes = _changes(dto, ("name", "order", "probability"))
        _apply_changes(stage, changes)
        self._commit(session, "stage order already used in pipeline")
        session.refresh(stage)
        return StageRead.model_validate(stage)

    def delete_stage(self, session: Session, principal: Principal, stage_id: str) -> None:
        require_admin(principal)
        stage = self._get_stage(session, stage_id)
        in_use = session.scalar(select(Deal.id).where(Deal.stage_id == stage.id).limit(1))
        if in_use is not None:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="stage has deals")
        session.delete(stage)
        session.commit()

    @staticmethod
    def _get_pipeline(session: Session, pipeline_id: str) -> Pipeline:
        pipeline = session.scalar(select(Pipeline).where(Pipeline.id == pipeline_id))
        if pipeline is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="pipeline not found")
        return pipeline

    @staticmethod
    def _get_stage(session: Session, stage_id: str) -> Stage:
        stage = session.scalar(select(Stage).where(Stage.id == stage_id))
        if stage is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="stage not found")
        return stage

    @staticmethod
    def _commit(session: Session, conflict_detail: str) -> None:
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=conflict_detail)


class DealService(OwnedEntityService):
    label = "deal"
    repository = deal_repository

    def list_deals(
        self,
        session: Session,
        principal: Principal,
        filters: dict[str, Any],
        owner_selector: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[DealRead]:
        stmt = self._scoped(session, principal, owner_selector)
        if filters.get("stage_id"):
            stmt = stmt.where(Deal.stage_id == filters["stage_id"])
        if filters.get("status"):
            stmt = stmt.where(Deal.status == filters["status"])
        if filters.get("search"):
            stmt = stmt.where(Deal.title.ilike(_search_pattern(str(filters["search"]))))

        rows = session.scalars(stmt.order_by(Deal.created_at.desc(), Deal.id.asc()).offset(offset).limit(limit)).unique().all()
        return [self._to_read(session, row) for row in rows]

    def get_deal(self, session: Session, principal: Principal, deal_id: str) -> DealRead:
        return self._to_read(session, self._load(session, principal, deal_id))

    def create_deal(self, session: Session, principal: Principal, dto: DealCreate) -> DealRead:
        stage = self._get_stage(session, dto.stage_id)
        self._check_links(session, principal, dto.contact_id, dto.organization_id)
        self._check_stage_requirements(session, stage, dto.contact_id, dto.organization_id, closed_at=None)

        deal = Deal(owner_id=principal.id, status="open")
        _apply_changes(deal, dto.model_dump())
        session.add(deal)
        session.flush()
        session.add(DealStageHistory(deal_id=deal.id, from_stage_id=None, to_stage_id=stage.id, changed_by_id=principal.id))
        session.commit()
        session.refresh(deal)

        deal_read = self._to_read(session, deal)
        self._track(principal, "created", deal.id, None, deal_read.model_dump(mode="json"), {"stage_id": stage.id})
        return deal_read

    def update_deal(self, session: Session, principal: Principal, deal_id: str, dto: DealUpdate) -> DealRead:
        deal = self._load(session, principal, deal_id)
        before = self._to_read(session, deal).model_dump(mode="json")

        changes = _changes(dto, ("title", "value", "currency", "status"))
        self._check_links(session, principal, changes.get("contact_id"), changes.get("organization_id"))
        if "contact_id" in changes or "organization_id" in changes:
            self._check_stage_requirements(
                session,
                deal.stage,
                changes.get("contact_id", deal.contact_id),
                changes.get("organization_id", deal.organization_id),
                deal.closed_at,
            )

        new_status = changes.pop("status", None)
        _apply_changes(deal, changes)
        if new_status is not None and new_status != deal.status:
            self._apply_status(deal, new_status)

        session.commit()
        session.refresh(deal)

        deal_read = self._to_read(session, deal)
        self._track(principal, "updated", deal.id, before, deal_read.model_dump(mode="json"), {"status": deal.status})
        return deal_read

    def change_stage(self, session: Session, principal: Principal, deal_id: str, stage_id: str) -> DealRead:
        deal = self._load(session, principal, deal_id)
        target = self._get_stage(session, stage_id)
        current = deal.stage
        if target.id == current.id:
            return self._to_read(session, deal)

        if target.pipeline_id != current.pipeline_id:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="stage belongs to another pipeline",
            )
        if deal.status in CLOSED_DEAL_STATUSES and target.order < current.order:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="closed deal cannot move to an earlier stage",
            )
        self._check_stage_requirements(session, target, deal.contact_id, deal.organization_id, deal.closed_at)

        from_stage_id = current.id
        deal.stage_id = target.id
        session.add(
            DealStageHistory(deal_id=deal.id, from_stage_id=from_stage_id, to_stage_id=target.id, changed_by_id=principal.id)
        )
        session.commit()
        session.refresh(deal)

        deal_read = self._to_read(session, deal)
        self._track(
            principal,
            "stage_changed",
            deal.id,
            {"stage_id": from_stage_id},
            {"stage_id": target.id},
            {"from_stage_id": from_stage_id, "to_stage_id": target.id},
        )
        return deal_read

    def list_stage_history(self, session: Session, principal: Principal, deal_id: str) -> list[DealStageHistoryRead]:
        deal = self._load(session, principal, deal_id)
        rows = session.scalars(
            select(DealStageHistory)
            .where(DealStageHistory.deal_id == deal.id)
            .order_by(DealStageHistory.changed_at.asc(), DealStageHistory.id.asc())
        ).all()
        return [DealStageHistoryRead.model_validate(row) for row in rows]

    def delete_deal(self, session: Session, principal: Principal, deal_id: str) -> None:
        deal = self._load(session, principal, deal_id)
        before = self._to_read(session, deal).model_dump(mode="json")
        session.delete(deal)
        session.commit()
        self._track(principal, "deleted", deal_id, before, None)

    @staticmethod
    def _apply_status(deal: Deal, new_status: str) -> None:
        deal.status = new_status
        if new_status in CLOSED_DEAL_STATUSES:
            deal.closed_at = utcnow()
        else:
            deal.closed_at = None

    @staticmethod
    def _check_stage_requirements(
        session: Session,
        stage: Stage,
        contact_id: str | None,
        organization_id: str | None,
        closed_at: datetime | None,
    ) -> None:
        """Qualified stages need a linked contact or organization.

        An open deal may always enter the last stage of its pipeline.
        """

        last_order = session.scalar(select(func.max(Stage.order)).where(Stage.pipeline_id == stage.pipeline_id))
        if closed_at is None and stage.order == last_order:
            return
        if stage.probability >= QUALIFIED_STAGE_PROBABILITY and contact_id is None and organization_id is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="deal needs a contact or organization for this stage",
            )

    @staticmethod
    def _check_links(session: Session, principal: Principal, contact_id: str | None, organization_id: str | None) -> None:
        if contact_id is not None:
            contact_service._load(session, principal, contact_id)
        if organization_id is not None:
            organization_service._load(session, principal, organization_id)

    @staticmethod
    def _get_stage(session: Session, stage_id: str) -> Stage:
        stage = session.scalar(select(Stage).where(Stage.id == stage_id))
        if stage is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="stage not found")
        return stage

    @staticmethod
    def _to_read(session: Session, deal: Deal) -> DealRead:
        deal_read = DealRead.model_validate(deal)
        probability = deal.stage.probability if deal.stage is not None else 0
        line_totals = session.scalars(select(DealProduct.total_value).where(DealProduct.deal_id == deal.id)).all()
        calculated = sum((Decimal(total) for total in line_totals), Decimal("0")) if line_totals else Decimal(deal.value)
        deal_read.stage_name = deal.stage.name if deal.stage is not None else None
        deal_read.probability = probability
        deal_read.calculated_value = calculated.quantize(Decimal("0.01"))
        deal_read.expected_value = (calculated * probability / 100).quantize(Decimal("0.01"))
        return deal_read


class ActivityService(OwnedEntityService):
    label = "activity"
    repository = activity_repository

    def list_activities(
        self,
        session: Session,
        principal: Principal,
        filters: dict[str, Any],
        owner_selector: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ActivityRead]:
        stmt = self._scoped(session, principal, owner_selector)
        if filters.get("type"):
            stmt = stmt.where(Activity.type == filters["type"])
        if filters.get("completed") is not None:
            stmt = stmt.where(Activity.completed.is_(bool(filters["completed"])))
        for link_field in ("deal_id", "contact_id", "lead_id", "partner_id", "organization_id"):
            if filters.get(link_field):
                stmt = stmt.where(getattr(Activity, link_field) == filters[link_field])

        rows = session.scalars(
            stmt.order_by(Activity.due_date.asc(), Activity.created_at.desc(), Activity.id.asc()).offset(offset).limit(limit)
        ).all()
        return [ActivityRead.model_validate(row) for row in rows]

    def get_activity(self, session: Session, principal: Principal, activity_id: str) -> ActivityRead:
        return ActivityRead.model_validate(self._load(session, principal, activity_id))

    def create_activity(self, session: Session, principal: Principal, dto: ActivityCreate) -> ActivityRead:
        activity = Activity(owner_id=principal.id, completed=False)
        _apply_changes(activity, dto.model_dump())
        session.add(activity)
        session.commit()
        session.refresh(activity)

        activity_read = ActivityRead.model_validate(activity)
        self._track(principal, "created", activity.id, None, activity_read.model_dump(mode="json"))
        return activity_read

    def update_activity(self, session: Session, principal: Principal, activity_id: str, dto: ActivityUpdate) -> ActivityRead:
        activity = self._load(session, principal, activity_id)
        before = ActivityRead.model_validate(activity).model_dump(mode="json")

        changes = _changes(dto, ("type", "subject", "completed"))
        _apply_changes(activity, changes)
        session.commit()
        session.refresh(activity)

        activity_read = ActivityRead.model_validate(activity)
        self._track(principal, "updated", activity.id, before, activity_read.model_dump(mode="json"))
        return activity_read

    def toggle_completion(self, session: Session, principal: Principal, activity_id: str) -> ActivityRead:
        activity = self._load(session, principal, activity_id)
        activity.completed = not activity.completed
        session.commit()
        session.refresh(activity)

        activity_read = ActivityRead.model_validate(activity)
        self._track(
            principal,
            "completed" if activity.completed else "reopened",
            activity.id,
            {"completed": not activity.completed},
            {"completed": activity.completed},
        )
        return activity_read

    def delete_activity(self, session: Session, principal: Principal, activity_id: str) -> None:
        activity = self._load(session, principal, activity_id)
        before = ActivityRead.model_validate(activity).model_dump(mode="json")
        session.delete(activity)
        session.commit()
        self._track(principal, "deleted", activity_id, before, None)


lead_service = LeadService()
contact_service = ContactService()
organization_service = OrganizationService()
partner_service = PartnerService()
pipeline_service = PipelineService()
deal_service = DealService()
activity_service = ActivityService()
