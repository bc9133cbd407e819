from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from wbcrm.api.errors import http_error
from wbcrm.core.config import get_settings
from wbcrm.core.database import get_db
from wbcrm.crm.renewals import hosting_renewal_service
from wbcrm.crm.schemas import (
    ActivityCreate,
    ActivityRead,
    ActivityType,
    ActivityUpdate,
    ContactCreate,
    ContactRead,
    ContactUpdate,
    DealCreate,
    DealRead,
    DealStageChangeRequest,
    DealStageHistoryRead,
    DealStatus,
    DealUpdate,
    HostingRenewalRead,
    LeadContactCreate,
    LeadContactRead,
    LeadContactUpdate,
    LeadConvertResult,
    LeadCreate,
    LeadQuality,
    LeadRead,
    LeadStatus,
    LeadUpdate,
    OrganizationCreate,
    OrganizationRead,
    OrganizationUpdate,
    PartnerCreate,
    PartnerRead,
    PartnerUpdate,
    PipelineCreate,
    PipelineRead,
    RenewalCheckResult,
    StageCreate,
    StageRead,
    StageUpdate,
)
from wbcrm.crm.service import (
    activity_service,
    contact_service,
    deal_service,
    lead_service,
    organization_service,
    partner_service,
    pipeline_service,
)
from wbcrm.platform.security import Principal, get_principal

leads_router = APIRouter(prefix="/api/crm", tags=["crm.leads"])
contacts_router = APIRouter(prefix="/api/crm", tags=["crm.contacts"])
organizations_router = APIRouter(prefix="/api/crm", tags=["crm.organizations"])
partners_router = APIRouter(prefix="/api/crm", tags=["crm.partners"])
pipelines_router = APIRouter(prefix="/api/crm", tags=["crm.pipelines"])
deals_router = APIRouter(prefix="/api/crm", tags=["crm.deals"])
activities_router = APIRouter(prefix="/api/crm", tags=["crm.activities"])
renewals_router = APIRouter(prefix="/api/crm", tags=["crm.hosting_renewals"])

DELETED = {"status": "deleted"}


@leads_router.get("/leads", response_model=list[LeadRead])
def list_leads(
    request: Request,
    owner: str | None = Query(default=None),
    search: str | None = Query(default=None),
    status_filter: LeadStatus | None = Query(default=None, alias="status"),
    quality: LeadQuality | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[LeadRead] | JSONResponse:
    try:
        return lead_service.list_leads(
            db,
            principal,
            filters={"search": search, "status": status_filter, "quality": quality},
            owner_selector=owner,
            limit=limit,
            offset=offset,
        )
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_list_failed")


@leads_router.post("/leads", response_model=LeadRead, status_code=status.HTTP_201_CREATED)
def create_lead(
    request: Request,
    dto: LeadCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> LeadRead | JSONResponse:
    try:
        return lead_service.create_lead(db, principal, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_create_failed")


@leads_router.get("/leads/{lead_id}", response_model=LeadRead)
def get_lead(
    request: Request,
    lead_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> LeadRead | JSONResponse:
    try:
        return lead_service.get_lead(db, principal, lead_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_get_failed")


@leads_router.patch("/leads/{lead_id}", response_model=LeadRead)
def patch_lead(
    request: Request,
    lead_id: str,
    dto: LeadUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> LeadRead | JSONResponse:
    try:
        return lead_service.update_lead(db, principal, lead_id, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_update_failed")


@leads_router.delete("/leads/{lead_id}", response_model=None)
def delete_lead(
    request: Request,
    lead_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        lead_service.delete_lead(db, principal, lead_id)
        return DELETED
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_delete_failed")


@leads_router.get("/leads/{lead_id}/contacts", response_model=list[LeadContactRead])
def list_lead_contacts(
    request: Request,
    lead_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[LeadContactRead] | JSONResponse:
    try:
        return lead_service.list_lead_contacts(db, principal, lead_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_contact_list_failed")


@leads_router.post("/leads/{lead_id}/contacts", response_model=LeadContactRead, status_code=status.HTTP_201_CREATED)
def create_lead_contact(
    request: Request,
    lead_id: str,
    dto: LeadContactCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> LeadContactRead | JSONResponse:
    try:
        return lead_service.create_lead_contact(db, principal, lead_id, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_contact_create_failed")


@leads_router.patch("/lead-contacts/{lead_contact_id}", response_model=LeadContactRead)
def patch_lead_contact(
    request: Request,
    lead_contact_id: str,
    dto: LeadContactUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> LeadContactRead | JSONResponse:
    try:
        return lead_service.update_lead_contact(db, principal, lead_contact_id, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_contact_update_failed")


@leads_router.delete("/lead-contacts/{lead_contact_id}", response_model=None)
def delete_lead_contact(
    request: Request,
    lead_contact_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        lead_service.delete_lead_contact(db, principal, lead_contact_id)
        return DELETED
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_contact_delete_failed")


@leads_router.post("/leads/{lead_id}/convert", response_model=LeadConvertResult)
def convert_lead(
    request: Request,
    lead_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> LeadConvertResult | JSONResponse:
    try:
        return lead_service.convert_lead(db, principal, lead_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_convert_failed")


@contacts_router.get("/contacts", response_model=list[ContactRead])
def list_contacts(
    request: Request,
    owner: str | None = Query(default=None),
    search: str | None = Query(default=None),
    organization_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[ContactRead] | JSONResponse:
    try:
        return contact_service.list_contacts(
            db,
            principal,
            filters={"search": search, "organization_id": organization_id},
            owner_selector=owner,
            limit=limit,
            offset=offset,
        )
    except HTTPException as exc:
        return http_error(request, exc, "crm_contact_list_failed")


@contacts_router.post("/contacts", response_model=ContactRead, status_code=status.HTTP_201_CREATED)
def create_contact(
    request: Request,
    dto: ContactCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> ContactRead | JSONResponse:
    try:
        return contact_service.create_contact(db, principal, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_contact_create_failed")


@contacts_router.get("/contacts/{contact_id}", response_model=ContactRead)
def get_contact(
    request: Request,
    contact_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> ContactRead | JSONResponse:
    try:
        return contact_service.get_contact(db, principal, contact_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_contact_get_failed")


@contacts_router.patch("/contacts/{contact_id}", response_model=ContactRead)
def patch_contact(
    request: Request,
    contact_id: str,
    dto: ContactUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> ContactRead | JSONResponse:
    try:
        return contact_service.update_contact(db, principal, contact_id, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_contact_update_failed")


@contacts_router.delete("/contacts/{contact_id}", response_model=None)
def delete_contact(
    request: Request,
    contact_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        contact_service.delete_contact(db, principal, contact_id)
        return DELETED
    except HTTPException as exc:
        return http_error(request, exc, "crm_contact_delete_failed")


@organizations_router.get("/organizations", response_model=list[OrganizationRead])
def list_organizations(
    request: Request,
    owner: str | None = Query(default=None),
    search: str | None = Query(default=None),
    has_hosting: bool | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[OrganizationRead] | JSONResponse:
    try:
        return organization_service.list_organizations(
            db,
            principal,
            filters={"search": search, "has_hosting": has_hosting},
            owner_selector=owner,
            limit=limit,
            offset=offset,
        )
    except HTTPException as exc:
        return http_error(request, exc, "crm_organization_list_failed")


@organizations_router.post("/organizations", response_model=OrganizationRead, status_code=status.HTTP_201_CREATED)
def create_organization(
    request: Request,
    dto: OrganizationCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> OrganizationRead | JSONResponse:
    try:
        return organization_service.create_organization(db, principal, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_organization_create_failed")


@organizations_router.get("/organizations/{organization_id}", response_model=OrganizationRead)
def get_organization(
    request: Request,
    organization_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> OrganizationRead | JSONResponse:
    try:
        return organization_service.get_organization(db, principal, organization_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_organization_get_failed")


@organizations_router.patch("/organizations/{organization_id}", response_model=OrganizationRead)
def patch_organization(
    request: Request,
    organization_id: str,
    dto: OrganizationUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> OrganizationRead | JSONResponse:
    try:
        return organization_service.update_organization(db, principal, organization_id, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_organization_update_failed")


@organizations_router.delete("/organizations/{organization_id}", response_model=None)
def delete_organization(
    request: Request,
    organization_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        organization_service.delete_organization(db, principal, organization_id)
        return DELETED
    except HTTPException as exc:
        return http_error(request, exc, "crm_organization_delete_failed")


@partners_router.get("/partners", response_model=list[PartnerRead])
def list_partners(
    request: Request,
    owner: str | None = Query(default=None),
    search: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[PartnerRead] | JSONResponse:
    try:
        return partner_service.list_partners(
            db,
            principal,
            filters={"search": search},
            owner_selector=owner,
            limit=limit,
            offset=offset,
        )
    except HTTPException as exc:
        return http_error(request, exc, "crm_partner_list_failed")


@partners_router.post("/partners", response_model=PartnerRead, status_code=status.HTTP_201_CREATED)
def create_partner(
    request: Request,
    dto: PartnerCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> PartnerRead | JSONResponse:
    try:
        return partner_service.create_partner(db, principal, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_partner_create_failed")


@partners_router.get("/partners/{partner_id}", response_model=PartnerRead)
def get_partner(
    request: Request,
    partner_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> PartnerRead | JSONResponse:
    try:
        return partner_service.get_partner(db, principal, partner_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_partner_get_failed")


@partners_router.patch("/partners/{partner_id}", response_model=PartnerRead)
def patch_partner(
    request: Request,
    partner_id: str,
    dto: PartnerUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> PartnerRead | JSONResponse:
    try:
        return partner_service.update_partner(db, principal, partner_id, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_partner_update_failed")


@partners_router.post("/partners/{partner_id}/touch", response_model=PartnerRead)
def touch_partner(
    request: Request,
    partner_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> PartnerRead | JSONResponse:
    try:
        return partner_service.touch_partner(db, principal, partner_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_partner_touch_failed")


@partners_router.delete("/partners/{partner_id}", response_model=None)
def delete_partner(
    request: Request,
    partner_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        partner_service.delete_partner(db, principal, partner_id)
        return DELETED
    except HTTPException as exc:
        return http_error(request, exc, "crm_partner_delete_failed")


@pipelines_router.get("/pipelines", response_model=list[PipelineRead])
def list_pipelines(
    db: Session = Depends(get_db),
    _principal: Principal = Depends(get_principal),
) -> list[PipelineRead]:
    return pipeline_service.list_pipelines(db)


@pipelines_router.post("/pipelines", response_model=PipelineRead, status_code=status.HTTP_201_CREATED)
def create_pipeline(
    request: Request,
    dto: PipelineCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> PipelineRead | JSONResponse:
    try:
        return pipeline_service.create_pipeline(db, principal, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_pipeline_create_failed")


@pipelines_router.get("/pipelines/{pipeline_id}", response_model=PipelineRead)
def get_pipeline(
    request: Request,
    pipeline_id: str,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(get_principal),
) -> PipelineRead | JSONResponse:
    try:
        return pipeline_service.get_pipeline(db, pipeline_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_pipeline_get_failed")


@pipelines_router.post("/pipelines/{pipeline_id}/stages", response_model=StageRead, status_code=status.HTTP_201_CREATED)
def create_stage(
    request: Request,
    pipeline_id: str,
    dto: StageCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> StageRead | JSONResponse:
    try:
        return pipeline_service.add_stage(db, principal, pipeline_id, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_stage_create_failed")


@pipelines_router.patch("/stages/{stage_id}", response_model=StageRead)
def patch_stage(
    request: Request,
    stage_id: str,
    dto: StageUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> StageRead | JSONResponse:
    try:
        return pipeline_service.update_stage(db, principal, stage_id, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_stage_update_failed")


@pipelines_router.delete("/stages/{stage_id}", response_model=None)
def delete_stage(
    request: Request,
    stage_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        pipeline_service.delete_stage(db, principal, stage_id)
        return DELETED
    except HTTPException as exc:
        return http_error(request, exc, "crm_stage_delete_failed")


@deals_router.get("/deals", response_model=list[DealRead])
def list_deals(
    request: Request,
    owner: str | None = Query(default=None),
    search: str | None = Query(default=None),
    stage_id: str | None = Query(default=None),
    status_filter: DealStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[DealRead] | JSONResponse:
    try:
        return deal_service.list_deals(
            db,
            principal,
            filters={"search": search, "stage_id": stage_id, "status": status_filter},
            owner_selector=owner,
            limit=limit,
            offset=offset,
        )
    except HTTPException as exc:
        return http_error(request, exc, "crm_deal_list_failed")


@deals_router.post("/deals", response_model=DealRead, status_code=status.HTTP_201_CREATED)
def create_deal(
    request: Request,
    dto: DealCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> DealRead | JSONResponse:
    try:
        return deal_service.create_deal(db, principal, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_deal_create_failed")


@deals_router.get("/deals/{deal_id}", response_model=DealRead)
def get_deal(
    request: Request,
    deal_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> DealRead | JSONResponse:
    try:
        return deal_service.get_deal(db, principal, deal_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_deal_get_failed")


@deals_router.patch("/deals/{deal_id}", response_model=DealRead)
def patch_deal(
    request: Request,
    deal_id: str,
    dto: DealUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> DealRead | JSONResponse:
    try:
        return deal_service.update_deal(db, principal, deal_id, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_deal_update_failed")


@deals_router.post("/deals/{deal_id}/stage", response_model=DealRead)
def change_deal_stage(
    request: Request,
    deal_id: str,
    dto: DealStageChangeRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> DealRead | JSONResponse:
    try:
        return deal_service.change_stage(db, principal, deal_id, dto.stage_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_deal_stage_change_failed")


@deals_router.get("/deals/{deal_id}/history", response_model=list[DealStageHistoryRead])
def list_deal_stage_history(
    request: Request,
    deal_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[DealStageHistoryRead] | JSONResponse:
    try:
        return deal_service.list_stage_history(db, principal, deal_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_deal_history_failed")


@deals_router.delete("/deals/{deal_id}", response_model=None)
def delete_deal(
    request: Request,
    deal_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        deal_service.delete_deal(db, principal, deal_id)
        return DELETED
    except HTTPException as exc:
        return http_error(request, exc, "crm_deal_delete_failed")


@activities_router.get("/activities", response_model=list[ActivityRead])
def list_activities(
    request: Request,
    owner: str | None = Query(default=None),
    activity_type: ActivityType | None = Query(default=None, alias="type"),
    completed: bool | None = Query(default=None),
    deal_id: str | None = Query(default=None),
    contact_id: str | None = Query(default=None),
    lead_id: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[ActivityRead] | JSONResponse:
    try:
        return activity_service.list_activities(
            db,
            principal,
            filters={
                "type": activity_type,
                "completed": completed,
                "deal_id": deal_id,
                "contact_id": contact_id,
                "lead_id": lead_id,
            },
            owner_selector=owner,
            limit=limit,
            offset=offset,
        )
    except HTTPException as exc:
        return http_error(request, exc, "crm_activity_list_failed")


@activities_router.post("/activities", response_model=ActivityRead, status_code=status.HTTP_201_CREATED)
def create_activity(
    request: Request,
    dto: ActivityCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> ActivityRead | JSONResponse:
    try:
        return activity_service.create_activity(db, principal, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_activity_create_failed")


@activities_router.get("/activities/{activity_id}", response_model=ActivityRead)
def get_activity(
    request: Request,
    activity_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> ActivityRead | JSONResponse:
    try:
        return activity_service.get_activity(db, principal, activity_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_activity_get_failed")


@activities_router.patch("/activities/{activity_id}", response_model=ActivityRead)
def patch_activity(
    request: Request,
    activity_id: str,
    dto: ActivityUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> ActivityRead | JSONResponse:
    try:
        return activity_service.update_activity(db, principal, activity_id, dto)
    except HTTPException as exc:
        return http_error(request, exc, "crm_activity_update_failed")


@activities_router.post("/activities/{activity_id}/toggle", response_model=ActivityRead)
def toggle_activity(
    request: Request,
    activity_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> ActivityRead | JSONResponse:
    try:
        return activity_service.toggle_completion(db, principal, activity_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_activity_toggle_failed")


@activities_router.delete("/activities/{activity_id}", response_model=None)
def delete_activity(
    request: Request,
    activity_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        activity_service.delete_activity(db, principal, activity_id)
        return DELETED
    except HTTPException as exc:
        return http_error(request, exc, "crm_activity_delete_failed")


@renewals_router.get("/hosting-renewals", response_model=list[HostingRenewalRead])
def list_upcoming_renewals(
    days: int | None = Query(default=None, ge=1, le=365),
    owner: str | None = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[HostingRenewalRead]:
    lookahead = days if days is not None else get_settings().renewal_lookahead_days
    return hosting_renewal_service.upcoming_renewals(db, principal, days=lookahead, owner_selector=owner)


@renewals_router.post(
    "/hosting-renewals/{organization_id}/activity",
    response_model=ActivityRead,
    status_code=status.HTTP_201_CREATED,
)
def create_renewal_activity(
    request: Request,
    response: Response,
    organization_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> ActivityRead | JSONResponse:
    try:
        activity, created = hosting_renewal_service.create_renewal_activity(db, principal, organization_id)
        if not created:
            response.status_code = status.HTTP_200_OK
        return activity
    except HTTPException as exc:
        return http_error(request, exc, "crm_hosting_renewal_activity_failed")


@renewals_router.post("/hosting-renewals/check", response_model=RenewalCheckResult)
def check_renewals(
    today: date | None = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> RenewalCheckResult:
    return hosting_renewal_service.check_renewals(db, principal, today=today)
