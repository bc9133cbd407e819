from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from wbcrm.api.errors import http_error
from wbcrm.associations.schemas import (
    DealProductCreate,
    DealProductRead,
    DealProductUpdate,
    ICPLinkCreate,
    ICPLinkUpdate,
    LeadICPRead,
    LeadProductCreate,
    LeadProductRead,
    LeadProductUpdate,
    OrganizationICPRead,
    OrganizationProductCreate,
    OrganizationProductRead,
    OrganizationProductUpdate,
    PartnerProductCreate,
    PartnerProductRead,
    PartnerProductUpdate,
)
from wbcrm.associations.service import (
    ProductLinkService,
    deal_product_service,
    lead_icp_service,
    lead_product_service,
    list_icp_leads,
    list_icp_organizations,
    organization_icp_service,
    organization_product_service,
    partner_product_service,
)
from wbcrm.core.database import get_db
from wbcrm.crm.schemas import LeadRead, OrganizationRead
from wbcrm.platform.security import Principal, get_principal

products_router = APIRouter(prefix="/api/crm", tags=["crm.products"])
icp_links_router = APIRouter(prefix="/api/crm", tags=["crm.icp_links"])
icp_members_router = APIRouter(prefix="/api/catalog", tags=["catalog"])

DELETED = {"status": "deleted"}


def _list_products(
    request: Request,
    service: ProductLinkService,
    db: Session,
    principal: Principal,
    parent_id: str,
) -> list[Any] | JSONResponse:
    try:
        return service.list_products(db, principal, parent_id)
    except HTTPException as exc:
        return http_error(request, exc, f"crm_{service.label}_products_list_failed")


def _add_product(
    request: Request,
    service: ProductLinkService,
    db: Session,
    principal: Principal,
    parent_id: str,
    payload: Any,
) -> Any:
    try:
        return service.add_product(db, principal, parent_id, payload)
    except HTTPException as exc:
        return http_error(request, exc, f"crm_{service.label}_product_add_failed")


def _update_product(
    request: Request,
    service: ProductLinkService,
    db: Session,
    principal: Principal,
    link_id: str,
    payload: Any,
) -> Any:
    try:
        return service.update_product(db, principal, link_id, payload)
    except HTTPException as exc:
        return http_error(request, exc, f"crm_{service.label}_product_update_failed")


def _remove_product(
    request: Request,
    service: ProductLinkService,
    db: Session,
    principal: Principal,
    link_id: str,
) -> dict[str, str] | JSONResponse:
    try:
        service.remove_product(db, principal, link_id)
        return DELETED
    except HTTPException as exc:
        return http_error(request, exc, f"crm_{service.label}_product_remove_failed")


@products_router.get("/leads/{lead_id}/products", response_model=list[LeadProductRead])
def list_lead_products(
    request: Request,
    lead_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[Any] | JSONResponse:
    return _list_products(request, lead_product_service, db, principal, lead_id)


@products_router.post("/leads/{lead_id}/products", response_model=LeadProductRead, status_code=status.HTTP_201_CREATED)
def add_lead_product(
    request: Request,
    lead_id: str,
    payload: LeadProductCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> LeadProductRead | JSONResponse:
    return _add_product(request, lead_product_service, db, principal, lead_id, payload)


@products_router.patch("/lead-products/{link_id}", response_model=LeadProductRead)
def update_lead_product(
    request: Request,
    link_id: str,
    payload: LeadProductUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> LeadProductRead | JSONResponse:
    return _update_product(request, lead_product_service, db, principal, link_id, payload)


@products_router.delete("/lead-products/{link_id}", response_model=None)
def remove_lead_product(
    request: Request,
    link_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    return _remove_product(request, lead_product_service, db, principal, link_id)


@products_router.get("/organizations/{organization_id}/products", response_model=list[OrganizationProductRead])
def list_organization_products(
    request: Request,
    organization_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[Any] | JSONResponse:
    return _list_products(request, organization_product_service, db, principal, organization_id)


@products_router.post(
    "/organizations/{organization_id}/products",
    response_model=OrganizationProductRead,
    status_code=status.HTTP_201_CREATED,
)
def add_organization_product(
    request: Request,
    organization_id: str,
    payload: OrganizationProductCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> OrganizationProductRead | JSONResponse:
    return _add_product(request, organization_product_service, db, principal, organization_id, payload)


@products_router.patch("/organization-products/{link_id}", response_model=OrganizationProductRead)
def update_organization_product(
    request: Request,
    link_id: str,
    payload: OrganizationProductUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> OrganizationProductRead | JSONResponse:
    return _update_product(request, organization_product_service, db, principal, link_id, payload)


@products_router.delete("/organization-products/{link_id}", response_model=None)
def remove_organization_product(
    request: Request,
    link_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    return _remove_product(request, organization_product_service, db, principal, link_id)


@products_router.get("/deals/{deal_id}/products", response_model=list[DealProductRead])
def list_deal_products(
    request: Request,
    deal_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[Any] | JSONResponse:
    return _list_products(request, deal_product_service, db, principal, deal_id)


@products_router.post("/deals/{deal_id}/products", response_model=DealProductRead, status_code=status.HTTP_201_CREATED)
def add_deal_product(
    request: Request,
    deal_id: str,
    payload: DealProductCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> DealProductRead | JSONResponse:
    return _add_product(request, deal_product_service, db, principal, deal_id, payload)


@products_router.patch("/deal-products/{link_id}", response_model=DealProductRead)
def update_deal_product(
    request: Request,
    link_id: str,
    payload: DealProductUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> DealProductRead | JSONResponse:
    return _update_product(request, deal_product_service, db, principal, link_id, payload)


@products_router.delete("/deal-products/{link_id}", response_model=None)
def remove_deal_product(
    request: Request,
    link_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    return _remove_product(request, deal_product_service, db, principal, link_id)


@products_router.get("/partners/{partner_id}/products", response_model=list[PartnerProductRead])
def list_partner_products(
    request: Request,
    partner_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[Any] | JSONResponse:
    return _list_products(request, partner_product_service, db, principal, partner_id)


@products_router.post(
    "/partners/{partner_id}/products",
    response_model=PartnerProductRead,
    status_code=status.HTTP_201_CREATED,
)
def add_partner_product(
    request: Request,
    partner_id: str,
    payload: PartnerProductCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> PartnerProductRead | JSONResponse:
    return _add_product(request, partner_product_service, db, principal, partner_id, payload)


@products_router.patch("/partner-products/{link_id}", response_model=PartnerProductRead)
def update_partner_product(
    request: Request,
    link_id: str,
    payload: PartnerProductUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> PartnerProductRead | JSONResponse:
    return _update_product(request, partner_product_service, db, principal, link_id, payload)


@products_router.delete("/partner-products/{link_id}", response_model=None)
def remove_partner_product(
    request: Request,
    link_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    return _remove_product(request, partner_product_service, db, principal, link_id)


@icp_links_router.get("/leads/{lead_id}/icps", response_model=list[LeadICPRead])
def list_lead_icps(
    request: Request,
    lead_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[Any] | JSONResponse:
    try:
        return lead_icp_service.list_icps(db, principal, lead_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_icps_list_failed")


@icp_links_router.post("/leads/{lead_id}/icps", response_model=LeadICPRead, status_code=status.HTTP_201_CREATED)
def link_lead_icp(
    request: Request,
    lead_id: str,
    payload: ICPLinkCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> LeadICPRead | JSONResponse:
    try:
        return lead_icp_service.link_icp(db, principal, lead_id, payload)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_icp_link_failed")


@icp_links_router.patch("/leads/{lead_id}/icps/{icp_id}", response_model=LeadICPRead)
def update_lead_icp(
    request: Request,
    lead_id: str,
    icp_id: str,
    payload: ICPLinkUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> LeadICPRead | JSONResponse:
    try:
        return lead_icp_service.update_icp_link(db, principal, lead_id, icp_id, payload)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_icp_update_failed")


@icp_links_router.delete("/leads/{lead_id}/icps/{icp_id}", response_model=None)
def unlink_lead_icp(
    request: Request,
    lead_id: str,
    icp_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        lead_icp_service.unlink_icp(db, principal, lead_id, icp_id)
        return DELETED
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_icp_unlink_failed")


@icp_links_router.get("/organizations/{organization_id}/icps", response_model=list[OrganizationICPRead])
def list_organization_icps(
    request: Request,
    organization_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[Any] | JSONResponse:
    try:
        return organization_icp_service.list_icps(db, principal, organization_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_organization_icps_list_failed")


@icp_links_router.post(
    "/organizations/{organization_id}/icps",
    response_model=OrganizationICPRead,
    status_code=status.HTTP_201_CREATED,
)
def link_organization_icp(
    request: Request,
    organization_id: str,
    payload: ICPLinkCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> OrganizationICPRead | JSONResponse:
    try:
        return organization_icp_service.link_icp(db, principal, organization_id, payload)
    except HTTPException as exc:
        return http_error(request, exc, "crm_organization_icp_link_failed")


@icp_links_router.patch("/organizations/{organization_id}/icps/{icp_id}", response_model=OrganizationICPRead)
def update_organization_icp(
    request: Request,
    organization_id: str,
    icp_id: str,
    payload: ICPLinkUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> OrganizationICPRead | JSONResponse:
    try:
        return organization_icp_service.update_icp_link(db, principal, organization_id, icp_id, payload)
    except HTTPException as exc:
        return http_error(request, exc, "crm_organization_icp_update_failed")


@icp_links_router.delete("/organizations/{organization_id}/icps/{icp_id}", response_model=None)
def unlink_organization_icp(
    request: Request,
    organization_id: str,
    icp_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        organization_icp_service.unlink_icp(db, principal, organization_id, icp_id)
        return DELETED
    except HTTPException as exc:
        return http_error(request, exc, "crm_organization_icp_unlink_failed")


@icp_members_router.get("/icps/{icp_id}/leads", response_model=list[LeadRead])
def list_leads_for_icp(
    request: Request,
    icp_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[LeadRead] | JSONResponse:
    try:
        return list_icp_leads(db, principal, icp_id)
    except HTTPException as exc:
        return http_error(request, exc, "catalog_icp_leads_list_failed")


@icp_members_router.get("/icps/{icp_id}/organizations", response_model=list[OrganizationRead])
def list_organizations_for_icp(
    request: Request,
    icp_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[OrganizationRead] | JSONResponse:
    try:
        return list_icp_organizations(db, principal, icp_id)
    except HTTPException as exc:
        return http_error(request, exc, "catalog_icp_organizations_list_failed")
