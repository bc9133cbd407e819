from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from wbcrm.api.errors import http_error
from wbcrm.cadences.schemas import (
    CadenceCreate,
    CadenceDetailRead,
    CadenceRead,
    CadenceStatus,
    CadenceStepCreate,
    CadenceStepRead,
    CadenceStepReorder,
    CadenceStepUpdate,
    CadenceUpdate,
    LeadCadenceApply,
    LeadCadenceApplyResult,
    LeadCadenceRead,
)
from wbcrm.cadences.service import cadence_service, lead_cadence_service
from wbcrm.core.database import get_db
from wbcrm.platform.security import Principal, get_principal

cadences_router = APIRouter(prefix="/api/crm", tags=["crm.cadences"])
lead_cadences_router = APIRouter(prefix="/api/crm", tags=["crm.lead_cadences"])

DELETED = {"status": "deleted"}


@cadences_router.get("/cadences", response_model=list[CadenceRead])
def list_cadences(
    status_filter: CadenceStatus | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None),
    icp_id: str | None = Query(default=None),
    owner: str | None = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[CadenceRead]:
    filters = {"status": status_filter, "search": search, "icp_id": icp_id}
    return cadence_service.list_cadences(db, principal, filters, owner_selector=owner)


@cadences_router.get("/cadences/for-icp", response_model=list[CadenceRead])
def list_cadences_for_icp(
    icp_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[CadenceRead]:
    return cadence_service.cadences_for_icp(db, principal, icp_id)


@cadences_router.post("/cadences", response_model=CadenceDetailRead, status_code=status.HTTP_201_CREATED)
def create_cadence(
    request: Request,
    payload: CadenceCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> CadenceDetailRead | JSONResponse:
    try:
        return cadence_service.create_cadence(db, principal, payload)
    except HTTPException as exc:
        return http_error(request, exc, "crm_cadence_create_failed")


@cadences_router.get("/cadences/{cadence_id}", response_model=CadenceDetailRead)
def get_cadence(
    request: Request,
    cadence_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> CadenceDetailRead | JSONResponse:
    try:
        return cadence_service.get_cadence(db, principal, cadence_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_cadence_get_failed")


@cadences_router.patch("/cadences/{cadence_id}", response_model=CadenceDetailRead)
def update_cadence(
    request: Request,
    cadence_id: str,
    payload: CadenceUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> CadenceDetailRead | JSONResponse:
    try:
        return cadence_service.update_cadence(db, principal, cadence_id, payload)
    except HTTPException as exc:
        return http_error(request, exc, "crm_cadence_update_failed")


@cadences_router.delete("/cadences/{cadence_id}", response_model=None)
def delete_cadence(
    request: Request,
    cadence_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        cadence_service.delete_cadence(db, principal, cadence_id)
        return DELETED
    except HTTPException as exc:
        return http_error(request, exc, "crm_cadence_delete_failed")


@cadences_router.post("/cadences/{cadence_id}/steps", response_model=CadenceStepRead, status_code=status.HTTP_201_CREATED)
def add_cadence_step(
    request: Request,
    cadence_id: str,
    payload: CadenceStepCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> CadenceStepRead | JSONResponse:
    try:
        return cadence_service.add_step(db, principal, cadence_id, payload)
    except HTTPException as exc:
        return http_error(request, exc, "crm_cadence_step_create_failed")


@cadences_router.put("/cadences/{cadence_id}/steps/order", response_model=CadenceDetailRead)
def reorder_cadence_steps(
    request: Request,
    cadence_id: str,
    payload: CadenceStepReorder,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> CadenceDetailRead | JSONResponse:
    try:
        return cadence_service.reorder_steps(db, principal, cadence_id, payload)
    except HTTPException as exc:
        return http_error(request, exc, "crm_cadence_step_reorder_failed")


@cadences_router.patch("/cadence-steps/{step_id}", response_model=CadenceStepRead)
def update_cadence_step(
    request: Request,
    step_id: str,
    payload: CadenceStepUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> CadenceStepRead | JSONResponse:
    try:
        return cadence_service.update_step(db, principal, step_id, payload)
    except HTTPException as exc:
        return http_error(request, exc, "crm_cadence_step_update_failed")


@cadences_router.delete("/cadence-steps/{step_id}", response_model=None)
def delete_cadence_step(
    request: Request,
    step_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        cadence_service.delete_step(db, principal, step_id)
        return DELETED
    except HTTPException as exc:
        return http_error(request, exc, "crm_cadence_step_delete_failed")


@lead_cadences_router.get("/leads/{lead_id}/cadences", response_model=list[LeadCadenceRead])
def list_lead_cadences(
    request: Request,
    lead_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[LeadCadenceRead] | JSONResponse:
    try:
        return lead_cadence_service.list_for_lead(db, principal, lead_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_cadences_list_failed")


@lead_cadences_router.get("/leads/{lead_id}/cadences/available", response_model=list[CadenceRead])
def list_available_cadences(
    request: Request,
    lead_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[CadenceRead] | JSONResponse:
    try:
        return lead_cadence_service.available_for_lead(db, principal, lead_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_cadences_available_failed")


@lead_cadences_router.post(
    "/leads/{lead_id}/cadences",
    response_model=LeadCadenceApplyResult,
    status_code=status.HTTP_201_CREATED,
)
def apply_lead_cadence(
    request: Request,
    lead_id: str,
    payload: LeadCadenceApply,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> LeadCadenceApplyResult | JSONResponse:
    try:
        return lead_cadence_service.apply_cadence(db, principal, lead_id, payload)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_cadence_apply_failed")


@lead_cadences_router.post("/lead-cadences/{lead_cadence_id}/pause", response_model=LeadCadenceRead)
def pause_lead_cadence(
    request: Request,
    lead_cadence_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> LeadCadenceRead | JSONResponse:
    try:
        return lead_cadence_service.pause(db, principal, lead_cadence_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_cadence_pause_failed")


@lead_cadences_router.post("/lead-cadences/{lead_cadence_id}/resume", response_model=LeadCadenceRead)
def resume_lead_cadence(
    request: Request,
    lead_cadence_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> LeadCadenceRead | JSONResponse:
    try:
        return lead_cadence_service.resume(db, principal, lead_cadence_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_cadence_resume_failed")


@lead_cadences_router.post("/lead-cadences/{lead_cadence_id}/cancel", response_model=LeadCadenceRead)
def cancel_lead_cadence(
    request: Request,
    lead_cadence_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> LeadCadenceRead | JSONResponse:
    try:
        return lead_cadence_service.cancel(db, principal, lead_cadence_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_cadence_cancel_failed")


@lead_cadences_router.post("/lead-cadences/{lead_cadence_id}/complete", response_model=LeadCadenceRead)
def complete_lead_cadence(
    request: Request,
    lead_cadence_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> LeadCadenceRead | JSONResponse:
    try:
        return lead_cadence_service.complete(db, principal, lead_cadence_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_lead_cadence_complete_failed")
