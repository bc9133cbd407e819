from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from wbcrm.api.errors import http_error
from wbcrm.authz.schemas import ShareRead, ShareRequest, TransferRequest, TransferResult, UserRead
from wbcrm.authz.service import sharing_service, user_service
from wbcrm.core.database import get_db
from wbcrm.platform.security import EntityType, Principal, get_principal


users_router = APIRouter(prefix="/api", tags=["users"])
sharing_router = APIRouter(prefix="/api/crm", tags=["crm.sharing"])


@users_router.get("/users", response_model=list[UserRead])
def list_users(
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[UserRead] | JSONResponse:
    try:
        return user_service.list_users(db, principal)
    except HTTPException as exc:
        return http_error(request, exc, "user_list_failed")


@sharing_router.post("/shares", response_model=ShareRead, status_code=status.HTTP_201_CREATED)
def share_entity(
    request: Request,
    dto: ShareRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> ShareRead | JSONResponse:
    try:
        return sharing_service.share(db, principal, dto.entity_type, dto.entity_id, dto.user_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_share_failed")


@sharing_router.get("/shares/{entity_type}/{entity_id}", response_model=list[ShareRead])
def list_shares(
    request: Request,
    entity_type: EntityType,
    entity_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[ShareRead] | JSONResponse:
    try:
        return sharing_service.list_shares(db, principal, entity_type, entity_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_share_list_failed")


@sharing_router.delete("/shares/{entity_type}/{entity_id}/{user_id}", response_model=None)
def unshare_entity(
    request: Request,
    entity_type: EntityType,
    entity_id: str,
    user_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        sharing_service.unshare(db, principal, entity_type, entity_id, user_id)
        return {"status": "deleted"}
    except HTTPException as exc:
        return http_error(request, exc, "crm_unshare_failed")


@sharing_router.post("/transfers", response_model=TransferResult)
def transfer_entity(
    request: Request,
    dto: TransferRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> TransferResult | JSONResponse:
    try:
        return sharing_service.transfer(db, principal, dto.entity_type, dto.entity_id, dto.new_owner_id)
    except HTTPException as exc:
        return http_error(request, exc, "crm_transfer_failed")
