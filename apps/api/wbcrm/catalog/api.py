from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from wbcrm.api.errors import http_error
from wbcrm.catalog.schemas import (
    BusinessLineCreate,
    BusinessLineRead,
    BusinessLineUpdate,
    ICPCreate,
    ICPRead,
    ICPStatus,
    ICPUpdate,
    ICPVersionRead,
    ProductCreate,
    ProductRead,
    ProductUpdate,
    SlugCheckRead,
)
from wbcrm.catalog.service import catalog_service
from wbcrm.core.database import get_db
from wbcrm.platform.security import Principal, get_principal


router = APIRouter(prefix="/api/catalog", tags=["catalog"])


@router.get("/business-lines", response_model=list[BusinessLineRead])
def list_business_lines(
    active_only: bool = Query(default=False),
    db: Session = Depends(get_db),
    _principal: Principal = Depends(get_principal),
) -> list[BusinessLineRead]:
    return catalog_service.list_business_lines(db, active_only=active_only)


@router.post("/business-lines", response_model=BusinessLineRead, status_code=status.HTTP_201_CREATED)
def create_business_line(
    request: Request,
    payload: BusinessLineCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> BusinessLineRead | JSONResponse:
    try:
        return catalog_service.create_business_line(db, principal, payload)
    except HTTPException as exc:
        return http_error(request, exc, "catalog_business_line_create_failed")


@router.patch("/business-lines/{business_line_id}", response_model=BusinessLineRead)
def update_business_line(
    request: Request,
    business_line_id: str,
    payload: BusinessLineUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> BusinessLineRead | JSONResponse:
    try:
        return catalog_service.update_business_line(db, principal, business_line_id, payload)
    except HTTPException as exc:
        return http_error(request, exc, "catalog_business_line_update_failed")


@router.post("/business-lines/{business_line_id}/toggle", response_model=BusinessLineRead)
def toggle_business_line(
    request: Request,
    business_line_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> BusinessLineRead | JSONResponse:
    try:
        return catalog_service.toggle_business_line(db, principal, business_line_id)
    except HTTPException as exc:
        return http_error(request, exc, "catalog_business_line_toggle_failed")


@router.delete("/business-lines/{business_line_id}", response_model=None)
def delete_business_line(
    request: Request,
    business_line_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        catalog_service.delete_business_line(db, principal, business_line_id)
        return {"status": "deleted"}
    except HTTPException as exc:
        return http_error(request, exc, "catalog_business_line_delete_failed")


@router.get("/products", response_model=list[ProductRead])
def list_products(
    business_line_id: str | None = Query(default=None),
    active_only: bool = Query(default=False),
    db: Session = Depends(get_db),
    _principal: Principal = Depends(get_principal),
) -> list[ProductRead]:
    return catalog_service.list_products(db, business_line_id=business_line_id, active_only=active_only)


@router.post("/products", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
def create_product(
    request: Request,
    payload: ProductCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> ProductRead | JSONResponse:
    try:
        return catalog_service.create_product(db, principal, payload)
    except HTTPException as exc:
        return http_error(request, exc, "catalog_product_create_failed")


@router.patch("/products/{product_id}", response_model=ProductRead)
def update_product(
    request: Request,
    product_id: str,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> ProductRead | JSONResponse:
    try:
        return catalog_service.update_product(db, principal, product_id, payload)
    except HTTPException as exc:
        return http_error(request, exc, "catalog_product_update_failed")


@router.delete("/products/{product_id}", response_model=None)
def delete_product(
    request: Request,
    product_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        catalog_service.delete_product(db, principal, product_id)
        return {"status": "deleted"}
    except HTTPException as exc:
        return http_error(request, exc, "catalog_product_delete_failed")


@router.get("/icps/slug-check", response_model=SlugCheckRead)
def check_icp_slug(
    slug: str | None = Query(default=None),
    name: str | None = Query(default=None),
    db: Session = Depends(get_db),
    _principal: Principal = Depends(get_principal),
) -> SlugCheckRead:
    return catalog_service.check_icp_slug(db, slug=slug, name=name)


@router.get("/icps", response_model=list[ICPRead])
def list_icps(
    owner: str | None = Query(default=None),
    status_filter: ICPStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[ICPRead]:
    return catalog_service.list_icps(db, principal, owner_selector=owner, status_filter=status_filter)


@router.post("/icps", response_model=ICPRead, status_code=status.HTTP_201_CREATED)
def create_icp(
    request: Request,
    payload: ICPCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> ICPRead | JSONResponse:
    try:
        return catalog_service.create_icp(db, principal, payload)
    except HTTPException as exc:
        return http_error(request, exc, "catalog_icp_create_failed")


@router.get("/icps/{icp_id}", response_model=ICPRead)
def get_icp(
    request: Request,
    icp_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> ICPRead | JSONResponse:
    try:
        return catalog_service.get_icp(db, principal, icp_id)
    except HTTPException as exc:
        return http_error(request, exc, "catalog_icp_get_failed")


@router.patch("/icps/{icp_id}", response_model=ICPRead)
def update_icp(
    request: Request,
    icp_id: str,
    payload: ICPUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> ICPRead | JSONResponse:
    try:
        return catalog_service.update_icp(db, principal, icp_id, payload)
    except HTTPException as exc:
        return http_error(request, exc, "catalog_icp_update_failed")


@router.get("/icps/{icp_id}/versions", response_model=list[ICPVersionRead])
def list_icp_versions(
    request: Request,
    icp_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[ICPVersionRead] | JSONResponse:
    try:
        return catalog_service.list_icp_versions(db, principal, icp_id)
    except HTTPException as exc:
        return http_error(request, exc, "catalog_icp_versions_failed")


@router.post("/icps/{icp_id}/versions/{version_number}/restore", response_model=ICPRead)
def restore_icp_version(
    request: Request,
    icp_id: str,
    version_number: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> ICPRead | JSONResponse:
    try:
        return catalog_service.restore_icp_version(db, principal, icp_id, version_number)
    except HTTPException as exc:
        return http_error(request, exc, "catalog_icp_restore_failed")


@router.delete("/icps/{icp_id}", response_model=None)
def delete_icp(
    request: Request,
    icp_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict[str, str] | JSONResponse:
    try:
        catalog_service.delete_icp(db, principal, icp_id)
        return {"status": "deleted"}
    except HTTPException as exc:
        return http_error(request, exc, "catalog_icp_delete_failed")
