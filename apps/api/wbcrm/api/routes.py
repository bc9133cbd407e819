from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from wbcrm.associations.api import icp_links_router, icp_members_router, products_router
from wbcrm.authz.api import sharing_router, users_router
from wbcrm.cadences.api import cadences_router, lead_cadences_router
from wbcrm.catalog.api import router as catalog_router
from wbcrm.core.config import get_settings
from wbcrm.core.rbac import get_admin_principal
from wbcrm.crm.api import (
    activities_router,
    contacts_router,
    deals_router,
    leads_router,
    organizations_router,
    partners_router,
    pipelines_router,
    renewals_router,
)
from wbcrm.metrics import render_metrics
from wbcrm.platform.security import Principal, get_principal

system_router = APIRouter(tags=["system"])


@system_router.get("/health")
def health() -> dict[str, str]:
    settings = get_settings()
    return {"status": "ok", "service": settings.app_name, "environment": settings.app_env}


@system_router.get("/me", tags=["auth"])
def me(principal: Principal = Depends(get_principal)) -> dict[str, str | bool]:
    return {
        "id": principal.id,
        "role": principal.role.value,
        "auth_source": principal.auth_source.value,
        "is_privileged": principal.is_privileged,
    }


@system_router.get("/metrics")
def metrics(_principal: Principal = Depends(get_admin_principal)) -> Response:
    if not get_settings().metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="metrics disabled")
    payload, content_type = render_metrics()
    return Response(content=payload, media_type=content_type)


router = APIRouter()
for child in (
    system_router,
    leads_router,
    contacts_router,
    organizations_router,
    partners_router,
    pipelines_router,
    deals_router,
    activities_router,
    renewals_router,
    products_router,
    icp_links_router,
    cadences_router,
    lead_cadences_router,
    sharing_router,
    users_router,
    catalog_router,
    icp_members_router,
):
    router.include_router(child)
