from fastapi import Depends, HTTPException, status

from wbcrm.platform.security import AuthorizationError, Principal, ensure_privileged, get_principal


def require_admin(principal: Principal) -> None:
    try:
        ensure_privileged(principal)
    except AuthorizationError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))


def get_admin_principal(principal: Principal = Depends(get_principal)) -> Principal:
    require_admin(principal)
    return principal
