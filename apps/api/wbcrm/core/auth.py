from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from starlette.requests import Request

from wbcrm.core.config import Settings, get_settings


@dataclass(frozen=True)
class SessionClaims:
    sub: str
    role: str | None


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    return auth_header.replace("Bearer ", "", 1).strip() if auth_header.startswith("Bearer ") else ""


def decode_session_claims(request: Request, settings: Settings | None = None) -> SessionClaims | None:
    """Return the end-user session carried by the bearer token, or None when absent/invalid."""

    token = _bearer_token(request)
    if not token:
        return None

    settings = settings or get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None

    subject = payload.get("sub")
    if subject is None or str(subject).strip() == "":
        return None
    role = payload.get("role")
    return SessionClaims(sub=str(subject), role=str(role) if role is not None else None)


def issue_session_token(sub: str, role: str | None = None, *, expires_in: timedelta = timedelta(hours=8)) -> str:
    settings = get_settings()
    claims: dict[str, Any] = {"sub": sub, "exp": datetime.now(timezone.utc) + expires_in}
    if role is not None:
        claims["role"] = role
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)
