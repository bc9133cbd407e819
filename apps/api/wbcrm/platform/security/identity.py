from __future__ import annotations

import hmac
import ipaddress
import logging
from collections.abc import Iterable
from enum import StrEnum

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.requests import Request

from wbcrm.authz.models import User
from wbcrm.core.auth import decode_session_claims
from wbcrm.core.config import Settings, get_settings
from wbcrm.core.context import get_request_context
from wbcrm.core.database import get_db
from wbcrm.metrics import observe_internal_request
from wbcrm.platform.security.context import AuthSource, Principal, Role, normalize_role


logger = logging.getLogger("wbcrm.security.identity")


class InternalSignal(StrEnum):
    FORWARDED_FOR = "x-forwarded-for"
    REAL_IP = "x-real-ip"
    API_KEY = "x-internal-api-key"
    WEBHOOK_SECRET = "x-webhook-secret"


def is_trusted_address(value: str, networks: Iterable[str]) -> bool:
    candidate = value.strip()
    if not candidate:
        return False
    if candidate.lower() == "localhost":
        return True
    try:
        address = ipaddress.ip_address(candidate)
    except ValueError:
        return False
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped

    for raw_network in networks:
        try:
            network = ipaddress.ip_network(raw_network, strict=False)
        except ValueError:
            continue
        if address.version == network.version and address in network:
            return True
    return False


def _secret_matches(provided: str | None, expected: str | None) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def detect_internal_signal(request: Request, settings: Settings | None = None) -> InternalSignal | None:
    """Return the first trust signal that classifies the request as internal.

    Proxy address headers are client-controlled unless a proxy in front of the
    service overwrites them, so they count only when ``trust_proxy_headers`` is set.
    """

    settings = settings or get_settings()

    if settings.trust_proxy_headers:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            first_hop = forwarded_for.split(",")[0]
            if is_trusted_address(first_hop, settings.internal_networks):
                return InternalSignal.FORWARDED_FOR

        real_ip = request.headers.get("x-real-ip")
        if real_ip and is_trusted_address(real_ip, settings.internal_networks):
            return InternalSignal.REAL_IP

    if _secret_matches(request.headers.get("x-internal-api-key"), settings.internal_api_key):
        return InternalSignal.API_KEY

    if _secret_matches(request.headers.get("x-webhook-secret"), settings.webhook_secret):
        return InternalSignal.WEBHOOK_SECRET

    return None


def _internal_acting_user(session: Session) -> User | None:
    admin = session.scalar(
        select(User).where(User.role == Role.ADMIN.value).order_by(User.created_at.asc(), User.id.asc()).limit(1)
    )
    if admin is not None:
        return admin
    return session.scalar(select(User).order_by(User.created_at.asc(), User.id.asc()).limit(1))


def resolve_principal(request: Request, session: Session, settings: Settings | None = None) -> Principal | None:
    settings = settings or get_settings()

    signal = detect_internal_signal(request, settings)
    if signal is not None:
        acting_user = _internal_acting_user(session)
        if acting_user is not None:
            observe_internal_request(signal.value)
            logger.info(
                "access.internal_request",
                extra={"signal": signal.value, "principal_id": acting_user.id},
            )
            return Principal(
                id=acting_user.id,
                role=normalize_role(acting_user.role),
                auth_source=AuthSource.INTERNAL_TRUSTED,
            )
        # No user to act as: fall through to the session path.
        logger.warning("access.internal_request_without_user", extra={"signal": signal.value})

    claims = decode_session_claims(request, settings)
    if claims is None:
        return None
    if session.get(User, claims.sub) is None:
        logger.warning("access.unknown_session_user", extra={"principal_id": claims.sub})
        return None

    default_role = normalize_role(settings.default_role)
    return Principal(
        id=claims.sub,
        role=normalize_role(claims.role, default=default_role),
        auth_source=AuthSource.SESSION,
    )


def get_principal(request: Request, db: Session = Depends(get_db)) -> Principal:
    principal = resolve_principal(request, db)
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="not authenticated")

    context = get_request_context(request)
    if context is not None:
        context.bind_principal(principal)
    return principal
