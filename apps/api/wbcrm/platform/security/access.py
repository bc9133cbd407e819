from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from wbcrm.authz.models import SharedEntity
from wbcrm.metrics import observe_access_check, observe_share_grant_lookup
from wbcrm.otel import add_span_event
from wbcrm.platform.security.context import Principal
from wbcrm.platform.security.errors import AuthorizationError
from wbcrm.platform.security.visibility import EntityType


logger = logging.getLogger("wbcrm.security.access")


def has_share_grant(session: Session, entity_type: EntityType | str, entity_id: str, user_id: str) -> bool:
    entity_type_value = EntityType(entity_type).value
    observe_share_grant_lookup(entity_type_value)
    grant_id = session.scalar(
        select(SharedEntity.id)
        .where(
            SharedEntity.entity_type == entity_type_value,
            SharedEntity.entity_id == entity_id,
            SharedEntity.shared_with_user_id == user_id,
        )
        .limit(1)
    )
    return grant_id is not None


def can_access(
    session: Session,
    principal: Principal,
    entity_type: EntityType | str,
    entity_id: str,
    record_owner_id: str | None,
) -> bool:
    """Whether ``principal`` may act on one already-loaded owned record.

    Grants are re-read on every call so a revoked share takes effect on the next request.
    """

    entity_type_value = EntityType(entity_type).value
    if principal.is_privileged:
        allowed = True
    elif record_owner_id is not None and record_owner_id == principal.id:
        allowed = True
    else:
        allowed = has_share_grant(session, entity_type_value, entity_id, principal.id)

    observe_access_check(entity_type_value, allowed)
    add_span_event(
        "access.check",
        {"entity_type": entity_type_value, "entity_id": entity_id, "principal_id": principal.id, "allowed": allowed},
    )
    if not allowed:
        logger.debug(
            "access.denied",
            extra={"principal_id": principal.id, "entity_type": entity_type_value, "entity_id": entity_id},
        )
    return allowed


def ensure_privileged(principal: Principal) -> None:
    if not principal.is_privileged:
        raise AuthorizationError("admin role required")
