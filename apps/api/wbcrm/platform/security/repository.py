from __future__ import annotations

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from wbcrm.platform.security.access import can_access
from wbcrm.platform.security.context import Principal
from wbcrm.platform.security.errors import RecordNotVisibleError
from wbcrm.platform.security.visibility import (
    EntityType,
    VisibilityFilter,
    owner_only_filter,
    owner_or_shared_filter,
)

ModelT = TypeVar("ModelT")


class OwnedRepository(Generic[ModelT]):
    """Row-level visibility for a model carrying ``id`` and ``owner_id`` columns.

    Shareable entities (``entity_type`` set) widen by share grants; the rest are owner-only.
    """

    model: type[ModelT]
    entity_type: EntityType | None = None

    def __init__(self, model: type[ModelT], entity_type: EntityType | None = None) -> None:
        self.model = model
        self.entity_type = entity_type

    def visibility(self, session: Session, principal: Principal, owner_selector: str | None = None) -> VisibilityFilter:
        if self.entity_type is None:
            return owner_only_filter(principal, owner_selector)
        return owner_or_shared_filter(session, principal, self.entity_type, owner_selector)

    def apply_scope_query(
        self,
        query: Select[Any],
        session: Session,
        principal: Principal,
        owner_selector: str | None = None,
    ) -> Select[Any]:
        return self.visibility(session, principal, owner_selector).apply(query, self.model)

    def can_access_record(self, session: Session, principal: Principal, record: Any) -> bool:
        if self.entity_type is None:
            return principal.is_privileged or record.owner_id == principal.id
        return can_access(session, principal, self.entity_type, record.id, record.owner_id)

    def get_accessible(self, session: Session, principal: Principal, entity_id: str) -> ModelT | None:
        """Load one record, or ``None`` when it is missing or the principal may not see it."""

        record = session.scalar(select(self.model).where(self.model.id == entity_id))  # type: ignore[attr-defined]
        if record is None or not self.can_access_record(session, principal, record):
            return None
        return record

    def require_accessible(self, session: Session, principal: Principal, entity_id: str) -> ModelT:
        record = self.get_accessible(session, principal, entity_id)
        if record is None:
            label = self.entity_type.value if self.entity_type is not None else self.model.__tablename__  # type: ignore[attr-defined]
            raise RecordNotVisibleError(label, entity_id)
        return record
