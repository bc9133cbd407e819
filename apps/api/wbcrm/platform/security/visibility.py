from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TypeVar

from sqlalchemy import ColumnElement, Select, or_, select
from sqlalchemy.orm import Session

from wbcrm.authz.models import SharedEntity
from wbcrm.metrics import observe_share_grant_lookup
from wbcrm.platform.security.context import Principal


OWNER_SELECTOR_ALL = "all"
OWNER_SELECTOR_MINE = "mine"

SelectT = TypeVar("SelectT", bound=Select[Any])


class EntityType(StrEnum):
    LEAD = "lead"
    CONTACT = "contact"
    ORGANIZATION = "organization"
    PARTNER = "partner"
    DEAL = "deal"


@dataclass(frozen=True, slots=True)
class VisibilityFilter:
    """Row predicate: no restriction, ``owner_id = X``, or ``owner_id = X OR id IN shared_ids``."""

    owner_id: str | None = None
    shared_ids: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_unrestricted(self) -> bool:
        return self.owner_id is None

    def matches(self, *, owner_id: str | None, entity_id: str) -> bool:
        if self.owner_id is None:
            return True
        return owner_id == self.owner_id or entity_id in self.shared_ids

    def clause(self, model: Any) -> ColumnElement[bool] | None:
        if self.owner_id is None:
            return None
        owner_clause = model.owner_id == self.owner_id
        if not self.shared_ids:
            return owner_clause
        return or_(owner_clause, model.id.in_(sorted(self.shared_ids)))

    def apply(self, stmt: SelectT, model: Any) -> SelectT:
        clause = self.clause(model)
        if clause is None:
            return stmt
        return stmt.where(clause)

    def as_dict(self) -> dict[str, Any]:
        if self.owner_id is None:
            return {}
        if not self.shared_ids:
            return {"owner_id": self.owner_id}
        return {"or": [{"owner_id": self.owner_id}, {"id": {"in": sorted(self.shared_ids)}}]}


UNRESTRICTED = VisibilityFilter()


def owner_only_filter(principal: Principal, owner_selector: str | None = None) -> VisibilityFilter:
    """Visibility restricted by owner alone.

    A non-privileged principal always gets its own rows; the selector cannot widen
    or redirect that. Privileged principals may pick "all" (default), "mine", or any
    user id, passed through literally, so an unknown id yields an empty result set.
    """

    if not principal.is_privileged:
        return VisibilityFilter(owner_id=principal.id)

    match owner_selector:
        case None | "" | "all":
            return UNRESTRICTED
        case "mine":
            return VisibilityFilter(owner_id=principal.id)
        case _:
            return VisibilityFilter(owner_id=owner_selector)


def shared_entity_ids(session: Session, user_id: str, entity_type: EntityType | str) -> frozenset[str]:
    entity_type_value = EntityType(entity_type).value
    observe_share_grant_lookup(entity_type_value)
    rows = session.scalars(
        select(SharedEntity.entity_id).where(
            SharedEntity.entity_type == entity_type_value,
            SharedEntity.shared_with_user_id == user_id,
        )
    ).all()
    return frozenset(rows)


def owner_or_shared_filter(
    session: Session,
    principal: Principal,
    entity_type: EntityType | str,
    owner_selector: str | None = None,
) -> VisibilityFilter:
    if principal.is_privileged:
        return owner_only_filter(principal, owner_selector)

    shared_ids = shared_entity_ids(session, principal.id, entity_type)
    if not shared_ids:
        return VisibilityFilter(owner_id=principal.id)
    return VisibilityFilter(owner_id=principal.id, shared_ids=shared_ids)
