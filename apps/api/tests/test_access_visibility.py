from __future__ import annotations

import pytest
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from wbcrm.authz.models import SharedEntity, User
from wbcrm.crm.models import Deal, Lead, Pipeline, Stage
from wbcrm.platform.security import (
    UNRESTRICTED,
    AuthorizationError,
    AuthSource,
    EntityType,
    OwnedRepository,
    Principal,
    RecordNotVisibleError,
    Role,
    VisibilityFilter,
    can_access,
    ensure_privileged,
    normalize_role,
    owner_only_filter,
    owner_or_shared_filter,
    shared_entity_ids,
)

SELECTORS = [None, "", "all", "mine", "u2", "admin-1", "does-not-exist"]

sdr = Principal(id="u1", role=Role.SDR)
closer = Principal(id="u3", role=Role.CLOSER)
admin = Principal(id="admin-1", role=Role.ADMIN)
internal = Principal(id="admin-1", role=Role.ADMIN, auth_source=AuthSource.INTERNAL_TRUSTED)


def _grant(session: Session, entity_type: str, entity_id: str, user_id: str) -> None:
    session.add(
        SharedEntity(
            entity_type=entity_type,
            entity_id=entity_id,
            shared_with_user_id=user_id,
            shared_by_user_id="admin-1",
        )
    )
    session.commit()


@pytest.fixture()
def leads(db_session: Session) -> dict[str, Lead]:
    db_session.add_all(
        [
            User(id="admin-1", name="Admin", email="admin@wb.com.br", role="admin"),
            User(id="u1", name="U1", email="u1@wb.com.br", role="sdr"),
            User(id="u2", name="U2", email="u2@wb.com.br", role="sdr"),
            User(id="u3", name="U3", email="u3@wb.com.br", role="closer"),
        ]
    )
    rows = {
        "l1": Lead(id="l1", business_name="Own Lead", owner_id="u1"),
        "l2": Lead(id="l2", business_name="Shared Lead", owner_id="u2"),
        "l3": Lead(id="l3", business_name="Foreign Lead", owner_id="u2"),
        "l4": Lead(id="l4", business_name="Admin Lead", owner_id="admin-1"),
    }
    db_session.add_all(rows.values())
    db_session.commit()
    return rows


def _visible_ids(session: Session, visibility: VisibilityFilter) -> set[str]:
    return set(session.scalars(visibility.apply(select(Lead.id), Lead)).all())


@pytest.mark.parametrize("principal", [sdr, closer])
@pytest.mark.parametrize("selector", SELECTORS)
def test_owner_only_filter_ignores_selector_for_unprivileged(principal: Principal, selector: str | None) -> None:
    assert owner_only_filter(principal, selector) == VisibilityFilter(owner_id=principal.id)


@pytest.mark.parametrize("selector", [None, "", "all"])
def test_owner_only_filter_is_unrestricted_for_admin_without_selector(selector: str | None) -> None:
    visibility = owner_only_filter(admin, selector)

    assert visibility == UNRESTRICTED
    assert visibility.is_unrestricted
    assert visibility.as_dict() == {}


def test_admin_mine_selector_narrows_to_own_rows(db_session: Session, leads: dict[str, Lead]) -> None:
    visibility = owner_only_filter(admin, "mine")

    assert visibility.as_dict() == {"owner_id": "admin-1"}
    assert not visibility.is_unrestricted
    assert _visible_ids(db_session, visibility) == {"l4"}


def test_admin_selector_passes_user_id_through(db_session: Session, leads: dict[str, Lead]) -> None:
    assert _visible_ids(db_session, owner_only_filter(admin, "u2")) == {"l2", "l3"}
    assert _visible_ids(db_session, owner_only_filter(admin, "nobody")) == set()


def test_internal_principal_sees_everything_by_default(db_session: Session, leads: dict[str, Lead]) -> None:
    visibility = owner_or_shared_filter(db_session, internal, EntityType.LEAD)

    assert visibility.is_unrestricted
    assert _visible_ids(db_session, visibility) == {"l1", "l2", "l3", "l4"}


def test_internal_sdr_principal_is_privileged() -> None:
    principal = Principal(id="u1", role=Role.SDR, auth_source=AuthSource.INTERNAL_TRUSTED)

    assert principal.is_internal
    assert principal.is_privileged
    assert owner_only_filter(principal) == UNRESTRICTED


def test_owner_or_shared_without_grants_matches_owner_only(db_session: Session, leads: dict[str, Lead]) -> None:
    for selector in SELECTORS:
        assert owner_or_shared_filter(db_session, sdr, EntityType.LEAD, selector) == owner_only_filter(sdr, selector)
        assert owner_or_shared_filter(db_session, admin, EntityType.LEAD, selector) == owner_only_filter(admin, selector)


def test_owner_or_shared_matches_owned_and_shared_rows_only(db_session: Session, leads: dict[str, Lead]) -> None:
    _grant(db_session, "lead", "l2", "u1")

    visibility = owner_or_shared_filter(db_session, sdr, "lead")

    assert visibility.shared_ids == frozenset({"l2"})
    assert visibility.as_dict() == {"or": [{"owner_id": "u1"}, {"id": {"in": ["l2"]}}]}
    assert _visible_ids(db_session, visibility) == {"l1", "l2"}
    for lead in leads.values():
        assert visibility.matches(owner_id=lead.owner_id, entity_id=lead.id) == (lead.id in {"l1", "l2"})


def test_grants_are_scoped_by_entity_type(db_session: Session, leads: dict[str, Lead]) -> None:
    _grant(db_session, "deal", "l3", "u1")

    assert shared_entity_ids(db_session, "u1", EntityType.LEAD) == frozenset()
    assert shared_entity_ids(db_session, "u1", EntityType.DEAL) == frozenset({"l3"})
    assert _visible_ids(db_session, owner_or_shared_filter(db_session, sdr, EntityType.LEAD)) == {"l1"}


@pytest.mark.parametrize("owner_id", ["u1", "u2", "someone-else", None])
def test_can_access_always_true_for_admin(db_session: Session, owner_id: str | None) -> None:
    assert can_access(db_session, admin, EntityType.ORGANIZATION, "o1", owner_id)
    assert can_access(db_session, internal, EntityType.ORGANIZATION, "o1", owner_id)


@pytest.mark.parametrize("entity_type", list(EntityType))
def test_can_access_true_for_own_record(db_session: Session, entity_type: EntityType) -> None:
    assert can_access(db_session, sdr, entity_type, "any-id", sdr.id)


def test_scenario_a_no_grant_denies(db_session: Session) -> None:
    assert not can_access(db_session, sdr, EntityType.DEAL, "d1", "u2")


def test_scenario_b_grant_allows_and_revocation_applies_immediately(db_session: Session, leads: dict[str, Lead]) -> None:
    assert not can_access(db_session, sdr, "deal", "d1", "u2")

    _grant(db_session, "deal", "d1", "u1")
    assert can_access(db_session, sdr, "deal", "d1", "u2")
    assert not can_access(db_session, sdr, "lead", "d1", "u2")
    assert not can_access(db_session, closer, "deal", "d1", "u2")

    db_session.execute(delete(SharedEntity).where(SharedEntity.entity_id == "d1"))
    db_session.commit()
    assert not can_access(db_session, sdr, "deal", "d1", "u2")


def test_scenario_c_admin_mine_filter_is_not_empty() -> None:
    visibility = owner_only_filter(admin, "mine")

    assert visibility == VisibilityFilter(owner_id=admin.id)
    assert visibility != UNRESTRICTED


def test_unknown_entity_type_is_rejected(db_session: Session) -> None:
    with pytest.raises(ValueError):
        can_access(db_session, sdr, "invoice", "x1", "u2")


def test_ensure_privileged_raises_for_unprivileged() -> None:
    ensure_privileged(admin)
    ensure_privileged(internal)
    with pytest.raises(AuthorizationError):
        ensure_privileged(sdr)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("admin", Role.ADMIN), (" Closer ", Role.CLOSER), ("sdr", Role.SDR), ("owner", Role.SDR), (None, Role.SDR), ("", Role.SDR)],
)
def test_normalize_role_defaults_to_sdr(raw: str | None, expected: Role) -> None:
    assert normalize_role(raw) == expected


def test_repository_hides_records_behind_not_visible_error(db_session: Session, leads: dict[str, Lead]) -> None:
    repository = OwnedRepository(Lead, EntityType.LEAD)

    assert repository.get_accessible(db_session, sdr, "l1") is not None
    assert repository.get_accessible(db_session, sdr, "l3") is None
    assert repository.get_accessible(db_session, sdr, "missing") is None
    with pytest.raises(RecordNotVisibleError) as exc_info:
        repository.require_accessible(db_session, sdr, "l3")
    assert str(exc_info.value) == "lead not found"

    _grant(db_session, "lead", "l3", "u1")
    assert repository.require_accessible(db_session, sdr, "l3").id == "l3"


def test_owner_only_repository_ignores_share_grants(db_session: Session) -> None:
    db_session.add_all(
        [
            Pipeline(id="p1", name="Sales"),
            Stage(id="s1", pipeline_id="p1", name="New", order=0, probability=10),
            Deal(id="d1", title="Shared Deal", stage_id="s1", owner_id="u2"),
        ]
    )
    db_session.commit()
    _grant(db_session, "deal", "d1", "u1")

    shareable = OwnedRepository(Deal, EntityType.DEAL)
    owner_only = OwnedRepository(Deal)

    assert shareable.get_accessible(db_session, sdr, "d1") is not None
    assert owner_only.get_accessible(db_session, sdr, "d1") is None
    assert owner_only.get_accessible(db_session, admin, "d1") is not None
