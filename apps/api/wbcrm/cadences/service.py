from __future__ import annotations

import math
from datetime import date, datetime, timedelta, timezone
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wbcrm.associations.models import LeadICP
from wbcrm.authz.models import utcnow
from wbcrm.cadences.models import Cadence, CadenceStep, LeadCadence, LeadCadenceActivity
from wbcrm.cadences.schemas import (
    CadenceCreate,
    CadenceDetailRead,
    CadenceRead,
    CadenceStepCreate,
    CadenceStepRead,
    CadenceStepReorder,
    CadenceStepUpdate,
    CadenceUpdate,
    LeadCadenceApply,
    LeadCadenceApplyResult,
    LeadCadenceRead,
)
from wbcrm.catalog.service import catalog_service
from wbcrm.catalog.slugs import SLUG_PATTERN, unique_slug
from wbcrm.crm.models import Activity
from wbcrm.crm.service import OwnedEntityService, lead_service
from wbcrm.platform.security import OwnedRepository, Principal

FINISHED_LEAD_CADENCE_STATUSES = {"completed", "cancelled"}

cadence_repository: OwnedRepository[Cadence] = OwnedRepository(Cadence)
lead_cadence_repository: OwnedRepository[LeadCadence] = OwnedRepository(LeadCadence)


def _commit(session: Session, conflict_detail: str) -> None:
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=conflict_detail)


def _slug_taken(session: Session, slug: str, exclude_id: str | None = None) -> bool:
    stmt = select(Cadence.id).where(Cadence.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(Cadence.id != exclude_id)
    return session.scalar(stmt.limit(1)) is not None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class CadenceService(OwnedEntityService):
    """Outreach cadences and their steps, visible to their owner and admins."""

    label = "cadence"
    repository = cadence_repository

    def list_cadences(
        self,
        session: Session,
        principal: Principal,
        filters: dict[str, Any],
        owner_selector: str | None = None,
    ) -> list[CadenceRead]:
        stmt = self._scoped(session, principal, owner_selector)
        if filters.get("status"):
            stmt = stmt.where(Cadence.status == filters["status"])
        if filters.get("icp_id"):
            stmt = stmt.where(Cadence.icp_id == filters["icp_id"])
        if filters.get("search"):
            pattern = f"%{str(filters['search']).strip()}%"
            stmt = stmt.where(Cadence.name.ilike(pattern) | Cadence.description.ilike(pattern))

        rows = session.scalars(stmt.order_by(Cadence.created_at.desc(), Cadence.id.asc())).all()
        return [self._to_read(row) for row in rows]

    def get_cadence(self, session: Session, principal: Principal, cadence_id: str) -> CadenceDetailRead:
        return self._to_detail(self._load(session, principal, cadence_id))

    def create_cadence(self, session: Session, principal: Principal, dto: CadenceCreate) -> CadenceDetailRead:
        if dto.icp_id is not None:
            catalog_service._load_icp(session, principal, dto.icp_id)
        slug = self._resolve_slug(session, dto.name, dto.slug)

        cadence = Cadence(
            name=dto.name,
            slug=slug,
            description=dto.description,
            objective=dto.objective,
            duration_days=dto.duration_days,
            icp_id=dto.icp_id,
            status=dto.status,
            owner_id=principal.id,
        )
        session.add(cadence)
        _commit(session, "slug already exists")
        session.refresh(cadence)

        cadence_read = self._to_detail(cadence)
        self._track(principal, "created", cadence.id, None, cadence_read.model_dump(mode="json"))
        return cadence_read

    def update_cadence(self, session: Session, principal: Principal, cadence_id: str, dto: CadenceUpdate) -> CadenceDetailRead:
        cadence = self._load(session, principal, cadence_id)
        before = self._to_read(cadence).model_dump(mode="json")

        changes = {
            key: value
            for key, value in dto.model_dump(exclude_unset=True).items()
            if value is not None or key in {"description", "objective", "icp_id"}
        }
        if changes.get("slug") and _slug_taken(session, changes["slug"], exclude_id=cadence.id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="slug already exists")
        if changes.get("icp_id"):
            catalog_service._load_icp(session, principal, changes["icp_id"])

        for key, value in changes.items():
            setattr(cadence, key, value)
        _commit(session, "slug already exists")
        session.refresh(cadence)

        cadence_read = self._to_detail(cadence)
        self._track(principal, "updated", cadence.id, before, cadence_read.model_dump(mode="json"))
        return cadence_read

    def delete_cadence(self, session: Session, principal: Principal, cadence_id: str) -> None:
        cadence = self._load(session, principal, cadence_id)
        active = session.scalar(
            select(func.count(LeadCadence.id)).where(LeadCadence.cadence_id == cadence.id, LeadCadence.status == "active")
        )
        if active:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"cannot delete: {active} lead(s) with active cadence",
            )

        before = self._to_read(cadence).model_dump(mode="json")
        session.delete(cadence)
        session.commit()
        self._track(principal, "deleted", cadence_id, before, None)

    def cadences_for_icp(self, session: Session, principal: Principal, icp_id: str | None = None) -> list[CadenceRead]:
        """Active cadences that are generic or aimed at ``icp_id``."""

        stmt = self._scoped(session, principal).where(Cadence.status == "active")
        if icp_id:
            stmt = stmt.where(or_(Cadence.icp_id.is_(None), Cadence.icp_id == icp_id))
        else:
            stmt = stmt.where(Cadence.icp_id.is_(None))
        rows = session.scalars(stmt.order_by(Cadence.name.asc(), Cadence.id.asc())).all()
        return [self._to_read(row) for row in rows]

    def add_step(self, session: Session, principal: Principal, cadence_id: str, dto: CadenceStepCreate) -> CadenceStepRead:
        cadence = self._load(session, principal, cadence_id)
        order = dto.order
        if order is None:
            last = session.scalar(
                select(func.max(CadenceStep.order)).where(
                    CadenceStep.cadence_id == cadence.id,
                    CadenceStep.day_number == dto.day_number,
                )
            )
            order = 0 if last is None else last + 1

        step = CadenceStep(
            cadence_id=cadence.id,
            day_number=dto.day_number,
            channel=dto.channel,
            subject=dto.subject,
            description=dto.description,
            order=order,
        )
        session.add(step)
        session.commit()
        session.refresh(step)

        step_read = CadenceStepRead.model_validate(step)
        self._track(principal, "step_added", cadence.id, None, step_read.model_dump(mode="json"), {"step_id": step.id})
        return step_read

    def update_step(self, session: Session, principal: Principal, step_id: str, dto: CadenceStepUpdate) -> CadenceStepRead:
        step = self._load_step(session, principal, step_id)
        before = CadenceStepRead.model_validate(step).model_dump(mode="json")

        for key, value in dto.model_dump(exclude_unset=True).items():
            if value is not None or key == "description":
                setattr(step, key, value)
        session.commit()
        session.refresh(step)

        step_read = CadenceStepRead.model_validate(step)
        self._track(
            principal,
            "step_updated",
            step.cadence_id,
            before,
            step_read.model_dump(mode="json"),
            {"step_id": step.id},
        )
        return step_read

    def delete_step(self, session: Session, principal: Principal, step_id: str) -> None:
        step = self._load_step(session, principal, step_id)
        before = CadenceStepRead.model_validate(step).model_dump(mode="json")
        cadence_id = step.cadence_id
        session.delete(step)
        session.commit()
        self._track(principal, "step_removed", cadence_id, before, None, {"step_id": step_id})

    def reorder_steps(
        self,
        session: Session,
        principal: Principal,
        cadence_id: str,
        dto: CadenceStepReorder,
    ) -> CadenceDetailRead:
        cadence = self._load(session, principal, cadence_id)
        steps = {step.id: step for step in cadence.steps}
        unknown = [position.id for position in dto.steps if position.id not in steps]
        if unknown:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="cadence step not found")

        for position in dto.steps:
            steps[position.id].day_number = position.day_number
            steps[position.id].order = position.order
        session.commit()

        cadence_read = self._to_detail(cadence)
        self._track(principal, "steps_reordered", cadence.id, None, None, {"step_ids": [position.id for position in dto.steps]})
        return cadence_read

    def _load_step(self, session: Session, principal: Principal, step_id: str) -> CadenceStep:
        step = session.scalar(select(CadenceStep).where(CadenceStep.id == step_id))
        if step is None or not self.repository.can_access_record(session, principal, step.cadence):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="cadence step not found")
        return step

    @staticmethod
    def _resolve_slug(session: Session, name: str, requested: str | None) -> str:
        if requested:
            if _slug_taken(session, requested):
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="slug already exists")
            return requested

        slug = unique_slug(name, lambda candidate: _slug_taken(session, candidate))
        if len(slug) < 2 or not SLUG_PATTERN.match(slug):
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="name does not produce a valid slug")
        return slug

    @staticmethod
    def _to_read(cadence: Cadence) -> CadenceRead:
        cadence_read = CadenceRead.model_validate(cadence)
        cadence_read.step_count = len(cadence.steps)
        return cadence_read

    @staticmethod
    def _to_detail(cadence: Cadence) -> CadenceDetailRead:
        cadence_read = CadenceDetailRead.model_validate(cadence)
        cadence_read.step_count = len(cadence.steps)
        return cadence_read


class LeadCadenceService(OwnedEntityService):
    """Cadences applied to leads, with the follow-up activities they scheduled."""

    label = "lead_cadence"
    repository = lead_cadence_repository

    def apply_cadence(
        self,
        session: Session,
        principal: Principal,
        lead_id: str,
        dto: LeadCadenceApply,
    ) -> LeadCadenceApplyResult:
        lead = lead_service._load(session, principal, lead_id)
        cadence = cadence_repository.get_accessible(session, principal, dto.cadence_id)
        if cadence is None or cadence.status != "active":
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="cadence not found or inactive")
        if not cadence.steps:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="cadence has no steps")
        existing = session.scalar(
            select(LeadCadence.id).where(LeadCadence.lead_id == lead.id, LeadCadence.cadence_id == cadence.id)
        )
        if existing is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="cadence already applied to lead")

        start_date = dto.start_date or date.today()
        lead_cadence = LeadCadence(
            lead_id=lead.id,
            cadence_id=cadence.id,
            status="active",
            start_date=start_date,
            notes=dto.notes,
            owner_id=principal.id,
        )
        session.add(lead_cadence)
        session.flush()

        activity_ids: list[str] = []
        for step in cadence.steps:
            due_date = start_date + timedelta(days=step.day_number - 1)
            activity = Activity(
                type=step.channel,
                subject=step.subject,
                description=step.description,
                due_date=due_date,
                completed=False,
                lead_id=lead.id,
                owner_id=principal.id,
            )
            session.add(activity)
            session.flush()
            session.add(
                LeadCadenceActivity(
                    lead_cadence_id=lead_cadence.id,
                    cadence_step_id=step.id,
                    activity_id=activity.id,
                    scheduled_date=due_date,
                )
            )
            activity_ids.append(activity.id)

        _commit(session, "cadence already applied to lead")
        session.refresh(lead_cadence)

        lead_cadence_read = self._to_read(lead_cadence)
        self._track(
            principal,
            "applied",
            lead_cadence.id,
            None,
            lead_cadence_read.model_dump(mode="json"),
            {"lead_id": lead.id, "cadence_id": cadence.id, "activity_ids": activity_ids},
        )
        return LeadCadenceApplyResult(lead_cadence=lead_cadence_read, activity_ids=activity_ids)

    def list_for_lead(self, session: Session, principal: Principal, lead_id: str) -> list[LeadCadenceRead]:
        lead = lead_service._load(session, principal, lead_id)
        rows = session.scalars(
            select(LeadCadence)
            .where(LeadCadence.lead_id == lead.id)
            .order_by(LeadCadence.created_at.desc(), LeadCadence.id.asc())
        ).all()
        return [self._to_read(row) for row in rows]

    def available_for_lead(self, session: Session, principal: Principal, lead_id: str) -> list[CadenceRead]:
        """Active cadences not yet applied to the lead, generic or matching one of its ICPs."""

        lead = lead_service._load(session, principal, lead_id)
        icp_ids = select(LeadICP.icp_id).where(LeadICP.lead_id == lead.id)
        applied_ids = select(LeadCadence.cadence_id).where(LeadCadence.lead_id == lead.id)
        stmt = (
            cadence_repository.apply_scope_query(select(Cadence), session, principal)
            .where(Cadence.status == "active")
            .where(Cadence.id.not_in(applied_ids))
            .where(or_(Cadence.icp_id.is_(None), Cadence.icp_id.in_(icp_ids)))
        )
        rows = session.scalars(stmt.order_by(Cadence.name.asc(), Cadence.id.asc())).all()
        return [CadenceService._to_read(row) for row in rows]

    def pause(self, session: Session, principal: Principal, lead_cadence_id: str) -> LeadCadenceRead:
        lead_cadence = self._load(session, principal, lead_cadence_id)
        if lead_cadence.status != "active":
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="only active cadences can be paused",
            )
        return self._transition(session, principal, lead_cadence, "paused", "paused", paused_at=utcnow())

    def resume(
        self,
        session: Session,
        principal: Principal,
        lead_cadence_id: str,
        now: datetime | None = None,
    ) -> LeadCadenceRead:
        """Reactivate a paused cadence, pushing pending activities back by the whole days spent paused."""

        lead_cadence = self._load(session, principal, lead_cadence_id)
        if lead_cadence.status != "paused":
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="only paused cadences can be resumed",
            )

        now = now or utcnow()
        days_paused = 0
        if lead_cadence.paused_at is not None:
            elapsed = now - _as_utc(lead_cadence.paused_at)
            days_paused = max(math.ceil(elapsed.total_seconds() / 86400), 0)
        if days_paused:
            for link in lead_cadence.activities:
                activity = link.activity
                if activity is None or activity.completed or activity.due_date is None:
                    continue
                activity.due_date = activity.due_date + timedelta(days=days_paused)

        return self._transition(
            session,
            principal,
            lead_cadence,
            "active",
            "resumed",
            paused_at=None,
            payload={"days_paused": days_paused},
        )

    def cancel(self, session: Session, principal: Principal, lead_cadence_id: str) -> LeadCadenceRead:
        lead_cadence = self._load(session, principal, lead_cadence_id)
        self._ensure_not_finished(lead_cadence)
        return self._transition(session, principal, lead_cadence, "cancelled", "cancelled", cancelled_at=utcnow())

    def complete(self, session: Session, principal: Principal, lead_cadence_id: str) -> LeadCadenceRead:
        lead_cadence = self._load(session, principal, lead_cadence_id)
        self._ensure_not_finished(lead_cadence)
        return self._transition(session, principal, lead_cadence, "completed", "completed", completed_at=utcnow())

    def _transition(
        self,
        session: Session,
        principal: Principal,
        lead_cadence: LeadCadence,
        new_status: str,
        action: str,
        payload: dict[str, Any] | None = None,
        **stamps: datetime | None,
    ) -> LeadCadenceRead:
        before = self._to_read(lead_cadence).model_dump(mode="json")
        lead_cadence.status = new_status
        for key, value in stamps.items():
            setattr(lead_cadence, key, value)
        session.commit()
        session.refresh(lead_cadence)

        lead_cadence_read = self._to_read(lead_cadence)
        self._track(
            principal,
            action,
            lead_cadence.id,
            before,
            lead_cadence_read.model_dump(mode="json"),
            {"lead_id": lead_cadence.lead_id, **(payload or {})},
        )
        return lead_cadence_read

    @staticmethod
    def _ensure_not_finished(lead_cadence: LeadCadence) -> None:
        if lead_cadence.status in FINISHED_LEAD_CADENCE_STATUSES:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="cadence already finished")

    @staticmethod
    def _to_read(lead_cadence: LeadCadence) -> LeadCadenceRead:
        lead_cadence_read = LeadCadenceRead.model_validate(lead_cadence)
        activities = [link.activity for link in lead_cadence.activities if link.activity is not None]
        completed = sum(1 for activity in activities if activity.completed)
        lead_cadence_read.cadence_name = lead_cadence.cadence.name if lead_cadence.cadence is not None else None
        lead_cadence_read.completed_activities = completed
        lead_cadence_read.total_activities = len(activities)
        lead_cadence_read.progress = round(completed * 100 / len(activities)) if activities else 0
        return lead_cadence_read


cadence_service = CadenceService()
lead_cadence_service = LeadCadenceService()
