from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from wbcrm import audit, events
from wbcrm.crm.models import Activity, Organization
from wbcrm.crm.schemas import ActivityRead, HostingRenewalRead, RenewalCheckResult
from wbcrm.metrics import observe_hosting_renewal_activity
from wbcrm.platform.security import OwnedRepository, Principal, RecordNotVisibleError


logger = logging.getLogger("wbcrm.crm.renewals")

hosted_organization_repository: OwnedRepository[Organization] = OwnedRepository(Organization)


def renewal_subject(organization_name: str) -> str:
    return f"Hosting renewal - {organization_name}"


def _renewal_date(organization: Organization) -> date:
    if organization.hosting_renewal_date is None:
        raise ValueError(f"organization {organization.id} has no hosting renewal date")
    return organization.hosting_renewal_date


def reminder_date(organization: Organization) -> date:
    return _renewal_date(organization) - timedelta(days=organization.hosting_reminder_days)


def _format_money(value: Decimal) -> str:
    return f"{Decimal(value):,.2f}"


def renewal_description(organization: Organization) -> str:
    renewal = _renewal_date(organization)
    lines = [
        f"Hosting renewal for {organization.name}",
        "",
        f"Renewal date: {renewal.isoformat()}",
    ]
    if organization.hosting_plan:
        lines.append(f"Plan: {organization.hosting_plan}")
    if organization.hosting_value:
        lines.append(f"Value: {_format_money(organization.hosting_value)}")
    if organization.hosting_notes:
        lines.extend(["", f"Notes: {organization.hosting_notes}"])
    return "\n".join(lines)


class HostingRenewalService:
    """Hosting renewal reminders over organizations visible to the caller by ownership alone."""

    repository = hosted_organization_repository

    def upcoming_renewals(
        self,
        session: Session,
        principal: Principal,
        days: int = 30,
        owner_selector: str | None = None,
        today: date | None = None,
    ) -> list[HostingRenewalRead]:
        today = today or date.today()
        horizon = today + timedelta(days=days)
        stmt = self.repository.apply_scope_query(
            select(Organization).where(
                Organization.has_hosting.is_(True),
                Organization.hosting_renewal_date.is_not(None),
                Organization.hosting_renewal_date >= today,
                Organization.hosting_renewal_date <= horizon,
            ),
            session,
            principal,
            owner_selector,
        )
        rows = session.scalars(stmt.order_by(Organization.hosting_renewal_date.asc(), Organization.name.asc())).all()
        return [
            HostingRenewalRead(
                id=row.id,
                name=row.name,
                owner_id=row.owner_id,
                hosting_renewal_date=row.hosting_renewal_date,
                hosting_plan=row.hosting_plan,
                hosting_value=row.hosting_value,
                hosting_reminder_days=row.hosting_reminder_days,
                days_until_renewal=(row.hosting_renewal_date - today).days,
            )
            for row in rows
        ]

    def create_renewal_activity(
        self, session: Session, principal: Principal, organization_id: str
    ) -> tuple[ActivityRead, bool]:
        """Return the open reminder for the organization, creating it when missing.

        The flag is True only when a new activity was written.
        """

        try:
            organization = self.repository.require_accessible(session, principal, organization_id)
        except RecordNotVisibleError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="organization not found")

        if not organization.has_hosting:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="organization has no hosting")
        if organization.hosting_renewal_date is None:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="hosting renewal date not set")

        existing = self._open_reminder(session, principal, organization)
        if existing is not None:
            observe_hosting_renewal_activity("existing")
            return ActivityRead.model_validate(existing), False

        activity = self._create_reminder(session, principal, organization)
        session.commit()
        session.refresh(activity)
        return ActivityRead.model_validate(activity), True

    def check_renewals(self, session: Session, principal: Principal, today: date | None = None) -> RenewalCheckResult:
        today = today or date.today()
        stmt = self.repository.apply_scope_query(
            select(Organization).where(
                Organization.has_hosting.is_(True),
                Organization.hosting_renewal_date.is_not(None),
            ),
            session,
            principal,
        )
        organizations = session.scalars(stmt.order_by(Organization.hosting_renewal_date.asc())).all()

        created = 0
        skipped = 0
        for organization in organizations:
            if not (reminder_date(organization) <= today <= organization.hosting_renewal_date):
                continue
            if self._open_reminder(session, principal, organization) is not None:
                observe_hosting_renewal_activity("existing")
                skipped += 1
                continue
            self._create_reminder(session, principal, organization)
            created += 1

        session.commit()
        logger.info(
            "hosting_renewals.checked",
            extra={"principal_id": principal.id, "created_count": created, "skipped_count": skipped},
        )
        return RenewalCheckResult(created=created, skipped=skipped, total=len(organizations))

    @staticmethod
    def _open_reminder(session: Session, principal: Principal, organization: Organization) -> Activity | None:
        return session.scalar(
            select(Activity)
            .where(
                Activity.organization_id == organization.id,
                Activity.subject == renewal_subject(organization.name),
                Activity.completed.is_(False),
                Activity.owner_id == principal.id,
            )
            .order_by(Activity.created_at.asc())
            .limit(1)
        )

    @staticmethod
    def _create_reminder(session: Session, principal: Principal, organization: Organization) -> Activity:
        activity = Activity(
            type="task",
            subject=renewal_subject(organization.name),
            description=renewal_description(organization),
            due_date=reminder_date(organization),
            completed=False,
            organization_id=organization.id,
            owner_id=principal.id,
        )
        session.add(activity)
        session.flush()

        observe_hosting_renewal_activity("created")
        audit.record(
            actor_user_id=principal.id,
            entity_type="crm.activity",
            entity_id=activity.id,
            action="created",
            before=None,
            after={"subject": activity.subject, "organization_id": organization.id},
        )
        events.publish(
            events.build_envelope(
                "crm.hosting_renewal.reminder_created",
                principal.id,
                {"activity_id": activity.id, "organization_id": organization.id},
            )
        )
        return activity


hosting_renewal_service = HostingRenewalService()
