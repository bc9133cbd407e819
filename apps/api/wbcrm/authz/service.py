from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wbcrm import audit, events
from wbcrm.authz.models import SharedEntity, User
from wbcrm.authz.schemas import ShareRead, TransferResult, UserRead
from wbcrm.core.rbac import require_admin
from wbcrm.crm.models import Contact, Deal, Lead, Organization, Partner
from wbcrm.platform.security import EntityType, Principal, can_access


logger = logging.getLogger("wbcrm.authz.sharing")

OWNED_MODELS: dict[EntityType, type[Any]] = {
    EntityType.LEAD: Lead,
    EntityType.CONTACT: Contact,
    EntityType.ORGANIZATION: Organization,
    EntityType.PARTNER: Partner,
    EntityType.DEAL: Deal,
}


class UserService:
    def list_users(self, session: Session, principal: Principal) -> list[UserRead]:
        require_admin(principal)
        rows = session.scalars(select(User).order_by(User.name.asc(), User.id.asc())).all()
        return [UserRead.model_validate(row) for row in rows]


class SharingService:
    """Share grants and ownership transfer for owned CRM records."""

    def share(
        self,
        session: Session,
        principal: Principal,
        entity_type: EntityType,
        entity_id: str,
        user_id: str,
    ) -> ShareRead:
        require_admin(principal)
        record = self._get_record(session, entity_type, entity_id)
        self._get_user(session, user_id)

        if record.owner_id == user_id:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="record is already owned by this user",
            )
        if self._get_grant(session, entity_type, entity_id, user_id) is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="record already shared with this user")

        grant = SharedEntity(
            entity_type=entity_type.value,
            entity_id=entity_id,
            shared_with_user_id=user_id,
            shared_by_user_id=principal.id,
        )
        session.add(grant)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="record already shared with this user")
        session.refresh(grant)

        share_read = ShareRead.model_validate(grant)
        self._track(principal, "granted", entity_type, entity_id, None, share_read.model_dump(mode="json"), user_id)
        return share_read

    def unshare(
        self,
        session: Session,
        principal: Principal,
        entity_type: EntityType,
        entity_id: str,
        user_id: str,
    ) -> None:
        require_admin(principal)
        grant = self._get_grant(session, entity_type, entity_id, user_id)
        if grant is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="share not found")

        before = ShareRead.model_validate(grant).model_dump(mode="json")
        session.delete(grant)
        session.commit()
        self._track(principal, "revoked", entity_type, entity_id, before, None, user_id)

    def list_shares(
        self,
        session: Session,
        principal: Principal,
        entity_type: EntityType,
        entity_id: str,
    ) -> list[ShareRead]:
        record = session.scalar(select(OWNED_MODELS[entity_type]).where(OWNED_MODELS[entity_type].id == entity_id))
        if record is None or not can_access(session, principal, entity_type, entity_id, record.owner_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{entity_type.value} not found")

        rows = session.scalars(
            select(SharedEntity)
            .where(SharedEntity.entity_type == entity_type.value, SharedEntity.entity_id == entity_id)
            .order_by(SharedEntity.created_at.desc(), SharedEntity.id.asc())
        ).all()
        return [ShareRead.model_validate(row) for row in rows]

    def transfer(
        self,
        session: Session,
        principal: Principal,
        entity_type: EntityType,
        entity_id: str,
        new_owner_id: str,
    ) -> TransferResult:
        require_admin(principal)
        record = self._get_record(session, entity_type, entity_id)
        self._get_user(session, new_owner_id)

        previous_owner_id = record.owner_id
        record.owner_id = new_owner_id
        revoked = session.execute(
            delete(SharedEntity).where(
                SharedEntity.entity_type == entity_type.value,
                SharedEntity.entity_id == entity_id,
            )
        ).rowcount
        session.commit()

        result = TransferResult(
            entity_type=entity_type.value,
            entity_id=entity_id,
            previous_owner_id=previous_owner_id,
            new_owner_id=new_owner_id,
            revoked_shares=revoked or 0,
        )
        self._track(
            principal,
            "transferred",
            entity_type,
            entity_id,
            {"owner_id": previous_owner_id},
            {"owner_id": new_owner_id},
            new_owner_id,
        )
        return result

    @staticmethod
    def _get_record(session: Session, entity_type: EntityType, entity_id: str) -> Any:
        model = OWNED_MODELS[entity_type]
        record = session.scalar(select(model).where(model.id == entity_id))
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{entity_type.value} not found")
        return record

    @staticmethod
    def _get_user(session: Session, user_id: str) -> User:
        user = session.scalar(select(User).where(User.id == user_id))
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")
        return user

    @staticmethod
    def _get_grant(session: Session, entity_type: EntityType, entity_id: str, user_id: str) -> SharedEntity | None:
        return session.scalar(
            select(SharedEntity).where(
                SharedEntity.entity_type == entity_type.value,
                SharedEntity.entity_id == entity_id,
                SharedEntity.shared_with_user_id == user_id,
            )
        )

    @staticmethod
    def _track(
        principal: Principal,
        action: str,
        entity_type: EntityType,
        entity_id: str,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
        target_user_id: str,
    ) -> None:
        audit.record(
            actor_user_id=principal.id,
            entity_type=f"crm.{entity_type.value}",
            entity_id=entity_id,
            action=f"share.{action}" if action != "transferred" else "owner.transferred",
            before=before,
            after=after,
        )
        event_type = "crm.owner.transferred" if action == "transferred" else f"crm.share.{action}"
        events.publish(
            events.build_envelope(
                event_type,
                principal.id,
                {"entity_type": entity_type.value, "entity_id": entity_id, "target_user_id": target_user_id},
            )
        )
        logger.info(
            event_type,
            extra={
                "principal_id": principal.id,
                "entity_type": entity_type.value,
                "entity_id": entity_id,
                "target_user_id": target_user_id,
            },
        )


user_service = UserService()
sharing_service = SharingService()
