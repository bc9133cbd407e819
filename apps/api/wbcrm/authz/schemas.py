from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from wbcrm.platform.security import EntityType


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    role: str


class ShareRequest(BaseModel):
    entity_type: EntityType
    entity_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)


class TransferRequest(BaseModel):
    entity_type: EntityType
    entity_id: str = Field(min_length=1)
    new_owner_id: str = Field(min_length=1)


class ShareRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    entity_type: str
    entity_id: str
    shared_with_user_id: str
    shared_by_user_id: str
    created_at: datetime
    shared_with: UserRead
    shared_by: UserRead


class TransferResult(BaseModel):
    entity_type: str
    entity_id: str
    previous_owner_id: str
    new_owner_id: str
    revoked_shares: int
