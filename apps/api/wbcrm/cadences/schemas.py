from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


SLUG_REGEX = r"^[a-z0-9-]+$"

CadenceStatus = Literal["draft", "active", "archived"]
CadenceChannel = Literal["email", "linkedin", "whatsapp", "call", "meeting", "instagram"]
LeadCadenceStatus = Literal["active", "paused", "completed", "cancelled"]


class CadenceCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    slug: str | None = Field(default=None, min_length=2, max_length=50, pattern=SLUG_REGEX)
    description: str | None = None
    objective: str | None = None
    duration_days: int = Field(default=14, ge=1, le=90)
    icp_id: str | None = None
    status: CadenceStatus = "draft"


class CadenceUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    slug: str | None = Field(default=None, min_length=2, max_length=50, pattern=SLUG_REGEX)
    description: str | None = None
    objective: str | None = None
    duration_days: int | None = Field(default=None, ge=1, le=90)
    icp_id: str | None = None
    status: CadenceStatus | None = None


class CadenceStepCreate(BaseModel):
    day_number: int = Field(ge=1, le=90)
    channel: CadenceChannel
    subject: str = Field(min_length=2, max_length=200)
    description: str | None = None
    order: int | None = Field(default=None, ge=0)


class CadenceStepUpdate(BaseModel):
    day_number: int | None = Field(default=None, ge=1, le=90)
    channel: CadenceChannel | None = None
    subject: str | None = Field(default=None, min_length=2, max_length=200)
    description: str | None = None
    order: int | None = Field(default=None, ge=0)


class CadenceStepRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    cadence_id: str
    day_number: int
    channel: str
    subject: str
    description: str | None
    order: int
    created_at: datetime


class CadenceStepPosition(BaseModel):
    id: str
    day_number: int = Field(ge=1, le=90)
    order: int = Field(ge=0)


class CadenceStepReorder(BaseModel):
    steps: list[CadenceStepPosition] = Field(min_length=1)


class CadenceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    description: str | None
    objective: str | None
    duration_days: int
    icp_id: str | None
    status: str
    owner_id: str
    created_at: datetime
    updated_at: datetime
    step_count: int = 0


class CadenceDetailRead(CadenceRead):
    steps: list[CadenceStepRead] = Field(default_factory=list)


class LeadCadenceApply(BaseModel):
    cadence_id: str
    start_date: date | None = None
    notes: str | None = Field(default=None, max_length=1000)


class LeadCadenceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    lead_id: str
    cadence_id: str
    cadence_name: str | None = None
    status: str
    start_date: date
    paused_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    notes: str | None
    owner_id: str
    created_at: datetime
    completed_activities: int = 0
    total_activities: int = 0
    progress: int = 0


class LeadCadenceApplyResult(BaseModel):
    lead_cadence: LeadCadenceRead
    activity_ids: list[str]
