from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field


LeadQuality = Literal["cold", "warm", "hot"]
LeadStatus = Literal["new", "contacted", "qualified", "disqualified"]
DealStatus = Literal["open", "won", "lost"]
ActivityType = Literal["call", "meeting", "email", "task", "whatsapp", "visit", "instagram", "linkedin"]


class LeadContactCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    role: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    whatsapp: str | None = None
    is_primary: bool = False


class LeadContactUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    role: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    whatsapp: str | None = None
    is_primary: bool | None = None


class LeadContactRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    lead_id: str
    name: str
    role: str | None
    email: str | None
    phone: str | None
    whatsapp: str | None
    is_primary: bool
    converted_to_contact_id: str | None


class LeadCreate(BaseModel):
    business_name: str = Field(min_length=2, max_length=255)
    registered_name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    website: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    source: str | None = None
    quality: LeadQuality = "cold"
    status: LeadStatus = "new"
    description: str | None = None
    contacts: list[LeadContactCreate] = Field(default_factory=list)


class LeadUpdate(BaseModel):
    business_name: str | None = Field(default=None, min_length=2, max_length=255)
    registered_name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    website: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    source: str | None = None
    quality: LeadQuality | None = None
    status: LeadStatus | None = None
    description: str | None = None


class LeadRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    business_name: str
    registered_name: str | None
    email: str | None
    phone: str | None
    website: str | None
    city: str | None
    state: str | None
    country: str | None
    source: str | None
    quality: str
    status: str
    description: str | None
    owner_id: str
    converted_at: datetime | None
    converted_organization_id: str | None
    created_at: datetime
    updated_at: datetime
    contacts: list[LeadContactRead] = Field(default_factory=list)


class LeadConvertResult(BaseModel):
    lead: LeadRead
    organization_id: str
    contact_ids: list[str]


class ContactCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    email: EmailStr | None = None
    phone: str | None = None
    whatsapp: str | None = None
    role: str | None = None
    organization_id: str | None = None
    is_primary: bool = False


class ContactUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    email: EmailStr | None = None
    phone: str | None = None
    whatsapp: str | None = None
    role: str | None = None
    organization_id: str | None = None
    is_primary: bool | None = None


class ContactRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str | None
    phone: str | None
    whatsapp: str | None
    role: str | None
    organization_id: str | None
    is_primary: bool
    source_lead_contact_id: str | None
    owner_id: str
    created_at: datetime
    updated_at: datetime


class OrganizationCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    legal_name: str | None = None
    website: str | None = None
    phone: str | None = None
    email: EmailStr | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    industry: str | None = None
    employee_count: int | None = Field(default=None, ge=0)
    annual_revenue: Decimal | None = Field(default=None, ge=0)
    description: str | None = None
    has_hosting: bool = False
    hosting_renewal_date: date | None = None
    hosting_plan: str | None = None
    hosting_value: Decimal | None = Field(default=None, ge=0)
    hosting_reminder_days: int = Field(default=30, ge=1, le=365)
    hosting_notes: str | None = None


class OrganizationUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    legal_name: str | None = None
    website: str | None = None
    phone: str | None = None
    email: EmailStr | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    industry: str | None = None
    employee_count: int | None = Field(default=None, ge=0)
    annual_revenue: Decimal | None = Field(default=None, ge=0)
    description: str | None = None
    has_hosting: bool | None = None
    hosting_renewal_date: date | None = None
    hosting_plan: str | None = None
    hosting_value: Decimal | None = Field(default=None, ge=0)
    hosting_reminder_days: int | None = Field(default=None, ge=1, le=365)
    hosting_notes: str | None = None


class OrganizationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    legal_name: str | None
    website: str | None
    phone: str | None
    email: str | None
    city: str | None
    state: str | None
    country: str | None
    industry: str | None
    employee_count: int | None
    annual_revenue: Decimal | None
    description: str | None
    source_lead_id: str | None
    owner_id: str
    has_hosting: bool
    hosting_renewal_date: date | None
    hosting_plan: str | None
    hosting_value: Decimal | None
    hosting_reminder_days: int
    hosting_notes: str | None
    created_at: datetime
    updated_at: datetime


class PartnerCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    legal_name: str | None = None
    partner_type: str = Field(min_length=1, max_length=64)
    website: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    industry: str | None = None
    expertise: str | None = None
    notes: str | None = None
    last_contact_date: date | None = None


class PartnerUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    legal_name: str | None = None
    partner_type: str | None = Field(default=None, min_length=1, max_length=64)
    website: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    industry: str | None = None
    expertise: str | None = None
    notes: str | None = None
    last_contact_date: date | None = None


class PartnerRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    legal_name: str | None
    partner_type: str
    website: str | None
    email: str | None
    phone: str | None
    city: str | None
    state: str | None
    country: str | None
    industry: str | None
    expertise: str | None
    notes: str | None
    last_contact_date: date | None
    owner_id: str
    created_at: datetime
    updated_at: datetime


class StageCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    order: int = Field(ge=0)
    probability: int = Field(default=0, ge=0, le=100)


class StageUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    order: int | None = Field(default=None, ge=0)
    probability: int | None = Field(default=None, ge=0, le=100)


class StageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    pipeline_id: str
    name: str
    order: int
    probability: int


class PipelineCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    is_default: bool = False
    stages: list[StageCreate] = Field(default_factory=list)


class PipelineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    is_default: bool
    stages: list[StageRead]


class DealCreate(BaseModel):
    title: str = Field(min_length=2, max_length=255)
    value: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = Field(default="BRL", min_length=3, max_length=3)
    stage_id: str
    contact_id: str | None = None
    organization_id: str | None = None
    expected_close_date: date | None = None


class DealUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=2, max_length=255)
    value: Decimal | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    status: DealStatus | None = None
    contact_id: str | None = None
    organization_id: str | None = None
    expected_close_date: date | None = None


class DealStageChangeRequest(BaseModel):
    stage_id: str


class DealRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    value: Decimal
    currency: str
    status: str
    stage_id: str
    stage_name: str | None = None
    probability: int = 0
    calculated_value: Decimal = Decimal("0")
    expected_value: Decimal = Decimal("0")
    contact_id: str | None
    organization_id: str | None
    expected_close_date: date | None
    closed_at: datetime | None
    owner_id: str
    created_at: datetime
    updated_at: datetime


class DealStageHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    deal_id: str
    from_stage_id: str | None
    to_stage_id: str
    changed_by_id: str
    changed_at: datetime


class ActivityCreate(BaseModel):
    type: ActivityType
    subject: str = Field(min_length=2, max_length=255)
    description: str | None = None
    due_date: date | None = None
    deal_id: str | None = None
    contact_id: str | None = None
    lead_id: str | None = None
    partner_id: str | None = None
    organization_id: str | None = None


class ActivityUpdate(BaseModel):
    type: ActivityType | None = None
    subject: str | None = Field(default=None, min_length=2, max_length=255)
    description: str | None = None
    due_date: date | None = None
    completed: bool | None = None


class ActivityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    subject: str
    description: str | None
    due_date: date | None
    completed: bool
    deal_id: str | None
    contact_id: str | None
    lead_id: str | None
    partner_id: str | None
    organization_id: str | None
    owner_id: str
    created_at: datetime
    updated_at: datetime


class HostingRenewalRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    owner_id: str
    hosting_renewal_date: date
    hosting_plan: str | None
    hosting_value: Decimal | None
    hosting_reminder_days: int
    days_until_renewal: int


class RenewalCheckResult(BaseModel):
    created: int
    skipped: int
    total: int
