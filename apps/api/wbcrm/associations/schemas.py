from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


InterestLevel = Literal["high", "medium", "low"]
OrganizationProductStatus = Literal["interested", "purchased", "declined"]
ExpertiseLevel = Literal["basic", "intermediate", "expert"]
CommissionType = Literal["percentage", "fixed"]

ICPFitStatus = Literal["ideal", "partial", "out_of_icp"]
RealDecisionMaker = Literal["founder_ceo", "tech_partner", "commercial_partner", "other"]
BusinessMoment = Literal["validation", "growth", "scale", "consolidation"]
PerceivedUrgency = Literal["curiosity", "interest", "future_need", "current_need", "active_pain"]
CurrentPlatform = Literal["hotmart", "cademi", "moodle", "own_lms", "scattered_tools", "other"]
MainDeclaredPain = Literal[
    "student_experience",
    "operational_fragmentation",
    "lack_of_identity",
    "growth_limitation",
    "founder_emotional_pain",
]
StrategicDesire = Literal[
    "total_control",
    "own_identity",
    "scale_without_chaos",
    "unify_operation",
    "market_differentiation",
]
NonClosingReason = Literal["priority_changed", "budget", "timing", "internal_decision", "not_icp", "other"]
EstimatedDecisionTime = Literal["less_than_2_weeks", "2_to_4_weeks", "1_to_2_months", "3_plus_months"]


class LinkedProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    base_price: Decimal | None
    currency: str


class LeadProductCreate(BaseModel):
    product_id: str
    interest_level: InterestLevel | None = None
    estimated_value: Decimal | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=1000)


class LeadProductUpdate(BaseModel):
    interest_level: InterestLevel | None = None
    estimated_value: Decimal | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=1000)


class LeadProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    lead_id: str
    product_id: str
    interest_level: str | None
    estimated_value: Decimal | None
    notes: str | None
    created_at: datetime
    product: LinkedProductRead


class OrganizationProductCreate(BaseModel):
    product_id: str
    status: OrganizationProductStatus = "interested"
    first_purchase_at: date | None = None
    last_purchase_at: date | None = None
    total_purchases: int = Field(default=0, ge=0)
    total_revenue: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str | None = Field(default=None, max_length=1000)


class OrganizationProductUpdate(BaseModel):
    status: OrganizationProductStatus | None = None
    first_purchase_at: date | None = None
    last_purchase_at: date | None = None
    total_purchases: int | None = Field(default=None, ge=0)
    total_revenue: Decimal | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=1000)


class OrganizationProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    product_id: str
    status: str
    first_purchase_at: date | None
    last_purchase_at: date | None
    total_purchases: int
    total_revenue: Decimal
    notes: str | None
    created_at: datetime
    product: LinkedProductRead


class DealProductCreate(BaseModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal | None = Field(default=None, ge=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    description: str | None = Field(default=None, max_length=1000)
    delivery_time: int | None = Field(default=None, ge=0)


class DealProductUpdate(BaseModel):
    quantity: int | None = Field(default=None, ge=1)
    unit_price: Decimal | None = Field(default=None, ge=0)
    discount: Decimal | None = Field(default=None, ge=0, le=100)
    description: str | None = Field(default=None, max_length=1000)
    delivery_time: int | None = Field(default=None, ge=0)


class DealProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    deal_id: str
    product_id: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    total_value: Decimal
    description: str | None
    delivery_time: int | None
    created_at: datetime
    product: LinkedProductRead


class PartnerProductCreate(BaseModel):
    product_id: str
    expertise_level: ExpertiseLevel | None = None
    can_refer: bool = True
    can_deliver: bool = False
    commission_type: CommissionType | None = None
    commission_value: Decimal | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=1000)


class PartnerProductUpdate(BaseModel):
    expertise_level: ExpertiseLevel | None = None
    can_refer: bool | None = None
    can_deliver: bool | None = None
    commission_type: CommissionType | None = None
    commission_value: Decimal | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=1000)


class PartnerProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    partner_id: str
    product_id: str
    expertise_level: str | None
    can_refer: bool
    can_deliver: bool
    commission_type: str | None
    commission_value: Decimal | None
    notes: str | None
    created_at: datetime
    product: LinkedProductRead


class ICPLinkCreate(BaseModel):
    icp_id: str
    match_score: int | None = Field(default=None, ge=0, le=100)
    notes: str | None = Field(default=None, max_length=1000)


class ICPLinkUpdate(BaseModel):
    match_score: int | None = Field(default=None, ge=0, le=100)
    notes: str | None = Field(default=None, max_length=1000)
    icp_fit_status: ICPFitStatus | None = None
    real_decision_maker: RealDecisionMaker | None = None
    real_decision_maker_other: str | None = Field(default=None, max_length=100)
    perceived_urgency: list[PerceivedUrgency] | None = None
    business_moment: list[BusinessMoment] | None = None
    current_platforms: list[CurrentPlatform] | None = None
    fragmentation_level: int | None = Field(default=None, ge=0, le=10)
    main_declared_pain: MainDeclaredPain | None = None
    strategic_desire: StrategicDesire | None = None
    perceived_technical_complexity: int | None = Field(default=None, ge=1, le=5)
    purchase_trigger: str | None = Field(default=None, max_length=500)
    non_closing_reason: NonClosingReason | None = None
    estimated_decision_time: EstimatedDecisionTime | None = None
    expansion_potential: int | None = Field(default=None, ge=1, le=5)


class LinkedICPRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    status: str


class ICPLinkRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    icp_id: str
    match_score: int | None
    notes: str | None
    icp_fit_status: str | None
    real_decision_maker: str | None
    real_decision_maker_other: str | None
    perceived_urgency: list[str] | None
    business_moment: list[str] | None
    current_platforms: list[str] | None
    fragmentation_level: int | None
    main_declared_pain: str | None
    strategic_desire: str | None
    perceived_technical_complexity: int | None
    purchase_trigger: str | None
    non_closing_reason: str | None
    estimated_decision_time: str | None
    expansion_potential: int | None
    created_at: datetime
    updated_at: datetime
    icp: LinkedICPRead


class LeadICPRead(ICPLinkRead):
    lead_id: str


class OrganizationICPRead(ICPLinkRead):
    organization_id: str
