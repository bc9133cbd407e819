from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


SLUG_REGEX = r"^[a-z0-9-]+$"

ICPStatus = Literal["draft", "active", "archived"]
PricingType = Literal["fixed", "hourly", "monthly", "custom"]


class BusinessLineCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    slug: str | None = Field(default=None, min_length=1, max_length=50, pattern=SLUG_REGEX)
    description: str | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    icon: str | None = Field(default=None, max_length=64)
    is_active: bool = True
    order: int = Field(default=0, ge=0)


class BusinessLineUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    slug: str | None = Field(default=None, min_length=1, max_length=50, pattern=SLUG_REGEX)
    description: str | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    icon: str | None = Field(default=None, max_length=64)
    is_active: bool | None = None
    order: int | None = Field(default=None, ge=0)


class BusinessLineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    description: str | None
    color: str | None
    icon: str | None
    is_active: bool
    order: int
    created_at: datetime
    updated_at: datetime


class ProductCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    slug: str | None = Field(default=None, min_length=1, max_length=50, pattern=SLUG_REGEX)
    description: str | None = None
    business_line_id: str
    base_price: Decimal | None = Field(default=None, ge=0)
    currency: str = Field(default="BRL", min_length=3, max_length=3)
    pricing_type: PricingType = "fixed"
    is_active: bool = True
    order: int = Field(default=0, ge=0)


class ProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    slug: str | None = Field(default=None, min_length=1, max_length=50, pattern=SLUG_REGEX)
    description: str | None = None
    business_line_id: str | None = None
    base_price: Decimal | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    pricing_type: PricingType | None = None
    is_active: bool | None = None
    order: int | None = Field(default=None, ge=0)


class ProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    description: str | None
    business_line_id: str
    base_price: Decimal | None
    currency: str
    pricing_type: str
    is_active: bool
    order: int
    created_at: datetime
    updated_at: datetime


class ICPCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    slug: str | None = Field(default=None, min_length=2, max_length=50, pattern=SLUG_REGEX)
    content: str = Field(min_length=1)
    status: ICPStatus = "draft"


class ICPUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    slug: str | None = Field(default=None, min_length=2, max_length=50, pattern=SLUG_REGEX)
    content: str | None = Field(default=None, min_length=1)
    status: ICPStatus | None = None
    change_reason: str | None = Field(default=None, max_length=500)


class ICPRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    content: str
    status: str
    owner_id: str
    created_at: datetime
    updated_at: datetime
    current_version: int = 0


class ICPVersionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    icp_id: str
    version_number: int
    name: str
    content: str
    status: str
    changed_by_id: str
    change_reason: str | None
    created_at: datetime


class SlugCheckRead(BaseModel):
    slug: str
    available: bool
    suggestion: str
