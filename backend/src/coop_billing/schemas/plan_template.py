"""Pydantic schemas for BillingPlanTemplate model."""
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class PlanTemplate(BaseModel):
    """Schema for returning a catalog entry."""

    id: UUID
    template_id: str
    name: str
    description: str
    currency: str
    exchange_rate_usd: float
    billing_cycles: list[str]
    monthly_per_seat: int
    monthly_sponsored_per_seat: int
    annual_per_seat: int
    annual_sponsored_per_seat: int
    annual_discount_percent: int
    default_paid_seats: int
    default_sponsored_seats: int
    feature_flags: dict[str, bool]
    max_members: int | None
    max_markets_tracked: int | None
    is_public: bool
    rank: int
    version: int

    model_config = ConfigDict(from_attributes=True)


class PlanTemplateList(BaseModel):
    """Schema for the public catalog."""

    items: list[PlanTemplate] = Field(default_factory=list)
