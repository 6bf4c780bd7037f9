"""Pydantic schemas for OrgSubscription and BillingSettings models."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coop_billing.catalog import FeatureFlag
from coop_billing.models.invoice import PaymentMethodType
from coop_billing.models.plan_template import PlanTemplateId
from coop_billing.models.subscription import BillingCycle, PlanId, SubscriptionStatus
from coop_billing.schemas.billing import SeatCounts


class Subscription(BaseModel):
    """Schema for returning subscription data."""

    id: UUID
    org_id: UUID
    plan_id: PlanId
    status: SubscriptionStatus
    start_at: datetime | None
    trial_ends_at: datetime | None
    renew_at: datetime | None
    cancel_at: datetime | None
    billing_cycle: BillingCycle
    currency: str
    exchange_rate_usd: float
    per_seat_price: int
    sponsored_per_seat_price: int
    feature_flags: dict[str, bool]
    paid_seats_total: int
    sponsored_seats_total: int
    max_members: int | None
    max_markets_tracked: int | None
    template_applied_from: str | None
    overrides: dict[str, Any]
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EnsureSubscriptionResponse(BaseModel):
    """Result of the idempotent subscription initializer."""

    subscription: Subscription
    created: bool
    expired: bool


class BootstrapResponse(BaseModel):
    """Result of first-time billing bootstrap."""

    created_settings: bool
    created_subscription: bool


class PlanUpdate(BaseModel):
    """Schema for switching to a built-in plan's defaults."""

    plan_id: PlanId = Field(..., description="Plan to switch to")


class FeatureFlagsUpdate(BaseModel):
    """Schema for replacing the subscription flag map."""

    flags: dict[FeatureFlag, bool] = Field(..., description="Feature flag map")


class ApplyPlanTemplate(BaseModel):
    """Schema for changing plan from a catalog template."""

    template_id: PlanTemplateId = Field(..., description="Catalog template to apply")
    billing_cycle: BillingCycle = Field(default=BillingCycle.MONTHLY, description="Billing cycle")
    payment_method: PaymentMethodType = Field(default=PaymentMethodType.MPESA, description="How the invoice will be paid")
    seats: SeatCounts | None = Field(default=None, description="Seat selection (defaults to the template's)")
    reset_to_template_defaults: bool = Field(default=False, description="Drop per-organization overrides")


class PlanChangeResult(BaseModel):
    """Outcome of a plan template application."""

    requires_payment: bool
    invoice_id: UUID | None = None
    payment_id: UUID | None = None
    amount: int = 0


class BillingSettings(BaseModel):
    """Schema for returning billing settings."""

    staff_can_manage_billing: bool = True
    auto_unassign_seats_on_suspension: bool = False

    model_config = ConfigDict(from_attributes=True)


class BillingSettingsUpdate(BaseModel):
    """Schema for updating billing settings. All fields optional."""

    staff_can_manage_billing: bool | None = None
    auto_unassign_seats_on_suspension: bool | None = None
