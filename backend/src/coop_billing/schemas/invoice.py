"""Pydantic schemas for Invoice model."""
from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coop_billing.models.invoice import InvoicePurpose, InvoiceStatus, PaymentMethodType
from coop_billing.models.member import SeatType
from coop_billing.models.subscription import BillingCycle


class InvoiceLineItem(BaseModel):
    """Schema for invoice line item."""

    model_config = ConfigDict(populate_by_name=True)

    label: str
    qty: int
    unit_price: int = Field(..., alias="unitPrice")
    total: int


class SeatPurchase(BaseModel):
    """Schema for buying paid or sponsored seats."""

    seat_type: Literal["paid", "sponsored"] = Field(..., description="Seat pool to grow")
    quantity: int = Field(..., ge=1, description="Number of seats")
    payment_method: PaymentMethodType = Field(default=PaymentMethodType.MPESA, description="Payment rail")


class InvoiceCreated(BaseModel):
    """Identifiers of a freshly created invoice/payment pair."""

    invoice_id: UUID
    payment_id: UUID
    amount: int


class Invoice(BaseModel):
    """Schema for returning invoice data."""

    id: UUID
    org_id: UUID
    period_start: datetime
    period_end: datetime
    status: InvoiceStatus
    amount: int
    currency: str
    line_items: list[InvoiceLineItem]
    payment_method: PaymentMethodType
    paid_at: datetime | None
    reference: str | None
    purpose: InvoicePurpose | None
    seat_type: SeatType | None
    quantity: int | None
    plan_template_id: str | None
    billing_cycle: BillingCycle | None
    selected_paid_seats: int | None
    selected_sponsored_seats: int | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
