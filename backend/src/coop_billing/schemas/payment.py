"""Pydantic schemas for Payment model."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coop_billing.models.invoice import InvoicePurpose, PaymentMethodType
from coop_billing.models.payment import PaymentStatus
from coop_billing.models.member import SeatType


class PaymentConfirm(BaseModel):
    """Schema for confirming an offline payment."""

    invoice_id: UUID = Field(..., description="Invoice being settled")
    payment_id: UUID = Field(..., description="Pending payment paired with the invoice")
    reference: str = Field(..., min_length=1, description="External M-Pesa or bank reference")


class Payment(BaseModel):
    """Schema for returning payment data."""

    id: UUID
    org_id: UUID
    invoice_id: UUID
    amount: int
    currency: str
    method: PaymentMethodType
    reference: str | None
    status: PaymentStatus
    confirmed_at: datetime | None
    purpose: InvoicePurpose | None
    seat_type: SeatType | None
    quantity: int | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
