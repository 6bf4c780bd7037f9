"""Pydantic schemas for seat assignment and the seat ledger."""
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coop_billing.models.seat_ledger import LedgerEventType
from coop_billing.schemas.invoice import Invoice
from coop_billing.schemas.payment import Payment


class SeatAssign(BaseModel):
    """Schema for assigning a seat to a member."""

    seat_type: Literal["paid", "sponsored"] = Field(..., description="Seat type to assign")


class AutoUnassignResult(BaseModel):
    """Members freed by the suspension sweep."""

    unassigned_member_ids: list[UUID] = Field(default_factory=list)


class LedgerEntry(BaseModel):
    """Schema for returning a seat ledger entry."""

    id: UUID
    org_id: UUID
    event_type: LedgerEventType
    actor_uid: str
    actor_name: str
    member_id: UUID | None
    member_uid: str | None
    note: str | None
    delta_paid: int
    delta_sponsored: int
    snapshot_after: dict[str, Any] | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BillingDocs(BaseModel):
    """Invoices, payments and ledger of an organization, newest first."""

    invoices: list[Invoice]
    payments: list[Payment]
    ledger: list[LedgerEntry]
