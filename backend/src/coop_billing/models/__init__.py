"""SQLAlchemy ORM models for the cooperative billing service."""
# Import all models here so they register with the shared metadata

from coop_billing.models.base import Base
from coop_billing.models.organization import Organization
from coop_billing.models.plan_template import BillingPlanTemplate, PlanTemplateId
from coop_billing.models.subscription import (
    BillingCycle,
    BillingSettings,
    OrgSubscription,
    PlanId,
    SubscriptionStatus,
)
from coop_billing.models.member import Member, MemberStatus, SeatType
from coop_billing.models.seat_ledger import LedgerEventType, SeatLedgerEntry
from coop_billing.models.invoice import Invoice, InvoicePurpose, InvoiceStatus, PaymentMethodType
from coop_billing.models.payment import Payment, PaymentStatus

__all__ = [
    "Base",
    "Organization",
    "BillingPlanTemplate",
    "PlanTemplateId",
    "BillingCycle",
    "BillingSettings",
    "OrgSubscription",
    "PlanId",
    "SubscriptionStatus",
    "Member",
    "MemberStatus",
    "SeatType",
    "LedgerEventType",
    "SeatLedgerEntry",
    "Invoice",
    "InvoicePurpose",
    "InvoiceStatus",
    "PaymentMethodType",
    "Payment",
    "PaymentStatus",
]
