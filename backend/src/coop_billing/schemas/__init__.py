"""Pydantic schemas for API request/response validation."""

from coop_billing.schemas.billing import (
    SYSTEM_ACTOR,
    BillingActor,
    SeatCounts,
    SeatSnapshot,
    SeatUsage,
)
from coop_billing.schemas.invoice import (
    Invoice,
    InvoiceCreated,
    InvoiceLineItem,
    SeatPurchase,
)
from coop_billing.schemas.member import (
    Member,
    MemberCreate,
    MemberStatusUpdate,
)
from coop_billing.schemas.organization import (
    Organization,
    OrganizationCreate,
)
from coop_billing.schemas.payment import (
    Payment,
    PaymentConfirm,
)
from coop_billing.schemas.plan_template import (
    PlanTemplate,
    PlanTemplateList,
)
from coop_billing.schemas.seat import (
    AutoUnassignResult,
    BillingDocs,
    LedgerEntry,
    SeatAssign,
)
from coop_billing.schemas.subscription import (
    ApplyPlanTemplate,
    BillingSettings,
    BillingSettingsUpdate,
    BootstrapResponse,
    EnsureSubscriptionResponse,
    FeatureFlagsUpdate,
    PlanChangeResult,
    PlanUpdate,
    Subscription,
)

__all__ = [
    "SYSTEM_ACTOR",
    "BillingActor",
    "SeatCounts",
    "SeatSnapshot",
    "SeatUsage",
    "Invoice",
    "InvoiceCreated",
    "InvoiceLineItem",
    "SeatPurchase",
    "Member",
    "MemberCreate",
    "MemberStatusUpdate",
    "Organization",
    "OrganizationCreate",
    "Payment",
    "PaymentConfirm",
    "PlanTemplate",
    "PlanTemplateList",
    "AutoUnassignResult",
    "BillingDocs",
    "LedgerEntry",
    "SeatAssign",
    "ApplyPlanTemplate",
    "BillingSettings",
    "BillingSettingsUpdate",
    "BootstrapResponse",
    "EnsureSubscriptionResponse",
    "FeatureFlagsUpdate",
    "PlanChangeResult",
    "PlanUpdate",
    "Subscription",
]
