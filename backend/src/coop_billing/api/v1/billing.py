"""Billing API endpoints: subscription, seats, invoices and payments.

Every mutation runs through run_in_transaction, so it either commits whole or
leaves no trace, and is replayed when it loses a race for the subscription.
"""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coop_billing.api.deps import get_actor, get_db, get_session_factory, require_billing_manager
from coop_billing.database import run_in_transaction
from coop_billing.models.member import SeatType
from coop_billing.schemas.billing import BillingActor, SeatUsage
from coop_billing.schemas.invoice import Invoice, InvoiceCreated, SeatPurchase
from coop_billing.schemas.member import Member
from coop_billing.schemas.payment import Payment, PaymentConfirm
from coop_billing.schemas.seat import AutoUnassignResult, BillingDocs, LedgerEntry, SeatAssign
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
from coop_billing.services.invoice_service import InvoiceService
from coop_billing.services.payment_service import PaymentService
from coop_billing.services.seat_service import SeatService
from coop_billing.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/orgs/{org_id}/billing", tags=["Billing"])


@router.post("/ensure", response_model=EnsureSubscriptionResponse)
async def ensure_subscription(
    org_id: UUID,
    actor: BillingActor = Depends(get_actor),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> EnsureSubscriptionResponse:
    """
    Initialize the organization's subscription.

    Safe to call on every page load: creates a 60-day trial on first access
    and pauses a trial whose window has passed.
    """
    result = await run_in_transaction(
        session_factory,
        lambda session: SubscriptionService(session).ensure_org_subscription(org_id, actor),
    )
    return EnsureSubscriptionResponse(
        subscription=Subscription.model_validate(result.subscription),
        created=result.created,
        expired=result.expired,
    )


@router.post("/bootstrap", response_model=BootstrapResponse)
async def bootstrap_billing(
    org_id: UUID,
    actor: BillingActor = Depends(require_billing_manager),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> BootstrapResponse:
    """Create billing settings and a trial subscription if either is missing."""
    result = await run_in_transaction(
        session_factory,
        lambda session: SubscriptionService(session).bootstrap_org_billing(org_id, actor),
    )
    return BootstrapResponse(
        created_settings=result.created_settings,
        created_subscription=result.created_subscription,
    )


@router.get("/subscription", response_model=Subscription)
async def get_subscription(
    org_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: BillingActor = Depends(get_actor),
) -> Subscription:
    """Get the organization's subscription."""
    return await SubscriptionService(db).get_org_subscription(org_id)


@router.put("/plan", response_model=Subscription)
async def update_plan(
    org_id: UUID,
    plan_data: PlanUpdate,
    actor: BillingActor = Depends(require_billing_manager),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> Subscription:
    """Switch to a built-in plan's default pricing and flags without invoicing."""
    return await run_in_transaction(
        session_factory,
        lambda session: SubscriptionService(session).update_plan(org_id, plan_data.plan_id, actor),
    )


@router.put("/feature-flags", response_model=Subscription)
async def update_feature_flags(
    org_id: UUID,
    flags_data: FeatureFlagsUpdate,
    actor: BillingActor = Depends(require_billing_manager),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> Subscription:
    """Replace the subscription's feature flag map."""
    return await run_in_transaction(
        session_factory,
        lambda session: SubscriptionService(session).update_feature_flags(org_id, flags_data.flags),
    )


@router.post("/plan-template", response_model=PlanChangeResult)
async def apply_plan_template(
    org_id: UUID,
    change: ApplyPlanTemplate,
    actor: BillingActor = Depends(require_billing_manager),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> PlanChangeResult:
    """
    Change plan from a catalog template.

    - **template_id**: free, coop_basic, coop_premium or enterprise_default
    - **billing_cycle**: monthly or annual
    - **seats**: paidTotal / sponsoredTotal (defaults to the template's)

    The free template applies immediately. Paid templates return the invoice
    to settle; the subscription is past_due until the payment is confirmed.
    """
    return await run_in_transaction(
        session_factory,
        lambda session: SubscriptionService(session).apply_plan_template(
            org_id,
            change.template_id,
            change.billing_cycle,
            actor,
            payment_method=change.payment_method,
            seats=change.seats,
            reset_to_template_defaults=change.reset_to_template_defaults,
        ),
    )


@router.post("/recreate-free", response_model=Subscription)
async def recreate_from_free_template(
    org_id: UUID,
    actor: BillingActor = Depends(require_billing_manager),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> Subscription:
    """Reset the subscription to the free template."""
    return await run_in_transaction(
        session_factory,
        lambda session: SubscriptionService(session).recreate_subscription_from_free_template(org_id, actor),
    )


@router.get("/settings", response_model=BillingSettings)
async def get_billing_settings(
    org_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: BillingActor = Depends(get_actor),
) -> BillingSettings:
    """Get billing settings (defaults when never saved)."""
    return await SubscriptionService(db).get_billing_settings(org_id)


@router.patch("/settings", response_model=BillingSettings)
async def update_billing_settings(
    org_id: UUID,
    update_data: BillingSettingsUpdate,
    actor: BillingActor = Depends(require_billing_manager),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> BillingSettings:
    """Update billing settings. Only provided fields change."""
    return await run_in_transaction(
        session_factory,
        lambda session: SubscriptionService(session).update_billing_settings(org_id, update_data),
    )


@router.get("/usage", response_model=SeatUsage)
async def get_seat_usage(
    org_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: BillingActor = Depends(get_actor),
) -> SeatUsage:
    """Seat capacity and consumption, for display."""
    return await SeatService(db).compute_seat_usage(org_id)


@router.post("/seats/{member_id}/assign", response_model=Member)
async def assign_seat(
    org_id: UUID,
    member_id: UUID,
    assignment: SeatAssign,
    actor: BillingActor = Depends(require_billing_manager),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> Member:
    """
    Give an active member a paid or sponsored seat.

    Returns 409 when the member is not active or the seat pool is full.
    """
    return await run_in_transaction(
        session_factory,
        lambda session: SeatService(session).assign_seat(org_id, member_id, SeatType(assignment.seat_type), actor),
    )


@router.post("/seats/{member_id}/unassign", response_model=Member)
async def unassign_seat(
    org_id: UUID,
    member_id: UUID,
    actor: BillingActor = Depends(require_billing_manager),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> Member:
    """Take a member's seat back."""
    return await run_in_transaction(
        session_factory,
        lambda session: SeatService(session).unassign_seat(org_id, member_id, actor),
    )


@router.post("/auto-unassign", response_model=AutoUnassignResult)
async def auto_unassign_suspended(
    org_id: UUID,
    actor: BillingActor = Depends(require_billing_manager),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> AutoUnassignResult:
    """Release the seats of suspended and rejected members, if enabled in settings."""
    member_ids = await run_in_transaction(
        session_factory,
        lambda session: SeatService(session).apply_auto_unassign_on_suspended(org_id, actor),
    )
    return AutoUnassignResult(unassigned_member_ids=member_ids)


@router.post("/invoices/seats", response_model=InvoiceCreated, status_code=status.HTTP_201_CREATED)
async def purchase_seats(
    org_id: UUID,
    purchase: SeatPurchase,
    actor: BillingActor = Depends(require_billing_manager),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> InvoiceCreated:
    """
    Invoice additional seats.

    Seats are added only once the payment is confirmed.
    """

    async def work(session: AsyncSession) -> InvoiceCreated:
        service = InvoiceService(session)
        if purchase.seat_type == "paid":
            return await service.add_paid_seats(org_id, purchase.quantity, actor, purchase.payment_method)
        return await service.add_sponsored_seats(org_id, purchase.quantity, actor, purchase.payment_method)

    return await run_in_transaction(session_factory, work)


@router.post("/payments/confirm", response_model=Subscription)
async def confirm_payment(
    org_id: UUID,
    confirmation: PaymentConfirm,
    actor: BillingActor = Depends(require_billing_manager),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> Subscription:
    """
    Confirm an offline payment and apply what it paid for.

    Confirming the same invoice twice returns the subscription unchanged.
    """
    result = await run_in_transaction(
        session_factory,
        lambda session: PaymentService(session).confirm_payment(
            org_id,
            confirmation.invoice_id,
            confirmation.payment_id,
            confirmation.reference,
            actor,
        ),
    )
    return result.subscription


@router.get("/docs", response_model=BillingDocs)
async def list_billing_docs(
    org_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: BillingActor = Depends(get_actor),
) -> BillingDocs:
    """Invoices, payments and seat ledger, newest first."""
    docs = await InvoiceService(db).list_billing_docs(org_id)
    return BillingDocs(
        invoices=[Invoice.model_validate(invoice) for invoice in docs["invoices"]],
        payments=[Payment.model_validate(payment) for payment in docs["payments"]],
        ledger=[LedgerEntry.model_validate(entry) for entry in docs["ledger"]],
    )
