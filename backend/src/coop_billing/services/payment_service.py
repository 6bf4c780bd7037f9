"""Payment confirmation: the single point where money becomes seats."""
from datetime import datetime
from typing import Any, NamedTuple, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coop_billing import metrics
from coop_billing.database import atomic
from coop_billing.exceptions import NotFoundError, PreconditionFailedError
from coop_billing.models.invoice import InvoicePurpose, InvoiceStatus
from coop_billing.models.member import SeatType
from coop_billing.models.payment import Payment, PaymentStatus
from coop_billing.models.seat_ledger import LedgerEventType
from coop_billing.models.subscription import BillingCycle, OrgSubscription, SubscriptionStatus
from coop_billing.schemas.billing import BillingActor, SeatCounts
from coop_billing.services.invoice_service import InvoiceService
from coop_billing.services.plan_template_service import PlanTemplateService
from coop_billing.services.subscription_service import SubscriptionService, apply_patch, build_template_patch
from coop_billing.utils.ledger import stage_ledger_event
from coop_billing.utils.periods import next_renewal

logger = structlog.get_logger(__name__)


class PaymentConfirmation(NamedTuple):
    """Outcome of a confirmation attempt."""

    subscription: OrgSubscription
    confirmed: bool  # False when the pair was already settled


def _first_set(*values: Any, default: Any = None) -> Any:
    """First value that is not None."""
    for value in values:
        if value is not None:
            return value
    return default


class PaymentService:
    """Service for confirming offline payments."""

    def __init__(self, db: AsyncSession):
        """Initialize payment service."""
        self.db = db

    async def get_payment(self, org_id: UUID, payment_id: UUID, for_update: bool = False) -> Optional[Payment]:
        """
        Get an organization's payment.

        Returns:
            Payment or None if not found
        """
        query = select(Payment).where(Payment.org_id == org_id, Payment.id == payment_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def confirm_payment(
        self,
        org_id: UUID,
        invoice_id: UUID,
        payment_id: UUID,
        reference: str,
        actor: BillingActor,
    ) -> PaymentConfirmation:
        """
        Settle an invoice and apply what it paid for.

        Seat purchases grow the matching seat pool by the invoiced quantity.
        Plan changes re-apply the target template with the selected seats.
        Either way the subscription becomes active and its renewal moves one
        billing cycle ahead. Confirming an already settled pair changes
        nothing.

        Args:
            org_id: Organization UUID
            invoice_id: Invoice UUID
            payment_id: Payment UUID paired with the invoice
            reference: External M-Pesa or bank reference
            actor: Who confirmed the payment

        Returns:
            PaymentConfirmation

        Raises:
            NotFoundError: If the invoice, payment, subscription or template is missing
            PreconditionFailedError: If the payment belongs to another invoice
        """
        subscriptions = SubscriptionService(self.db)

        async with atomic(self.db):
            subscription = await subscriptions.get_subscription(org_id, for_update=True)
            invoice = await InvoiceService(self.db).get_invoice(org_id, invoice_id, for_update=True)
            if invoice is None:
                raise NotFoundError("Invoice not found.")
            payment = await self.get_payment(org_id, payment_id, for_update=True)
            if payment is None:
                raise NotFoundError("Payment not found.")
            if payment.invoice_id != invoice.id:
                raise PreconditionFailedError("Payment does not belong to this invoice.")
            if subscription is None:
                raise NotFoundError("Subscription not configured")

            if invoice.status == InvoiceStatus.PAID or payment.status == PaymentStatus.CONFIRMED:
                logger.info(
                    "payment_already_confirmed",
                    org_id=str(org_id),
                    invoice_id=str(invoice_id),
                    payment_id=str(payment_id),
                )
                return PaymentConfirmation(subscription=subscription, confirmed=False)

            qty = _first_set(invoice.quantity, payment.quantity, default=0)
            seat_type = SeatType(_first_set(invoice.seat_type, payment.seat_type, default=SeatType.PAID))
            purpose = InvoicePurpose(_first_set(invoice.purpose, payment.purpose, default=InvoicePurpose.SEAT_PURCHASE))
            # Seat top-ups carry no cycle and renew a month out
            billing_cycle = BillingCycle(
                _first_set(invoice.billing_cycle, payment.billing_cycle, default=BillingCycle.MONTHLY)
            )

            previous_paid = subscription.paid_seats_total or 0
            previous_sponsored = subscription.sponsored_seats_total or 0
            plan_template_id = _first_set(invoice.plan_template_id, payment.plan_template_id)

            if purpose == InvoicePurpose.PLAN_CHANGE:
                if plan_template_id is None:
                    raise PreconditionFailedError("Plan-change invoice has no plan template.")
                template = await PlanTemplateService(self.db).get_plan_template(plan_template_id)
                selected_paid = _first_set(invoice.selected_paid_seats, payment.selected_paid_seats)
                selected_sponsored = _first_set(invoice.selected_sponsored_seats, payment.selected_sponsored_seats)
                if selected_paid is None or selected_sponsored is None:
                    seats = SeatCounts(
                        paid_total=template.default_paid_seats,
                        sponsored_total=template.default_sponsored_seats,
                    )
                else:
                    seats = SeatCounts(paid_total=selected_paid, sponsored_total=selected_sponsored)
                patch = build_template_patch(
                    template,
                    billing_cycle,
                    seats=seats,
                    keep_overrides=_first_set(invoice.keep_overrides, payment.keep_overrides, default=True),
                    existing=subscription,
                )
            else:
                patch = {
                    "paid_seats_total": previous_paid + (qty if seat_type == SeatType.PAID else 0),
                    "sponsored_seats_total": previous_sponsored + (qty if seat_type == SeatType.SPONSORED else 0),
                }

            now = datetime.utcnow()
            invoice.status = InvoiceStatus.PAID
            invoice.paid_at = now
            invoice.reference = reference
            payment.status = PaymentStatus.CONFIRMED
            payment.confirmed_at = now
            payment.reference = reference

            apply_patch(subscription, patch)
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.start_at = now
            subscription.renew_at = next_renewal(now, billing_cycle)

            seat_delta_paid = qty if seat_type == SeatType.PAID else 0
            seat_delta_sponsored = qty if seat_type == SeatType.SPONSORED else 0
            stage_ledger_event(
                self.db,
                org_id,
                LedgerEventType.PAYMENT_MARKED_PAID,
                actor,
                note=f"Invoice {invoice.id} paid ({seat_type.value} x{qty})",
                delta_paid=seat_delta_paid,
                delta_sponsored=seat_delta_sponsored,
            )

            if purpose == InvoicePurpose.PLAN_CHANGE:
                stage_ledger_event(
                    self.db,
                    org_id,
                    LedgerEventType.PLAN_CHANGED,
                    actor,
                    note=f"Plan payment confirmed for {plan_template_id}",
                    delta_paid=subscription.paid_seats_total - previous_paid,
                    delta_sponsored=subscription.sponsored_seats_total - previous_sponsored,
                )
            else:
                stage_ledger_event(
                    self.db,
                    org_id,
                    LedgerEventType.PAID_SEAT_PURCHASED if seat_type == SeatType.PAID else LedgerEventType.SPONSORED_SEAT_ADDED,
                    actor,
                    note=f"{seat_type.value} seats increased by {qty}",
                    delta_paid=seat_delta_paid,
                    delta_sponsored=seat_delta_sponsored,
                )

        metrics.payments_confirmed_total.labels(purpose=purpose.value).inc()
        metrics.payment_amount_total.labels(currency=payment.currency).inc(payment.amount)
        logger.info(
            "payment_confirmed",
            org_id=str(org_id),
            invoice_id=str(invoice_id),
            payment_id=str(payment_id),
            purpose=purpose.value,
            amount=payment.amount,
            paid_seats_total=subscription.paid_seats_total,
            sponsored_seats_total=subscription.sponsored_seats_total,
        )
        return PaymentConfirmation(subscription=subscription, confirmed=True)
