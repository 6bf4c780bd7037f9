"""Invoice service for seat purchases and plan changes."""
from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coop_billing import metrics
from coop_billing.database import atomic
from coop_billing.exceptions import BillingError
from coop_billing.models.invoice import Invoice, InvoicePurpose, InvoiceStatus, PaymentMethodType
from coop_billing.models.member import SeatType
from coop_billing.models.payment import Payment, PaymentStatus
from coop_billing.models.seat_ledger import LedgerEventType, SeatLedgerEntry
from coop_billing.models.subscription import BillingCycle
from coop_billing.schemas.billing import BillingActor, SeatCounts
from coop_billing.schemas.invoice import InvoiceCreated, InvoiceLineItem
from coop_billing.services.subscription_service import SubscriptionService
from coop_billing.utils.ledger import stage_ledger_event
from coop_billing.utils.periods import month_bounds

logger = structlog.get_logger(__name__)

SEAT_LINE_LABELS = {
    SeatType.PAID: "Paid premium seats",
    SeatType.SPONSORED: "Sponsored premium seats",
}


class InvoiceService:
    """Service layer for invoice operations."""

    def __init__(self, db: AsyncSession):
        """Initialize invoice service with database session."""
        self.db = db

    async def add_paid_seats(
        self,
        org_id: UUID,
        qty: int,
        actor: BillingActor,
        payment_method: PaymentMethodType = PaymentMethodType.MPESA,
    ) -> InvoiceCreated:
        """Invoice additional paid seats at the current per-seat price."""
        return await self.create_invoice_and_pending_payment(
            org_id=org_id,
            qty=qty,
            actor=actor,
            payment_method=payment_method,
            seat_type=SeatType.PAID,
        )

    async def add_sponsored_seats(
        self,
        org_id: UUID,
        qty: int,
        actor: BillingActor,
        payment_method: PaymentMethodType = PaymentMethodType.MPESA,
    ) -> InvoiceCreated:
        """Invoice additional sponsored seats at the current sponsored price."""
        return await self.create_invoice_and_pending_payment(
            org_id=org_id,
            qty=qty,
            actor=actor,
            payment_method=payment_method,
            seat_type=SeatType.SPONSORED,
        )

    async def create_invoice_and_pending_payment(
        self,
        org_id: UUID,
        qty: int,
        actor: BillingActor,
        payment_method: PaymentMethodType,
        seat_type: SeatType,
        purpose: InvoicePurpose = InvoicePurpose.SEAT_PURCHASE,
        amount: Optional[int] = None,
        currency: Optional[str] = None,
        line_items: Optional[list[InvoiceLineItem]] = None,
        plan_template_id: Optional[str] = None,
        billing_cycle: Optional[BillingCycle] = None,
        selected_seats: Optional[SeatCounts] = None,
        keep_overrides: bool = True,
    ) -> InvoiceCreated:
        """
        Create an unpaid invoice and its pending payment.

        Nothing on the subscription changes until the payment is confirmed.
        Seat purchases are priced from the subscription; plan changes pass
        their own amount and line items.

        Args:
            org_id: Organization UUID
            qty: Number of seats (at least 1)
            actor: Who raised the invoice
            payment_method: mpesa or bank_transfer
            seat_type: Seat pool the purchase grows
            purpose: seat_purchase or plan_change
            amount: Total override (plan changes)
            currency: Currency override (plan changes)
            line_items: Line item override (plan changes)
            plan_template_id: Target template of a plan change
            billing_cycle: Target cycle of a plan change
            selected_seats: Seat totals a plan change settles on
            keep_overrides: Whether a plan change keeps organization overrides

        Returns:
            InvoiceCreated with the invoice id, payment id and amount

        Raises:
            BillingError: If qty is below 1
            NotFoundError: If no subscription has been configured
        """
        if qty < 1:
            raise BillingError("Seat quantity must be at least 1.")
        seat_type = SeatType(seat_type)
        payment_method = PaymentMethodType(payment_method)

        async with atomic(self.db):
            if amount is None:
                subscription = await SubscriptionService(self.db).get_org_subscription(org_id)
                unit_price = (
                    subscription.per_seat_price if seat_type == SeatType.PAID else subscription.sponsored_per_seat_price
                ) or 0
                amount = unit_price * qty
                currency = currency or subscription.currency
                line_items = [
                    InvoiceLineItem(label=SEAT_LINE_LABELS[seat_type], qty=qty, unit_price=unit_price, total=amount)
                ]
            currency = currency or "KES"

            period_start, period_end = month_bounds(datetime.utcnow())
            purchase = {
                "purpose": purpose,
                "seat_type": seat_type,
                "quantity": qty,
                "plan_template_id": plan_template_id,
                "billing_cycle": billing_cycle,
                "selected_paid_seats": selected_seats.paid_total if selected_seats is not None else None,
                "selected_sponsored_seats": selected_seats.sponsored_total if selected_seats is not None else None,
                "keep_overrides": keep_overrides,
            }

            invoice = Invoice(
                org_id=org_id,
                period_start=period_start,
                period_end=period_end,
                status=InvoiceStatus.UNPAID,
                amount=amount,
                currency=currency,
                line_items=[item.model_dump(by_alias=True) for item in line_items or []],
                payment_method=payment_method,
                **purchase,
            )
            self.db.add(invoice)
            await self.db.flush()

            payment = Payment(
                org_id=org_id,
                invoice_id=invoice.id,
                amount=amount,
                currency=currency,
                method=payment_method,
                status=PaymentStatus.PENDING,
                **purchase,
            )
            self.db.add(payment)

            stage_ledger_event(
                self.db,
                org_id,
                LedgerEventType.INVOICE_CREATED,
                actor,
                note=f"{seat_type.value} seats x{qty} via {payment_method.value}",
            )
            await self.db.flush()

        metrics.invoices_created_total.labels(purpose=InvoicePurpose(purpose).value).inc()
        logger.info(
            "invoice_created",
            org_id=str(org_id),
            invoice_id=str(invoice.id),
            payment_id=str(payment.id),
            purpose=InvoicePurpose(purpose).value,
            amount=amount,
            currency=currency,
        )
        return InvoiceCreated(invoice_id=invoice.id, payment_id=payment.id, amount=amount)

    async def get_invoice(self, org_id: UUID, invoice_id: UUID, for_update: bool = False) -> Invoice | None:
        """
        Get an organization's invoice.

        Args:
            org_id: Organization UUID
            invoice_id: Invoice UUID
            for_update: Lock the row and reload it from the database

        Returns:
            Invoice or None if not found
        """
        query = select(Invoice).where(Invoice.org_id == org_id, Invoice.id == invoice_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_billing_docs(self, org_id: UUID) -> dict[str, list]:
        """
        Invoices, payments and ledger entries, each newest first.

        Display only.
        """
        invoices = await self.db.execute(
            select(Invoice).where(Invoice.org_id == org_id).order_by(Invoice.created_at.desc())
        )
        payments = await self.db.execute(
            select(Payment).where(Payment.org_id == org_id).order_by(Payment.created_at.desc())
        )
        ledger = await self.db.execute(
            select(SeatLedgerEntry)
            .where(SeatLedgerEntry.org_id == org_id)
            .order_by(SeatLedgerEntry.created_at.desc())
        )
        return {
            "invoices": list(invoices.scalars().all()),
            "payments": list(payments.scalars().all()),
            "ledger": list(ledger.scalars().all()),
        }
