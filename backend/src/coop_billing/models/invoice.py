"""Invoice model for seat purchases and plan changes."""
import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SQLEnum,
    Integer,
    JSON,
    String,
)
from sqlalchemy.orm import relationship

from coop_billing.models.base import Base, org_id_column
from coop_billing.models.member import SeatType
from coop_billing.models.subscription import BillingCycle


class InvoiceStatus(str, enum.Enum):
    """Invoice lifecycle status."""

    UNPAID = "unpaid"
    PAID = "paid"


class InvoicePurpose(str, enum.Enum):
    """What confirming the invoice does to the subscription."""

    SEAT_PURCHASE = "seat_purchase"
    PLAN_CHANGE = "plan_change"


class PaymentMethodType(str, enum.Enum):
    """Offline payment rails accepted for invoices."""

    MPESA = "mpesa"
    BANK_TRANSFER = "bank_transfer"


class Invoice(Base):
    """
    Billing invoice for one purchase.

    Created unpaid and moved to paid exactly once, on payment confirmation.
    Plan-change invoices carry the target template, cycle and seat selection.
    """

    __tablename__ = "billing_invoices"

    org_id = org_id_column()
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    status = Column(SQLEnum(InvoiceStatus), nullable=False, default=InvoiceStatus.UNPAID, index=True)
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="KES")
    line_items = Column(JSON, nullable=False, default=list)  # [{label, qty, unitPrice, total}]
    payment_method = Column(SQLEnum(PaymentMethodType), nullable=False)
    paid_at = Column(DateTime, nullable=True)
    reference = Column(String, nullable=True)

    purpose = Column(SQLEnum(InvoicePurpose), nullable=True, default=InvoicePurpose.SEAT_PURCHASE)
    seat_type = Column(SQLEnum(SeatType), nullable=True)
    quantity = Column(Integer, nullable=True)
    plan_template_id = Column(String, nullable=True)
    billing_cycle = Column(SQLEnum(BillingCycle), nullable=True)
    selected_paid_seats = Column(Integer, nullable=True)
    selected_sponsored_seats = Column(Integer, nullable=True)
    keep_overrides = Column(Boolean, nullable=True, default=True)

    # Relationships
    payments = relationship("Payment", back_populates="invoice")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Invoice(id={self.id}, status={self.status.value}, amount={self.amount})>"
