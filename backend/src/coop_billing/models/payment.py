"""Payment model: the payer-facing counterpart of an invoice."""
import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import relationship

from coop_billing.models.base import Base, org_id_column
from coop_billing.models.invoice import InvoicePurpose, PaymentMethodType
from coop_billing.models.member import SeatType
from coop_billing.models.subscription import BillingCycle


class PaymentStatus(str, enum.Enum):
    """Payment confirmation status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"


class Payment(Base):
    """
    Pending payment paired 1:1 with an invoice.

    Mirrors the invoice's purchase metadata so confirmation can fall back to
    it when the invoice lacks a field.
    """

    __tablename__ = "billing_payments"

    org_id = org_id_column()
    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("billing_invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="KES")
    method = Column(SQLEnum(PaymentMethodType), nullable=False)
    reference = Column(String, nullable=True)  # External M-Pesa / bank reference
    status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    confirmed_at = Column(DateTime, nullable=True)

    purpose = Column(SQLEnum(InvoicePurpose), nullable=True, default=InvoicePurpose.SEAT_PURCHASE)
    seat_type = Column(SQLEnum(SeatType), nullable=True)
    quantity = Column(Integer, nullable=True)
    plan_template_id = Column(String, nullable=True)
    billing_cycle = Column(SQLEnum(BillingCycle), nullable=True)
    selected_paid_seats = Column(Integer, nullable=True)
    selected_sponsored_seats = Column(Integer, nullable=True)
    keep_overrides = Column(Boolean, nullable=True, default=True)

    # Relationships
    invoice = relationship("Invoice", back_populates="payments")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Payment(id={self.id}, invoice_id={self.invoice_id}, status={self.status.value}, amount={self.amount})>"
