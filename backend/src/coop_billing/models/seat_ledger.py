"""Seat ledger model: append-only audit trail of billing mutations."""
import enum

from sqlalchemy import Column, Enum as SQLEnum, Integer, JSON, String, Uuid, event

from coop_billing.exceptions import LedgerImmutableError
from coop_billing.models.base import Base, org_id_column


class LedgerEventType(str, enum.Enum):
    """Kinds of seat, plan and payment events."""

    PAID_SEAT_PURCHASED = "PAID_SEAT_PURCHASED"
    SPONSORED_SEAT_ADDED = "SPONSORED_SEAT_ADDED"
    SEAT_ASSIGNED = "SEAT_ASSIGNED"
    SEAT_UNASSIGNED = "SEAT_UNASSIGNED"
    SPONSORED_ASSIGNED = "SPONSORED_ASSIGNED"
    SPONSORED_UNASSIGNED = "SPONSORED_UNASSIGNED"
    PLAN_CHANGED = "PLAN_CHANGED"
    RENEWED = "RENEWED"
    CANCELED = "CANCELED"
    INVOICE_CREATED = "INVOICE_CREATED"
    PAYMENT_MARKED_PAID = "PAYMENT_MARKED_PAID"


class SeatLedgerEntry(Base):
    """
    Immutable record of one seat, plan or payment mutation.

    snapshot_after holds {paidTotal, sponsoredTotal, paidUsed, sponsoredUsed}
    for seat assignment events.
    """

    __tablename__ = "seat_ledger"

    org_id = org_id_column()
    event_type = Column(SQLEnum(LedgerEventType), nullable=False, index=True)
    actor_uid = Column(String, nullable=False)
    actor_name = Column(String, nullable=False)
    member_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    member_uid = Column(String, nullable=True)
    note = Column(String, nullable=True)
    delta_paid = Column(Integer, nullable=False, default=0)
    delta_sponsored = Column(Integer, nullable=False, default=0)
    snapshot_after = Column(JSON, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<SeatLedgerEntry(org_id={self.org_id}, event_type={self.event_type.value})>"


@event.listens_for(SeatLedgerEntry, "before_update")
def _reject_ledger_update(mapper, connection, target) -> None:
    raise LedgerImmutableError(f"Seat ledger entry {target.id} cannot be modified")


@event.listens_for(SeatLedgerEntry, "before_delete")
def _reject_ledger_delete(mapper, connection, target) -> None:
    raise LedgerImmutableError(f"Seat ledger entry {target.id} cannot be deleted")
