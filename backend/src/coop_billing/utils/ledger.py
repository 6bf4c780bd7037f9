"""Seat ledger writer.

Every seat, plan and payment mutation appends one entry here inside the same
transaction as the mutation itself, so failed attempts leave no trace.
"""
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from coop_billing.models.member import Member
from coop_billing.models.seat_ledger import LedgerEventType, SeatLedgerEntry
from coop_billing.schemas.billing import BillingActor, SeatSnapshot

logger = structlog.get_logger(__name__)


def stage_ledger_event(
    db: AsyncSession,
    org_id: UUID,
    event_type: LedgerEventType,
    actor: BillingActor,
    member: Optional[Member] = None,
    note: Optional[str] = None,
    delta_paid: int = 0,
    delta_sponsored: int = 0,
    snapshot_after: Optional[SeatSnapshot] = None,
) -> SeatLedgerEntry:
    """
    Add a ledger entry to the session without flushing.

    Args:
        db: Database session holding the mutation's transaction
        org_id: Organization UUID
        event_type: Ledger event type
        actor: Who performed the mutation
        member: Subject member, for seat events
        note: Free-form description
        delta_paid: Change to paid seat totals
        delta_sponsored: Change to sponsored seat totals
        snapshot_after: Seat totals and usage after the mutation

    Returns:
        SeatLedgerEntry: The staged entry
    """
    entry = SeatLedgerEntry(
        org_id=org_id,
        event_type=event_type,
        actor_uid=actor.uid,
        actor_name=actor.name,
        member_id=member.id if member is not None else None,
        member_uid=member.user_uid if member is not None else None,
        note=note,
        delta_paid=delta_paid,
        delta_sponsored=delta_sponsored,
        snapshot_after=snapshot_after.model_dump(by_alias=True) if snapshot_after is not None else None,
    )
    db.add(entry)

    logger.info(
        "seat_ledger_event",
        org_id=str(org_id),
        event_type=event_type.value,
        actor_uid=actor.uid,
        member_id=str(member.id) if member is not None else None,
        delta_paid=delta_paid,
        delta_sponsored=delta_sponsored,
    )
    return entry


async def write_ledger_event(db: AsyncSession, org_id: UUID, event_type: LedgerEventType, actor: BillingActor, **fields) -> SeatLedgerEntry:
    """Append a ledger entry and flush it."""
    entry = stage_ledger_event(db, org_id, event_type, actor, **fields)
    await db.flush()
    return entry
