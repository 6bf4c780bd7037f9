"""Seat assignment engine."""
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coop_billing import metrics
from coop_billing.catalog import ALL_FLAGS_OFF
from coop_billing.database import atomic
from coop_billing.exceptions import NotFoundError, PreconditionFailedError
from coop_billing.models.member import Member, MemberStatus, SeatType
from coop_billing.models.seat_ledger import LedgerEventType
from coop_billing.schemas.billing import BillingActor, SeatSnapshot, SeatUsage
from coop_billing.services.subscription_service import SubscriptionService
from coop_billing.utils.entitlement import derive_entitlement
from coop_billing.utils.ledger import stage_ledger_event

logger = structlog.get_logger(__name__)

SEATLESS_STATUSES = (MemberStatus.SUSPENDED, MemberStatus.REJECTED)

ASSIGN_EVENTS = {
    SeatType.PAID: LedgerEventType.SEAT_ASSIGNED,
    SeatType.SPONSORED: LedgerEventType.SPONSORED_ASSIGNED,
}
UNASSIGN_EVENTS = {
    SeatType.PAID: LedgerEventType.SEAT_UNASSIGNED,
    SeatType.SPONSORED: LedgerEventType.SPONSORED_UNASSIGNED,
}


class SeatService:
    """
    Hands out and takes back premium seats.

    Every mutation locks the subscription row and counts seats from the
    roster inside the same transaction, so capacity checks never rely on a
    cached counter.
    """

    def __init__(self, db: AsyncSession):
        """Initialize seat service with database session."""
        self.db = db
        self.subscriptions = SubscriptionService(db)

    async def _get_member(self, org_id: UUID, member_id: UUID, for_update: bool = False) -> Member:
        query = select(Member).where(Member.org_id == org_id, Member.id == member_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        member = result.scalar_one_or_none()
        if member is None:
            raise NotFoundError("Member not found.")
        return member

    async def _count_active_seats(self, org_id: UUID, exclude_member_id: UUID | None = None) -> tuple[int, int]:
        """Paid and sponsored seats held by active members."""
        query = select(Member.id, Member.seat_type).where(
            Member.org_id == org_id,
            Member.status == MemberStatus.ACTIVE,
        )
        result = await self.db.execute(query)

        paid_used = 0
        sponsored_used = 0
        for member_id, seat_type in result.all():
            if member_id == exclude_member_id:
                continue
            if seat_type == SeatType.PAID:
                paid_used += 1
            elif seat_type == SeatType.SPONSORED:
                sponsored_used += 1
        return paid_used, sponsored_used

    async def assign_seat(
        self,
        org_id: UUID,
        member_id: UUID,
        seat_type: SeatType,
        actor: BillingActor,
    ) -> Member:
        """
        Give an active member a paid or sponsored seat.

        Switching between seat types releases the old seat first, so it is
        never counted twice. Assigning the seat the member already holds
        changes nothing.

        Args:
            org_id: Organization UUID
            member_id: Member UUID
            seat_type: paid or sponsored
            actor: Who is assigning the seat

        Returns:
            The member

        Raises:
            NotFoundError: If the member does not exist
            PreconditionFailedError: If the member is not active or the pool is full
        """
        seat_type = SeatType(seat_type)
        if seat_type == SeatType.NONE:
            raise PreconditionFailedError("Seat type must be paid or sponsored.")

        async with atomic(self.db):
            subscription = await self.subscriptions.get_subscription(org_id, for_update=True)
            member = await self._get_member(org_id, member_id, for_update=True)
            if not member.is_active:
                raise PreconditionFailedError("Only active members can receive premium seats.")

            if member.seat_type == seat_type:
                return member

            paid_used, sponsored_used = await self._count_active_seats(org_id, exclude_member_id=member.id)
            paid_total = subscription.paid_seats_total if subscription is not None else 0
            sponsored_total = subscription.sponsored_seats_total if subscription is not None else 0

            if seat_type == SeatType.PAID:
                if paid_used >= paid_total:
                    raise PreconditionFailedError("No paid seats remaining.")
                paid_used += 1
            else:
                if sponsored_used >= sponsored_total:
                    raise PreconditionFailedError("No sponsored seats remaining.")
                sponsored_used += 1

            now = datetime.utcnow()
            flags = subscription.feature_flags if subscription is not None else ALL_FLAGS_OFF
            member.seat_type = seat_type
            member.seat_assigned_at = now
            member.seat_assigned_by = actor.uid
            member.seat_assigned_by_name = actor.name
            member.entitlement = derive_entitlement(seat_type, True, flags)
            if subscription is not None:
                # Bumps the version so a racing writer fails its compare-and-swap
                subscription.updated_at = now

            stage_ledger_event(
                self.db,
                org_id,
                ASSIGN_EVENTS[seat_type],
                actor,
                member=member,
                snapshot_after=SeatSnapshot(
                    paid_total=paid_total,
                    sponsored_total=sponsored_total,
                    paid_used=paid_used,
                    sponsored_used=sponsored_used,
                ),
            )

        metrics.seats_assigned_total.labels(seat_type=seat_type.value).inc()
        logger.info(
            "seat_assigned",
            org_id=str(org_id),
            member_id=str(member_id),
            seat_type=seat_type.value,
            paid_used=paid_used,
            sponsored_used=sponsored_used,
        )
        return member

    async def unassign_seat(self, org_id: UUID, member_id: UUID, actor: BillingActor) -> Member:
        """
        Take a member's seat back. A no-op for seatless members.

        Raises:
            NotFoundError: If the member does not exist
        """
        async with atomic(self.db):
            subscription = await self.subscriptions.get_subscription(org_id, for_update=True)
            member = await self._get_member(org_id, member_id, for_update=True)
            previous_seat = member.seat_type
            if previous_seat == SeatType.NONE:
                return member

            flags = subscription.feature_flags if subscription is not None else ALL_FLAGS_OFF
            member.seat_type = SeatType.NONE
            member.seat_assigned_at = None
            member.seat_assigned_by = None
            member.seat_assigned_by_name = None
            member.entitlement = derive_entitlement(SeatType.NONE, member.is_active, flags)

            paid_used, sponsored_used = await self._count_active_seats(org_id, exclude_member_id=member.id)
            stage_ledger_event(
                self.db,
                org_id,
                UNASSIGN_EVENTS[previous_seat],
                actor,
                member=member,
                snapshot_after=SeatSnapshot(
                    paid_total=subscription.paid_seats_total if subscription is not None else 0,
                    sponsored_total=subscription.sponsored_seats_total if subscription is not None else 0,
                    paid_used=paid_used,
                    sponsored_used=sponsored_used,
                ),
            )

        metrics.seats_unassigned_total.labels(seat_type=previous_seat.value).inc()
        logger.info(
            "seat_unassigned",
            org_id=str(org_id),
            member_id=str(member_id),
            seat_type=previous_seat.value,
        )
        return member

    async def record_dormant_seat(self, org_id: UUID, member: Member, actor: BillingActor) -> Member:
        """
        Ledger a seat imported onto a member who is not active.

        The seat does not count against the pool until the member is
        activated, when readmit_seat_holder checks for room.
        """
        async with atomic(self.db):
            subscription = await self.subscriptions.get_subscription(org_id, for_update=True)
            member.seat_assigned_at = datetime.utcnow()
            member.seat_assigned_by = actor.uid
            member.seat_assigned_by_name = actor.name

            paid_used, sponsored_used = await self._count_active_seats(org_id)
            stage_ledger_event(
                self.db,
                org_id,
                ASSIGN_EVENTS[member.seat_type],
                actor,
                member=member,
                note=f"imported while {member.status.value}",
                snapshot_after=SeatSnapshot(
                    paid_total=subscription.paid_seats_total if subscription is not None else 0,
                    sponsored_total=subscription.sponsored_seats_total if subscription is not None else 0,
                    paid_used=paid_used,
                    sponsored_used=sponsored_used,
                ),
            )
        return member

    async def readmit_seat_holder(self, org_id: UUID, member_id: UUID, actor: BillingActor) -> Member:
        """
        Make room for a seat holder who is becoming active again.

        The member keeps their seat when the pool still has a free one.
        Otherwise the seat was handed to someone else in the meantime, so it
        is released and ledgered. The caller sets the new status.

        Raises:
            NotFoundError: If the member does not exist
        """
        async with atomic(self.db):
            subscription = await self.subscriptions.get_subscription(org_id, for_update=True)
            member = await self._get_member(org_id, member_id, for_update=True)
            seat_type = member.seat_type
            if seat_type == SeatType.NONE:
                return member

            paid_used, sponsored_used = await self._count_active_seats(org_id, exclude_member_id=member.id)
            paid_total = subscription.paid_seats_total if subscription is not None else 0
            sponsored_total = subscription.sponsored_seats_total if subscription is not None else 0
            if seat_type == SeatType.PAID:
                has_room = paid_used < paid_total
            else:
                has_room = sponsored_used < sponsored_total

            if subscription is not None:
                subscription.updated_at = datetime.utcnow()
            if has_room:
                return member

            member.seat_type = SeatType.NONE
            member.seat_assigned_at = None
            member.seat_assigned_by = None
            member.seat_assigned_by_name = None
            stage_ledger_event(
                self.db,
                org_id,
                UNASSIGN_EVENTS[seat_type],
                actor,
                member=member,
                note=f"no {seat_type.value} seat free on reactivation",
                snapshot_after=SeatSnapshot(
                    paid_total=paid_total,
                    sponsored_total=sponsored_total,
                    paid_used=paid_used,
                    sponsored_used=sponsored_used,
                ),
            )

        metrics.seats_unassigned_total.labels(seat_type=seat_type.value).inc()
        logger.info(
            "seat_released_on_reactivation",
            org_id=str(org_id),
            member_id=str(member_id),
            seat_type=seat_type.value,
        )
        return member

    async def compute_seat_usage(self, org_id: UUID) -> SeatUsage:
        """
        Seat totals and consumption, for display only.

        Mutations never rely on this; they recount inside their own lock.

        Raises:
            NotFoundError: If no subscription has been configured
        """
        subscription = await self.subscriptions.get_org_subscription(org_id)
        result = await self.db.execute(
            select(Member.seat_type).where(
                Member.org_id == org_id,
                Member.status == MemberStatus.ACTIVE,
            )
        )
        seats = list(result.scalars().all())

        paid_used = seats.count(SeatType.PAID)
        sponsored_used = seats.count(SeatType.SPONSORED)
        paid_total = subscription.paid_seats_total or 0
        sponsored_total = subscription.sponsored_seats_total or 0

        return SeatUsage(
            paid_used=paid_used,
            sponsored_used=sponsored_used,
            paid_total=paid_total,
            sponsored_total=sponsored_total,
            paid_remaining=max(0, paid_total - paid_used),
            sponsored_remaining=max(0, sponsored_total - sponsored_used),
            active_members=len(seats),
            premium_enabled_members=paid_used + sponsored_used,
        )

    async def apply_auto_unassign_on_suspended(self, org_id: UUID, actor: BillingActor) -> list[UUID]:
        """
        Release the seats of suspended and rejected members.

        Only runs when the organization enabled auto-unassign in its billing
        settings. Status changes never trigger it on their own.

        Returns:
            IDs of the members whose seat was released
        """
        billing_settings = await self.subscriptions.get_billing_settings(org_id)
        if not billing_settings.auto_unassign_seats_on_suspension:
            logger.debug("auto_unassign_skipped", org_id=str(org_id))
            return []

        result = await self.db.execute(
            select(Member.id).where(
                Member.org_id == org_id,
                Member.status.in_(SEATLESS_STATUSES),
                Member.seat_type != SeatType.NONE,
            )
        )
        member_ids = list(result.scalars().all())

        for member_id in member_ids:
            await self.unassign_seat(org_id, member_id, actor)

        logger.info("auto_unassign_applied", org_id=str(org_id), released=len(member_ids))
        return member_ids
