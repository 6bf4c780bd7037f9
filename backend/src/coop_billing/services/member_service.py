"""Organization and member roster services."""
from typing import Literal, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coop_billing.catalog import ALL_FLAGS_OFF
from coop_billing.database import atomic
from coop_billing.exceptions import NotFoundError
from coop_billing.models.member import Member, MemberStatus, SeatType
from coop_billing.models.organization import Organization
from coop_billing.models.subscription import OrgSubscription
from coop_billing.schemas.billing import SYSTEM_ACTOR, BillingActor
from coop_billing.schemas.member import MemberCreate
from coop_billing.schemas.organization import OrganizationCreate
from coop_billing.utils.entitlement import derive_entitlement

logger = structlog.get_logger(__name__)

OrgBillingRole = Optional[Literal["org_admin", "org_staff"]]

ADMIN_ROLES = {"org_admin", "admin"}
STAFF_ROLES = {"org_staff", "staff"}


class OrganizationService:
    """Service layer for organizations."""

    def __init__(self, db: AsyncSession):
        """Initialize organization service with database session."""
        self.db = db

    async def create_organization(self, org_data: OrganizationCreate) -> Organization:
        """
        Create a new organization.

        Args:
            org_data: Organization creation data

        Returns:
            Created organization
        """
        organization = Organization(name=org_data.name, org_type=org_data.org_type)
        self.db.add(organization)
        await self.db.flush()
        await self.db.refresh(organization)

        logger.info("organization_created", org_id=str(organization.id), org_type=organization.org_type)
        return organization

    async def get_organization(self, org_id: UUID) -> Organization:
        """
        Get organization by ID.

        Raises:
            NotFoundError: If the organization does not exist
        """
        organization = await self.db.get(Organization, org_id)
        if organization is None:
            raise NotFoundError(f"Organization {org_id} not found")
        return organization


class MemberService:
    """Service layer for the member roster."""

    def __init__(self, db: AsyncSession):
        """Initialize member service with database session."""
        self.db = db

    async def create_member(
        self,
        org_id: UUID,
        member_data: MemberCreate,
        actor: Optional[BillingActor] = None,
    ) -> Member:
        """
        Add a member to an organization's roster.

        A seat carried over from an import goes through the seat engine: an
        active member only gets it while the pool has room, and every
        imported seat is ledgered.

        Args:
            org_id: Organization UUID
            member_data: Member creation data
            actor: Who is adding the member (defaults to the system actor)

        Returns:
            Created member

        Raises:
            NotFoundError: If the organization does not exist
            PreconditionFailedError: If an active member brings a seat and the pool is full
        """
        from coop_billing.services.seat_service import SeatService

        actor = actor or SYSTEM_ACTOR

        await OrganizationService(self.db).get_organization(org_id)
        flags = await self._subscription_flags(org_id)
        is_active = member_data.status == MemberStatus.ACTIVE
        # Active seat holders start seatless and claim the seat below
        initial_seat = SeatType.NONE if is_active else member_data.seat_type

        member = Member(
            org_id=org_id,
            display_name=member_data.display_name,
            user_uid=member_data.user_uid,
            role=member_data.role,
            status=member_data.status,
            seat_type=initial_seat,
            entitlement=derive_entitlement(initial_seat, is_active, flags),
        )
        self.db.add(member)
        await self.db.flush()

        if member_data.seat_type != SeatType.NONE:
            seats = SeatService(self.db)
            if is_active:
                await seats.assign_seat(org_id, member.id, member_data.seat_type, actor)
            else:
                await seats.record_dormant_seat(org_id, member, actor)

        await self.db.refresh(member)
        return member

    async def get_member(self, org_id: UUID, member_id: UUID) -> Member | None:
        """
        Get a member of an organization.

        Returns:
            Member or None if not found
        """
        result = await self.db.execute(
            select(Member).where(Member.org_id == org_id, Member.id == member_id)
        )
        return result.scalar_one_or_none()

    async def list_members(self, org_id: UUID, status: MemberStatus | None = None) -> list[Member]:
        """
        List an organization's members, oldest first.

        Args:
            org_id: Organization UUID
            status: Filter by membership status (optional)
        """
        query = select(Member).where(Member.org_id == org_id)
        if status is not None:
            query = query.where(Member.status == status)
        result = await self.db.execute(query.order_by(Member.created_at.asc()))
        return list(result.scalars().all())

    async def update_member_status(
        self,
        org_id: UUID,
        member_id: UUID,
        status: MemberStatus,
        actor: Optional[BillingActor] = None,
    ) -> Member:
        """
        Change a member's status and refresh their entitlement snapshot.

        Leaving active keeps any seat; releasing seats of suspended or
        rejected members is the job of SeatService.apply_auto_unassign_on_suspended.
        Becoming active with a seat re-checks the pool, and the seat is
        released when no room is left.

        Raises:
            NotFoundError: If the member does not exist
        """
        from coop_billing.services.seat_service import SeatService

        actor = actor or SYSTEM_ACTOR

        async with atomic(self.db):
            member = await self.get_member(org_id, member_id)
            if member is None:
                raise NotFoundError("Member not found.")

            old_status = member.status
            if status == MemberStatus.ACTIVE and old_status != MemberStatus.ACTIVE and member.seat_type != SeatType.NONE:
                member = await SeatService(self.db).readmit_seat_holder(org_id, member_id, actor)

            member.status = status
            member.entitlement = derive_entitlement(
                member.seat_type,
                status == MemberStatus.ACTIVE,
                await self._subscription_flags(org_id),
            )
        await self.db.refresh(member)

        logger.info(
            "member_status_changed",
            org_id=str(org_id),
            member_id=str(member_id),
            old_status=old_status.value,
            new_status=status.value,
        )
        return member

    async def get_org_role(self, org_id: UUID, uid: str) -> OrgBillingRole:
        """
        Resolve a user's billing role within an organization.

        Returns:
            "org_admin", "org_staff", or None for everyone else
        """
        result = await self.db.execute(
            select(Member.role).where(Member.org_id == org_id, Member.user_uid == uid)
        )
        roles = set(result.scalars().all())
        if roles & ADMIN_ROLES:
            return "org_admin"
        if roles & STAFF_ROLES:
            return "org_staff"
        return None

    async def _subscription_flags(self, org_id: UUID) -> dict[str, bool]:
        result = await self.db.execute(
            select(OrgSubscription.feature_flags).where(OrgSubscription.org_id == org_id)
        )
        return result.scalar_one_or_none() or dict(ALL_FLAGS_OFF)
