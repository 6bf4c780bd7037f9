"""Organization and member roster API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from coop_billing.api.deps import get_actor, get_db, require_billing_manager
from coop_billing.models.member import MemberStatus
from coop_billing.schemas.billing import BillingActor
from coop_billing.schemas.member import Member, MemberCreate, MemberStatusUpdate
from coop_billing.schemas.organization import Organization, OrganizationCreate
from coop_billing.services.member_service import MemberService, OrganizationService

router = APIRouter(prefix="/orgs", tags=["Organizations"])


@router.post("", response_model=Organization, status_code=status.HTTP_201_CREATED)
async def create_organization(
    org_data: OrganizationCreate,
    db: AsyncSession = Depends(get_db),
    actor: BillingActor = Depends(get_actor),
) -> Organization:
    """
    Create an organization.

    The caller joins the roster as an active org admin.
    """
    organization = await OrganizationService(db).create_organization(org_data)
    await MemberService(db).create_member(
        organization.id,
        MemberCreate(display_name=actor.name, user_uid=actor.uid, role="org_admin", status=MemberStatus.ACTIVE),
    )
    await db.commit()
    return organization


@router.post("/{org_id}/members", response_model=Member, status_code=status.HTTP_201_CREATED)
async def create_member(
    org_id: UUID,
    member_data: MemberCreate,
    db: AsyncSession = Depends(get_db),
    actor: BillingActor = Depends(require_billing_manager),
) -> Member:
    """
    Add a member to the roster.

    - **display_name**: Member name (required)
    - **status**: active, pending, suspended or rejected (default: pending)
    - **seat_type**: Seat held at import time; seatType, seatStatus and
      premiumSeatType are accepted as older spellings
    """
    member = await MemberService(db).create_member(org_id, member_data, actor)
    await db.commit()
    return member


@router.get("/{org_id}/members", response_model=list[Member])
async def list_members(
    org_id: UUID,
    status_filter: MemberStatus | None = Query(None, alias="status", description="Filter by status"),
    db: AsyncSession = Depends(get_db),
    actor: BillingActor = Depends(get_actor),
) -> list[Member]:
    """List an organization's members, oldest first."""
    return await MemberService(db).list_members(org_id, status=status_filter)


@router.patch("/{org_id}/members/{member_id}/status", response_model=Member)
async def update_member_status(
    org_id: UUID,
    member_id: UUID,
    update_data: MemberStatusUpdate,
    db: AsyncSession = Depends(get_db),
    actor: BillingActor = Depends(require_billing_manager),
) -> Member:
    """
    Change a member's status.

    Seats are kept; call the auto-unassign sweep to release seats of
    suspended or rejected members. A seat holder coming back to active
    loses the seat if the pool filled up meanwhile.
    """
    member = await MemberService(db).update_member_status(org_id, member_id, update_data.status, actor)
    await db.commit()
    return member
