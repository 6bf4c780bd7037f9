"""Integration tests for organizations and the member roster."""
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from coop_billing.catalog import ALL_FLAGS_ON
from coop_billing.exceptions import NotFoundError
from coop_billing.models.member import MemberStatus, SeatType
from coop_billing.models.organization import Organization
from coop_billing.models.subscription import OrgSubscription
from coop_billing.schemas.member import MemberCreate
from coop_billing.services.member_service import MemberService, OrganizationService


@pytest.mark.asyncio
async def test_get_unknown_organization(db_session: AsyncSession) -> None:
    with pytest.raises(NotFoundError):
        await OrganizationService(db_session).get_organization(uuid4())


@pytest.mark.asyncio
async def test_create_member_defaults(db_session: AsyncSession, organization: Organization) -> None:
    member = await MemberService(db_session).create_member(organization.id, MemberCreate(display_name="Wanjiku"))
    await db_session.commit()

    assert member.status == MemberStatus.PENDING
    assert member.seat_type == SeatType.NONE
    assert member.role == "member"
    assert member.entitlement == {"premiumActive": False, "features": {flag: False for flag in ALL_FLAGS_ON}}


@pytest.mark.asyncio
async def test_imported_seat_holder_gets_entitlement(
    db_session: AsyncSession, subscription: OrgSubscription
) -> None:
    member = await MemberService(db_session).create_member(
        subscription.org_id,
        MemberCreate.model_validate({"display_name": "Kamau", "status": "active", "premiumSeatType": "paid"}),
    )
    await db_session.commit()

    assert member.seat_type == SeatType.PAID
    assert member.entitlement == {"premiumActive": True, "features": ALL_FLAGS_ON}


@pytest.mark.asyncio
async def test_create_member_in_unknown_organization(db_session: AsyncSession) -> None:
    with pytest.raises(NotFoundError):
        await MemberService(db_session).create_member(uuid4(), MemberCreate(display_name="Kamau"))
    await db_session.rollback()


@pytest.mark.asyncio
async def test_list_members_filters_by_status(
    db_session: AsyncSession, organization: Organization, make_member
) -> None:
    active = await make_member(organization.id)
    await make_member(organization.id, status=MemberStatus.PENDING)

    service = MemberService(db_session)
    assert len(await service.list_members(organization.id)) == 2
    assert [m.id for m in await service.list_members(organization.id, MemberStatus.ACTIVE)] == [active.id]


@pytest.mark.asyncio
async def test_activation_grants_entitlement_to_seat_holder(
    db_session: AsyncSession, subscription: OrgSubscription, make_member
) -> None:
    member = await make_member(subscription.org_id, status=MemberStatus.PENDING, seat_type=SeatType.SPONSORED)
    assert member.entitlement["premiumActive"] is False

    activated = await MemberService(db_session).update_member_status(
        subscription.org_id, member.id, MemberStatus.ACTIVE
    )
    await db_session.commit()

    assert activated.entitlement == {"premiumActive": True, "features": ALL_FLAGS_ON}


@pytest.mark.asyncio
async def test_update_status_of_unknown_member(db_session: AsyncSession, organization: Organization) -> None:
    with pytest.raises(NotFoundError, match="Member not found."):
        await MemberService(db_session).update_member_status(organization.id, uuid4(), MemberStatus.ACTIVE)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "roles,expected",
    [
        (["member", "org_admin"], "org_admin"),
        (["admin"], "org_admin"),
        (["staff"], "org_staff"),
        (["org_staff"], "org_staff"),
        (["member"], None),
        ([], None),
    ],
)
async def test_get_org_role(
    db_session: AsyncSession, organization: Organization, make_member, roles: list[str], expected
) -> None:
    for role in roles:
        await make_member(organization.id, user_uid="user-7", role=role)

    assert await MemberService(db_session).get_org_role(organization.id, "user-7") == expected
