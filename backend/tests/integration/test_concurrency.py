"""Integration tests for optimistic concurrency on the subscription row."""
import pytest
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from coop_billing.database import is_retryable_conflict, run_in_transaction
from coop_billing.exceptions import ConflictError, PreconditionFailedError
from coop_billing.models.member import SeatType
from coop_billing.models.subscription import OrgSubscription
from coop_billing.schemas.billing import BillingActor
from coop_billing.services.seat_service import SeatService
from coop_billing.services.subscription_service import SubscriptionService


class _DriverError(Exception):
    def __init__(self, sqlstate: str):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


@pytest.mark.parametrize(
    "exc,expected",
    [
        (StaleDataError("UPDATE matched 0 rows"), True),
        (DBAPIError("UPDATE org_subscriptions", {}, _DriverError("40001")), True),
        (DBAPIError("UPDATE org_subscriptions", {}, _DriverError("40P01")), True),
        (DBAPIError("UPDATE org_subscriptions", {}, _DriverError("23505")), False),
        (PreconditionFailedError("No paid seats remaining."), False),
    ],
)
def test_is_retryable_conflict(exc: Exception, expected: bool) -> None:
    assert is_retryable_conflict(exc) is expected


@pytest.mark.asyncio
async def test_lost_race_is_replayed(session_factory: async_sessionmaker) -> None:
    attempts = 0

    async def work(session: AsyncSession) -> str:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise StaleDataError("UPDATE matched 0 rows")
        return "committed"

    assert await run_in_transaction(session_factory, work, max_attempts=3) == "committed"
    assert attempts == 2


@pytest.mark.asyncio
async def test_repeated_conflicts_end_in_conflict_error(session_factory: async_sessionmaker) -> None:
    attempts = 0

    async def work(session: AsyncSession) -> None:
        nonlocal attempts
        attempts += 1
        raise StaleDataError("UPDATE matched 0 rows")

    with pytest.raises(ConflictError, match="Concurrent billing update detected"):
        await run_in_transaction(session_factory, work, max_attempts=3)
    assert attempts == 3


@pytest.mark.asyncio
async def test_business_rule_failure_is_not_replayed(session_factory: async_sessionmaker) -> None:
    attempts = 0

    async def work(session: AsyncSession) -> None:
        nonlocal attempts
        attempts += 1
        raise PreconditionFailedError("No paid seats remaining.")

    with pytest.raises(PreconditionFailedError):
        await run_in_transaction(session_factory, work, max_attempts=3)
    assert attempts == 1


@pytest.mark.asyncio
async def test_seat_assignment_bumps_subscription_version(
    session_factory: async_sessionmaker, subscription: OrgSubscription, make_member, actor: BillingActor
) -> None:
    """A writer holding the subscription from before an assignment cannot overwrite it."""
    org_id = subscription.org_id
    member = await make_member(org_id)

    async with session_factory() as stale_session, session_factory() as winner_session:
        stale = await SubscriptionService(stale_session).get_subscription(org_id)
        version_before = stale.version

        await SeatService(winner_session).assign_seat(org_id, member.id, SeatType.PAID, actor)
        await winner_session.commit()

        current = await SubscriptionService(winner_session).get_subscription(org_id)
        assert current.version == version_before + 1

        stale.paid_seats_total = 0
        with pytest.raises(StaleDataError):
            await stale_session.flush()
        await stale_session.rollback()

    async with session_factory() as check_session:
        usage = await SeatService(check_session).compute_seat_usage(org_id)
    assert (usage.paid_used, usage.paid_total) == (1, 10)


@pytest.mark.asyncio
async def test_interleaved_assignment_forces_a_replay(
    session_factory: async_sessionmaker, subscription: OrgSubscription, make_member, actor: BillingActor
) -> None:
    """Work that read the subscription before a competing commit runs again on fresh state."""
    org_id = subscription.org_id
    member = await make_member(org_id)
    attempts = 0

    async def grow_paid_pool(session: AsyncSession) -> int:
        nonlocal attempts
        attempts += 1
        current = await SubscriptionService(session).get_subscription(org_id)
        if attempts == 1:
            async with session_factory() as competitor:
                await SeatService(competitor).assign_seat(org_id, member.id, SeatType.PAID, actor)
                await competitor.commit()
        current.paid_seats_total += 1
        await session.flush()
        return current.paid_seats_total

    assert await run_in_transaction(session_factory, grow_paid_pool, max_attempts=3) == 11
    assert attempts == 2
