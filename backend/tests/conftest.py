"""Pytest configuration and fixtures for async testing."""
import os
from typing import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from coop_billing.database import Base
from coop_billing.main import app
from coop_billing.models.member import Member, MemberStatus, SeatType
from coop_billing.models.organization import Organization
from coop_billing.models.subscription import OrgSubscription
from coop_billing.schemas.billing import BillingActor
from coop_billing.schemas.member import MemberCreate
from coop_billing.schemas.organization import OrganizationCreate
from coop_billing.services.member_service import MemberService, OrganizationService
from coop_billing.services.subscription_service import SubscriptionService
from tests.utils.factories import MemberFactory, OrganizationFactory

import coop_billing.models  # noqa: F401  registers every table


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Engine on a throwaway database.

    Uses a SQLite file per test unless TEST_DATABASE_URL points elsewhere.
    """
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'coop_billing_test.db'}"
    engine = create_async_engine(url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    Yields:
        AsyncSession: Database session for testing
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
def actor() -> BillingActor:
    """Actor recorded on ledger entries written by service-level tests."""
    return BillingActor(uid="admin-uid", name="Amina Wanjiru")


@pytest_asyncio.fixture(scope="function")
async def organization(db_session: AsyncSession) -> Organization:
    """A committed cooperative with no billing state yet."""
    org = await OrganizationService(db_session).create_organization(
        OrganizationCreate(**OrganizationFactory.create())
    )
    await db_session.commit()
    return org


@pytest_asyncio.fixture(scope="function")
async def subscription(db_session: AsyncSession, organization: Organization, actor: BillingActor) -> OrgSubscription:
    """The auto-provisioned trial subscription (10 paid / 5 sponsored seats)."""
    result = await SubscriptionService(db_session).ensure_org_subscription(organization.id, actor)
    await db_session.commit()
    return result.subscription


@pytest.fixture(scope="function")
def make_member(db_session: AsyncSession) -> Callable[..., Awaitable[Member]]:
    """
    Factory fixture adding a committed member to an organization.

    Usage: ``member = await make_member(org.id, status=MemberStatus.ACTIVE)``
    """

    async def _make(
        org_id,
        status: MemberStatus = MemberStatus.ACTIVE,
        seat_type: SeatType = SeatType.NONE,
        **overrides,
    ) -> Member:
        data = MemberFactory.create({"status": status, "seat_type": seat_type, **overrides})
        member = await MemberService(db_session).create_member(org_id, MemberCreate(**data))
        await db_session.commit()
        return member

    return _make


@pytest_asyncio.fixture(scope="function")
async def async_client(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client against the app, wired to the test database.

    Yields:
        AsyncClient: Async HTTP client for API testing
    """
    from coop_billing.api.deps import get_db, get_session_factory

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        """Override database dependency to use test database."""
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
