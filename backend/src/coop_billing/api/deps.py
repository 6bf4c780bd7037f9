"""FastAPI dependencies for database sessions and authentication."""
from typing import AsyncGenerator, Optional
from uuid import UUID

import jwt
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coop_billing.auth.jwt import jwt_auth
from coop_billing.database import AsyncSessionLocal
from coop_billing.schemas.billing import BillingActor
from coop_billing.services.member_service import MemberService
from coop_billing.services.subscription_service import SubscriptionService

logger = structlog.get_logger(__name__)

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database session dependency.

    Yields:
        AsyncSession: Database session for the request lifecycle
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """Session factory for mutations that run in their own retried transaction."""
    return AsyncSessionLocal


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    Get current authenticated user from JWT token.

    Returns:
        dict: Decoded JWT claims (sub, name)

    Raises:
        HTTPException: If token is invalid, expired, or missing
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials

    try:
        payload = jwt_auth.verify_access_token(token)
    except jwt.ExpiredSignatureError:
        logger.warning("token_expired")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        logger.warning("invalid_token", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload


async def get_actor(current_user: dict = Depends(get_current_user)) -> BillingActor:
    """Ledger actor for the authenticated caller, also bound to the request's log context."""
    uid = str(current_user["sub"])
    structlog.contextvars.bind_contextvars(actor_uid=uid)
    return BillingActor(uid=uid, name=current_user.get("name") or uid)


async def require_billing_manager(
    org_id: UUID,
    actor: BillingActor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> BillingActor:
    """
    Allow org admins, and org staff when the organization lets staff manage billing.

    Raises:
        HTTPException: 403 for everyone else
    """
    role = await MemberService(db).get_org_role(org_id, actor.uid)
    if role == "org_admin":
        return actor
    if role == "org_staff":
        billing_settings = await SubscriptionService(db).get_billing_settings(org_id)
        if billing_settings.staff_can_manage_billing:
            return actor

    logger.warning("billing_access_denied", org_id=str(org_id), user_id=actor.uid, role=role)
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Billing management requires an organization admin",
    )
