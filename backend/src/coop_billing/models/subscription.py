"""Organization subscription: the mutable root of seat entitlement."""
import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SQLEnum,
    Float,
    Integer,
    JSON,
    String,
)
from sqlalchemy.orm import relationship

from coop_billing.models.base import Base, org_id_column


class PlanId(str, enum.Enum):
    """Plans a subscription can be on."""

    TRIAL = "trial"
    COOP_TRIAL = "coop_trial"
    FREE = "free"
    COOP_BASIC = "coop_basic"
    COOP_PREMIUM = "coop_premium"
    ENTERPRISE = "enterprise"

    @property
    def is_trial(self) -> bool:
        return self in (PlanId.TRIAL, PlanId.COOP_TRIAL)


class SubscriptionStatus(str, enum.Enum):
    """Subscription lifecycle status."""

    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    PAUSED = "paused"


class BillingCycle(str, enum.Enum):
    """Billing cycle for seat pricing."""

    MONTHLY = "monthly"
    ANNUAL = "annual"


class OrgSubscription(Base):
    """
    One subscription per organization.

    Created lazily on first access and mutated only inside transactions.
    Seat totals can never go negative; the version counter turns every ORM
    update into a compare-and-swap.
    """

    __tablename__ = "org_subscriptions"
    __table_args__ = (
        CheckConstraint("paid_seats_total >= 0", name="ck_org_subscriptions_paid_seats_non_negative"),
        CheckConstraint("sponsored_seats_total >= 0", name="ck_org_subscriptions_sponsored_seats_non_negative"),
    )

    org_id = org_id_column(unique=True)
    plan_id = Column(SQLEnum(PlanId), nullable=False, default=PlanId.COOP_TRIAL)
    status = Column(SQLEnum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.TRIALING, index=True)
    start_at = Column(DateTime, nullable=True)
    trial_ends_at = Column(DateTime, nullable=True)
    renew_at = Column(DateTime, nullable=True)
    cancel_at = Column(DateTime, nullable=True)
    billing_cycle = Column(SQLEnum(BillingCycle), nullable=False, default=BillingCycle.MONTHLY)
    currency = Column(String(3), nullable=False, default="KES")
    exchange_rate_usd = Column(Float, nullable=False, default=150.0)

    per_seat_price = Column(Integer, nullable=False, default=0)
    sponsored_per_seat_price = Column(Integer, nullable=False, default=0)
    feature_flags = Column(JSON, nullable=False, default=dict)  # {flag: bool}
    paid_seats_total = Column(Integer, nullable=False, default=0)
    sponsored_seats_total = Column(Integer, nullable=False, default=0)
    max_members = Column(Integer, nullable=True)
    max_markets_tracked = Column(Integer, nullable=True)

    template_applied_from = Column(String, nullable=True)
    overrides = Column(JSON, nullable=False, default=dict)  # {featureFlags?, seatPricing?}
    version = Column(Integer, nullable=False, default=1)

    # Relationships
    organization = relationship("Organization", back_populates="subscription")

    __mapper_args__ = {"version_id_col": version}

    @property
    def seats(self) -> dict[str, int]:
        """Seat totals as {paidTotal, sponsoredTotal}."""
        return {"paidTotal": self.paid_seats_total or 0, "sponsoredTotal": self.sponsored_seats_total or 0}

    def __repr__(self) -> str:
        """String representation."""
        return f"<OrgSubscription(org_id={self.org_id}, plan_id={self.plan_id.value}, status={self.status.value})>"


class BillingSettings(Base):
    """Per-organization billing preferences."""

    __tablename__ = "org_billing_settings"

    org_id = org_id_column(unique=True)
    staff_can_manage_billing = Column(Boolean, nullable=False, default=True)
    auto_unassign_seats_on_suspension = Column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        """String representation."""
        return f"<BillingSettings(org_id={self.org_id}, auto_unassign={self.auto_unassign_seats_on_suspension})>"
