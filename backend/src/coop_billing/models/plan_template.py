"""Plan template model: the shared catalog subscriptions are derived from."""
import enum

from sqlalchemy import Boolean, Column, Float, Integer, JSON, String

from coop_billing.models.base import Base


class PlanTemplateId(str, enum.Enum):
    """Identifiers of the built-in catalog entries."""

    FREE = "free"
    COOP_BASIC = "coop_basic"
    COOP_PREMIUM = "coop_premium"
    ENTERPRISE_DEFAULT = "enterprise_default"


class BillingPlanTemplate(Base):
    """
    Versioned pricing and feature definition.

    Seeded once from the built-in defaults, then only patched. Prices are
    whole units of the template currency per seat per billing cycle.
    """

    __tablename__ = "billing_plan_templates"

    template_id = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    currency = Column(String(3), nullable=False, default="KES")
    exchange_rate_usd = Column(Float, nullable=False, default=150.0)
    billing_cycles = Column(JSON, nullable=False, default=lambda: ["monthly", "annual"])

    monthly_per_seat = Column(Integer, nullable=False, default=0)
    monthly_sponsored_per_seat = Column(Integer, nullable=False, default=0)
    annual_per_seat = Column(Integer, nullable=False, default=0)
    annual_sponsored_per_seat = Column(Integer, nullable=False, default=0)
    annual_discount_percent = Column(Integer, nullable=False, default=0)

    default_paid_seats = Column(Integer, nullable=False, default=0)
    default_sponsored_seats = Column(Integer, nullable=False, default=0)

    feature_flags = Column(JSON, nullable=False, default=dict)  # {flag: bool}
    max_members = Column(Integer, nullable=True)  # NULL means unlimited
    max_markets_tracked = Column(Integer, nullable=True)

    is_public = Column(Boolean, nullable=False, default=True, index=True)
    rank = Column(Integer, nullable=False, default=999)
    version = Column(Integer, nullable=False, default=1)

    def pricing_for(self, billing_cycle: str) -> tuple[int, int]:
        """Return (per_seat, sponsored_per_seat) for a billing cycle."""
        if billing_cycle == "annual":
            return self.annual_per_seat, self.annual_sponsored_per_seat
        return self.monthly_per_seat, self.monthly_sponsored_per_seat

    def __repr__(self) -> str:
        """String representation."""
        return f"<BillingPlanTemplate(template_id={self.template_id}, rank={self.rank}, public={self.is_public})>"
