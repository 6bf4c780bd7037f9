"""Built-in plan catalog: capabilities, per-plan defaults and seed templates."""
import enum
from typing import Any

from coop_billing.models.plan_template import PlanTemplateId
from coop_billing.models.subscription import PlanId


class FeatureFlag(str, enum.Enum):
    """Premium capabilities a seat can unlock."""

    MARKET_ORACLE = "marketOracle"
    CLIMATE_INSIGHTS = "climateInsights"
    HARVEST_PLANNER = "harvestPlanner"
    GROUP_PRICES = "groupPrices"
    MARKETPLACE_VERIFIED_TAG = "marketplaceVerifiedTag"
    TRAINING = "training"
    CERTIFICATES = "certificates"
    TARGETS_REWARDS = "targetsRewards"
    CSV_ONBOARDING = "csvOnboarding"


ALL_FEATURE_FLAGS = [flag.value for flag in FeatureFlag]


def flags_with(*enabled: FeatureFlag) -> dict[str, bool]:
    """Full flag map with only the given capabilities switched on."""
    enabled_values = {flag.value for flag in enabled}
    return {flag: flag in enabled_values for flag in ALL_FEATURE_FLAGS}


ALL_FLAGS_ON = flags_with(*FeatureFlag)
ALL_FLAGS_OFF = flags_with()
BASIC_FLAGS = flags_with(
    FeatureFlag.MARKET_ORACLE,
    FeatureFlag.CLIMATE_INSIGHTS,
    FeatureFlag.HARVEST_PLANNER,
    FeatureFlag.GROUP_PRICES,
    FeatureFlag.MARKETPLACE_VERIFIED_TAG,
    FeatureFlag.TRAINING,
)

DEFAULT_FEATURE_FLAGS_BY_PLAN: dict[PlanId, dict[str, bool]] = {
    PlanId.TRIAL: ALL_FLAGS_ON,
    PlanId.COOP_TRIAL: ALL_FLAGS_ON,
    PlanId.FREE: ALL_FLAGS_OFF,
    PlanId.COOP_BASIC: BASIC_FLAGS,
    PlanId.COOP_PREMIUM: ALL_FLAGS_ON,
    PlanId.ENTERPRISE: ALL_FLAGS_ON,
}

# (per_seat, sponsored_per_seat)
DEFAULT_PRICING_BY_PLAN: dict[PlanId, tuple[int, int]] = {
    PlanId.TRIAL: (300, 250),
    PlanId.COOP_TRIAL: (150, 100),
    PlanId.FREE: (0, 0),
    PlanId.COOP_BASIC: (300, 200),
    PlanId.COOP_PREMIUM: (500, 350),
    PlanId.ENTERPRISE: (500, 350),
}

# Seat allocation and limits of the auto-provisioned trial
TRIAL_PAID_SEATS = 10
TRIAL_SPONSORED_SEATS = 5
TRIAL_MAX_MEMBERS = 50
TRIAL_MAX_MARKETS_TRACKED = 3

EXPECTED_TEMPLATE_COUNT = 4


def template_for_plan(plan_id: PlanId) -> PlanTemplateId:
    """Catalog entry a plan is priced from. Trials map to premium."""
    if plan_id == PlanId.ENTERPRISE:
        return PlanTemplateId.ENTERPRISE_DEFAULT
    if plan_id.is_trial:
        return PlanTemplateId.COOP_PREMIUM
    return PlanTemplateId(plan_id.value)


def plan_for_template(template_id: PlanTemplateId | str) -> PlanId:
    """Plan a subscription lands on when a template is applied."""
    template_id = PlanTemplateId(template_id)
    if template_id == PlanTemplateId.ENTERPRISE_DEFAULT:
        return PlanId.ENTERPRISE
    return PlanId(template_id.value)


def _annual(monthly: int, discount_percent: int) -> int:
    return round(monthly * 12 * (100 - discount_percent) / 100)


def _template(
    template_id: PlanTemplateId,
    name: str,
    description: str,
    monthly: tuple[int, int],
    discount_percent: int,
    default_seats: tuple[int, int],
    feature_flags: dict[str, bool],
    max_members: int | None,
    rank: int,
) -> dict[str, Any]:
    return {
        "template_id": template_id.value,
        "name": name,
        "description": description,
        "currency": "KES",
        "exchange_rate_usd": 150.0,
        "billing_cycles": ["monthly", "annual"],
        "monthly_per_seat": monthly[0],
        "monthly_sponsored_per_seat": monthly[1],
        "annual_per_seat": _annual(monthly[0], discount_percent),
        "annual_sponsored_per_seat": _annual(monthly[1], discount_percent),
        "annual_discount_percent": discount_percent,
        "default_paid_seats": default_seats[0],
        "default_sponsored_seats": default_seats[1],
        "feature_flags": dict(feature_flags),
        "max_members": max_members,
        "max_markets_tracked": None,
        "is_public": True,
        "rank": rank,
    }


DEFAULT_TEMPLATES: dict[PlanTemplateId, dict[str, Any]] = {
    PlanTemplateId.FREE: _template(
        PlanTemplateId.FREE,
        "Free",
        "Starter cooperative plan",
        monthly=(0, 0),
        discount_percent=0,
        default_seats=(0, 0),
        feature_flags=flags_with(
            FeatureFlag.CLIMATE_INSIGHTS,
            FeatureFlag.GROUP_PRICES,
            FeatureFlag.MARKETPLACE_VERIFIED_TAG,
        ),
        max_members=50,
        rank=1,
    ),
    PlanTemplateId.COOP_BASIC: _template(
        PlanTemplateId.COOP_BASIC,
        "Coop Basic",
        "Entry premium plan for cooperatives",
        monthly=(300, 200),
        discount_percent=15,
        default_seats=(20, 5),
        feature_flags=BASIC_FLAGS,
        max_members=None,
        rank=2,
    ),
    PlanTemplateId.COOP_PREMIUM: _template(
        PlanTemplateId.COOP_PREMIUM,
        "Coop Premium",
        "Full cooperative feature set",
        monthly=(500, 350),
        discount_percent=20,
        default_seats=(50, 20),
        feature_flags=ALL_FLAGS_ON,
        max_members=None,
        rank=3,
    ),
    PlanTemplateId.ENTERPRISE_DEFAULT: _template(
        PlanTemplateId.ENTERPRISE_DEFAULT,
        "Enterprise",
        "High-capacity cooperative and enterprise plan",
        monthly=(800, 600),
        discount_percent=25,
        default_seats=(200, 100),
        feature_flags=ALL_FLAGS_ON,
        max_members=None,
        rank=4,
    ),
}
