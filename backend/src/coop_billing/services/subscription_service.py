"""Subscription lifecycle service for business logic."""
from datetime import datetime, timedelta
from typing import Any, Mapping, NamedTuple, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coop_billing import metrics
from coop_billing.catalog import (
    ALL_FEATURE_FLAGS,
    DEFAULT_FEATURE_FLAGS_BY_PLAN,
    DEFAULT_PRICING_BY_PLAN,
    TRIAL_MAX_MARKETS_TRACKED,
    TRIAL_MAX_MEMBERS,
    TRIAL_PAID_SEATS,
    TRIAL_SPONSORED_SEATS,
    plan_for_template,
)
from coop_billing.config import settings
from coop_billing.database import atomic
from coop_billing.exceptions import NotFoundError, PreconditionFailedError
from coop_billing.models.invoice import InvoicePurpose, PaymentMethodType
from coop_billing.models.member import SeatType
from coop_billing.models.plan_template import BillingPlanTemplate, PlanTemplateId
from coop_billing.models.seat_ledger import LedgerEventType
from coop_billing.models.subscription import (
    BillingCycle,
    BillingSettings,
    OrgSubscription,
    PlanId,
    SubscriptionStatus,
)
from coop_billing.schemas.billing import SYSTEM_ACTOR, BillingActor, SeatCounts
from coop_billing.schemas.invoice import InvoiceLineItem
from coop_billing.schemas.subscription import BillingSettingsUpdate, PlanChangeResult
from coop_billing.services.member_service import OrganizationService
from coop_billing.services.plan_template_service import PlanTemplateService
from coop_billing.utils.ledger import stage_ledger_event

logger = structlog.get_logger(__name__)


class EnsureSubscriptionResult(NamedTuple):
    """Subscription returned by the initializer and what happened to it."""

    subscription: OrgSubscription
    created: bool
    expired: bool


class BootstrapResult(NamedTuple):
    """What first-time billing bootstrap had to create."""

    created_settings: bool
    created_subscription: bool


def build_template_patch(
    template: BillingPlanTemplate,
    billing_cycle: BillingCycle,
    seats: Optional[SeatCounts] = None,
    keep_overrides: bool = False,
    existing: Optional[OrgSubscription] = None,
) -> dict[str, Any]:
    """
    Subscription column values produced by applying a template.

    With keep_overrides, the organization's override flags are laid over the
    template flags and override pricing replaces the template pricing; the
    overrides block itself survives. Without it, overrides are cleared.

    Args:
        template: Catalog entry to apply
        billing_cycle: Cycle whose pricing is used
        seats: Seat totals to set (defaults to the template's)
        keep_overrides: Preserve per-organization overrides
        existing: Current subscription, source of the overrides

    Returns:
        dict: Column name to new value
    """
    per_seat, sponsored_per_seat = template.pricing_for(billing_cycle)
    previous_overrides = dict(existing.overrides or {}) if existing is not None else {}

    feature_flags = dict(template.feature_flags or {})
    if keep_overrides:
        feature_flags.update(previous_overrides.get("featureFlags") or {})
        override_pricing = previous_overrides.get("seatPricing")
        if override_pricing:
            per_seat = override_pricing.get("perSeat", per_seat)
            sponsored_per_seat = override_pricing.get("sponsoredPerSeat", sponsored_per_seat)

    if seats is None:
        seats = SeatCounts(paid_total=template.default_paid_seats, sponsored_total=template.default_sponsored_seats)

    return {
        "plan_id": plan_for_template(template.template_id),
        "billing_cycle": BillingCycle(billing_cycle),
        "currency": template.currency,
        "exchange_rate_usd": template.exchange_rate_usd,
        "per_seat_price": per_seat,
        "sponsored_per_seat_price": sponsored_per_seat,
        "paid_seats_total": seats.paid_total,
        "sponsored_seats_total": seats.sponsored_total,
        "feature_flags": feature_flags,
        "max_members": template.max_members,
        "max_markets_tracked": template.max_markets_tracked,
        "template_applied_from": template.template_id,
        "overrides": previous_overrides if keep_overrides else {},
    }


def apply_patch(subscription: OrgSubscription, patch: Mapping[str, Any]) -> None:
    """Copy patch values onto a subscription."""
    for field, value in patch.items():
        setattr(subscription, field, value)


class SubscriptionService:
    """Service layer for organization subscriptions and billing settings."""

    def __init__(self, db: AsyncSession):
        """Initialize subscription service with database session."""
        self.db = db

    async def get_subscription(self, org_id: UUID, for_update: bool = False) -> OrgSubscription | None:
        """
        Get an organization's subscription.

        Args:
            org_id: Organization UUID
            for_update: Lock the row for the rest of the transaction and
                reload it from the database

        Returns:
            Subscription or None
        """
        query = select(OrgSubscription).where(OrgSubscription.org_id == org_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_org_subscription(self, org_id: UUID) -> OrgSubscription:
        """
        Get an organization's subscription, for display.

        Raises:
            NotFoundError: If no subscription has been configured
        """
        subscription = await self.get_subscription(org_id)
        if subscription is None:
            raise NotFoundError("Subscription not configured")
        return subscription

    async def ensure_org_subscription(
        self, org_id: UUID, actor: Optional[BillingActor] = None
    ) -> EnsureSubscriptionResult:
        """
        Idempotently initialize an organization's subscription.

        Creates a trialing coop_trial subscription on first access. Pauses
        a trial whose window has passed and switches every flag off. Creates
        default billing settings when they are missing.

        Args:
            org_id: Organization UUID
            actor: Who triggered the call (defaults to the system actor)

        Returns:
            EnsureSubscriptionResult

        Raises:
            NotFoundError: If the organization does not exist
        """
        await PlanTemplateService(self.db).seed_billing_plan_templates()
        actor = actor or SYSTEM_ACTOR

        async with atomic(self.db):
            await OrganizationService(self.db).get_organization(org_id)
            subscription = await self.get_subscription(org_id, for_update=True)
            created = False
            expired = False
            now = datetime.utcnow()

            if subscription is None:
                created = True
                trial_ends_at = now + timedelta(days=settings.trial_days)
                per_seat, sponsored_per_seat = DEFAULT_PRICING_BY_PLAN[PlanId.COOP_TRIAL]
                subscription = OrgSubscription(
                    org_id=org_id,
                    plan_id=PlanId.COOP_TRIAL,
                    status=SubscriptionStatus.TRIALING,
                    start_at=now,
                    trial_ends_at=trial_ends_at,
                    renew_at=trial_ends_at,
                    cancel_at=None,
                    billing_cycle=BillingCycle.MONTHLY,
                    currency=settings.default_currency,
                    exchange_rate_usd=settings.default_exchange_rate_usd,
                    per_seat_price=per_seat,
                    sponsored_per_seat_price=sponsored_per_seat,
                    feature_flags=dict(DEFAULT_FEATURE_FLAGS_BY_PLAN[PlanId.COOP_TRIAL]),
                    paid_seats_total=TRIAL_PAID_SEATS,
                    sponsored_seats_total=TRIAL_SPONSORED_SEATS,
                    max_members=TRIAL_MAX_MEMBERS,
                    max_markets_tracked=TRIAL_MAX_MARKETS_TRACKED,
                    template_applied_from=PlanTemplateId.FREE.value,
                    overrides={},
                )
                self.db.add(subscription)
                stage_ledger_event(
                    self.db,
                    org_id,
                    LedgerEventType.PLAN_CHANGED,
                    actor,
                    note=f"Auto-provisioned {settings.trial_days}-day trial plan",
                )
            elif self._trial_has_expired(subscription, now):
                expired = True
                subscription.status = SubscriptionStatus.PAUSED
                flag_keys = subscription.feature_flags or DEFAULT_FEATURE_FLAGS_BY_PLAN[PlanId.COOP_TRIAL]
                subscription.feature_flags = {flag: False for flag in flag_keys}
                stage_ledger_event(
                    self.db,
                    org_id,
                    LedgerEventType.PLAN_CHANGED,
                    actor,
                    note="Trial expired; subscription paused",
                )

            await self._ensure_settings(org_id, staff_can_manage_billing=True)

        if created:
            metrics.subscriptions_provisioned_total.inc()
            logger.info("subscription_provisioned", org_id=str(org_id), plan_id=PlanId.COOP_TRIAL.value)
        if expired:
            metrics.trials_expired_total.inc()
            logger.info("trial_expired", org_id=str(org_id), plan_id=subscription.plan_id.value)

        return EnsureSubscriptionResult(subscription=subscription, created=created, expired=expired)

    async def bootstrap_org_billing(self, org_id: UUID, actor: BillingActor) -> BootstrapResult:
        """
        Create billing settings and a trial subscription if either is missing.

        Cooperatives start on coop_trial, every other organization type on
        trial. The subscription starts active with no seats, no pricing and
        no flags until a plan is applied.

        Raises:
            NotFoundError: If the organization does not exist
        """
        async with atomic(self.db):
            organization = await OrganizationService(self.db).get_organization(org_id)
            subscription = await self.get_subscription(org_id, for_update=True)

            created_settings = await self._ensure_settings(org_id, staff_can_manage_billing=False)
            created_subscription = False

            if subscription is None:
                now = datetime.utcnow()
                trial_ends_at = now + timedelta(days=settings.trial_days)
                is_cooperative = (organization.org_type or "").lower() == "cooperative"
                self.db.add(
                    OrgSubscription(
                        org_id=org_id,
                        plan_id=PlanId.COOP_TRIAL if is_cooperative else PlanId.TRIAL,
                        status=SubscriptionStatus.ACTIVE,
                        billing_cycle=BillingCycle.MONTHLY,
                        currency=settings.default_currency,
                        exchange_rate_usd=settings.default_exchange_rate_usd,
                        start_at=now,
                        trial_ends_at=trial_ends_at,
                        renew_at=trial_ends_at,
                        cancel_at=None,
                        paid_seats_total=0,
                        sponsored_seats_total=0,
                        per_seat_price=0,
                        sponsored_per_seat_price=0,
                        feature_flags={},
                        overrides={},
                    )
                )
                stage_ledger_event(
                    self.db,
                    org_id,
                    LedgerEventType.PLAN_CHANGED,
                    actor,
                    note="Bootstrap created trial subscription",
                )
                created_subscription = True

        logger.info(
            "billing_bootstrapped",
            org_id=str(org_id),
            created_settings=created_settings,
            created_subscription=created_subscription,
        )
        return BootstrapResult(created_settings=created_settings, created_subscription=created_subscription)

    async def get_billing_settings(self, org_id: UUID) -> BillingSettings:
        """
        Get billing settings, or unsaved defaults when none exist.

        Returns:
            BillingSettings (transient when not yet stored)
        """
        settings_row = await self._get_settings(org_id)
        if settings_row is not None:
            return settings_row
        return BillingSettings(
            org_id=org_id,
            staff_can_manage_billing=True,
            auto_unassign_seats_on_suspension=False,
        )

    async def update_billing_settings(self, org_id: UUID, update_data: BillingSettingsUpdate) -> BillingSettings:
        """
        Upsert billing settings.

        Raises:
            NotFoundError: If the organization does not exist
        """
        async with atomic(self.db):
            await OrganizationService(self.db).get_organization(org_id)
            await self._ensure_settings(org_id, staff_can_manage_billing=True)
            settings_row = await self._get_settings(org_id)
            for field, value in update_data.model_dump(exclude_none=True).items():
                setattr(settings_row, field, value)
        return settings_row

    async def update_feature_flags(self, org_id: UUID, flags: Mapping[str, bool]) -> OrgSubscription:
        """
        Replace the subscription's feature flag map.

        Raises:
            NotFoundError: If no subscription has been configured
            PreconditionFailedError: If a flag is not a known capability
        """
        normalized = {getattr(flag, "value", flag): bool(enabled) for flag, enabled in flags.items()}
        unknown = sorted(set(normalized) - set(ALL_FEATURE_FLAGS))
        if unknown:
            raise PreconditionFailedError(f"Unknown feature flags: {', '.join(unknown)}")

        async with atomic(self.db):
            subscription = await self.get_subscription(org_id, for_update=True)
            if subscription is None:
                raise NotFoundError("Subscription not configured")
            subscription.feature_flags = normalized

        logger.info("feature_flags_updated", org_id=str(org_id), enabled=sorted(k for k, v in normalized.items() if v))
        return subscription

    async def update_plan(self, org_id: UUID, plan_id: PlanId, actor: BillingActor) -> OrgSubscription:
        """
        Switch to a built-in plan's default pricing and flags.

        No invoice is raised; seats are left as they are.

        Raises:
            NotFoundError: If no subscription has been configured
        """
        plan_id = PlanId(plan_id)
        per_seat, sponsored_per_seat = DEFAULT_PRICING_BY_PLAN[plan_id]

        async with atomic(self.db):
            subscription = await self.get_subscription(org_id, for_update=True)
            if subscription is None:
                raise NotFoundError("Subscription not configured")
            subscription.plan_id = plan_id
            subscription.per_seat_price = per_seat
            subscription.sponsored_per_seat_price = sponsored_per_seat
            subscription.feature_flags = dict(DEFAULT_FEATURE_FLAGS_BY_PLAN[plan_id])
            subscription.status = SubscriptionStatus.ACTIVE
            stage_ledger_event(
                self.db,
                org_id,
                LedgerEventType.PLAN_CHANGED,
                actor,
                note=f"Plan switched to {plan_id.value}",
            )

        logger.info("plan_updated", org_id=str(org_id), plan_id=plan_id.value)
        return subscription

    async def apply_plan_template(
        self,
        org_id: UUID,
        template_id: PlanTemplateId,
        billing_cycle: BillingCycle,
        actor: BillingActor,
        payment_method: PaymentMethodType = PaymentMethodType.MPESA,
        seats: Optional[SeatCounts] = None,
        reset_to_template_defaults: bool = False,
    ) -> PlanChangeResult:
        """
        Change plan from a catalog template.

        The free template applies immediately. Any paid template raises a
        plan-change invoice and pending payment, and marks the subscription
        past_due; seats, pricing and flags only change when that payment is
        confirmed.

        Args:
            org_id: Organization UUID
            template_id: Catalog template to apply
            billing_cycle: Billing cycle to price with
            actor: Who requested the change
            payment_method: Payment rail for the invoice
            seats: Seat selection (defaults to the template's)
            reset_to_template_defaults: Drop per-organization overrides

        Returns:
            PlanChangeResult

        Raises:
            NotFoundError: If the template or the subscription is missing
        """
        from coop_billing.services.invoice_service import InvoiceService

        template_id = PlanTemplateId(template_id)
        billing_cycle = BillingCycle(billing_cycle)
        template = await PlanTemplateService(self.db).get_plan_template(template_id)
        if seats is None:
            seats = SeatCounts(paid_total=template.default_paid_seats, sponsored_total=template.default_sponsored_seats)
        keep_overrides = not reset_to_template_defaults

        async with atomic(self.db):
            subscription = await self.get_subscription(org_id, for_update=True)
            if subscription is None:
                raise NotFoundError("Subscription not configured")

            if template_id == PlanTemplateId.FREE:
                patch = build_template_patch(
                    template, billing_cycle, seats=seats, keep_overrides=keep_overrides, existing=subscription
                )
                apply_patch(subscription, patch)
                subscription.status = SubscriptionStatus.ACTIVE
                subscription.start_at = datetime.utcnow()
                subscription.renew_at = None
                subscription.cancel_at = None
                stage_ledger_event(
                    self.db,
                    org_id,
                    LedgerEventType.PLAN_CHANGED,
                    actor,
                    note=f"Plan switched to {template.template_id} ({billing_cycle.value})",
                )
                result = PlanChangeResult(requires_payment=False, amount=0)
            else:
                per_seat, sponsored_per_seat = template.pricing_for(billing_cycle)
                paid_cost = seats.paid_total * per_seat
                sponsored_cost = seats.sponsored_total * sponsored_per_seat
                created = await InvoiceService(self.db).create_invoice_and_pending_payment(
                    org_id=org_id,
                    qty=1,
                    actor=actor,
                    payment_method=payment_method,
                    seat_type=SeatType.PAID,
                    purpose=InvoicePurpose.PLAN_CHANGE,
                    amount=paid_cost + sponsored_cost,
                    currency=template.currency,
                    line_items=[
                        InvoiceLineItem(
                            label=f"{template.name} paid seats",
                            qty=seats.paid_total,
                            unit_price=per_seat,
                            total=paid_cost,
                        ),
                        InvoiceLineItem(
                            label=f"{template.name} sponsored seats",
                            qty=seats.sponsored_total,
                            unit_price=sponsored_per_seat,
                            total=sponsored_cost,
                        ),
                    ],
                    plan_template_id=template.template_id,
                    billing_cycle=billing_cycle,
                    selected_seats=seats,
                    keep_overrides=keep_overrides,
                )
                subscription.status = SubscriptionStatus.PAST_DUE
                subscription.plan_id = plan_for_template(template.template_id)
                subscription.template_applied_from = template.template_id
                result = PlanChangeResult(
                    requires_payment=True,
                    invoice_id=created.invoice_id,
                    payment_id=created.payment_id,
                    amount=created.amount,
                )

        logger.info(
            "plan_template_applied",
            org_id=str(org_id),
            template_id=template_id.value,
            billing_cycle=billing_cycle.value,
            requires_payment=result.requires_payment,
            amount=result.amount,
        )
        return result

    async def recreate_subscription_from_free_template(self, org_id: UUID, actor: BillingActor) -> OrgSubscription:
        """
        Reset the subscription to the free template, creating it if needed.

        Overrides are discarded and seats return to the template defaults.

        Raises:
            NotFoundError: If the organization does not exist
        """
        template = await PlanTemplateService(self.db).get_plan_template(PlanTemplateId.FREE)

        async with atomic(self.db):
            await OrganizationService(self.db).get_organization(org_id)
            subscription = await self.get_subscription(org_id, for_update=True)
            if subscription is None:
                subscription = OrgSubscription(org_id=org_id)
                self.db.add(subscription)
            apply_patch(subscription, build_template_patch(template, BillingCycle.MONTHLY, keep_overrides=False))
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.start_at = datetime.utcnow()
            subscription.renew_at = None
            subscription.cancel_at = None
            await self._ensure_settings(org_id, staff_can_manage_billing=True)
            stage_ledger_event(
                self.db,
                org_id,
                LedgerEventType.PLAN_CHANGED,
                actor,
                note="Recreated from free template",
            )

        logger.info("subscription_recreated_from_free", org_id=str(org_id))
        return subscription

    @staticmethod
    def _trial_has_expired(subscription: OrgSubscription, now: datetime) -> bool:
        return (
            subscription.plan_id.is_trial
            and subscription.status != SubscriptionStatus.PAUSED
            and subscription.trial_ends_at is not None
            and subscription.trial_ends_at <= now
        )

    async def _get_settings(self, org_id: UUID) -> BillingSettings | None:
        result = await self.db.execute(select(BillingSettings).where(BillingSettings.org_id == org_id))
        return result.scalar_one_or_none()

    async def _ensure_settings(self, org_id: UUID, staff_can_manage_billing: bool) -> bool:
        """Create settings if absent. Returns whether they were created."""
        if await self._get_settings(org_id) is not None:
            return False
        self.db.add(
            BillingSettings(
                org_id=org_id,
                staff_can_manage_billing=staff_can_manage_billing,
                auto_unassign_seats_on_suspension=False,
            )
        )
        await self.db.flush()
        return True


__all__ = [
    "BootstrapResult",
    "EnsureSubscriptionResult",
    "SubscriptionService",
    "apply_patch",
    "build_template_patch",
]
