"""Plan template catalog service."""
import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from coop_billing.catalog import DEFAULT_TEMPLATES, EXPECTED_TEMPLATE_COUNT
from coop_billing.database import atomic
from coop_billing.exceptions import NotFoundError
from coop_billing.models.plan_template import BillingPlanTemplate, PlanTemplateId

logger = structlog.get_logger(__name__)


class PlanTemplateService:
    """Service layer for the shared plan template catalog."""

    def __init__(self, db: AsyncSession):
        """Initialize plan template service with database session."""
        self.db = db

    async def seed_billing_plan_templates(self) -> int:
        """
        Make sure the built-in templates exist.

        A no-op once the catalog holds the expected number of entries.
        Otherwise every default template is upserted: missing rows are
        created and existing rows get their default fields restored, leaving
        any other column untouched. Nothing is ever deleted.

        Returns:
            Number of templates written (0 when already seeded)
        """
        existing_count = await self.db.scalar(select(func.count()).select_from(BillingPlanTemplate))
        if (existing_count or 0) >= EXPECTED_TEMPLATE_COUNT:
            return 0

        async with atomic(self.db):
            result = await self.db.execute(select(BillingPlanTemplate))
            by_id = {template.template_id: template for template in result.scalars().all()}

            for template_id, defaults in DEFAULT_TEMPLATES.items():
                template = by_id.get(template_id.value)
                if template is None:
                    self.db.add(BillingPlanTemplate(**defaults))
                    continue
                for field, value in defaults.items():
                    setattr(template, field, value)

        logger.info("plan_templates_seeded", existing=existing_count, written=len(DEFAULT_TEMPLATES))
        return len(DEFAULT_TEMPLATES)

    async def load_plan_templates(self) -> list[BillingPlanTemplate]:
        """
        List public templates by ascending display rank.

        Returns:
            Public catalog entries
        """
        await self.seed_billing_plan_templates()
        result = await self.db.execute(
            select(BillingPlanTemplate)
            .where(BillingPlanTemplate.is_public.is_(True))
            .order_by(BillingPlanTemplate.rank.asc(), BillingPlanTemplate.template_id.asc())
        )
        return list(result.scalars().all())

    async def get_plan_template(self, template_id: PlanTemplateId | str, seed: bool = True) -> BillingPlanTemplate:
        """
        Get a template by its catalog identifier.

        Args:
            template_id: Catalog identifier (free, coop_basic, ...)
            seed: Seed the catalog first

        Returns:
            The template

        Raises:
            NotFoundError: If the template does not exist
        """
        if seed:
            await self.seed_billing_plan_templates()
        key = template_id.value if isinstance(template_id, PlanTemplateId) else str(template_id)
        result = await self.db.execute(
            select(BillingPlanTemplate).where(BillingPlanTemplate.template_id == key)
        )
        template = result.scalar_one_or_none()
        if template is None:
            raise NotFoundError("Plan template not found.")
        return template
