"""Plan template catalog API endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coop_billing.api.deps import get_db
from coop_billing.schemas.plan_template import PlanTemplate, PlanTemplateList
from coop_billing.services.plan_template_service import PlanTemplateService

router = APIRouter(prefix="/plan-templates", tags=["Plan Templates"])


@router.get("", response_model=PlanTemplateList)
async def list_plan_templates(db: AsyncSession = Depends(get_db)) -> PlanTemplateList:
    """
    List public plan templates by display rank.

    Seeds the built-in catalog on first use.
    """
    templates = await PlanTemplateService(db).load_plan_templates()
    await db.commit()
    return PlanTemplateList(items=[PlanTemplate.model_validate(template) for template in templates])
