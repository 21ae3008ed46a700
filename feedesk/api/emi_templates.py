"""EMI plan template routes."""
from fastapi import APIRouter

from feedesk.api.deps import AdminOnly, FeeManager
from feedesk.models.emi_template import EMIPlanTemplate, EMIPlanTemplateCreate, EMIPlanTemplateUpdate
from feedesk.services import emi_templates

router = APIRouter()


def template_out(t: EMIPlanTemplate) -> dict:
    return {
        "id": str(t.id),
        "name": t.name,
        "installment_count": t.installment_count,
        "split_config": [s.model_dump() for s in t.split_config],
        "is_default": t.is_default,
        "is_active": t.is_active,
        "created_at": t.created_at.isoformat(),
    }


@router.get("/")
async def list_templates(user: FeeManager, include_inactive: bool = False):
    return {"data": [template_out(t) for t in await emi_templates.list_templates(include_inactive)]}


@router.get("/{template_id}")
async def get_template(template_id: str, user: FeeManager):
    return {"data": template_out(await emi_templates.get_template(template_id))}


@router.post("/", status_code=201)
async def create_template(data: EMIPlanTemplateCreate, user: AdminOnly):
    return {"data": template_out(await emi_templates.create_template(data))}


@router.patch("/{template_id}")
async def update_template(template_id: str, data: EMIPlanTemplateUpdate, user: AdminOnly):
    return {"data": template_out(await emi_templates.update_template(template_id, data))}
