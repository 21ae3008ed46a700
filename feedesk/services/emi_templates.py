"""EMI plan templates and their startup defaults."""
import logging
from datetime import datetime

from feedesk.config import settings
from feedesk.models.emi_template import EMIPlanTemplate, EMIPlanTemplateCreate, EMIPlanTemplateUpdate, EMISplit
from feedesk.services.errors import NotFound
from feedesk.services.ledger import parse_object_id
from feedesk.services.schedule import validate_split_config

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATES = [
    ("One-time", [(100, 0)], True),
    ("Quarterly", [(25, 0), (25, 90), (25, 180), (25, 270)], False),
]


async def get_template(template_id: str) -> EMIPlanTemplate:
    template = await EMIPlanTemplate.get(parse_object_id(template_id, "EMI template"))
    if not template:
        raise NotFound("EMI template not found")
    return template


async def list_templates(include_inactive: bool = False) -> list[EMIPlanTemplate]:
    query = {"org_id": settings.org_id}
    if not include_inactive:
        query["is_active"] = True
    return await EMIPlanTemplate.find(query).sort("+installment_count").to_list()


async def _clear_other_defaults(keep_id) -> None:
    await EMIPlanTemplate.find(
        {"org_id": settings.org_id, "is_default": True, "_id": {"$ne": keep_id}}
    ).update({"$set": {"is_default": False}})


async def create_template(data: EMIPlanTemplateCreate) -> EMIPlanTemplate:
    count = validate_split_config(data.split_config, data.installment_count)
    template = EMIPlanTemplate(
        org_id=settings.org_id,
        name=data.name.strip(),
        installment_count=count,
        split_config=data.split_config,
        is_default=data.is_default,
    )
    await template.insert()
    if template.is_default:
        await _clear_other_defaults(template.id)
    logger.info("Created EMI template %s with %d installment(s)", template.name, count)
    return template


async def update_template(template_id: str, data: EMIPlanTemplateUpdate) -> EMIPlanTemplate:
    """Edits apply to future generations only."""
    template = await get_template(template_id)
    if data.name is not None:
        template.name = data.name.strip()
    if data.split_config is not None:
        template.installment_count = validate_split_config(data.split_config)
        template.split_config = data.split_config
    if data.is_active is not None:
        template.is_active = data.is_active
    if data.is_default is not None:
        template.is_default = data.is_default
    template.updated_at = datetime.utcnow()
    await template.save()
    if template.is_default:
        await _clear_other_defaults(template.id)
    return template


async def ensure_default_templates() -> None:
    """Seed the built-in templates when the organization has none."""
    if await EMIPlanTemplate.find_one({"org_id": settings.org_id}):
        return
    for name, splits, is_default in DEFAULT_TEMPLATES:
        await EMIPlanTemplate(
            org_id=settings.org_id,
            name=name,
            installment_count=len(splits),
            split_config=[EMISplit(percent=p, due_days_from_start=d) for p, d in splits],
            is_default=is_default,
        ).insert()
    logger.info("Seeded %d default EMI templates", len(DEFAULT_TEMPLATES))
