"""Fee component registry: create, rename, deactivate. Components are never hard-deleted."""
import logging
import re
from datetime import datetime
from typing import Optional

from feedesk.config import settings
from feedesk.models.fee_component import FeeComponent, FeeComponentCreate, FeeComponentType, FeeComponentUpdate
from feedesk.services.errors import FeeValidationError, NotFound
from feedesk.services.ledger import parse_object_id

logger = logging.getLogger(__name__)


async def _ensure_unique_name(name: str, exclude_id=None) -> None:
    pattern = {"$regex": f"^{re.escape(name.strip())}$", "$options": "i"}
    existing = await FeeComponent.find_one({"org_id": settings.org_id, "name": pattern})
    if existing and existing.id != exclude_id:
        raise FeeValidationError(f"A fee component named '{name.strip()}' already exists")


async def get_component(component_id: str) -> FeeComponent:
    component = await FeeComponent.get(parse_object_id(component_id, "Fee component"))
    if not component:
        raise NotFound("Fee component not found")
    return component


async def create_component(data: FeeComponentCreate) -> FeeComponent:
    await _ensure_unique_name(data.name)
    component = FeeComponent(
        org_id=settings.org_id,
        name=data.name.strip(),
        type=data.type,
        description=data.description,
    )
    await component.insert()
    logger.info("Created fee component %s (%s)", component.name, component.type.value)
    return component


async def update_component(component_id: str, data: FeeComponentUpdate) -> FeeComponent:
    component = await get_component(component_id)
    if data.name is not None:
        await _ensure_unique_name(data.name, exclude_id=component.id)
        component.name = data.name.strip()
    if data.description is not None:
        component.description = data.description
    if data.is_active is not None:
        component.is_active = data.is_active
    component.updated_at = datetime.utcnow()
    await component.save()
    return component


async def deactivate_component(component_id: str) -> FeeComponent:
    return await update_component(component_id, FeeComponentUpdate(is_active=False))


async def list_components(
    is_active: Optional[bool] = None,
    type: Optional[FeeComponentType] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[FeeComponent], int]:
    query = {"org_id": settings.org_id}
    if is_active is not None:
        query["is_active"] = is_active
    if type is not None:
        query["type"] = type.value
    total = await FeeComponent.find(query).count()
    items = await FeeComponent.find(query).sort("+name").skip((page - 1) * limit).limit(limit).to_list()
    return items, total


async def list_active_components() -> list[FeeComponent]:
    return await FeeComponent.find({"org_id": settings.org_id, "is_active": True}).sort("+name").to_list()


async def active_components_by_id(component_ids: list[str]) -> dict[str, FeeComponent]:
    """Resolve component ids, failing on unknown or inactive ones."""
    found: dict[str, FeeComponent] = {}
    for cid in component_ids:
        if cid in found:
            raise FeeValidationError(f"Fee component {cid} appears more than once")
        component = await get_component(cid)
        if not component.is_active:
            raise FeeValidationError(f"Fee component '{component.name}' is inactive")
        found[cid] = component
    return found
