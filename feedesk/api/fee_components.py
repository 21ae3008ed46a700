"""Fee component registry routes."""
from typing import Optional

from fastapi import APIRouter

from feedesk.api.deps import AdminOnly, CurrentUser, Pagination, paginated
from feedesk.models.fee_component import FeeComponent, FeeComponentCreate, FeeComponentType, FeeComponentUpdate
from feedesk.services import fee_components

router = APIRouter()


def component_out(c: FeeComponent) -> dict:
    return {
        "id": str(c.id),
        "org_id": c.org_id,
        "name": c.name,
        "type": c.type.value,
        "description": c.description,
        "is_active": c.is_active,
        "created_at": c.created_at.isoformat(),
        "updated_at": c.updated_at.isoformat(),
    }


@router.get("/")
async def list_components(
    user: CurrentUser,
    page: Pagination,
    is_active: Optional[bool] = None,
    type: Optional[FeeComponentType] = None,
):
    items, total = await fee_components.list_components(is_active, type, page.page, page.limit)
    return paginated([component_out(c) for c in items], total, page)


@router.get("/all")
async def list_active_components(user: CurrentUser):
    return {"data": [component_out(c) for c in await fee_components.list_active_components()]}


@router.post("/", status_code=201)
async def create_component(data: FeeComponentCreate, user: AdminOnly):
    return {"data": component_out(await fee_components.create_component(data))}


@router.patch("/{component_id}")
async def update_component(component_id: str, data: FeeComponentUpdate, user: AdminOnly):
    return {"data": component_out(await fee_components.update_component(component_id, data))}


@router.delete("/{component_id}")
async def deactivate_component(component_id: str, user: AdminOnly):
    """Soft delete: the component stays referenced by existing structures."""
    return {"data": component_out(await fee_components.deactivate_component(component_id))}
