"""Scholarship registry and student assignment routes."""
from typing import Optional

from fastapi import APIRouter

from feedesk.api.deps import AdminOnly, CurrentUser, FeeManager, Pagination, ensure_can_view_student, paginated
from feedesk.models.scholarship import (
    AssignScholarshipBody,
    Scholarship,
    ScholarshipBasis,
    ScholarshipCreate,
    ScholarshipType,
    ScholarshipUpdate,
    StudentScholarship,
)
from feedesk.services import scholarships

router = APIRouter()


def scholarship_out(s: Scholarship) -> dict:
    return {
        "id": str(s.id),
        "org_id": s.org_id,
        "name": s.name,
        "type": s.type.value,
        "basis": s.basis.value,
        "value": s.value,
        "component_id": s.component_id,
        "max_amount": s.max_amount,
        "description": s.description,
        "is_active": s.is_active,
        "created_at": s.created_at.isoformat(),
        "updated_at": s.updated_at.isoformat(),
    }


async def assignment_out(a: StudentScholarship) -> dict:
    s = await scholarships.get_scholarship(a.scholarship_id)
    return {
        "id": str(a.id),
        "student_id": a.student_id,
        "scholarship_id": a.scholarship_id,
        "session_id": a.session_id,
        "discount_amount": a.discount_amount,
        "approved_by": a.approved_by,
        "approved_at": a.approved_at.isoformat(),
        "remarks": a.remarks,
        "is_active": a.is_active,
        "created_at": a.created_at.isoformat(),
        "scholarship": {
            "id": str(s.id),
            "name": s.name,
            "type": s.type.value,
            "basis": s.basis.value,
            "value": s.value,
            "max_amount": s.max_amount,
        },
    }


@router.get("/")
async def list_scholarships(
    user: CurrentUser,
    page: Pagination,
    is_active: Optional[bool] = None,
    type: Optional[ScholarshipType] = None,
    basis: Optional[ScholarshipBasis] = None,
):
    items, total = await scholarships.list_scholarships(is_active, type, basis, page.page, page.limit)
    return paginated([scholarship_out(s) for s in items], total, page)


@router.get("/all")
async def list_active_scholarships(user: CurrentUser):
    return {"data": [scholarship_out(s) for s in await scholarships.list_active_scholarships()]}


@router.post("/assign", status_code=201)
async def assign_scholarship(data: AssignScholarshipBody, user: FeeManager):
    return {"data": await assignment_out(await scholarships.assign_scholarship(data, approved_by=user.id))}


@router.get("/student/{student_id}")
async def list_student_scholarships(student_id: str, user: CurrentUser, session_id: Optional[str] = None):
    ensure_can_view_student(user, student_id)
    items = await scholarships.list_student_scholarships(student_id, session_id)
    return {"data": [await assignment_out(a) for a in items]}


@router.delete("/student/{assignment_id}")
async def remove_student_scholarship(assignment_id: str, user: FeeManager):
    return {"data": await assignment_out(await scholarships.remove_student_scholarship(assignment_id))}


@router.get("/{scholarship_id}")
async def get_scholarship(scholarship_id: str, user: CurrentUser):
    return {"data": scholarship_out(await scholarships.get_scholarship(scholarship_id))}


@router.post("/", status_code=201)
async def create_scholarship(data: ScholarshipCreate, user: AdminOnly):
    return {"data": scholarship_out(await scholarships.create_scholarship(data))}


@router.patch("/{scholarship_id}")
async def update_scholarship(scholarship_id: str, data: ScholarshipUpdate, user: AdminOnly):
    return {"data": scholarship_out(await scholarships.update_scholarship(scholarship_id, data))}


@router.delete("/{scholarship_id}")
async def deactivate_scholarship(scholarship_id: str, user: AdminOnly):
    """Soft delete: existing assignments keep applying."""
    return {"data": scholarship_out(await scholarships.deactivate_scholarship(scholarship_id))}
