"""Student fee structure routes and the parent-facing fee summary."""
from typing import Optional

from fastapi import APIRouter

from feedesk.api.deps import CurrentUser, FeeManager, ensure_can_view_student
from feedesk.models.student_fee import (
    AdjustLineItemBody,
    StudentFeeStructure,
    StudentFeeStructureCreate,
    UpdateDiscountsBody,
    WaiveLineItemBody,
)
from feedesk.services import student_fees

router = APIRouter()


def structure_out(s: StudentFeeStructure) -> dict:
    return {
        "id": str(s.id),
        "student_id": s.student_id,
        "session_id": s.session_id,
        "batch_id": s.batch_id,
        "source": s.source.value,
        "batch_fee_structure_id": s.batch_fee_structure_id,
        "line_items": [li.model_dump() for li in s.line_items],
        "gross_amount": s.gross_amount,
        "manual_scholarship_amount": s.manual_scholarship_amount,
        "scholarship_amount": s.scholarship_amount,
        "custom_discount": s.custom_discount.model_dump(mode="json") if s.custom_discount else None,
        "net_amount": s.net_amount,
        "remarks": s.remarks,
        "installments_generated": s.installments_generated,
        "emi_plan_name": s.emi_plan_name,
        "schedule_start_date": s.schedule_start_date.isoformat() if s.schedule_start_date else None,
        "created_at": s.created_at.isoformat(),
        "updated_at": s.updated_at.isoformat(),
    }


@router.post("/", status_code=201)
async def create_structure(data: StudentFeeStructureCreate, user: FeeManager):
    return {"data": structure_out(await student_fees.build_structure(data))}


@router.get("/id/{structure_id}")
async def get_structure(structure_id: str, user: CurrentUser):
    s = await student_fees.get_structure(structure_id)
    ensure_can_view_student(user, s.student_id)
    return {"data": structure_out(s)}


@router.get("/summary/{student_id}")
async def fee_summary(student_id: str, user: CurrentUser, session_id: Optional[str] = None):
    ensure_can_view_student(user, student_id)
    return {
        "data": {
            "student_id": student_id,
            "fee_structures": await student_fees.student_fee_summary(student_id, session_id),
        }
    }


@router.get("/{student_id}")
async def get_for_student(student_id: str, session_id: str, user: CurrentUser):
    ensure_can_view_student(user, student_id)
    s = await student_fees.get_for_student(student_id, session_id)
    return {"data": structure_out(s) if s else None}


@router.post("/{structure_id}/line-items/{fee_component_id}/waive")
async def waive_line_item(structure_id: str, fee_component_id: str, body: WaiveLineItemBody, user: FeeManager):
    s = await student_fees.waive_line_item(structure_id, fee_component_id, body.waiver_reason, body.adjusted_amount)
    return {"data": structure_out(s)}


@router.patch("/{structure_id}/line-items/{fee_component_id}")
async def adjust_line_item(structure_id: str, fee_component_id: str, body: AdjustLineItemBody, user: FeeManager):
    s = await student_fees.adjust_line_item(structure_id, fee_component_id, body.adjusted_amount, body.allow_increase)
    return {"data": structure_out(s)}


@router.patch("/{structure_id}/discounts")
async def update_discounts(structure_id: str, body: UpdateDiscountsBody, user: FeeManager):
    return {"data": structure_out(await student_fees.update_discounts(structure_id, body))}
