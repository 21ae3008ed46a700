"""Batch default fee structure routes."""
from typing import Optional

from fastapi import APIRouter

from feedesk.api.deps import AdminOnly, CurrentUser, FeeManager
from feedesk.models.batch_fee import (
    ApplyBatchFeeStructureBody,
    BatchFeeStructure,
    BatchFeeStructureCreate,
    BatchFeeStructureRevise,
)
from feedesk.services import batch_fees, student_fees

router = APIRouter()


def batch_structure_out(s: BatchFeeStructure) -> dict:
    return {
        "id": str(s.id),
        "batch_id": s.batch_id,
        "session_id": s.session_id,
        "name": s.name,
        "line_items": [li.model_dump() for li in s.line_items],
        "total_amount": s.total_amount,
        "is_active": s.is_active,
        "superseded_by": s.superseded_by,
        "created_at": s.created_at.isoformat(),
    }


@router.get("/")
async def list_batch_structures(user: FeeManager, session_id: Optional[str] = None, include_superseded: bool = False):
    items = await batch_fees.list_batch_structures(session_id, include_superseded)
    return {"data": [batch_structure_out(s) for s in items]}


@router.get("/batch/{batch_id}")
async def get_for_batch(batch_id: str, session_id: str, user: CurrentUser):
    s = await batch_fees.get_active_for_batch(batch_id, session_id)
    return {"data": batch_structure_out(s) if s else None}


@router.get("/{structure_id}")
async def get_batch_structure(structure_id: str, user: FeeManager):
    return {"data": batch_structure_out(await batch_fees.get_batch_structure(structure_id))}


@router.post("/", status_code=201)
async def create_batch_structure(data: BatchFeeStructureCreate, user: AdminOnly):
    return {"data": batch_structure_out(await batch_fees.create_batch_structure(data))}


@router.post("/{structure_id}/revise", status_code=201)
async def revise_batch_structure(structure_id: str, data: BatchFeeStructureRevise, user: AdminOnly):
    return {"data": batch_structure_out(await batch_fees.revise_batch_structure(structure_id, data))}


@router.post("/{structure_id}/apply")
async def apply_to_students(structure_id: str, body: ApplyBatchFeeStructureBody, user: AdminOnly):
    return {
        "data": await student_fees.apply_batch_structure(structure_id, body.student_ids, body.overwrite_existing)
    }
