"""Scholarship registry and per-student assignments.

Assigning or removing a scholarship re-resolves the student's fee structure
for that session, so it is refused once installments exist. Editing a
scholarship re-prices every unlocked structure it is assigned to; locked
structures keep what they had.
"""
import logging
import re
from datetime import datetime
from typing import Optional

from pymongo.errors import DuplicateKeyError

from feedesk.config import settings
from feedesk.models.scholarship import (
    AssignScholarshipBody,
    Scholarship,
    ScholarshipBasis,
    ScholarshipCreate,
    ScholarshipType,
    ScholarshipUpdate,
    StudentScholarship,
)
from feedesk.services import discounts, student_fees
from feedesk.services.errors import FeeValidationError, NotFound, StateConflict, StructureLocked
from feedesk.services.fee_components import get_component
from feedesk.services.ledger import parse_object_id

logger = logging.getLogger(__name__)


def _check_value(type: ScholarshipType, value: float) -> float:
    amount = discounts.to_decimal(value)
    if amount < 0:
        raise FeeValidationError("Scholarship value cannot be negative")
    if type == ScholarshipType.PERCENTAGE:
        if amount <= 0 or amount > discounts.HUNDRED:
            raise FeeValidationError("A percentage scholarship needs a value above 0 and at most 100")
    elif type == ScholarshipType.FIXED_AMOUNT:
        if amount <= 0 or amount != amount.to_integral_value():
            raise FeeValidationError("A fixed scholarship needs a positive whole amount")
    else:
        return 100.0
    return float(amount)


async def _ensure_unique_name(name: str, exclude_id=None) -> None:
    pattern = {"$regex": f"^{re.escape(name.strip())}$", "$options": "i"}
    existing = await Scholarship.find_one({"org_id": settings.org_id, "name": pattern})
    if existing and existing.id != exclude_id:
        raise FeeValidationError(f"A scholarship named '{name.strip()}' already exists")


async def get_scholarship(scholarship_id: str) -> Scholarship:
    scholarship = await Scholarship.get(parse_object_id(scholarship_id, "Scholarship"))
    if not scholarship:
        raise NotFound("Scholarship not found")
    return scholarship


async def create_scholarship(data: ScholarshipCreate) -> Scholarship:
    await _ensure_unique_name(data.name)
    component_id = None
    if data.type == ScholarshipType.COMPONENT_WAIVER:
        if not data.component_id:
            raise FeeValidationError("A component waiver needs component_id")
        component_id = str((await get_component(data.component_id)).id)
    elif data.component_id:
        raise FeeValidationError("Only a component waiver takes a component_id")
    scholarship = Scholarship(
        org_id=settings.org_id,
        name=data.name.strip(),
        type=data.type,
        basis=data.basis,
        value=_check_value(data.type, data.value),
        component_id=component_id,
        max_amount=data.max_amount,
        description=data.description,
    )
    await scholarship.insert()
    logger.info("Created scholarship %s (%s, %s)", scholarship.name, scholarship.type.value, scholarship.basis.value)
    return scholarship


async def update_scholarship(scholarship_id: str, data: ScholarshipUpdate) -> Scholarship:
    scholarship = await get_scholarship(scholarship_id)
    if data.name is not None:
        await _ensure_unique_name(data.name, exclude_id=scholarship.id)
        scholarship.name = data.name.strip()
    if data.value is not None:
        scholarship.value = _check_value(scholarship.type, data.value)
    if data.clear_max_amount:
        scholarship.max_amount = None
    elif data.max_amount is not None:
        scholarship.max_amount = data.max_amount
    if data.description is not None:
        scholarship.description = data.description
    if data.is_active is not None:
        scholarship.is_active = data.is_active
    scholarship.updated_at = datetime.utcnow()
    await scholarship.save()
    if data.value is not None or data.max_amount is not None or data.clear_max_amount:
        await _reprice_assigned(scholarship)
    return scholarship


async def _reprice_assigned(scholarship: Scholarship) -> None:
    assignments = await StudentScholarship.find(
        {"scholarship_id": str(scholarship.id), "is_active": True}
    ).to_list()
    repriced = 0
    for assignment in assignments:
        structure = await student_fees.get_for_student(assignment.student_id, assignment.session_id)
        if structure is None or structure.installments_generated:
            continue
        try:
            await student_fees.refresh_scholarships(str(structure.id))
        except StructureLocked:
            continue
        repriced += 1
    logger.info("Scholarship %s changed: re-priced %d fee structure(s)", scholarship.id, repriced)


async def deactivate_scholarship(scholarship_id: str) -> Scholarship:
    """Stops new assignments; existing assignments keep applying."""
    return await update_scholarship(scholarship_id, ScholarshipUpdate(is_active=False))


async def list_scholarships(
    is_active: Optional[bool] = None,
    type: Optional[ScholarshipType] = None,
    basis: Optional[ScholarshipBasis] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Scholarship], int]:
    query = {"org_id": settings.org_id}
    if is_active is not None:
        query["is_active"] = is_active
    if type is not None:
        query["type"] = type.value
    if basis is not None:
        query["basis"] = basis.value
    total = await Scholarship.find(query).count()
    items = await Scholarship.find(query).sort("+name").skip((page - 1) * limit).limit(limit).to_list()
    return items, total


async def list_active_scholarships() -> list[Scholarship]:
    return await Scholarship.find({"org_id": settings.org_id, "is_active": True}).sort("+name").to_list()


async def get_assignment(assignment_id: str) -> StudentScholarship:
    assignment = await StudentScholarship.get(parse_object_id(assignment_id, "Scholarship assignment"))
    if not assignment:
        raise NotFound("Scholarship assignment not found")
    return assignment


async def assign_scholarship(data: AssignScholarshipBody, approved_by: str) -> StudentScholarship:
    scholarship = await get_scholarship(data.scholarship_id)
    if not scholarship.is_active:
        raise StateConflict(f"Scholarship '{scholarship.name}' is inactive")
    structure = await student_fees.get_for_student(data.student_id, data.session_id)
    if structure is None:
        raise NotFound("No fee structure for this student and session; create one first")
    if structure.installments_generated:
        raise StructureLocked("Installments exist for this fee structure; scholarships can no longer change")
    assignment = StudentScholarship(
        student_id=data.student_id,
        scholarship_id=str(scholarship.id),
        session_id=data.session_id,
        approved_by=approved_by,
        remarks=data.remarks,
    )
    try:
        await assignment.insert()
    except DuplicateKeyError:
        raise StateConflict(f"'{scholarship.name}' is already assigned to this student for the session")
    try:
        await student_fees.refresh_scholarships(str(structure.id))
    except Exception:
        await assignment.delete()
        raise
    logger.info(
        "Assigned scholarship %s to student %s / session %s (approved by %s)",
        scholarship.name, data.student_id, data.session_id, approved_by,
    )
    return await get_assignment(str(assignment.id))


async def remove_student_scholarship(assignment_id: str) -> StudentScholarship:
    assignment = await get_assignment(assignment_id)
    if not assignment.is_active:
        raise StateConflict("This scholarship assignment was already removed")
    structure = await student_fees.get_for_student(assignment.student_id, assignment.session_id)
    if structure is not None and structure.installments_generated:
        raise StructureLocked("Installments exist for this fee structure; scholarships can no longer change")
    removed = await StudentScholarship.find_one({"_id": assignment.id, "is_active": True}).update(
        {"$set": {"is_active": False}}
    )
    if not removed.matched_count:
        raise StateConflict("This scholarship assignment was already removed")
    if structure is not None:
        try:
            await student_fees.refresh_scholarships(str(structure.id))
        except Exception:
            await StudentScholarship.find_one({"_id": assignment.id}).update({"$set": {"is_active": True}})
            raise
    logger.info("Removed scholarship assignment %s from student %s", assignment.id, assignment.student_id)
    return await get_assignment(assignment_id)


async def list_student_scholarships(student_id: str, session_id: Optional[str] = None) -> list[StudentScholarship]:
    query = {"student_id": student_id, "is_active": True}
    if session_id:
        query["session_id"] = session_id
    return await StudentScholarship.find(query).sort("+created_at").to_list()
