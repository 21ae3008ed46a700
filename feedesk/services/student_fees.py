"""Student fee structure builder: materialise, waive, adjust, discount, summarise."""
import logging
from datetime import date, datetime
from typing import Optional

from pymongo.errors import DuplicateKeyError

from feedesk.config import settings
from feedesk.models.batch_fee import BatchFeeStructure
from feedesk.models.installment import InstallmentStatus
from feedesk.models.scholarship import Scholarship, StudentScholarship
from feedesk.models.student_fee import (
    CustomDiscountInput,
    FeeStructureSource,
    StudentFeeLineItem,
    StudentFeeStructure,
    StudentFeeStructureCreate,
    UpdateDiscountsBody,
)
from feedesk.services import discounts, ledger
from feedesk.services.batch_fees import get_batch_structure
from feedesk.services.errors import (
    ConcurrentUpdate,
    DuplicateStructure,
    FeeValidationError,
    NotFound,
    StateConflict,
    StructureLocked,
)
from feedesk.services.fee_components import active_components_by_id, get_component

logger = logging.getLogger(__name__)


async def get_structure(structure_id: str) -> StudentFeeStructure:
    structure = await StudentFeeStructure.get(ledger.parse_object_id(structure_id, "Student fee structure"))
    if not structure:
        raise NotFound("Student fee structure not found")
    return structure


async def get_for_student(student_id: str, session_id: str) -> Optional[StudentFeeStructure]:
    return await StudentFeeStructure.find_one({"student_id": student_id, "session_id": session_id})


async def _lines_from_batch(batch: BatchFeeStructure) -> list[StudentFeeLineItem]:
    lines = []
    for li in batch.line_items:
        # Deactivated components still resolve: the batch structure already references them.
        component = await get_component(li.fee_component_id)
        lines.append(
            StudentFeeLineItem(
                fee_component_id=li.fee_component_id,
                component_name=component.name,
                component_type=component.type.value,
                original_amount=li.amount,
                adjusted_amount=li.amount,
            )
        )
    return lines


async def _custom_lines(data: StudentFeeStructureCreate) -> list[StudentFeeLineItem]:
    if not data.line_items:
        raise FeeValidationError("A custom fee structure needs at least one line item")
    components = await active_components_by_id([li.fee_component_id for li in data.line_items])
    lines = []
    for li in data.line_items:
        if li.original_amount < 0 or (li.adjusted_amount is not None and li.adjusted_amount < 0):
            raise FeeValidationError("Line item amounts cannot be negative")
        adjusted = li.original_amount if li.adjusted_amount is None else li.adjusted_amount
        if li.waived:
            if not (li.waiver_reason or "").strip():
                raise FeeValidationError("A waived line item needs a waiver reason")
            adjusted = 0 if li.adjusted_amount is None else li.adjusted_amount
            if adjusted >= li.original_amount:
                raise FeeValidationError("A waiver must reduce the line below its original amount")
        component = components[li.fee_component_id]
        lines.append(
            StudentFeeLineItem(
                fee_component_id=li.fee_component_id,
                component_name=component.name,
                component_type=component.type.value,
                original_amount=li.original_amount,
                adjusted_amount=adjusted,
                waived=li.waived,
                waiver_reason=li.waiver_reason,
            )
        )
    return lines


def _discount_input(structure: StudentFeeStructure) -> Optional[CustomDiscountInput]:
    d = structure.custom_discount
    if d is None:
        return None
    return CustomDiscountInput(type=d.type, value=d.value, remarks=d.remarks)


async def _assigned_scholarships(structure: StudentFeeStructure) -> list[tuple[StudentScholarship, int]]:
    """Active assignments for the structure's student and session with what each takes off."""
    assignments = await StudentScholarship.find(
        {"student_id": structure.student_id, "session_id": structure.session_id, "is_active": True}
    ).sort("+created_at").to_list()
    resolved = []
    for assignment in assignments:
        scholarship = await Scholarship.get(ledger.parse_object_id(assignment.scholarship_id, "Scholarship"))
        if not scholarship:
            raise NotFound(f"Scholarship {assignment.scholarship_id} not found")
        line = next(
            (li for li in structure.line_items if li.fee_component_id == scholarship.component_id), None
        )
        amount = discounts.scholarship_discount(
            scholarship.type,
            scholarship.value,
            structure.gross_amount,
            max_amount=scholarship.max_amount,
            component_amount=line.adjusted_amount if line else None,
        )
        resolved.append((assignment, amount))
    return resolved


async def _recompute(
    structure: StudentFeeStructure, discount: Optional[CustomDiscountInput]
) -> list[tuple[StudentScholarship, int]]:
    structure.gross_amount = sum(li.adjusted_amount for li in structure.line_items)
    assigned = await _assigned_scholarships(structure)
    structure.scholarship_amount = min(
        structure.gross_amount,
        structure.manual_scholarship_amount + sum(amount for _, amount in assigned),
    )
    structure.net_amount, structure.custom_discount = discounts.resolve(
        structure.gross_amount, structure.scholarship_amount, discount
    )
    return assigned


async def _record_scholarship_amounts(assigned: list[tuple[StudentScholarship, int]]) -> None:
    for assignment, amount in assigned:
        if assignment.discount_amount != amount:
            await StudentScholarship.find_one({"_id": assignment.id}).update(
                {"$set": {"discount_amount": amount}}
            )


async def build_structure(data: StudentFeeStructureCreate) -> StudentFeeStructure:
    if data.scholarship_amount < 0:
        raise FeeValidationError("Scholarship amount cannot be negative")
    if await get_for_student(data.student_id, data.session_id):
        raise DuplicateStructure(
            "A fee structure already exists for this student and session; update or waive it instead"
        )

    batch_id = data.batch_id
    batch_structure_id = None
    if data.source == FeeStructureSource.BATCH_DEFAULT:
        if not data.batch_fee_structure_id:
            raise FeeValidationError("batch_fee_structure_id is required for a batch_default structure")
        batch = await get_batch_structure(data.batch_fee_structure_id)
        if batch.session_id != data.session_id:
            raise FeeValidationError("The batch fee structure belongs to a different session")
        lines = await _lines_from_batch(batch)
        batch_id = batch.batch_id
        batch_structure_id = str(batch.id)
    else:
        lines = await _custom_lines(data)

    structure = StudentFeeStructure(
        org_id=settings.org_id,
        student_id=data.student_id,
        session_id=data.session_id,
        batch_id=batch_id,
        source=data.source,
        batch_fee_structure_id=batch_structure_id,
        line_items=lines,
        manual_scholarship_amount=data.scholarship_amount,
        remarks=data.remarks,
    )
    assigned = await _recompute(structure, data.custom_discount)
    try:
        await structure.insert()
    except DuplicateKeyError:
        raise DuplicateStructure("A fee structure already exists for this student and session")
    await _record_scholarship_amounts(assigned)
    logger.info(
        "Created %s fee structure %s for student %s / session %s (gross %d, net %d)",
        structure.source.value, structure.id, structure.student_id, structure.session_id,
        structure.gross_amount, structure.net_amount,
    )
    return structure


async def _save_unlocked(
    structure: StudentFeeStructure, assigned: list[tuple[StudentScholarship, int]] = ()
) -> StudentFeeStructure:
    """Persist edited amounts unless installments were generated in the meantime."""
    result = await StudentFeeStructure.find_one(
        {"_id": structure.id, "version": structure.version, "installments_generated": False}
    ).update(
        {
            "$set": {
                "source": structure.source,
                "batch_id": structure.batch_id,
                "batch_fee_structure_id": structure.batch_fee_structure_id,
                "line_items": structure.line_items,
                "gross_amount": structure.gross_amount,
                "manual_scholarship_amount": structure.manual_scholarship_amount,
                "scholarship_amount": structure.scholarship_amount,
                "custom_discount": structure.custom_discount,
                "net_amount": structure.net_amount,
                "updated_at": datetime.utcnow(),
            },
            "$inc": {"version": 1},
        }
    )
    if not result.matched_count:
        current = await get_structure(str(structure.id))
        if current.installments_generated:
            raise StructureLocked("Installments exist for this fee structure; it can no longer be changed")
        raise ConcurrentUpdate("The fee structure was modified concurrently; reload and retry")
    await _record_scholarship_amounts(assigned)
    return await get_structure(str(structure.id))


async def _editable(structure_id: str) -> StudentFeeStructure:
    structure = await get_structure(structure_id)
    if structure.installments_generated:
        raise StructureLocked("Installments exist for this fee structure; it can no longer be changed")
    return structure


def _line(structure: StudentFeeStructure, fee_component_id: str) -> StudentFeeLineItem:
    for li in structure.line_items:
        if li.fee_component_id == fee_component_id:
            return li
    raise NotFound("Line item not found in this fee structure")


async def waive_line_item(
    structure_id: str, fee_component_id: str, waiver_reason: str, adjusted_amount: int = 0
) -> StudentFeeStructure:
    """Waive one line fully (adjusted_amount=0) or partially."""
    if not (waiver_reason or "").strip():
        raise FeeValidationError("A waiver reason is required")
    structure = await _editable(structure_id)
    line = _line(structure, fee_component_id)
    if adjusted_amount < 0:
        raise FeeValidationError("Adjusted amount cannot be negative")
    if adjusted_amount >= line.original_amount:
        raise FeeValidationError("A waiver must reduce the line below its original amount")
    line.adjusted_amount = adjusted_amount
    line.waived = True
    line.waiver_reason = waiver_reason.strip()
    assigned = await _recompute(structure, _discount_input(structure))
    saved = await _save_unlocked(structure, assigned)
    logger.info(
        "Waived %s on fee structure %s down to %d: %s",
        line.component_name or fee_component_id, structure_id, adjusted_amount, line.waiver_reason,
    )
    return saved


async def adjust_line_item(
    structure_id: str, fee_component_id: str, adjusted_amount: int, allow_increase: bool = False
) -> StudentFeeStructure:
    if adjusted_amount < 0:
        raise FeeValidationError("Adjusted amount cannot be negative")
    structure = await _editable(structure_id)
    line = _line(structure, fee_component_id)
    if adjusted_amount > line.original_amount and not allow_increase:
        raise FeeValidationError("Adjusted amount exceeds the original; pass allow_increase to raise it")
    line.adjusted_amount = adjusted_amount
    assigned = await _recompute(structure, _discount_input(structure))
    return await _save_unlocked(structure, assigned)


async def update_discounts(structure_id: str, data: UpdateDiscountsBody) -> StudentFeeStructure:
    structure = await _editable(structure_id)
    if data.scholarship_amount is not None:
        if data.scholarship_amount < 0:
            raise FeeValidationError("Scholarship amount cannot be negative")
        structure.manual_scholarship_amount = data.scholarship_amount
    discount = _discount_input(structure)
    if data.clear_custom_discount:
        discount = None
    elif data.custom_discount is not None:
        discount = data.custom_discount
    assigned = await _recompute(structure, discount)
    return await _save_unlocked(structure, assigned)


async def refresh_scholarships(structure_id: str) -> StudentFeeStructure:
    """Re-resolve assigned scholarships after an assignment was added or removed."""
    structure = await _editable(structure_id)
    assigned = await _recompute(structure, _discount_input(structure))
    saved = await _save_unlocked(structure, assigned)
    logger.info(
        "Fee structure %s now carries %d scholarship(s) worth %d (net %d)",
        structure_id, len(assigned), saved.scholarship_amount, saved.net_amount,
    )
    return saved


async def apply_batch_structure(
    batch_structure_id: str, student_ids: list[str], overwrite_existing: bool = False
) -> dict:
    """Give each student a batch_default structure copied from the batch structure."""
    batch = await get_batch_structure(batch_structure_id)
    if not batch.is_active:
        raise StateConflict("This batch fee structure has been superseded; apply the current one")
    applied = 0
    skipped = 0
    for student_id in dict.fromkeys(student_ids):
        existing = await get_for_student(student_id, batch.session_id)
        if existing is None:
            await build_structure(
                StudentFeeStructureCreate(
                    student_id=student_id,
                    session_id=batch.session_id,
                    source=FeeStructureSource.BATCH_DEFAULT,
                    batch_fee_structure_id=str(batch.id),
                )
            )
            applied += 1
            continue
        if not overwrite_existing or existing.installments_generated:
            skipped += 1
            continue
        existing.source = FeeStructureSource.BATCH_DEFAULT
        existing.batch_id = batch.batch_id
        existing.batch_fee_structure_id = str(batch.id)
        existing.line_items = await _lines_from_batch(batch)
        assigned = await _recompute(existing, _discount_input(existing))
        try:
            await _save_unlocked(existing, assigned)
        except StructureLocked:
            skipped += 1
            continue
        applied += 1
    logger.info("Applied batch fee structure %s: %d applied, %d skipped", batch.id, applied, skipped)
    return {
        "applied": applied,
        "skipped": skipped,
        "message": f"Applied to {applied} student(s), skipped {skipped}",
    }


async def student_fee_summary(student_id: str, session_id: Optional[str] = None, on: Optional[date] = None) -> list[dict]:
    on = on or ledger.today()
    query = {"student_id": student_id}
    if session_id:
        query["session_id"] = session_id
    structures = await StudentFeeStructure.find(query).sort("+created_at").to_list()
    out = []
    for s in structures:
        items = await ledger.installments_for_structure(str(s.id), on)
        total_paid = sum(i.paid_amount for i in items)
        upcoming = ledger.next_unpaid(items)
        out.append(
            {
                "student_fee_structure_id": str(s.id),
                "session_id": s.session_id,
                "gross_amount": s.gross_amount,
                "scholarship_amount": s.scholarship_amount,
                "custom_discount": s.custom_discount.model_dump(mode="json") if s.custom_discount else None,
                "net_amount": s.net_amount,
                "total_paid": total_paid,
                "pending_amount": max(0, s.net_amount - total_paid),
                "total_installments": len(items),
                "paid_installments": sum(1 for i in items if i.status == InstallmentStatus.PAID),
                "next_due": (
                    {"amount": upcoming.pending_amount, "due_date": upcoming.due_date.isoformat()}
                    if upcoming else None
                ),
            }
        )
    return out
