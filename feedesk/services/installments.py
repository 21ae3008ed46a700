"""Installment schedule generation: claim the structure, then persist the whole schedule or nothing."""
import logging
from datetime import date, datetime

from feedesk.models.installment import FeeInstallment, InstallmentStatus
from feedesk.models.student_fee import StudentFeeStructure
from feedesk.services import ledger
from feedesk.services.emi_templates import get_template
from feedesk.services.errors import AlreadyGenerated, ConcurrentUpdate, StateConflict
from feedesk.services.schedule import build_schedule
from feedesk.services.student_fees import get_structure

logger = logging.getLogger(__name__)


async def generate_installments(structure_id: str, emi_template_id: str, start_date: date) -> list[FeeInstallment]:
    structure = await get_structure(structure_id)
    template = await get_template(emi_template_id)
    if not template.is_active:
        raise StateConflict(f"EMI template '{template.name}' is inactive")
    if structure.installments_generated:
        raise AlreadyGenerated("Installments have already been generated for this fee structure")

    schedule = build_schedule(structure.net_amount, start_date, template.split_config)

    # Single-document claim: at most one caller flips the flag for this structure.
    claim = await StudentFeeStructure.find_one(
        {"_id": structure.id, "version": structure.version, "installments_generated": False}
    ).update(
        {
            "$set": {
                "installments_generated": True,
                "emi_plan_name": template.name,
                "schedule_start_date": start_date,
                "updated_at": datetime.utcnow(),
            },
            "$inc": {"version": 1},
        }
    )
    if not claim.matched_count:
        current = await get_structure(structure_id)
        if current.installments_generated:
            raise AlreadyGenerated("Installments have already been generated for this fee structure")
        raise ConcurrentUpdate("The fee structure changed while generating; reload and retry")

    on = ledger.today()
    rows = [
        FeeInstallment(
            student_fee_structure_id=structure_id,
            student_id=structure.student_id,
            session_id=structure.session_id,
            batch_id=structure.batch_id,
            installment_number=s.installment_number,
            amount=s.amount,
            due_date=s.due_date,
            paid_amount=0,
            status=InstallmentStatus.UPCOMING,
        )
        for s in schedule
    ]
    try:
        await FeeInstallment.insert_many(rows)
    except Exception:
        logger.exception("Installment generation failed for fee structure %s; rolling back", structure_id)
        await FeeInstallment.find(FeeInstallment.student_fee_structure_id == structure_id).delete()
        await StudentFeeStructure.find_one({"_id": structure.id}).update(
            {
                "$set": {"installments_generated": False, "emi_plan_name": None, "schedule_start_date": None},
                "$inc": {"version": 1},
            }
        )
        raise

    logger.info(
        "Generated %d installment(s) for fee structure %s using '%s' from %s",
        len(rows), structure_id, template.name, start_date.isoformat(),
    )
    return await ledger.installments_for_structure(structure_id, on)
