"""Receipt issuance and lookup. Receipts carry a frozen snapshot of the fee breakdown."""
import logging
import re
import uuid
from datetime import date, datetime
from typing import Optional

from pymongo.errors import DuplicateKeyError

from feedesk.config import settings
from feedesk.models.installment import FeeInstallment, InstallmentPayment
from feedesk.models.receipt import Receipt, ReceiptInstallmentSnapshot, ReceiptSnapshot
from feedesk.models.student_fee import StudentFeeStructure
from feedesk.services.errors import NotFound
from feedesk.services.ledger import parse_object_id, utc_day_bounds

logger = logging.getLogger(__name__)

RECEIPT_NUMBER_ATTEMPTS = 5


def make_receipt_number(at: Optional[datetime] = None) -> str:
    at = at or datetime.utcnow()
    return f"{settings.receipt_prefix}-{at.strftime('%Y%m%d')}-{uuid.uuid4().hex[:6].upper()}"


def build_snapshot(structure: StudentFeeStructure, inst: FeeInstallment) -> ReceiptSnapshot:
    return ReceiptSnapshot(
        line_items=[li.model_copy() for li in structure.line_items],
        gross_amount=structure.gross_amount,
        scholarship_amount=structure.scholarship_amount,
        custom_discount=structure.custom_discount,
        net_amount=structure.net_amount,
        installment=ReceiptInstallmentSnapshot(
            installment_number=inst.installment_number,
            amount=inst.amount,
            due_date=inst.due_date,
            paid_amount=inst.paid_amount,
            status=inst.status,
        ),
    )


async def issue_receipt(
    structure: StudentFeeStructure, inst: FeeInstallment, payment: InstallmentPayment
) -> Receipt:
    """`inst` is the installment as it stands after `payment` was applied.

    A receipt number clash draws a fresh number; a second receipt for the
    same payment is never created because `payment_id` is unique too.
    """
    snapshot = build_snapshot(structure, inst)
    for attempt in range(1, RECEIPT_NUMBER_ATTEMPTS + 1):
        receipt = Receipt(
            receipt_number=make_receipt_number(payment.received_at),
            payment_id=payment.id,
            installment_id=str(inst.id),
            student_fee_structure_id=str(structure.id),
            student_id=structure.student_id,
            session_id=structure.session_id,
            amount=payment.amount,
            payment_mode=payment.payment_mode,
            transaction_ref=payment.transaction_ref,
            received_by=payment.received_by,
            snapshot=snapshot,
        )
        try:
            await receipt.insert()
        except DuplicateKeyError:
            if attempt == RECEIPT_NUMBER_ATTEMPTS or await get_receipt_for_payment(payment.id):
                raise
            logger.warning("Receipt number %s already taken; drawing another", receipt.receipt_number)
            continue
        logger.info("Issued receipt %s for payment %s (%d)", receipt.receipt_number, payment.id, payment.amount)
        return receipt


async def get_receipt(receipt_id: str) -> Receipt:
    receipt = await Receipt.get(parse_object_id(receipt_id, "Receipt"))
    if not receipt:
        raise NotFound("Receipt not found")
    return receipt


async def get_receipt_for_payment(payment_id: str) -> Optional[Receipt]:
    return await Receipt.find_one(Receipt.payment_id == payment_id)


async def mark_voided(payment_id: str) -> None:
    await Receipt.find_one(Receipt.payment_id == payment_id).update({"$set": {"voided": True}})


async def list_receipts(
    student_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Receipt], int]:
    query: dict = {}
    if student_id:
        query["student_id"] = student_id
    generated: dict = {}
    if start_date:
        generated["$gte"] = utc_day_bounds(start_date)[0]
    if end_date:
        generated["$lt"] = utc_day_bounds(end_date)[1]
    if generated:
        query["generated_at"] = generated
    if search and search.strip():
        term = {"$regex": re.escape(search.strip()), "$options": "i"}
        query["$or"] = [{"receipt_number": term}, {"transaction_ref": term}]
    total = await Receipt.find(query).count()
    items = await Receipt.find(query).sort("-generated_at").skip((page - 1) * limit).limit(limit).to_list()
    return items, total
