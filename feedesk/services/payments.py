"""Payment application against a single installment, plus voiding and link status."""
import logging
from datetime import date, datetime
from typing import NamedTuple, Optional

from feedesk.models.installment import (
    FeeInstallment,
    InstallmentPayment,
    PaymentLinkStatus,
    PaymentMode,
)
from feedesk.models.receipt import Receipt
from feedesk.services import ledger, receipts
from feedesk.services.errors import AlreadyPaid, FeeValidationError, NotFound, OverpaymentRejected, StateConflict
from feedesk.services.student_fees import get_structure

logger = logging.getLogger(__name__)


class PaymentResult(NamedTuple):
    payment: InstallmentPayment
    receipt: Receipt
    installment: FeeInstallment


async def apply_payment(
    installment_id: str,
    amount: int,
    mode: PaymentMode,
    received_by: str,
    transaction_ref: Optional[str] = None,
    remarks: Optional[str] = None,
    on: Optional[date] = None,
) -> PaymentResult:
    """Record a payment and issue its receipt.

    Not idempotent: submitting the same payment twice records two payments.
    A concurrent write to the same installment fails with ConcurrentUpdate
    rather than losing either update.
    """
    if amount <= 0:
        raise FeeValidationError("Payment amount must be positive")
    on = on or ledger.today()
    inst = await ledger.get_installment(installment_id)
    if inst.paid_amount >= inst.amount:
        raise AlreadyPaid(f"Installment {inst.installment_number} is already paid")
    remaining = inst.amount - inst.paid_amount
    if amount > remaining:
        raise OverpaymentRejected(
            f"Payment of {amount} exceeds the {remaining} remaining on installment {inst.installment_number}"
        )
    structure = await get_structure(inst.student_fee_structure_id)

    payment = InstallmentPayment(
        amount=amount,
        payment_mode=mode,
        transaction_ref=(transaction_ref or "").strip() or None,
        remarks=remarks,
        received_by=received_by,
    )
    paid = inst.paid_amount + amount
    status = ledger.derive_status(paid, inst.amount, inst.due_date, on)
    inst = await ledger.compare_and_set(
        inst, {"paid_amount": paid, "status": status.value}, push={"payments": payment}
    )
    logger.info(
        "Payment %s of %d (%s) on installment %s: paid %d/%d, %s",
        payment.id, amount, mode.value, inst.id, inst.paid_amount, inst.amount, inst.status.value,
    )
    try:
        receipt = await receipts.issue_receipt(structure, inst, payment)
    except Exception:
        logger.exception("Receipt for payment %s failed; removing the payment from installment %s", payment.id, inst.id)
        await _withdraw_payment(inst, payment, on)
        raise
    return PaymentResult(payment=payment, receipt=receipt, installment=inst)


async def _withdraw_payment(inst: FeeInstallment, payment: InstallmentPayment, on: date) -> None:
    """Pull a payment whose receipt was never issued, then rebuild the totals from the log."""
    await FeeInstallment.find_one({"_id": inst.id}).update(
        {"$pull": {"payments": {"id": payment.id}}, "$inc": {"version": 1}}
    )
    await ledger.reconcile_installment(str(inst.id), on)


async def void_payment(installment_id: str, payment_id: str, reason: str, on: Optional[date] = None) -> FeeInstallment:
    """Flag a payment as voided and recompute the installment from what remains."""
    if not (reason or "").strip():
        raise FeeValidationError("A reason is required to void a payment")
    on = on or ledger.today()
    inst = await ledger.get_installment(installment_id)
    payments = [p.model_copy() for p in inst.payments]
    target = next((p for p in payments if p.id == payment_id), None)
    if target is None:
        raise NotFound("Payment not found on this installment")
    if target.voided:
        raise StateConflict("This payment has already been voided")
    target.voided = True
    target.voided_at = datetime.utcnow()
    target.void_reason = reason.strip()
    paid = ledger.paid_total(payments)
    status = ledger.derive_status(paid, inst.amount, inst.due_date, on)
    inst = await ledger.compare_and_set(inst, {"payments": payments, "paid_amount": paid, "status": status.value})
    await receipts.mark_voided(payment_id)
    logger.info("Voided payment %s on installment %s: %s", payment_id, inst.id, target.void_reason)
    return inst


async def set_payment_link_status(installment_id: str, status: PaymentLinkStatus) -> FeeInstallment:
    inst = await ledger.get_installment(installment_id)
    await FeeInstallment.find_one({"_id": inst.id}).update({"$set": {"payment_link_status": status.value}})
    inst.payment_link_status = status
    return inst
