"""Installment routes: generation, payment recording, ledger queries and jobs."""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body

from feedesk.api.deps import CurrentUser, FeeManager, Pagination, ensure_can_view_student, paginated
from feedesk.api.receipts import receipt_out
from feedesk.models.installment import (
    FeeInstallment,
    GenerateInstallmentsBody,
    InstallmentPayment,
    InstallmentStatus,
    PaymentLinkStatusBody,
    RecordPaymentBody,
    VoidPaymentBody,
)
from feedesk.services import installments, ledger, payments, reminders

router = APIRouter()


def payment_out(p: InstallmentPayment) -> dict:
    return {
        "id": p.id,
        "amount": p.amount,
        "payment_mode": p.payment_mode.value,
        "transaction_ref": p.transaction_ref,
        "received_at": p.received_at.isoformat(),
        "remarks": p.remarks,
        "received_by": p.received_by,
        "voided": p.voided,
        "void_reason": p.void_reason,
    }


def installment_out(i: FeeInstallment, with_payments: bool = True) -> dict:
    out = {
        "id": str(i.id),
        "student_fee_structure_id": i.student_fee_structure_id,
        "student_id": i.student_id,
        "session_id": i.session_id,
        "batch_id": i.batch_id,
        "installment_number": i.installment_number,
        "amount": i.amount,
        "due_date": i.due_date.isoformat(),
        "paid_amount": i.paid_amount,
        "pending_amount": i.pending_amount,
        "status": i.status.value,
        "reminder_sent_at": i.reminder_sent_at.isoformat() if i.reminder_sent_at else None,
        "reminder_count": i.reminder_count,
        "payment_link_status": i.payment_link_status.value if i.payment_link_status else None,
    }
    if with_payments:
        out["payments"] = [payment_out(p) for p in i.payments]
    return out


@router.post("/generate", status_code=201)
async def generate_installments(body: GenerateInstallmentsBody, user: FeeManager):
    items = await installments.generate_installments(body.student_fee_structure_id, body.emi_template_id, body.start_date)
    return {"data": [installment_out(i) for i in items]}


@router.get("/pending")
async def pending_installments(
    user: FeeManager,
    page: Pagination,
    status: Optional[InstallmentStatus] = None,
    batch_id: Optional[str] = None,
    student_id: Optional[str] = None,
):
    items, total = await ledger.pending_installments(status, batch_id, student_id, page.page, page.limit)
    return paginated([installment_out(i, with_payments=False) for i in items], total, page)


@router.get("/reminders/due")
async def due_for_reminder(user: FeeManager):
    return {"data": [installment_out(i, with_payments=False) for i in await reminders.installments_due_for_reminder()]}


@router.post("/sweep")
async def sweep_statuses(user: FeeManager):
    """Overdue sweep; meant for a periodic external trigger."""
    return {"data": {"changed": await ledger.sweep_statuses()}}


@router.get("/student/{student_id}")
async def student_installments(student_id: str, user: CurrentUser, session_id: Optional[str] = None):
    ensure_can_view_student(user, student_id)
    groups = await ledger.list_student_installments(student_id, session_id)
    return {
        "data": [
            {**g, "installments": [installment_out(i) for i in g["installments"]]}
            for g in groups
        ]
    }


@router.get("/structure/{structure_id}/next-due")
async def next_due(structure_id: str, user: FeeManager):
    inst = await ledger.next_due(structure_id)
    return {"data": installment_out(inst, with_payments=False) if inst else None}


@router.post("/structure/{structure_id}/reconcile")
async def reconcile_structure(structure_id: str, user: FeeManager):
    return {"data": [installment_out(i) for i in await ledger.reconcile_structure(structure_id)]}


@router.get("/{installment_id}")
async def get_installment(installment_id: str, user: CurrentUser):
    inst = await ledger.get_installment(installment_id)
    ensure_can_view_student(user, inst.student_id)
    return {"data": installment_out(await ledger.refresh_status(inst))}


@router.post("/{installment_id}/payment", status_code=201)
async def record_payment(installment_id: str, body: RecordPaymentBody, user: FeeManager):
    result = await payments.apply_payment(
        installment_id,
        body.amount,
        body.payment_mode,
        received_by=user.id,
        transaction_ref=body.transaction_ref,
        remarks=body.remarks,
    )
    return {
        "data": {
            "payment": payment_out(result.payment),
            "receipt": receipt_out(result.receipt),
            "installment": installment_out(result.installment),
        }
    }


@router.post("/{installment_id}/payments/{payment_id}/void")
async def void_payment(installment_id: str, payment_id: str, body: VoidPaymentBody, user: FeeManager):
    return {"data": installment_out(await payments.void_payment(installment_id, payment_id, body.reason))}


@router.put("/{installment_id}/payment-link-status")
async def set_payment_link_status(installment_id: str, body: PaymentLinkStatusBody, user: FeeManager):
    return {"data": installment_out(await payments.set_payment_link_status(installment_id, body.status))}


@router.post("/{installment_id}/reconcile")
async def reconcile_installment(installment_id: str, user: FeeManager):
    return {"data": installment_out(await ledger.reconcile_installment(installment_id))}


@router.post("/{installment_id}/reminder-sent")
async def reminder_sent(installment_id: str, user: FeeManager, sent_at: Optional[datetime] = Body(None, embed=True)):
    return {"data": installment_out(await reminders.mark_reminder_sent(installment_id, sent_at), with_payments=False)}
