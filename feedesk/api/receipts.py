"""Receipt routes: list, detail, PDF download."""
from datetime import date
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import Response

from feedesk.api.deps import CurrentUser, Pagination, StaffRole, ensure_can_view_student, paginated
from feedesk.models.receipt import Receipt
from feedesk.services import receipts
from feedesk.services.receipt_pdf import render_receipt_pdf

router = APIRouter()


def receipt_out(r: Receipt) -> dict:
    return {
        "id": str(r.id),
        "receipt_number": r.receipt_number,
        "payment_id": r.payment_id,
        "installment_id": r.installment_id,
        "student_fee_structure_id": r.student_fee_structure_id,
        "student_id": r.student_id,
        "session_id": r.session_id,
        "amount": r.amount,
        "payment_mode": r.payment_mode.value,
        "transaction_ref": r.transaction_ref,
        "received_by": r.received_by,
        "generated_at": r.generated_at.isoformat(),
        "voided": r.voided,
        "snapshot": r.snapshot.model_dump(mode="json"),
    }


@router.get("/")
async def list_receipts(
    user: CurrentUser,
    page: Pagination,
    student_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
):
    if user.role == StaffRole.PARENT:
        if not student_id:
            return paginated([], 0, page)
        ensure_can_view_student(user, student_id)
    items, total = await receipts.list_receipts(student_id, start_date, end_date, search, page.page, page.limit)
    return paginated([receipt_out(r) for r in items], total, page)


@router.get("/{receipt_id}")
async def get_receipt(receipt_id: str, user: CurrentUser):
    r = await receipts.get_receipt(receipt_id)
    ensure_can_view_student(user, r.student_id)
    return {"data": receipt_out(r)}


@router.get("/{receipt_id}/pdf")
async def download_receipt(receipt_id: str, user: CurrentUser):
    r = await receipts.get_receipt(receipt_id)
    ensure_can_view_student(user, r.student_id)
    return Response(
        content=render_receipt_pdf(r),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{r.receipt_number}.pdf"'},
    )
