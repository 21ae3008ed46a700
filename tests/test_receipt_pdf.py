from datetime import date

import pytest

from feedesk.models import InstallmentStatus, PaymentMode, Receipt, ReceiptSnapshot
from feedesk.models.receipt import ReceiptInstallmentSnapshot
from feedesk.models.student_fee import StudentFeeLineItem
from feedesk.services.receipt_pdf import number_to_words_indian, render_receipt_pdf


@pytest.mark.parametrize(
    "amount,words",
    [
        (0, "Rupees Zero Only"),
        (15, "Rupees Fifteen Only"),
        (3240, "Rupees Three Thousand Two Hundred Forty Only"),
        (52000, "Rupees Fifty Two Thousand Only"),
        (150000, "Rupees One Lakh Fifty Thousand Only"),
        (12500000, "Rupees One Crore Twenty Five Lakh Only"),
    ],
)
def test_amount_in_words(amount, words):
    assert number_to_words_indian(amount) == words


async def test_render_from_snapshot(db):
    receipt = Receipt(
        receipt_number="RCPT-20240401-ABC123",
        payment_id="p1",
        installment_id="i1",
        student_fee_structure_id="s1",
        student_id="stu-1",
        session_id="2024-25",
        amount=1000,
        payment_mode=PaymentMode.UPI,
        transaction_ref="UPI-991",
        received_by="acct-1",
        snapshot=ReceiptSnapshot(
            line_items=[
                StudentFeeLineItem(
                    fee_component_id="c1",
                    component_name="Tuition",
                    component_type="tuition",
                    original_amount=8000,
                    adjusted_amount=8000,
                ),
                StudentFeeLineItem(
                    fee_component_id="c2",
                    component_name="Lab",
                    component_type="lab",
                    original_amount=2000,
                    adjusted_amount=0,
                    waived=True,
                    waiver_reason="Sibling",
                ),
            ],
            gross_amount=8000,
            scholarship_amount=1000,
            net_amount=7000,
            installment=ReceiptInstallmentSnapshot(
                installment_number=1,
                amount=2800,
                due_date=date(2024, 4, 1),
                paid_amount=1000,
                status=InstallmentStatus.PARTIAL,
            ),
        ),
    )
    pdf = render_receipt_pdf(receipt)
    assert pdf.startswith(b"%PDF")
    assert len(pdf) > 1000
