from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from pymongo.errors import DuplicateKeyError

from feedesk.config import settings
from feedesk.models import FeeInstallment, InstallmentStatus, PaymentMode, Receipt
from feedesk.services import installments, ledger, payments, receipts, student_fees
from feedesk.services.errors import (
    AlreadyPaid,
    ConcurrentUpdate,
    FeeValidationError,
    OverpaymentRejected,
    StateConflict,
)


@pytest.fixture
async def schedule(structure, three_way_template, today):
    return await installments.generate_installments(str(structure.id), str(three_way_template.id), today)


async def test_partial_then_full_payment(schedule, today):
    first = str(schedule[0].id)
    result = await payments.apply_payment(first, 1000, PaymentMode.CASH, received_by="acct-1")
    assert result.installment.paid_amount == 1000
    assert result.installment.status == InstallmentStatus.PARTIAL
    assert result.receipt.amount == 1000

    result = await payments.apply_payment(first, 2240, PaymentMode.UPI, received_by="acct-1", transaction_ref="UPI123")
    assert result.installment.paid_amount == 3240
    assert result.installment.status == InstallmentStatus.PAID
    assert len(result.installment.payments) == 2

    with pytest.raises(AlreadyPaid):
        await payments.apply_payment(first, 1, PaymentMode.CASH, received_by="acct-1")


async def test_overpayment_rejected_and_nothing_recorded(schedule, today):
    second = str(schedule[1].id)
    with pytest.raises(OverpaymentRejected):
        await payments.apply_payment(second, 4000, PaymentMode.BANK, received_by="acct-1")
    inst = await ledger.get_installment(second)
    assert inst.paid_amount == 0
    assert inst.payments == []
    assert await Receipt.find_all().count() == 0


@pytest.mark.parametrize("amount", [0, -50])
async def test_non_positive_amount_rejected(schedule, amount):
    with pytest.raises(FeeValidationError):
        await payments.apply_payment(str(schedule[0].id), amount, PaymentMode.CASH, received_by="acct-1")


async def test_duplicate_submission_records_two_payments(schedule, today):
    second = str(schedule[1].id)
    await payments.apply_payment(second, 500, PaymentMode.CASH, received_by="acct-1", transaction_ref="R1")
    result = await payments.apply_payment(second, 500, PaymentMode.CASH, received_by="acct-1", transaction_ref="R1")
    assert result.installment.paid_amount == 1000
    assert len(result.installment.payments) == 2
    assert await Receipt.find(Receipt.installment_id == second).count() == 2


async def test_late_partial_payment_stays_overdue(schedule):
    second = str(schedule[1].id)
    result = await payments.apply_payment(second, 1000, PaymentMode.CASH, received_by="acct-1", on=date(2024, 5, 15))
    assert result.installment.status == InstallmentStatus.OVERDUE


async def test_stale_read_raises_concurrent_update(schedule, today):
    inst = await ledger.get_installment(str(schedule[0].id))
    await payments.apply_payment(str(inst.id), 100, PaymentMode.CASH, received_by="acct-1")
    with pytest.raises(ConcurrentUpdate):
        await ledger.compare_and_set(inst, {"paid_amount": 999})
    assert (await ledger.get_installment(str(inst.id))).paid_amount == 100


async def test_receipt_snapshot_is_frozen(schedule, structure, today):
    result = await payments.apply_payment(str(schedule[0].id), 3240, PaymentMode.BANK, received_by="acct-1")
    receipt = await receipts.get_receipt(str(result.receipt.id))
    assert receipt.receipt_number.startswith("RCPT-")
    assert receipt.payment_id == result.payment.id
    snap = receipt.snapshot
    assert snap.gross_amount == 10000
    assert snap.scholarship_amount == 1000
    assert snap.custom_discount.amount == 900
    assert snap.net_amount == 8100
    assert [li.component_name for li in snap.line_items] == ["Tuition", "Lab"]
    assert snap.installment.installment_number == 1
    assert snap.installment.paid_amount == 3240
    assert snap.installment.status == InstallmentStatus.PAID
    assert snap.installment.due_date == date(2024, 4, 1)


async def test_receipt_number_clash_draws_a_fresh_number(schedule, today, monkeypatch):
    numbers = iter(["RCPT-20240401-AAAAAA", "RCPT-20240401-AAAAAA", "RCPT-20240401-BBBBBB"])
    monkeypatch.setattr(receipts, "make_receipt_number", lambda at=None: next(numbers))
    first = str(schedule[0].id)
    await payments.apply_payment(first, 100, PaymentMode.CASH, received_by="acct-1")
    result = await payments.apply_payment(first, 200, PaymentMode.CASH, received_by="acct-1")
    assert result.receipt.receipt_number == "RCPT-20240401-BBBBBB"
    assert result.installment.paid_amount == 300
    assert await Receipt.find(Receipt.installment_id == first).count() == 2


async def test_payment_withdrawn_when_receipt_numbers_exhausted(schedule, today, monkeypatch):
    monkeypatch.setattr(receipts, "make_receipt_number", lambda at=None: "RCPT-20240401-FIXED0")
    first = str(schedule[0].id)
    await payments.apply_payment(first, 100, PaymentMode.CASH, received_by="acct-1")
    with pytest.raises(DuplicateKeyError):
        await payments.apply_payment(first, 200, PaymentMode.CASH, received_by="acct-1")
    inst = await ledger.get_installment(first)
    assert inst.paid_amount == 100
    assert [p.amount for p in inst.payments] == [100]
    assert inst.status == InstallmentStatus.PARTIAL
    assert await Receipt.find(Receipt.installment_id == first).count() == 1


async def test_payment_withdrawn_when_receipt_insert_fails(schedule, today, monkeypatch):
    async def broken_receipt(structure, inst, payment):
        raise RuntimeError("receipts collection unavailable")

    monkeypatch.setattr(receipts, "issue_receipt", broken_receipt)
    second = str(schedule[1].id)
    before = await ledger.get_installment(second)
    with pytest.raises(RuntimeError):
        await payments.apply_payment(second, 500, PaymentMode.UPI, received_by="acct-1")
    inst = await ledger.get_installment(second)
    assert inst.paid_amount == 0
    assert inst.payments == []
    assert inst.status == before.status
    assert await Receipt.find_all().count() == 0


async def test_void_payment_restores_balance(schedule, today):
    first = str(schedule[0].id)
    result = await payments.apply_payment(first, 3240, PaymentMode.CASH, received_by="acct-1")
    inst = await payments.void_payment(first, result.payment.id, "Cheque bounced")
    assert inst.paid_amount == 0
    assert inst.status == InstallmentStatus.DUE
    assert inst.payments[0].voided is True
    assert len(inst.payments) == 1
    assert (await receipts.get_receipt_for_payment(result.payment.id)).voided is True

    with pytest.raises(StateConflict):
        await payments.void_payment(first, result.payment.id, "again")


async def test_reconcile_rebuilds_paid_amount(schedule, today):
    first = str(schedule[0].id)
    await payments.apply_payment(first, 1200, PaymentMode.CASH, received_by="acct-1")
    await FeeInstallment.find_one({"_id": schedule[0].id}).update({"$set": {"paid_amount": 0}})
    inst = await ledger.reconcile_installment(first)
    assert inst.paid_amount == 1200
    assert inst.status == InstallmentStatus.PARTIAL


async def test_summary_and_collections(schedule, structure, today):
    await payments.apply_payment(str(schedule[0].id), 3240, PaymentMode.UPI, received_by="acct-1")
    await payments.apply_payment(str(schedule[1].id), 430, PaymentMode.CASH, received_by="acct-1")

    [summary] = await student_fees.student_fee_summary("stu-1", on=today)
    assert summary["net_amount"] == 8100
    assert summary["total_paid"] == 3670
    assert summary["pending_amount"] == 4430
    assert summary["paid_installments"] == 1
    assert summary["next_due"] == {"amount": 2000, "due_date": "2024-05-01"}

    pending = await ledger.pending_fees_summary(date(2024, 5, 15))
    assert pending["total_count"] == 2
    assert pending["total_pending_amount"] == 4430
    assert pending["overdue_count"] == 1
    assert pending["overdue_amount"] == 2000

    received_at = (await ledger.get_installment(str(schedule[0].id))).payments[0].received_at
    local_day = received_at.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(settings.timezone)).date()
    collected = await ledger.fees_collected_on(local_day)
    assert collected["total_count"] == 2
    assert collected["total_amount"] == 3670
    assert collected["by_mode"]["upi"] == {"count": 1, "amount": 3240}
    assert collected["by_mode"]["cash"] == {"count": 1, "amount": 430}
    assert collected["by_mode"]["bank"] == {"count": 0, "amount": 0}


async def test_receipt_listing_uses_local_days(schedule, today, monkeypatch):
    monkeypatch.setattr(settings, "timezone", "Asia/Kolkata")
    result = await payments.apply_payment(str(schedule[0].id), 500, PaymentMode.CASH, received_by="acct-1")
    # 19:00 UTC on 1 April is 00:30 on 2 April in Kolkata.
    await Receipt.find_one({"_id": result.receipt.id}).update(
        {"$set": {"generated_at": datetime(2024, 4, 1, 19, 0)}}
    )
    items, total = await receipts.list_receipts(start_date=date(2024, 4, 2), end_date=date(2024, 4, 2))
    assert total == 1
    assert items[0].payment_id == result.payment.id
    _, total = await receipts.list_receipts(start_date=date(2024, 4, 1), end_date=date(2024, 4, 1))
    assert total == 0
