from datetime import date, datetime

from feedesk.config import settings
from feedesk.models import FeeInstallment, InstallmentStatus
from feedesk.services import installments, reminders


def installment(**overrides):
    fields = dict(
        student_fee_structure_id="s1",
        student_id="stu-1",
        session_id="2024-25",
        installment_number=1,
        amount=2430,
        due_date=date(2024, 5, 1),
    )
    fields.update(overrides)
    return FeeInstallment(**fields)


async def test_first_reminder_window(db):
    inst = installment()
    assert not reminders.needs_reminder(inst, date(2024, 4, 20))
    assert reminders.needs_reminder(inst, date(2024, 4, 28))


async def test_paid_installments_are_never_reminded(db):
    inst = installment(paid_amount=2430, status=InstallmentStatus.PAID)
    assert not reminders.needs_reminder(inst, date(2024, 5, 1))


async def test_repeat_reminder_only_when_overdue_and_interval_elapsed(db):
    inst = installment(
        status=InstallmentStatus.OVERDUE,
        reminder_sent_at=datetime(2024, 5, 2, 9, 0),
        reminder_count=1,
    )
    assert not reminders.needs_reminder(inst, date(2024, 5, 5))
    assert reminders.needs_reminder(inst, date(2024, 5, 2 + settings.fee_reminder_interval_days))


async def test_reminder_count_is_capped(db):
    inst = installment(
        status=InstallmentStatus.OVERDUE,
        reminder_sent_at=datetime(2024, 5, 2),
        reminder_count=settings.fee_reminder_max_count,
    )
    assert not reminders.needs_reminder(inst, date(2024, 8, 1))


async def test_due_for_reminder_and_mark_sent(structure, three_way_template, today):
    rows = await installments.generate_installments(str(structure.id), str(three_way_template.id), today)
    due = await reminders.installments_due_for_reminder(today)
    assert [i.installment_number for i in due] == [1]

    marked = await reminders.mark_reminder_sent(str(rows[0].id), datetime(2024, 4, 1, 10, 0))
    assert marked.reminder_count == 1
    assert marked.reminder_sent_at == datetime(2024, 4, 1, 10, 0)
    assert await reminders.installments_due_for_reminder(today) == []

    later = await reminders.installments_due_for_reminder(date(2024, 5, 1))
    assert [i.installment_number for i in later] == [1, 2]
