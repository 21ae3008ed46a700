from datetime import date

import pytest

from feedesk.models import FeeInstallment, InstallmentStatus, StudentFeeStructure, StudentFeeStructureCreate
from feedesk.models.emi_template import EMIPlanTemplateUpdate
from feedesk.services import emi_templates, installments, ledger, student_fees
from feedesk.services.errors import AlreadyGenerated, ConcurrentUpdate, StateConflict, ZeroAmount


async def test_generate_three_way_schedule(structure, three_way_template, today):
    rows = await installments.generate_installments(str(structure.id), str(three_way_template.id), date(2024, 4, 1))
    assert [r.amount for r in rows] == [3240, 2430, 2430]
    assert [r.due_date for r in rows] == [date(2024, 4, 1), date(2024, 5, 1), date(2024, 5, 31)]
    assert [r.status for r in rows] == [InstallmentStatus.DUE, InstallmentStatus.UPCOMING, InstallmentStatus.UPCOMING]
    assert all(r.paid_amount == 0 for r in rows)
    assert sum(r.amount for r in rows) == structure.net_amount

    locked = await student_fees.get_structure(str(structure.id))
    assert locked.installments_generated is True
    assert locked.emi_plan_name == "Three-way"
    assert locked.schedule_start_date == date(2024, 4, 1)


async def test_second_generation_rejected_and_rows_unchanged(structure, three_way_template, today):
    await installments.generate_installments(str(structure.id), str(three_way_template.id), date(2024, 4, 1))
    with pytest.raises(AlreadyGenerated):
        await installments.generate_installments(str(structure.id), str(three_way_template.id), date(2024, 6, 1))
    rows = await FeeInstallment.find(FeeInstallment.student_fee_structure_id == str(structure.id)).to_list()
    assert len(rows) == 3
    assert min(r.due_date for r in rows) == date(2024, 4, 1)


async def test_zero_net_structure_cannot_be_scheduled(components, three_way_template, today):
    free = await student_fees.build_structure(
        StudentFeeStructureCreate(
            student_id="stu-free",
            session_id="2024-25",
            line_items=[{"fee_component_id": str(components["lab"].id), "original_amount": 2000}],
            scholarship_amount=2000,
        )
    )
    with pytest.raises(ZeroAmount):
        await installments.generate_installments(str(free.id), str(three_way_template.id), today)
    assert (await student_fees.get_structure(str(free.id))).installments_generated is False


async def test_inactive_template_rejected(structure, three_way_template, today):
    await emi_templates.update_template(str(three_way_template.id), EMIPlanTemplateUpdate(is_active=False))
    with pytest.raises(StateConflict):
        await installments.generate_installments(str(structure.id), str(three_way_template.id), today)


async def test_template_edit_does_not_touch_existing_installments(structure, three_way_template, today):
    await installments.generate_installments(str(structure.id), str(three_way_template.id), today)
    await emi_templates.update_template(
        str(three_way_template.id),
        EMIPlanTemplateUpdate(split_config=[{"percent": 100, "due_days_from_start": 0}]),
    )
    rows = await ledger.installments_for_structure(str(structure.id), today)
    assert [r.amount for r in rows] == [3240, 2430, 2430]


async def test_overdue_derived_on_read(structure, three_way_template, today):
    await installments.generate_installments(str(structure.id), str(three_way_template.id), today)
    rows = await ledger.installments_for_structure(str(structure.id), date(2024, 5, 15))
    assert rows[1].status == InstallmentStatus.OVERDUE
    assert rows[2].status == InstallmentStatus.UPCOMING
    assert (await ledger.next_due(str(structure.id), date(2024, 5, 15))).installment_number == 1


async def test_sweep_persists_overdue(structure, three_way_template, today):
    await installments.generate_installments(str(structure.id), str(three_way_template.id), today)
    changed = await ledger.sweep_statuses(date(2024, 6, 15))
    assert changed == 3
    stored = await FeeInstallment.find(FeeInstallment.student_fee_structure_id == str(structure.id)).to_list()
    assert {r.status for r in stored} == {InstallmentStatus.OVERDUE}


async def test_default_templates_seeded_once(db):
    await emi_templates.ensure_default_templates()
    await emi_templates.ensure_default_templates()
    templates = await emi_templates.list_templates()
    assert [t.name for t in templates] == ["One-time", "Quarterly"]
    assert [t.is_default for t in templates] == [True, False]
    assert [s.due_days_from_start for s in templates[1].split_config] == [0, 90, 180, 270]


async def test_failed_insert_rolls_back_generation(structure, three_way_template, today, monkeypatch):
    async def insert_one_then_fail(rows, *args, **kwargs):
        await rows[0].insert()
        raise RuntimeError("write concern timeout")

    with monkeypatch.context() as m:
        m.setattr(FeeInstallment, "insert_many", insert_one_then_fail)
        with pytest.raises(RuntimeError):
            await installments.generate_installments(str(structure.id), str(three_way_template.id), today)
    assert await FeeInstallment.find(FeeInstallment.student_fee_structure_id == str(structure.id)).count() == 0
    released = await student_fees.get_structure(str(structure.id))
    assert released.installments_generated is False
    assert released.emi_plan_name is None

    rows = await installments.generate_installments(str(structure.id), str(three_way_template.id), today)
    assert len(rows) == 3


def _stale_first_read(monkeypatch, stale):
    reads = []

    async def lookup(structure_id):
        reads.append(structure_id)
        if len(reads) == 1:
            return stale
        return await student_fees.get_structure(structure_id)

    monkeypatch.setattr(installments, "get_structure", lookup)


async def test_losing_the_claim_to_another_generation(structure, three_way_template, today, monkeypatch):
    stale = await student_fees.get_structure(str(structure.id))
    await installments.generate_installments(str(structure.id), str(three_way_template.id), today)
    before = await ledger.installments_for_structure(str(structure.id), today)

    _stale_first_read(monkeypatch, stale)
    with pytest.raises(AlreadyGenerated):
        await installments.generate_installments(str(structure.id), str(three_way_template.id), date(2024, 6, 1))
    after = await ledger.installments_for_structure(str(structure.id), today)
    assert [(r.id, r.amount, r.due_date) for r in after] == [(r.id, r.amount, r.due_date) for r in before]


async def test_structure_edited_between_read_and_claim(structure, three_way_template, today, monkeypatch):
    stale = await student_fees.get_structure(str(structure.id))
    await StudentFeeStructure.find_one({"_id": structure.id}).update({"$inc": {"version": 1}})

    _stale_first_read(monkeypatch, stale)
    with pytest.raises(ConcurrentUpdate):
        await installments.generate_installments(str(structure.id), str(three_way_template.id), today)
    assert await FeeInstallment.find(FeeInstallment.student_fee_structure_id == str(structure.id)).count() == 0
    assert (await student_fees.get_structure(str(structure.id))).installments_generated is False
