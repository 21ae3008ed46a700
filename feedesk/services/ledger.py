"""Installment ledger: status derivation, cached-state refresh, queries and reconciliation.

`status` and `paid_amount` on FeeInstallment are caches. `derive_status` and
`paid_total` are the source of truth and can rebuild both at any time.
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from beanie import PydanticObjectId
from bson.errors import InvalidId

from feedesk.config import settings
from feedesk.models.installment import FeeInstallment, InstallmentPayment, InstallmentStatus, PaymentMode
from feedesk.models.student_fee import StudentFeeStructure
from feedesk.services.errors import ConcurrentUpdate, NotFound

logger = logging.getLogger(__name__)

UNPAID_FILTER = {"status": {"$ne": InstallmentStatus.PAID.value}}


def today() -> date:
    """Current calendar date in the organization's timezone."""
    return datetime.now(ZoneInfo(settings.timezone)).date()


def derive_status(paid_amount: int, amount: int, due_date: date, on: date) -> InstallmentStatus:
    if paid_amount >= amount:
        return InstallmentStatus.PAID
    if on > due_date:
        return InstallmentStatus.OVERDUE
    if paid_amount > 0:
        return InstallmentStatus.PARTIAL
    if on == due_date:
        return InstallmentStatus.DUE
    return InstallmentStatus.UPCOMING


def paid_total(payments: Iterable[InstallmentPayment]) -> int:
    return sum(p.amount for p in payments if not p.voided)


def parse_object_id(value: str, what: str) -> PydanticObjectId:
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError, ValueError):
        raise NotFound(f"{what} not found")


async def get_installment(installment_id: str) -> FeeInstallment:
    inst = await FeeInstallment.get(parse_object_id(installment_id, "Installment"))
    if not inst:
        raise NotFound("Installment not found")
    return inst


async def compare_and_set(inst: FeeInstallment, changes: dict, push: Optional[dict] = None) -> FeeInstallment:
    """Apply `changes` only if nobody else wrote the installment since it was read."""
    update = {"$set": {**changes, "updated_at": datetime.utcnow()}, "$inc": {"version": 1}}
    if push:
        update["$push"] = push
    result = await FeeInstallment.find_one({"_id": inst.id, "version": inst.version}).update(update)
    if not result.matched_count:
        raise ConcurrentUpdate(
            f"Installment {inst.installment_number} was modified concurrently; reload and retry"
        )
    return await FeeInstallment.get(inst.id)


async def refresh_status(inst: FeeInstallment, on: Optional[date] = None) -> FeeInstallment:
    """Re-derive the cached status; persist it only if it moved."""
    on = on or today()
    derived = derive_status(inst.paid_amount, inst.amount, inst.due_date, on)
    if derived != inst.status:
        # No match means a newer write already stored its own status.
        await FeeInstallment.find_one({"_id": inst.id, "version": inst.version}).update(
            {"$set": {"status": derived.value}}
        )
        inst.status = derived
    return inst


async def refresh_statuses(items: list[FeeInstallment], on: Optional[date] = None) -> list[FeeInstallment]:
    on = on or today()
    for inst in items:
        await refresh_status(inst, on)
    return items


async def installments_for_structure(structure_id: str, on: Optional[date] = None) -> list[FeeInstallment]:
    items = await FeeInstallment.find(
        FeeInstallment.student_fee_structure_id == structure_id
    ).sort("+installment_number").to_list()
    return await refresh_statuses(items, on)


def next_unpaid(items: list[FeeInstallment]) -> Optional[FeeInstallment]:
    unpaid = [i for i in items if i.status != InstallmentStatus.PAID]
    if not unpaid:
        return None
    return min(unpaid, key=lambda i: (i.due_date, i.installment_number))


async def next_due(structure_id: str, on: Optional[date] = None) -> Optional[FeeInstallment]:
    return next_unpaid(await installments_for_structure(structure_id, on))


async def list_student_installments(
    student_id: str, session_id: Optional[str] = None, on: Optional[date] = None
) -> list[dict]:
    """Installments grouped per fee structure, oldest session first."""
    query = {"student_id": student_id}
    if session_id:
        query["session_id"] = session_id
    structures = await StudentFeeStructure.find(query).sort("+created_at").to_list()
    groups = []
    for s in structures:
        items = await installments_for_structure(str(s.id), on)
        groups.append(
            {
                "student_fee_structure_id": str(s.id),
                "session_id": s.session_id,
                "net_amount": s.net_amount,
                "installments": items,
            }
        )
    return groups


async def _unpaid(batch_id: Optional[str] = None, student_id: Optional[str] = None) -> list[FeeInstallment]:
    query = dict(UNPAID_FILTER)
    if batch_id:
        query["batch_id"] = batch_id
    if student_id:
        query["student_id"] = student_id
    return await FeeInstallment.find(query).to_list()


async def pending_installments(
    status: Optional[InstallmentStatus] = None,
    batch_id: Optional[str] = None,
    student_id: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    on: Optional[date] = None,
) -> tuple[list[FeeInstallment], int]:
    """Unpaid installments ordered by due date. Returns (page items, total matches)."""
    on = on or today()
    items = await refresh_statuses(await _unpaid(batch_id, student_id), on)
    items = [i for i in items if i.status != InstallmentStatus.PAID]
    if status:
        items = [i for i in items if i.status == status]
    items.sort(key=lambda i: (i.due_date, i.student_id, i.installment_number))
    start = (page - 1) * limit
    return items[start : start + limit], len(items)


async def pending_fees_summary(on: Optional[date] = None) -> dict:
    on = on or today()
    items = await refresh_statuses(await _unpaid(), on)
    summary = {
        "total_count": 0,
        "total_pending_amount": 0,
        "overdue_count": 0,
        "overdue_amount": 0,
        "partial_count": 0,
        "pending_count": 0,
    }
    for inst in items:
        if inst.status == InstallmentStatus.PAID:
            continue
        summary["total_count"] += 1
        summary["total_pending_amount"] += inst.pending_amount
        if inst.status == InstallmentStatus.OVERDUE:
            summary["overdue_count"] += 1
            summary["overdue_amount"] += inst.pending_amount
        elif inst.status == InstallmentStatus.PARTIAL:
            summary["partial_count"] += 1
        else:
            summary["pending_count"] += 1
    return summary


def utc_day_bounds(day: date) -> tuple[datetime, datetime]:
    """Naive-UTC [start, end) of a local calendar day; payments store naive UTC."""
    tz = ZoneInfo(settings.timezone)
    start = datetime.combine(day, time.min, tzinfo=tz).astimezone(ZoneInfo("UTC")).replace(tzinfo=None)
    return start, start + timedelta(days=1)


async def fees_collected_on(day: date) -> dict:
    start, end = utc_day_bounds(day)
    items = await FeeInstallment.find(
        {"payments": {"$elemMatch": {"received_at": {"$gte": start, "$lt": end}}}}
    ).to_list()
    by_mode = {mode.value: {"count": 0, "amount": 0} for mode in PaymentMode}
    total_count = 0
    total_amount = 0
    for inst in items:
        for p in inst.payments:
            if p.voided or not (start <= p.received_at < end):
                continue
            total_count += 1
            total_amount += p.amount
            by_mode[p.payment_mode.value]["count"] += 1
            by_mode[p.payment_mode.value]["amount"] += p.amount
    return {"date": day.isoformat(), "total_count": total_count, "total_amount": total_amount, "by_mode": by_mode}


async def sweep_statuses(on: Optional[date] = None) -> int:
    """Refresh every unpaid installment's cached status. Returns how many changed."""
    on = on or today()
    changed = 0
    for inst in await _unpaid():
        before = inst.status
        await refresh_status(inst, on)
        if inst.status != before:
            changed += 1
    logger.info("Status sweep for %s: %d installment(s) changed", on.isoformat(), changed)
    return changed


async def reconcile_installment(installment_id: str, on: Optional[date] = None) -> FeeInstallment:
    """Rebuild paid_amount from the payment log and re-derive status."""
    on = on or today()
    inst = await get_installment(installment_id)
    paid = paid_total(inst.payments)
    status = derive_status(paid, inst.amount, inst.due_date, on)
    if paid == inst.paid_amount and status == inst.status:
        return inst
    logger.info(
        "Reconciled installment %s: paid_amount %d -> %d, status %s -> %s",
        inst.id, inst.paid_amount, paid, inst.status.value, status.value,
    )
    return await compare_and_set(inst, {"paid_amount": paid, "status": status.value})


async def reconcile_structure(structure_id: str, on: Optional[date] = None) -> list[FeeInstallment]:
    on = on or today()
    items = await FeeInstallment.find(
        FeeInstallment.student_fee_structure_id == structure_id
    ).sort("+installment_number").to_list()
    return [await reconcile_installment(str(i.id), on) for i in items]
