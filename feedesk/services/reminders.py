"""Reminder cadence for unpaid installments. Message delivery happens elsewhere."""
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from feedesk.config import settings
from feedesk.models.installment import FeeInstallment, InstallmentStatus
from feedesk.services import ledger

logger = logging.getLogger(__name__)


def needs_reminder(inst: FeeInstallment, on: date) -> bool:
    if inst.status == InstallmentStatus.PAID:
        return False
    if inst.reminder_count >= settings.fee_reminder_max_count:
        return False
    if inst.reminder_sent_at is None:
        return (inst.due_date - on).days <= settings.fee_reminder_days
    if inst.status != InstallmentStatus.OVERDUE:
        return False
    return (on - inst.reminder_sent_at.date()).days >= settings.fee_reminder_interval_days


async def installments_due_for_reminder(on: Optional[date] = None) -> list[FeeInstallment]:
    on = on or ledger.today()
    horizon = on + timedelta(days=settings.fee_reminder_days)
    candidates = await FeeInstallment.find(
        {**ledger.UNPAID_FILTER, "due_date": {"$lte": horizon}}
    ).sort("+due_date").to_list()
    await ledger.refresh_statuses(candidates, on)
    return [inst for inst in candidates if needs_reminder(inst, on)]


async def mark_reminder_sent(installment_id: str, sent_at: Optional[datetime] = None) -> FeeInstallment:
    inst = await ledger.get_installment(installment_id)
    sent_at = sent_at or datetime.utcnow()
    await FeeInstallment.find_one({"_id": inst.id}).update(
        {"$set": {"reminder_sent_at": sent_at}, "$inc": {"reminder_count": 1}}
    )
    logger.info("Reminder %d sent for installment %s", inst.reminder_count + 1, inst.id)
    return await FeeInstallment.get(inst.id)
