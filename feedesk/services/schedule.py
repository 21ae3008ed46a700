"""Template-to-schedule splitting. No persistence here; see services.installments."""
from datetime import date, timedelta
from decimal import Decimal
from typing import NamedTuple, Optional, Sequence

from feedesk.models.emi_template import EMISplit
from feedesk.services.discounts import HUNDRED, percent_of, to_decimal
from feedesk.services.errors import FeeValidationError, ZeroAmount

# Percent sums may be off by at most this much (e.g. three splits of 33.33 + 33.33 + 33.34).
PERCENT_TOLERANCE = Decimal("0.01")


class ScheduledInstallment(NamedTuple):
    installment_number: int
    amount: int
    due_date: date


def validate_split_config(splits: Sequence[EMISplit], installment_count: Optional[int] = None) -> int:
    """Validate an ordered split list and return its installment count."""
    if not splits:
        raise FeeValidationError("Split configuration must have at least one entry")
    if installment_count is not None and installment_count != len(splits):
        raise FeeValidationError(
            f"installment_count is {installment_count} but {len(splits)} splits were given"
        )
    total = Decimal(0)
    previous_days = 0
    for i, split in enumerate(splits, start=1):
        percent = to_decimal(split.percent)
        if percent <= 0 or percent > HUNDRED:
            raise FeeValidationError(f"Split {i}: percent must be in (0, 100]")
        if split.due_days_from_start < 0:
            raise FeeValidationError(f"Split {i}: due_days_from_start cannot be negative")
        if split.due_days_from_start < previous_days:
            raise FeeValidationError(f"Split {i} is due before split {i - 1}")
        previous_days = split.due_days_from_start
        total += percent
    if abs(total - HUNDRED) > PERCENT_TOLERANCE:
        raise FeeValidationError(f"Split percentages sum to {total}, expected 100")
    return len(splits)


def split_amount(net_amount: int, percents: Sequence) -> list[int]:
    """Split net_amount by percentages; the last slice absorbs the rounding remainder."""
    amounts = [percent_of(net_amount, p) for p in percents]
    amounts[-1] += net_amount - sum(amounts)
    return amounts


def build_schedule(net_amount: int, start_date: date, splits: Sequence[EMISplit]) -> list[ScheduledInstallment]:
    if net_amount < 0:
        raise FeeValidationError("Net amount cannot be negative")
    if net_amount == 0:
        raise ZeroAmount("Net amount is 0; there is nothing to schedule")
    validate_split_config(splits)
    amounts = split_amount(net_amount, [s.percent for s in splits])
    for number, amount in enumerate(amounts, start=1):
        if amount <= 0:
            raise FeeValidationError(
                f"Installment {number} would be {amount}; net amount {net_amount} "
                f"is too small to split into {len(splits)} installments"
            )
    return [
        ScheduledInstallment(
            installment_number=i + 1,
            amount=amount,
            due_date=start_date + timedelta(days=split.due_days_from_start),
        )
        for i, (amount, split) in enumerate(zip(amounts, splits))
    ]
