"""Scholarship and custom-discount resolution.

Every amount is an integer in the smallest currency unit. Percentages are
evaluated in Decimal and rounded half-up once per discount step, so no float
error accumulates between steps.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from feedesk.models.scholarship import ScholarshipType
from feedesk.models.student_fee import CustomDiscount, CustomDiscountInput, CustomDiscountType
from feedesk.services.errors import FeeValidationError

HUNDRED = Decimal(100)


def to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    if isinstance(val, Decimal):
        return val
    try:
        d = Decimal(str(val))
    except InvalidOperation:
        raise FeeValidationError(f"Not a number: {val!r}")
    if not d.is_finite():
        raise FeeValidationError(f"Not a finite number: {val!r}")
    return d


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def percent_of(amount: int, percent) -> int:
    """`amount * percent / 100`, rounded half-up to a whole unit."""
    return round_half_up(Decimal(amount) * to_decimal(percent) / HUNDRED)


def _check_amount(name: str, value: int) -> None:
    if value < 0:
        raise FeeValidationError(f"{name} cannot be negative")


def resolve_custom_discount(base_amount: int, discount: Optional[CustomDiscountInput]) -> Optional[CustomDiscount]:
    """Resolve a custom discount against the amount left after scholarship, or None when there is none."""
    _check_amount("Discount base", base_amount)
    if discount is None:
        return None
    value = to_decimal(discount.value)
    if value < 0:
        raise FeeValidationError("Discount value cannot be negative")
    if discount.type == CustomDiscountType.PERCENTAGE:
        if value > HUNDRED:
            raise FeeValidationError("Percentage discount cannot exceed 100")
        amount = percent_of(base_amount, value)
    else:
        if value != value.to_integral_value():
            raise FeeValidationError("Fixed discount must be a whole amount in the smallest currency unit")
        amount = min(int(value), base_amount)
    return CustomDiscount(type=discount.type, value=float(value), amount=amount, remarks=discount.remarks)


def net_amount(gross_amount: int, scholarship_amount: int, discount_amount: int = 0) -> int:
    _check_amount("Gross amount", gross_amount)
    _check_amount("Scholarship amount", scholarship_amount)
    _check_amount("Discount amount", discount_amount)
    return max(0, gross_amount - scholarship_amount - discount_amount)


def resolve(
    gross_amount: int,
    scholarship_amount: int = 0,
    discount: Optional[CustomDiscountInput] = None,
) -> tuple[int, Optional[CustomDiscount]]:
    """Return (net amount, resolved custom discount). 0 <= net <= gross always holds.

    Scholarship comes off first; the custom discount applies to what remains,
    so 10000 gross with 1000 scholarship and 10% off gives a 900 discount.
    """
    _check_amount("Gross amount", gross_amount)
    _check_amount("Scholarship amount", scholarship_amount)
    resolved = resolve_custom_discount(max(0, gross_amount - scholarship_amount), discount)
    return net_amount(gross_amount, scholarship_amount, resolved.amount if resolved else 0), resolved


def scholarship_discount(
    type: ScholarshipType,
    value,
    gross_amount: int,
    max_amount: Optional[int] = None,
    component_amount: Optional[int] = None,
) -> int:
    """What one assigned scholarship takes off a structure.

    A percentage applies to the gross, a component waiver takes the whole
    (adjusted) line, and every kind is capped by `max_amount` and the gross.
    """
    _check_amount("Gross amount", gross_amount)
    value = to_decimal(value)
    if value < 0:
        raise FeeValidationError("Scholarship value cannot be negative")
    if type == ScholarshipType.PERCENTAGE:
        if value > HUNDRED:
            raise FeeValidationError("Percentage scholarship cannot exceed 100")
        amount = percent_of(gross_amount, value)
    elif type == ScholarshipType.FIXED_AMOUNT:
        amount = round_half_up(value)
    else:
        # Waiver of a component the structure does not carry is worth nothing.
        amount = component_amount or 0
    if max_amount is not None:
        amount = min(amount, max_amount)
    return min(amount, gross_amount)
