import pytest

from feedesk.models import CustomDiscountInput, CustomDiscountType, ScholarshipType
from feedesk.services import discounts
from feedesk.services.errors import FeeValidationError


def pct(value):
    return CustomDiscountInput(type=CustomDiscountType.PERCENTAGE, value=value)


def fixed(value):
    return CustomDiscountInput(type=CustomDiscountType.FIXED_AMOUNT, value=value)


def test_percentage_applies_after_scholarship():
    net, resolved = discounts.resolve(10000, 1000, pct(10))
    assert net == 8100
    assert resolved.amount == 900


def test_no_discount():
    net, resolved = discounts.resolve(5000)
    assert net == 5000
    assert resolved is None


def test_fixed_discount_capped_at_gross():
    net, resolved = discounts.resolve(3000, 0, fixed(5000))
    assert resolved.amount == 3000
    assert net == 0


def test_net_never_negative_when_scholarship_exceeds_gross():
    net, resolved = discounts.resolve(3000, 2500, fixed(1000))
    assert resolved.amount == 500
    assert net == 0


def test_full_percentage_discount():
    net, resolved = discounts.resolve(7777, 0, pct(100))
    assert resolved.amount == 7777
    assert net == 0


def test_percentage_rounds_half_up():
    assert discounts.percent_of(125, 10) == 13
    assert discounts.percent_of(124, 10) == 12
    _, resolved = discounts.resolve(333, 0, pct(12.5))
    assert resolved.amount == 42


@pytest.mark.parametrize(
    "gross,scholarship,discount",
    [
        (-1, 0, None),
        (1000, -5, None),
        (1000, 0, pct(100.5)),
        (1000, 0, pct(-1)),
        (1000, 0, fixed(-10)),
        (1000, 0, fixed(10.5)),
    ],
)
def test_invalid_inputs_rejected(gross, scholarship, discount):
    with pytest.raises(FeeValidationError):
        discounts.resolve(gross, scholarship, discount)


def test_percentage_scholarship_is_capped_by_max_amount():
    assert discounts.scholarship_discount(ScholarshipType.PERCENTAGE, 25, 10000) == 2500
    assert discounts.scholarship_discount(ScholarshipType.PERCENTAGE, 25, 10000, max_amount=1500) == 1500
    # 12.5% of 999 is 124.875
    assert discounts.scholarship_discount(ScholarshipType.PERCENTAGE, 12.5, 999) == 125


def test_fixed_scholarship_never_exceeds_gross():
    assert discounts.scholarship_discount(ScholarshipType.FIXED_AMOUNT, 3000, 10000) == 3000
    assert discounts.scholarship_discount(ScholarshipType.FIXED_AMOUNT, 3000, 2000) == 2000


def test_component_waiver_takes_the_line():
    assert discounts.scholarship_discount(ScholarshipType.COMPONENT_WAIVER, 100, 10000, component_amount=2000) == 2000
    assert discounts.scholarship_discount(
        ScholarshipType.COMPONENT_WAIVER, 100, 10000, max_amount=500, component_amount=2000
    ) == 500
    assert discounts.scholarship_discount(ScholarshipType.COMPONENT_WAIVER, 100, 10000) == 0


def test_percentage_scholarship_over_100_rejected():
    with pytest.raises(FeeValidationError):
        discounts.scholarship_discount(ScholarshipType.PERCENTAGE, 120, 10000)
