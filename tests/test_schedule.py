from datetime import date

import pytest

from feedesk.models import EMISplit
from feedesk.services.errors import FeeValidationError, ZeroAmount
from feedesk.services.schedule import build_schedule, split_amount, validate_split_config


def splits(*pairs):
    return [EMISplit(percent=p, due_days_from_start=d) for p, d in pairs]


def test_three_way_split():
    rows = build_schedule(8100, date(2024, 4, 1), splits((40, 0), (30, 30), (30, 60)))
    assert [r.amount for r in rows] == [3240, 2430, 2430]
    assert [r.due_date for r in rows] == [date(2024, 4, 1), date(2024, 5, 1), date(2024, 5, 31)]
    assert [r.installment_number for r in rows] == [1, 2, 3]


def test_last_installment_absorbs_remainder():
    amounts = split_amount(1000, [33.33, 33.33, 33.34])
    assert amounts == [333, 333, 334]
    assert sum(amounts) == 1000


@pytest.mark.parametrize("net", [4, 7, 101, 9999, 123457])
def test_amounts_always_sum_to_net(net):
    rows = build_schedule(net, date(2024, 1, 1), splits((25, 0), (25, 90), (25, 180), (25, 270)))
    assert sum(r.amount for r in rows) == net
    assert all(r.amount > 0 for r in rows)


def test_single_installment_gets_everything():
    rows = build_schedule(8100, date(2024, 4, 1), splits((100, 0)))
    assert len(rows) == 1
    assert rows[0].amount == 8100
    assert rows[0].due_date == date(2024, 4, 1)


def test_zero_net_amount():
    with pytest.raises(ZeroAmount):
        build_schedule(0, date(2024, 4, 1), splits((100, 0)))


def test_amount_too_small_to_split():
    with pytest.raises(FeeValidationError):
        build_schedule(2, date(2024, 4, 1), splits((25, 0), (25, 90), (25, 180), (25, 270)))


def test_rounding_that_empties_the_last_installment_names_it():
    # Five 15% slices round up to 2 each, leaving 0 for the last.
    assert split_amount(10, [15, 15, 15, 15, 15, 25]) == [2, 2, 2, 2, 2, 0]
    with pytest.raises(FeeValidationError, match="Installment 6 would be 0"):
        build_schedule(10, date(2024, 4, 1), splits((15, 0), (15, 30), (15, 60), (15, 90), (15, 120), (25, 150)))


def test_percentages_must_sum_to_100():
    with pytest.raises(FeeValidationError):
        validate_split_config(splits((50, 0), (40, 30)))


def test_percentage_tolerance():
    assert validate_split_config(splits((33.33, 0), (33.33, 30), (33.33, 60))) == 3


def test_due_days_must_not_decrease():
    with pytest.raises(FeeValidationError):
        validate_split_config(splits((50, 30), (50, 0)))


def test_installment_count_mismatch():
    with pytest.raises(FeeValidationError):
        validate_split_config(splits((50, 0), (50, 30)), installment_count=3)
