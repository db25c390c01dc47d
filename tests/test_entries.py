from decimal import Decimal

import pytest

from quick_ledger.entries import MAX_CENTS, amount_to_cents, to_amount


def test_to_amount_quantizes_and_strips_separators():
    assert to_amount("1,25,000.505") == Decimal("125000.51")
    assert to_amount(12) == Decimal("12.00")


@pytest.mark.parametrize("raw", ["abc", "-5", "NaN", "9" * 30, "1" + "0" * 20])
def test_to_amount_rejects_with_value_error(raw):
    with pytest.raises(ValueError):
        to_amount(raw)


def test_largest_storable_amount_is_accepted():
    largest = Decimal(MAX_CENTS) / 100

    assert amount_to_cents(to_amount(largest)) == MAX_CENTS
