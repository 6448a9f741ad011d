"""
Pricing Engine Tests.

Size tiers, the 20% platform fee and cent-exact splits.
"""

import pytest
from decimal import Decimal

from parcelhop.app.domain.pricing.pricing_engine import price, round_money, SIZE_PRICES
from parcelhop.app.models.parcel_enums import ParcelSize


@pytest.mark.parametrize("size, base, fee, payout", [
    (ParcelSize.SMALL, "3.00", "0.60", "2.40"),
    (ParcelSize.MEDIUM, "4.00", "0.80", "3.20"),
    (ParcelSize.LARGE, "5.50", "1.10", "4.40"),
    (ParcelSize.XLARGE, "7.00", "1.40", "5.60"),
])
def test_price_by_size(size, base, fee, payout):
    result = price(size)

    assert result.base_price == Decimal(base)
    assert result.platform_fee == Decimal(fee)
    assert result.carrier_payout == Decimal(payout)
    assert result.total_price == Decimal(base)


def test_fee_and_payout_always_sum_to_base():
    for size in ParcelSize:
        result = price(size)
        assert result.platform_fee + result.carrier_payout == result.base_price
        assert result.platform_fee.as_tuple().exponent == -2
        assert result.carrier_payout.as_tuple().exponent == -2


def test_price_accepts_enum_value_string():
    assert price("LARGE") == price(ParcelSize.LARGE)


def test_unknown_size_is_rejected():
    with pytest.raises(ValueError):
        price("HUGE")


def test_every_size_has_a_price():
    assert set(SIZE_PRICES) == set(ParcelSize)


def test_round_money_is_half_up():
    assert round_money(Decimal("0.125")) == Decimal("0.13")
    assert round_money(Decimal("0.124")) == Decimal("0.12")
