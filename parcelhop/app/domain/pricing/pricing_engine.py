"""
Pricing Engine.

Maps a parcel size to its price split between platform and carrier.
Pure and deterministic; money is Decimal rounded half-up to cents after
every multiplicative step so that fee + payout always equals the base.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from parcelhop.app.models.parcel_enums import ParcelSize


CENT = Decimal("0.01")

PLATFORM_FEE_RATE = Decimal("0.20")

SIZE_PRICES = {
    ParcelSize.SMALL: Decimal("3.00"),
    ParcelSize.MEDIUM: Decimal("4.00"),
    ParcelSize.LARGE: Decimal("5.50"),
    ParcelSize.XLARGE: Decimal("7.00"),
}


@dataclass(frozen=True)
class PricingResult:
    base_price: Decimal
    platform_fee: Decimal
    carrier_payout: Decimal
    total_price: Decimal


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def price(size: Union[ParcelSize, str]) -> PricingResult:
    """
    Price a parcel by size.

    Args:
        size: ParcelSize (or its string value, validated upstream)

    Returns:
        PricingResult with base price, platform fee (20%), carrier payout and total
    """
    base_price = SIZE_PRICES[ParcelSize(size)]
    platform_fee = round_money(base_price * PLATFORM_FEE_RATE)
    carrier_payout = round_money(base_price - platform_fee)

    return PricingResult(
        base_price=base_price,
        platform_fee=platform_fee,
        carrier_payout=carrier_payout,
        total_price=base_price,
    )
