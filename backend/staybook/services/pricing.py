"""Stay price calculation.

All amounts are integers in minor currency units. Percentages are applied with
half-up rounding to whole cents, so repeated calls always agree to the cent.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping, Optional

from staybook.core.config import Settings
from staybook.core.errors import ValidationError
from staybook.schemas.booking import NightlyRate, PriceBreakdown


@dataclass(frozen=True)
class FeePolicy:
    """Pluggable fee percentages (0-100)."""

    service_fee_percent: Decimal = Decimal("10")
    tax_rate_percent: Decimal = Decimal("8")
    platform_fee_percent: Decimal = Decimal("10")

    @classmethod
    def from_settings(cls, settings: Settings) -> "FeePolicy":
        return cls(
            service_fee_percent=settings.service_fee_percent,
            tax_rate_percent=settings.tax_rate_percent,
            platform_fee_percent=settings.platform_fee_percent,
        )

    def service_fee(self, subtotal: int) -> int:
        return percent_of(subtotal, self.service_fee_percent)

    def taxes(self, subtotal: int) -> int:
        return percent_of(subtotal, self.tax_rate_percent)

    def platform_fee(self, subtotal: int) -> int:
        return percent_of(subtotal, self.platform_fee_percent)


def percent_of(amount: int, percent: Decimal) -> int:
    """``amount * percent / 100`` rounded half-up to an integer."""
    value = (Decimal(amount) * Decimal(percent) / Decimal(100)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(value)


def calculate_price(
    check_in: date,
    check_out: date,
    base_price: int,
    cleaning_fee: int,
    overrides_by_date: Optional[Mapping[date, int]] = None,
    policy: Optional[FeePolicy] = None,
    currency: str = "USD",
) -> PriceBreakdown:
    """Price a stay of nights ``[check_in, check_out)``.

    Each night costs its override price if one exists, else ``base_price``.
    Service fee and taxes are percentages of the subtotal.
    """
    if check_out <= check_in:
        raise ValidationError("check_out must be after check_in")
    if base_price < 0 or cleaning_fee < 0:
        raise ValidationError("Prices cannot be negative")

    overrides = overrides_by_date or {}
    policy = policy or FeePolicy()

    nightly_rates = []
    night = check_in
    while night < check_out:
        price = overrides.get(night, base_price)
        nightly_rates.append(NightlyRate(night=night, price=price))
        night += timedelta(days=1)

    subtotal = sum(rate.price for rate in nightly_rates)
    service_fee = policy.service_fee(subtotal)
    taxes = policy.taxes(subtotal)

    return PriceBreakdown(
        nights=len(nightly_rates),
        subtotal=subtotal,
        cleaning_fee=cleaning_fee,
        service_fee=service_fee,
        taxes=taxes,
        total=subtotal + cleaning_fee + service_fee + taxes,
        currency=currency,
        nightly_rates=nightly_rates,
    )
