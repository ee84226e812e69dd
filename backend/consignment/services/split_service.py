"""
Commission split calculation.

provider_amount = round_half_even(sale_price * split / 100) to the cent
shop_amount     = sale_price - provider_amount

The shop absorbs the rounding remainder, so the two amounts always add
back to the sale price exactly. Amounts are integer cents.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_EVEN

from ..validation import ValidationError, parse_percentage


@dataclass(frozen=True)
class SplitResult:
    sale_price_cents: int
    split_percentage: Decimal
    provider_amount_cents: int
    shop_amount_cents: int

    def to_dict(self) -> dict:
        return {
            "sale_price_cents": self.sale_price_cents,
            "split_percentage": str(self.split_percentage),
            "provider_amount_cents": self.provider_amount_cents,
            "shop_amount_cents": self.shop_amount_cents,
        }


def calculate_split(sale_price_cents: int, split_percentage) -> SplitResult:
    """Pure function; rejects negative prices and splits outside [0, 100]."""
    if isinstance(sale_price_cents, bool) or not isinstance(sale_price_cents, int):
        raise ValidationError("sale_price_cents must be an integer")
    if sale_price_cents < 0:
        raise ValidationError("sale_price_cents must be >= 0")

    pct = parse_percentage(split_percentage, "split_percentage")

    provider_amount = (Decimal(sale_price_cents) * pct / Decimal(100)).quantize(
        Decimal("1"), rounding=ROUND_HALF_EVEN
    )
    provider_amount_cents = int(provider_amount)

    return SplitResult(
        sale_price_cents=sale_price_cents,
        split_percentage=pct,
        provider_amount_cents=provider_amount_cents,
        shop_amount_cents=sale_price_cents - provider_amount_cents,
    )


def effective_split_percentage(item) -> Decimal:
    """Item override if set, else the provider's commission rate."""
    if item.override_split_percentage is not None:
        return Decimal(item.override_split_percentage)
    return Decimal(item.provider.commission_rate)
