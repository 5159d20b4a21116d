"""Token purchase pricing.

Tokens cost a flat USD rate per 100 with volume discounts. All money math
is Decimal and rounded to cents with ROUND_HALF_UP.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from app.core.config import settings

_CENT = Decimal("0.01")
_RATE_QUANTUM = Decimal("0.0001")
_HUNDRED = Decimal(100)


@dataclass(frozen=True)
class DiscountTier:
    """Volume discount applied from min_tokens upward."""

    min_tokens: int
    percent_off: int


# Sorted ascending by min_tokens; the highest tier reached applies.
DISCOUNT_TIERS: tuple[DiscountTier, ...] = (
    DiscountTier(min_tokens=2000, percent_off=10),
    DiscountTier(min_tokens=3000, percent_off=15),
)


@dataclass(frozen=True)
class TokenPriceBreakdown:
    """Price quote for a token purchase.

    Attributes:
        tokens: Token amount quoted (floored, never negative).
        base_cost: Cost before discount.
        final_cost: Cost after discount.
        discount_percent: Percent off applied (0 when no tier reached).
        discount_amount: base_cost - final_cost.
        usd_per_100: List price per 100 tokens.
        effective_usd_per_100: Price per 100 tokens after discount.
        tier: Discount tier applied, if any.
    """

    tokens: int
    base_cost: Decimal
    final_cost: Decimal
    discount_percent: int
    discount_amount: Decimal
    usd_per_100: Decimal
    effective_usd_per_100: Decimal
    tier: DiscountTier | None


def get_discount_tier(token_amount: int) -> DiscountTier | None:
    """Return the highest discount tier reached by token_amount."""
    selected = None
    for tier in DISCOUNT_TIERS:
        if token_amount < tier.min_tokens:
            break
        selected = tier
    return selected


def calculate_token_price(
    token_amount: int, usd_per_100: Decimal | None = None
) -> TokenPriceBreakdown:
    """Quote the price of buying token_amount tokens.

    Args:
        token_amount: Tokens to buy. Negative values quote as 0.
        usd_per_100: List price override. Defaults to settings.token_usd_per_100.

    Returns:
        TokenPriceBreakdown with cent-rounded amounts.
    """
    rate = (
        usd_per_100
        if usd_per_100 is not None
        else Decimal(str(settings.token_usd_per_100))
    )
    tokens = max(0, int(token_amount))
    tier = get_discount_tier(tokens)
    discount_percent = tier.percent_off if tier else 0

    base_cost_raw = Decimal(tokens) * rate / _HUNDRED
    final_cost = (base_cost_raw * (_HUNDRED - discount_percent) / _HUNDRED).quantize(
        _CENT, rounding=ROUND_HALF_UP
    )
    base_cost = base_cost_raw.quantize(_CENT, rounding=ROUND_HALF_UP)

    if tokens == 0:
        effective = rate
    else:
        effective = (final_cost / tokens * _HUNDRED).quantize(
            _RATE_QUANTUM, rounding=ROUND_HALF_UP
        )

    return TokenPriceBreakdown(
        tokens=tokens,
        base_cost=base_cost,
        final_cost=final_cost,
        discount_percent=discount_percent,
        discount_amount=base_cost - final_cost,
        usd_per_100=rate,
        effective_usd_per_100=effective,
        tier=tier,
    )
