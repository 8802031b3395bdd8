"""
Pricing engine — effective unit price of a product after its discount rule.

The storefront display (GET /products) and the reservation service both call
effective_price(); the server-side result is authoritative and any price a
client submits is ignored.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from domain.enums import DiscountType

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_money(value: Any) -> Decimal:
    """Coerce a number (Decimal, int, float, numeric string) to a 2dp Decimal."""
    if value is None:
        return ZERO.quantize(CENT)
    if not isinstance(value, Decimal):
        # str() keeps floats like 0.1 from dragging in binary noise
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_effective_price(
    price: Any,
    *,
    discount_active: bool = False,
    discount_type: str | None = None,
    discount_value: Any = 0,
) -> Decimal:
    """
    Apply an optional discount rule to a base price.

    percentage: price * (1 - value/100)
    fixed:      price - value
    Negative discount values count as zero; the result is clamped to >= 0.
    """
    base = to_money(price)
    if not discount_active or not discount_type:
        return base

    value = max(to_money(discount_value), ZERO)

    if discount_type == DiscountType.PERCENTAGE.value:
        final = base * (Decimal("1") - value / HUNDRED)
    elif discount_type == DiscountType.FIXED.value:
        final = base - value
    else:
        final = base

    return max(to_money(final), ZERO.quantize(CENT))


def effective_price(product) -> Decimal:
    """Effective unit price for a Product row (or anything with the same attributes)."""
    return compute_effective_price(
        product.price,
        discount_active=bool(product.discount_active),
        discount_type=product.discount_type,
        discount_value=product.discount_value,
    )
