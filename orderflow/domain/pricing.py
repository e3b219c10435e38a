# orderflow/domain/pricing.py
"""
Order/cart totals. Pure functions, no I/O.

Amounts are converted to integer minor units (cents) on the way in, all
arithmetic is done on those, and values are rounded half-up to 2 decimal
places only when the breakdown is produced.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable

from orderflow.domain.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    SHIPPING = "shipping"


@dataclass(frozen=True)
class Discount:
    type: DiscountType
    value: Decimal = ZERO

    @classmethod
    def from_fields(cls, discount_type: str | None, value) -> "Discount | None":
        if not discount_type:
            return None
        try:
            kind = DiscountType(discount_type)
        except ValueError:
            raise ValidationError(f"Unknown discount type: {discount_type}") from None
        return cls(type=kind, value=Decimal(str(value or 0)))


@dataclass(frozen=True)
class PricedLine:
    price: Decimal
    quantity: int


@dataclass(frozen=True)
class PriceBreakdown:
    items_price: Decimal
    discount_price: Decimal
    shipping_price: Decimal
    tax_price: Decimal
    total_price: Decimal

    def as_dict(self) -> dict:
        return {
            "items_price": self.items_price,
            "discount_price": self.discount_price,
            "shipping_price": self.shipping_price,
            "tax_price": self.tax_price,
            "total_price": self.total_price,
        }


def to_minor(amount) -> int:
    value = Decimal(str(amount)) * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _to_major(minor: Decimal | int) -> Decimal:
    rounded = Decimal(minor).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return (rounded / 100).quantize(CENT)


def _discount_minor(discount: Discount | None, subtotal: int) -> Decimal:
    if discount is None or discount.type is DiscountType.SHIPPING:
        return Decimal(0)

    if discount.value < 0:
        raise ValidationError("Discount value cannot be negative")

    if discount.type is DiscountType.PERCENTAGE:
        if discount.value > 100:
            raise ValidationError("Percentage discount cannot exceed 100")
        return Decimal(subtotal) * discount.value / 100

    # fixed, nie wiecej niz subtotal
    return Decimal(min(to_minor(discount.value), subtotal))


def compute_totals(
    lines: Iterable[PricedLine],
    discount: Discount | None = None,
    shipping_price=ZERO,
    tax_rate=ZERO,
) -> PriceBreakdown:
    tax_rate = Decimal(str(tax_rate))
    if tax_rate < 0:
        raise ValidationError("Tax rate cannot be negative")

    subtotal = 0
    for line in lines:
        if line.quantity < 1:
            raise ValidationError("Line quantity must be at least 1")
        subtotal += to_minor(line.price) * line.quantity

    shipping = to_minor(shipping_price or ZERO)
    if shipping < 0:
        raise ValidationError("Shipping price cannot be negative")
    if discount is not None and discount.type is DiscountType.SHIPPING:
        shipping = 0

    discount_amount = _discount_minor(discount, subtotal)
    tax = (Decimal(subtotal) - discount_amount) * tax_rate

    items_price = _to_major(subtotal)
    discount_price = _to_major(discount_amount)
    shipping_out = _to_major(shipping)
    tax_price = _to_major(tax)

    return PriceBreakdown(
        items_price=items_price,
        discount_price=discount_price,
        shipping_price=shipping_out,
        tax_price=tax_price,
        total_price=items_price - discount_price + shipping_out + tax_price,
    )
