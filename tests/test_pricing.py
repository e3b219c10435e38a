from decimal import Decimal

import pytest

from orderflow.domain.errors import ValidationError
from orderflow.domain.pricing import Discount, DiscountType, PricedLine, compute_totals, to_minor


def test_totals_with_shipping_and_tax():
    totals = compute_totals(
        [PricedLine(price=Decimal("100"), quantity=2)],
        shipping_price=Decimal("10"),
        tax_rate=Decimal("0.1"),
    )

    assert totals.as_dict() == {
        "items_price": Decimal("200.00"),
        "discount_price": Decimal("0.00"),
        "shipping_price": Decimal("10.00"),
        "tax_price": Decimal("20.00"),
        "total_price": Decimal("230.00"),
    }


def test_empty_cart_is_all_zero():
    totals = compute_totals([])

    assert totals.total_price == Decimal("0.00")
    assert totals.items_price == Decimal("0.00")


def test_percentage_discount_rounds_half_up():
    totals = compute_totals(
        [PricedLine(price=Decimal("33.33"), quantity=3)],
        discount=Discount(DiscountType.PERCENTAGE, Decimal("10")),
    )

    # 99.99 * 10% = 9.999
    assert totals.items_price == Decimal("99.99")
    assert totals.discount_price == Decimal("10.00")
    assert totals.total_price == Decimal("89.99")


def test_tax_is_computed_after_discount():
    totals = compute_totals(
        [PricedLine(price=Decimal("100"), quantity=2)],
        discount=Discount(DiscountType.PERCENTAGE, Decimal("10")),
        tax_rate=Decimal("0.16"),
    )

    assert totals.discount_price == Decimal("20.00")
    assert totals.tax_price == Decimal("28.80")
    assert totals.total_price == Decimal("208.80")


def test_tax_rounds_half_up():
    totals = compute_totals([PricedLine(price=Decimal("1.05"), quantity=1)], tax_rate=Decimal("0.1"))

    assert totals.tax_price == Decimal("0.11")
    assert totals.total_price == Decimal("1.16")


def test_fixed_discount_is_capped_at_subtotal():
    totals = compute_totals(
        [PricedLine(price=Decimal("20"), quantity=1)],
        discount=Discount(DiscountType.FIXED, Decimal("50")),
        shipping_price=Decimal("5"),
    )

    assert totals.discount_price == Decimal("20.00")
    assert totals.total_price == Decimal("5.00")


def test_shipping_coupon_waives_shipping():
    totals = compute_totals(
        [PricedLine(price=Decimal("40"), quantity=1)],
        discount=Discount(DiscountType.SHIPPING),
        shipping_price=Decimal("15"),
    )

    assert totals.shipping_price == Decimal("0.00")
    assert totals.discount_price == Decimal("0.00")
    assert totals.total_price == Decimal("40.00")


def test_total_is_sum_of_rounded_components():
    totals = compute_totals(
        [PricedLine(price=Decimal("19.99"), quantity=3)],
        discount=Discount(DiscountType.PERCENTAGE, Decimal("15")),
        shipping_price=Decimal("4.99"),
        tax_rate=Decimal("0.16"),
    )

    assert totals.total_price == (
        totals.items_price - totals.discount_price + totals.shipping_price + totals.tax_price
    )


@pytest.mark.parametrize("value", ["100.01", "-5"])
def test_invalid_percentage_is_rejected(value):
    with pytest.raises(ValidationError):
        compute_totals(
            [PricedLine(price=Decimal("10"), quantity=1)],
            discount=Discount(DiscountType.PERCENTAGE, Decimal(value)),
        )


def test_zero_quantity_line_is_rejected():
    with pytest.raises(ValidationError):
        compute_totals([PricedLine(price=Decimal("10"), quantity=0)])


def test_discount_from_fields():
    assert Discount.from_fields(None, None) is None
    assert Discount.from_fields("fixed", "5") == Discount(DiscountType.FIXED, Decimal("5"))

    with pytest.raises(ValidationError):
        Discount.from_fields("bogo", "1")


def test_to_minor_rounds_half_up():
    assert to_minor("0.125") == 13
    assert to_minor(Decimal("10")) == 1000
