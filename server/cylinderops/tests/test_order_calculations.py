from decimal import Decimal

import pytest

from cylinderops.errors import StockValidationError
from cylinderops.orders.calculations import (
    calculate_order_totals,
    effective_gas_price,
    price_order_line,
    validate_fill_percentage,
)
from cylinderops.pricing.resolvers import ProductInfo, build_price_quote


CYLINDER = ProductInfo(id=1, sku_variant="FULL-XCH", product_type="cylinder", capacity=Decimal("13"), status="active")
REGULATOR = ProductInfo(id=2, sku_variant="OTHER", product_type="accessory", capacity=None, status="active")


def test_half_fill_halves_gas_price_but_not_deposit():
    line = price_order_line(
        product=CYLINDER,
        quantity=1,
        fill_percentage=50,
        price=build_price_quote(Decimal("1000"), Decimal("0.16")),
        deposit_amount=Decimal("3500"),
    )

    assert line.gas_price_excl_tax == Decimal("500.00")
    assert line.tax_amount == Decimal("80.00")
    assert line.gas_price_incl_tax == Decimal("580.00")
    assert line.deposit_amount == Decimal("3500.00")
    assert line.is_partial_fill is True
    assert line.base_gas_price == Decimal("1000.00")


def test_full_fill_keeps_base_price():
    line = price_order_line(
        product=CYLINDER,
        quantity=2,
        fill_percentage=100,
        price=build_price_quote(Decimal("2350"), Decimal("0.16")),
        deposit_amount=Decimal("0"),
    )

    assert line.gas_price_excl_tax == Decimal("2350.00")
    assert line.is_partial_fill is False
    assert line.line_subtotal == Decimal("5452.00")


def test_effective_gas_price_rounds_half_up_to_cents():
    assert effective_gas_price(Decimal("999.99"), 33) == Decimal("330.00")
    assert effective_gas_price(Decimal("10.05"), 50) == Decimal("5.03")


@pytest.mark.parametrize("fill", [0, 101, -5])
def test_fill_percentage_out_of_range(fill):
    with pytest.raises(StockValidationError, match="between 1 and 100"):
        validate_fill_percentage(fill, CYLINDER)


def test_accessories_cannot_be_partially_filled():
    with pytest.raises(StockValidationError, match="not refillable"):
        validate_fill_percentage(50, REGULATOR)
    assert validate_fill_percentage(100, REGULATOR) == 100


def test_order_totals_sum_per_unit_amounts_by_quantity():
    price = build_price_quote(Decimal("1000"), Decimal("0.16"))
    lines = [
        price_order_line(product=CYLINDER, quantity=2, fill_percentage=100, price=price, deposit_amount=Decimal("3500")),
        price_order_line(
            product=REGULATOR,
            quantity=1,
            fill_percentage=100,
            price=build_price_quote(Decimal("450"), Decimal("0")),
            deposit_amount=Decimal("0"),
        ),
    ]

    totals = calculate_order_totals(lines)

    assert totals.subtotal == Decimal("2450.00")
    assert totals.tax_total == Decimal("320.00")
    assert totals.deposit_total == Decimal("7000.00")
    assert totals.grand_total == Decimal("9770.00")


def test_empty_totals_are_zero():
    totals = calculate_order_totals([])

    assert totals.grand_total == Decimal("0.00")
