from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from cylinderops.enums import ProductType
from cylinderops.errors import StockValidationError
from cylinderops.pricing.resolvers import PriceQuote, ProductInfo
from cylinderops.utils import quantize_money


FULL_FILL = 100


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int
    fill_percentage: int
    base_gas_price: Decimal
    gas_price_excl_tax: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    gas_price_incl_tax: Decimal
    deposit_amount: Decimal
    is_partial_fill: bool
    sku_variant: str
    product_type: str
    capacity: Optional[Decimal] = None
    fill_notes: Optional[str] = None

    @property
    def line_subtotal(self) -> Decimal:
        return (self.gas_price_excl_tax + self.tax_amount + self.deposit_amount) * self.quantity


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax_total: Decimal
    deposit_total: Decimal
    grand_total: Decimal


def validate_fill_percentage(fill_percentage: int, product: ProductInfo) -> int:
    if fill_percentage < 1 or fill_percentage > FULL_FILL:
        raise StockValidationError(f"Fill percentage must be between 1 and 100, got {fill_percentage}.")
    if fill_percentage < FULL_FILL and product.product_type != ProductType.CYLINDER.value:
        raise StockValidationError(f"Product {product.id} is not refillable and cannot be partially filled.")
    return fill_percentage


def effective_gas_price(base_price: Decimal, fill_percentage: int) -> Decimal:
    if fill_percentage >= FULL_FILL:
        return quantize_money(base_price)
    return quantize_money(base_price * Decimal(fill_percentage) / Decimal(FULL_FILL))


def price_order_line(
    *,
    product: ProductInfo,
    quantity: int,
    fill_percentage: int,
    price: PriceQuote,
    deposit_amount: Decimal,
    fill_notes: Optional[str] = None,
) -> OrderLine:
    # Deposit secures the cylinder itself and is never pro-rated by fill.
    gas_price = effective_gas_price(price.price_excluding_tax, fill_percentage)
    tax_amount = quantize_money(gas_price * price.tax_rate)
    return OrderLine(
        product_id=product.id,
        quantity=quantity,
        fill_percentage=fill_percentage,
        base_gas_price=price.price_excluding_tax,
        gas_price_excl_tax=gas_price,
        tax_rate=price.tax_rate,
        tax_amount=tax_amount,
        gas_price_incl_tax=gas_price + tax_amount,
        deposit_amount=quantize_money(deposit_amount),
        is_partial_fill=fill_percentage < FULL_FILL,
        sku_variant=product.sku_variant,
        product_type=product.product_type,
        capacity=product.capacity,
        fill_notes=fill_notes,
    )


def calculate_order_totals(lines: Iterable[OrderLine]) -> OrderTotals:
    subtotal = Decimal("0.00")
    tax_total = Decimal("0.00")
    deposit_total = Decimal("0.00")
    for line in lines:
        subtotal += line.gas_price_excl_tax * line.quantity
        tax_total += line.tax_amount * line.quantity
        deposit_total += line.deposit_amount * line.quantity
    return OrderTotals(
        subtotal=quantize_money(subtotal),
        tax_total=quantize_money(tax_total),
        deposit_total=quantize_money(deposit_total),
        grand_total=quantize_money(subtotal + tax_total + deposit_total),
    )
