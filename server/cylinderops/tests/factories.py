from datetime import date
from decimal import Decimal

from cylinderops.models import (
    Customer,
    CylinderDepositRate,
    InventoryBalance,
    PriceListItem,
    Product,
    Warehouse,
)


def create_customer(db, name="Mama Mboga Kiosk"):
    customer = Customer(name=name, is_active=True)
    db.add(customer)
    db.flush()
    return customer


def create_warehouse(db, name="Nairobi Depot", code=None):
    warehouse = Warehouse(name=name, code=code)
    db.add(warehouse)
    db.flush()
    return warehouse


def create_product(
    db,
    sku,
    *,
    sku_variant="FULL-OUT",
    product_type="cylinder",
    capacity=Decimal("13"),
    status="active",
    tax_rate=None,
):
    product = Product(
        sku=sku,
        name=sku,
        sku_variant=sku_variant,
        product_type=product_type,
        capacity=capacity,
        status=status,
        tax_rate=tax_rate,
    )
    db.add(product)
    db.flush()
    return product


def set_price(db, product, unit_price, *, customer=None, tax_rate=None):
    row = PriceListItem(
        product_id=product.id,
        customer_id=customer.id if customer else None,
        unit_price=Decimal(str(unit_price)),
        tax_rate=tax_rate,
        is_active=True,
    )
    db.add(row)
    db.flush()
    return row


def add_deposit_rate(db, capacity, amount, *, effective_date=date(2024, 1, 1), end_date=None, is_active=True):
    rate = CylinderDepositRate(
        capacity=Decimal(str(capacity)),
        deposit_amount=Decimal(str(amount)),
        currency_code="KES",
        is_active=is_active,
        effective_date=effective_date,
        end_date=end_date,
    )
    db.add(rate)
    db.flush()
    return rate


def stock(db, product, warehouse, *, full=0, empty=0, reserved=0, damaged=0):
    balance = InventoryBalance(
        product_id=product.id,
        warehouse_id=warehouse.id,
        qty_full=full,
        qty_empty=empty,
        qty_reserved=reserved,
        qty_quarantine=0,
        qty_damaged=damaged,
        qty_in_transit=0,
        qty_under_maintenance=0,
    )
    db.add(balance)
    db.flush()
    return balance
