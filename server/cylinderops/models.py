from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .db import Base


BALANCE_BUCKETS = (
    "qty_full",
    "qty_empty",
    "qty_reserved",
    "qty_quarantine",
    "qty_damaged",
    "qty_in_transit",
    "qty_under_maintenance",
)


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Warehouse(Base):
    __tablename__ = "warehouses"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    code = Column(String(50), nullable=True, unique=True)
    is_mobile = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    sku = Column(String(100), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    sku_variant = Column(String(20), nullable=False, default="OTHER")
    product_type = Column(
        Enum("cylinder", "accessory", name="product_type"),
        nullable=False,
        default="cylinder",
    )
    capacity = Column(Numeric(8, 2), nullable=True)
    tax_rate = Column(Numeric(5, 4), nullable=True)
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class PriceListItem(Base):
    __tablename__ = "price_list_items"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    unit_price = Column(Numeric(14, 2), nullable=False)
    tax_rate = Column(Numeric(5, 4), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    product = relationship("Product")
    customer = relationship("Customer")


class CylinderDepositRate(Base):
    __tablename__ = "cylinder_deposit_rates"

    id = Column(Integer, primary_key=True)
    capacity = Column(Numeric(8, 2), nullable=False)
    deposit_amount = Column(Numeric(14, 2), nullable=False)
    currency_code = Column(String(3), nullable=False, default="KES")
    is_active = Column(Boolean, default=True, nullable=False)
    effective_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_deposit_rate_capacity_positive"),
        CheckConstraint("deposit_amount >= 0", name="ck_deposit_rate_amount_non_negative"),
    )


class InventoryBalance(Base):
    __tablename__ = "inventory_balances"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)
    qty_full = Column(Integer, nullable=False, default=0)
    qty_empty = Column(Integer, nullable=False, default=0)
    qty_reserved = Column(Integer, nullable=False, default=0)
    qty_quarantine = Column(Integer, nullable=False, default=0)
    qty_damaged = Column(Integer, nullable=False, default=0)
    qty_in_transit = Column(Integer, nullable=False, default=0)
    qty_under_maintenance = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    product = relationship("Product")
    warehouse = relationship("Warehouse")

    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", name="uq_inventory_balance_product_warehouse"),
        CheckConstraint(
            "qty_full >= 0 AND qty_empty >= 0 AND qty_reserved >= 0 AND qty_quarantine >= 0 "
            "AND qty_damaged >= 0 AND qty_in_transit >= 0 AND qty_under_maintenance >= 0",
            name="ck_inventory_balance_non_negative",
        ),
        CheckConstraint("qty_reserved <= qty_full", name="ck_inventory_balance_reserved_within_full"),
    )

    @property
    def on_hand(self) -> int:
        return (self.qty_full or 0) + (self.qty_empty or 0)

    @property
    def available(self) -> int:
        return max(0, (self.qty_full or 0) - (self.qty_reserved or 0))


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)
    movement_type = Column(String(30), nullable=False)
    qty_full_change = Column(Integer, nullable=False, default=0)
    qty_empty_change = Column(Integer, nullable=False, default=0)
    reason = Column(Text, nullable=True)
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class EmptyReturnCredit(Base):
    __tablename__ = "empty_return_credits"

    id = Column(Integer, primary_key=True)
    order_reference = Column(String(64), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    quantity_remaining = Column(Integer, nullable=False)
    capacity = Column(Numeric(8, 2), nullable=True)
    unit_credit_amount = Column(Numeric(14, 2), nullable=False)
    credit_value = Column(Numeric(14, 2), nullable=False)
    currency_code = Column(String(3), nullable=False, default="KES")
    status = Column(
        Enum("pending", "returned", "cancelled", "expired", name="empty_return_credit_status"),
        nullable=False,
        default="pending",
    )
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    due_by = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    returned_at = Column(DateTime, nullable=True)
    cancelled_reason = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_empty_return_credit_quantity_positive"),
        CheckConstraint(
            "quantity_remaining >= 0 AND quantity_remaining <= quantity",
            name="ck_empty_return_credit_remaining_within_quantity",
        ),
    )
