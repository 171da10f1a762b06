"""Collaborator interfaces consumed by order composition and credit generation.

The composition engine only sees the three protocols below. The ``Sql*``
classes are the implementations backed by this service's own tables; tests
and other callers may pass any object with the same methods.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Protocol, runtime_checkable

from sqlalchemy import or_
from sqlalchemy.orm import Session

from cylinderops.config import Settings, get_settings
from cylinderops.models import CylinderDepositRate, PriceListItem, Product
from cylinderops.pricing.deposits import nearest_capacity_tier
from cylinderops.utils import quantize_money, to_decimal


@dataclass(frozen=True)
class PriceQuote:
    final_price: Decimal
    price_excluding_tax: Decimal
    tax_amount: Decimal
    price_including_tax: Decimal
    tax_rate: Decimal


@dataclass(frozen=True)
class DepositQuote:
    deposit_amount: Decimal
    currency: str
    capacity: Decimal


@dataclass(frozen=True)
class ProductInfo:
    id: int
    sku_variant: str
    product_type: str
    capacity: Optional[Decimal]
    status: str
    name: Optional[str] = None


@runtime_checkable
class PriceResolver(Protocol):
    def get_price(self, product_id: int, customer_id: Optional[int] = None) -> Optional[PriceQuote]:
        """Return the price for the product, or ``None`` when none is configured."""
        ...


@runtime_checkable
class DepositRateResolver(Protocol):
    def get_rate(self, capacity: Decimal) -> Optional[DepositQuote]:
        """Return the deposit for the nearest configured capacity tier, or ``None``."""
        ...


@runtime_checkable
class ProductCatalog(Protocol):
    def get(self, product_id: int) -> Optional[ProductInfo]:
        ...


@dataclass(frozen=True)
class PricingCollaborators:
    prices: PriceResolver
    deposits: DepositRateResolver
    catalog: ProductCatalog


def build_price_quote(price_excluding_tax: Decimal, tax_rate: Decimal) -> PriceQuote:
    excl = quantize_money(price_excluding_tax)
    tax_amount = quantize_money(excl * tax_rate)
    return PriceQuote(
        final_price=excl,
        price_excluding_tax=excl,
        tax_amount=tax_amount,
        price_including_tax=excl + tax_amount,
        tax_rate=tax_rate,
    )


class SqlPriceResolver:
    """Customer-specific price rows win over the default (customer-less) row."""

    def __init__(self, db: Session, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()

    def get_price(self, product_id: int, customer_id: Optional[int] = None) -> Optional[PriceQuote]:
        query = self.db.query(PriceListItem).filter(
            PriceListItem.product_id == product_id,
            PriceListItem.is_active.is_(True),
        )
        row = None
        if customer_id is not None:
            row = query.filter(PriceListItem.customer_id == customer_id).order_by(PriceListItem.id.desc()).first()
        if row is None:
            row = query.filter(PriceListItem.customer_id.is_(None)).order_by(PriceListItem.id.desc()).first()
        if row is None:
            return None

        tax_rate = row.tax_rate
        if tax_rate is None:
            product = self.db.get(Product, product_id)
            tax_rate = product.tax_rate if product is not None else None
        if tax_rate is None:
            tax_rate = self.settings.default_tax_rate
        return build_price_quote(to_decimal(row.unit_price), to_decimal(tax_rate))


class SqlDepositRateResolver:
    def __init__(self, db: Session, settings: Settings | None = None, as_of: date | None = None):
        self.db = db
        self.settings = settings or get_settings()
        self.as_of = as_of

    def get_rate(self, capacity: Decimal) -> Optional[DepositQuote]:
        as_of = self.as_of or date.today()
        rows = (
            self.db.query(CylinderDepositRate)
            .filter(
                CylinderDepositRate.is_active.is_(True),
                CylinderDepositRate.currency_code == self.settings.currency_code,
                CylinderDepositRate.effective_date <= as_of,
                or_(CylinderDepositRate.end_date.is_(None), CylinderDepositRate.end_date >= as_of),
            )
            # Latest effective rate first so it wins within a tier.
            .order_by(CylinderDepositRate.effective_date.desc(), CylinderDepositRate.id.desc())
            .all()
        )
        tiers: dict[Decimal, Decimal] = {}
        for row in rows:
            tiers.setdefault(to_decimal(row.capacity), to_decimal(row.deposit_amount))

        tier = nearest_capacity_tier(tiers, to_decimal(capacity))
        if tier is None:
            return None
        return DepositQuote(deposit_amount=tiers[tier], currency=self.settings.currency_code, capacity=tier)


class SqlProductCatalog:
    def __init__(self, db: Session):
        self.db = db

    def get(self, product_id: int) -> Optional[ProductInfo]:
        product = self.db.get(Product, product_id)
        if product is None:
            return None
        return ProductInfo(
            id=product.id,
            sku_variant=product.sku_variant,
            product_type=product.product_type,
            capacity=to_decimal(product.capacity) if product.capacity is not None else None,
            status=product.status,
            name=product.name,
        )


def build_sql_collaborators(db: Session, settings: Settings | None = None) -> PricingCollaborators:
    settings = settings or get_settings()
    return PricingCollaborators(
        prices=SqlPriceResolver(db, settings),
        deposits=SqlDepositRateResolver(db, settings),
        catalog=SqlProductCatalog(db),
    )
