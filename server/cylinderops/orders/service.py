from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import uuid4
import logging

from sqlalchemy.orm import Session

from cylinderops.config import Settings, get_settings
from cylinderops.enums import ACTIVE_PRODUCT_STATUSES, OrderFlowType, OrderKind, ProductType, SkuVariant
from cylinderops.errors import (
    CylinderOpsError,
    EmptyOrderError,
    InsufficientStockError,
    InvalidProductError,
    PricingUnavailableError,
    StockValidationError,
)
from cylinderops.inventory import ledger
from cylinderops.inventory.movements import fulfill_reservation, release_reservation, reserve_stock
from cylinderops.orders.calculations import (
    FULL_FILL,
    OrderLine,
    OrderTotals,
    calculate_order_totals,
    price_order_line,
    validate_fill_percentage,
)
from cylinderops.pricing.deposits import resolve_deposit_amount
from cylinderops.pricing.resolvers import PricingCollaborators, ProductCatalog, ProductInfo


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestedLine:
    product_id: int
    quantity: int
    fill_percentage: int = FULL_FILL
    fill_notes: Optional[str] = None


@dataclass(frozen=True)
class OrderComposition:
    reference: str
    customer_id: int
    warehouse_id: int
    order_kind: OrderKind
    flow_type: OrderFlowType
    lines: tuple[OrderLine, ...]
    totals: OrderTotals
    created_at: datetime

    def reserved_quantities(self) -> dict[int, int]:
        return _quantities_by_product(self.lines)


def _quantities_by_product(lines: Iterable) -> dict[int, int]:
    quantities: dict[int, int] = {}
    for line in lines:
        quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity
    return quantities


def _whole_number(value) -> int:
    # Fractional input is rejected, never truncated.
    if isinstance(value, bool):
        raise TypeError(f"Expected a whole number, got {value!r}")
    number = int(value)
    if not isinstance(value, str) and number != value:
        raise ValueError(f"Expected a whole number, got {value!r}")
    return number


def _parse_line(raw: dict) -> RequestedLine:
    try:
        product_id = _whole_number(raw["product_id"])
        quantity = _whole_number(raw["quantity"])
    except (KeyError, TypeError, ValueError, ArithmeticError):
        raise StockValidationError("Each line needs a product_id and an integer quantity.")
    if quantity <= 0:
        raise StockValidationError(f"Quantity for product {product_id} must be greater than zero.")

    fill_percentage = raw.get("fill_percentage")
    try:
        fill_percentage = FULL_FILL if fill_percentage is None else _whole_number(fill_percentage)
    except (TypeError, ValueError, ArithmeticError):
        raise StockValidationError(
            f"Fill percentage for product {product_id} must be a whole number, got {fill_percentage!r}."
        )
    fill_notes = (raw.get("fill_notes") or "").strip() or None
    return RequestedLine(product_id, quantity, fill_percentage, fill_notes)


def load_sellable_product(catalog: ProductCatalog, product_id: int) -> ProductInfo:
    product = catalog.get(product_id)
    if product is None:
        raise InvalidProductError(product_id, "unknown product")
    if product.sku_variant == SkuVariant.EMPTY.value:
        raise InvalidProductError(product_id, "empty cylinders are not sellable")
    if product.status not in ACTIVE_PRODUCT_STATUSES:
        raise InvalidProductError(product_id, f"product status is {product.status}")
    return product


def determine_flow_type(products: Iterable[ProductInfo], explicit: OrderFlowType | str | None = None) -> OrderFlowType:
    """Exchange wins over outright; accessories never count."""
    if explicit:
        try:
            return OrderFlowType(explicit)
        except ValueError:
            raise StockValidationError(f"Unknown order flow type: {explicit}")

    variants = {
        product.sku_variant
        for product in products
        if product.product_type == ProductType.CYLINDER.value
    }
    if SkuVariant.FULL_XCH.value in variants:
        return OrderFlowType.EXCHANGE
    if SkuVariant.FULL_OUT.value in variants:
        return OrderFlowType.OUTRIGHT
    return OrderFlowType.NONE


def _check_availability(db: Session, warehouse_id: int, quantities: dict[int, int]) -> None:
    locked = ledger.lock_balances(db, [(product_id, warehouse_id) for product_id in quantities])
    for product_id, quantity in quantities.items():
        balance = locked[(product_id, warehouse_id)]
        available = balance.available if balance is not None else 0
        if quantity > available:
            raise InsufficientStockError(
                product_id=product_id,
                warehouse_id=warehouse_id,
                requested=quantity,
                available=available,
            )


def _reserve_all(db: Session, warehouse_id: int, quantities: dict[int, int], reference: str) -> None:
    reserved: list[tuple[int, int]] = []
    try:
        for product_id, quantity in sorted(quantities.items()):
            reserve_stock(
                db,
                product_id=product_id,
                warehouse_id=warehouse_id,
                quantity=quantity,
                reference_id=reference,
            )
            reserved.append((product_id, quantity))
    except CylinderOpsError:
        for product_id, quantity in reversed(reserved):
            release_reservation(
                db,
                product_id=product_id,
                warehouse_id=warehouse_id,
                quantity=quantity,
                reference_id=reference,
                reason="Rolled back: order composition failed",
            )
        raise


def compose_order(
    db: Session,
    payload: dict,
    *,
    collaborators: PricingCollaborators,
    settings: Settings | None = None,
    created_at: datetime | None = None,
) -> OrderComposition:
    """Price, availability-check and reserve an order in one all-or-nothing step.

    ``payload`` carries ``customer_id``, ``warehouse_id``, ``lines`` (each with
    ``product_id``, ``quantity`` and optional ``fill_percentage`` /
    ``fill_notes``) and optionally ``flow_type``, ``order_kind`` and
    ``reference``. Nothing is reserved unless every line succeeds.
    """
    settings = settings or get_settings()
    customer_id = payload["customer_id"]
    warehouse_id = payload["warehouse_id"]
    requested_flow = payload.get("flow_type")
    reference = payload.get("reference") or uuid4().hex
    created_at = created_at or datetime.utcnow()
    try:
        order_kind = OrderKind(payload.get("order_kind") or OrderKind.DELIVERY.value)
    except ValueError:
        raise StockValidationError(f"Unknown order kind: {payload.get('order_kind')}")

    if order_kind is OrderKind.VISIT:
        flow_type = determine_flow_type([], explicit=requested_flow)
        logger.info("Visit order %s composed for customer %s with no lines", reference, customer_id)
        return OrderComposition(
            reference=reference,
            customer_id=customer_id,
            warehouse_id=warehouse_id,
            order_kind=order_kind,
            flow_type=flow_type,
            lines=(),
            totals=calculate_order_totals([]),
            created_at=created_at,
        )

    requested = [_parse_line(raw) for raw in payload.get("lines") or []]
    if not requested:
        raise EmptyOrderError("An order must contain at least one line.")

    products = {line.product_id: load_sellable_product(collaborators.catalog, line.product_id) for line in requested}
    for line in requested:
        validate_fill_percentage(line.fill_percentage, products[line.product_id])
    flow_type = determine_flow_type(products.values(), explicit=requested_flow)

    quantities = _quantities_by_product(requested)
    _check_availability(db, warehouse_id, quantities)

    lines: list[OrderLine] = []
    for line in requested:
        product = products[line.product_id]
        price = collaborators.prices.get_price(line.product_id, customer_id)
        if price is None:
            raise PricingUnavailableError(line.product_id, customer_id)
        deposit_amount = Decimal("0")
        if product.product_type == ProductType.CYLINDER.value:
            deposit_amount = resolve_deposit_amount(collaborators.deposits, product.capacity, settings)
        lines.append(
            price_order_line(
                product=product,
                quantity=line.quantity,
                fill_percentage=line.fill_percentage,
                price=price,
                deposit_amount=deposit_amount,
                fill_notes=line.fill_notes,
            )
        )

    totals = calculate_order_totals(lines)
    _reserve_all(db, warehouse_id, quantities, reference)
    logger.info(
        "Order %s composed: customer_id=%s warehouse_id=%s flow=%s lines=%s grand_total=%s",
        reference,
        customer_id,
        warehouse_id,
        flow_type.value,
        len(lines),
        totals.grand_total,
    )
    return OrderComposition(
        reference=reference,
        customer_id=customer_id,
        warehouse_id=warehouse_id,
        order_kind=order_kind,
        flow_type=flow_type,
        lines=tuple(lines),
        totals=totals,
        created_at=created_at,
    )


def _check_reserved(db: Session, warehouse_id: int, quantities: dict[int, int]) -> None:
    locked = ledger.lock_balances(db, [(product_id, warehouse_id) for product_id in quantities])
    for product_id, quantity in quantities.items():
        balance = locked[(product_id, warehouse_id)]
        reserved = int(balance.qty_reserved or 0) if balance is not None else 0
        if quantity <= 0 or quantity > reserved:
            raise StockValidationError(
                f"Cannot settle {quantity} units of product {product_id}: {reserved} reserved at warehouse {warehouse_id}."
            )


def release_order(db: Session, *, warehouse_id: int, quantities: dict[int, int], reference: Optional[str] = None) -> None:
    """Release an order's reservations, e.g. when it is cancelled."""
    _check_reserved(db, warehouse_id, quantities)
    for product_id, quantity in sorted(quantities.items()):
        release_reservation(
            db,
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            reference_id=reference,
            reason="Order cancelled",
        )


def fulfill_order(db: Session, *, warehouse_id: int, quantities: dict[int, int], reference: Optional[str] = None) -> None:
    _check_reserved(db, warehouse_id, quantities)
    for product_id, quantity in sorted(quantities.items()):
        fulfill_reservation(
            db,
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            reference_id=reference,
        )
