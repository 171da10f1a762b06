from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from uuid import uuid4
import logging

from sqlalchemy.orm import Session

from cylinderops.config import get_settings
from cylinderops.enums import STATE_COLUMNS, AdjustmentType, MovementType, StockState
from cylinderops.errors import CylinderOpsError, InsufficientStockError, StockValidationError
from cylinderops.inventory import ledger
from cylinderops.inventory.ledger import BucketDelta
from cylinderops.models import InventoryBalance, StockMovement


logger = logging.getLogger(__name__)

REFERENCE_ORDER = "order"
REFERENCE_TRANSFER = "transfer"

ADJUSTMENT_MOVEMENT_TYPES = {
    AdjustmentType.RECEIVED_FULL: MovementType.RECEIPT,
    AdjustmentType.RECEIVED_EMPTY: MovementType.RECEIPT,
    AdjustmentType.PHYSICAL_COUNT: MovementType.ADJUSTMENT,
    AdjustmentType.DAMAGE_LOSS: MovementType.DAMAGE,
    AdjustmentType.OTHER: MovementType.ADJUSTMENT,
}


@dataclass(frozen=True)
class TransferResult:
    from_balance: InventoryBalance
    to_balance: InventoryBalance
    reference_id: str


def clamp_quantity(value: int, max_available: int) -> int:
    """Clamp a screen-entered quantity to ``[0, max_available]``.

    Input convenience only. The movement functions below re-check against the
    locked balance and reject instead of clamping.
    """
    upper = max(0, int(max_available))
    return max(0, min(int(value), upper))


def record_movement(
    db: Session,
    *,
    product_id: int,
    warehouse_id: int,
    movement_type: MovementType,
    qty_full_change: int = 0,
    qty_empty_change: int = 0,
    reason: Optional[str] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=movement_type.value,
        qty_full_change=qty_full_change,
        qty_empty_change=qty_empty_change,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    db.add(movement)
    db.flush()
    return movement


def list_movements(
    db: Session,
    *,
    product_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
    limit: int = 100,
) -> list[StockMovement]:
    query = db.query(StockMovement)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if warehouse_id is not None:
        query = query.filter(StockMovement.warehouse_id == warehouse_id)
    return query.order_by(StockMovement.id.desc()).limit(limit).all()


def _require_reason(reason: Optional[str]) -> str:
    cleaned = (reason or "").strip()
    if not cleaned:
        raise StockValidationError("A reason is required.")
    return cleaned


def _require_positive(name: str, value: int) -> int:
    if value <= 0:
        raise StockValidationError(f"{name} must be greater than zero.")
    return value


def _current(balance: InventoryBalance | None, bucket: str) -> int:
    return int(getattr(balance, bucket) or 0) if balance is not None else 0


def adjust(
    db: Session,
    *,
    product_id: int,
    warehouse_id: int,
    adjustment_type: AdjustmentType | str,
    qty_full_change: int = 0,
    qty_empty_change: int = 0,
    reason: Optional[str] = None,
) -> InventoryBalance:
    reason = _require_reason(reason)
    try:
        adjustment = AdjustmentType(adjustment_type)
    except ValueError:
        raise StockValidationError(f"Unknown adjustment type: {adjustment_type}")
    if qty_full_change == 0 and qty_empty_change == 0:
        raise StockValidationError("An adjustment must change at least one quantity.")

    damaged = 0
    if adjustment is AdjustmentType.DAMAGE_LOSS:
        if qty_full_change > 0 or qty_empty_change > 0:
            raise StockValidationError("Damage/loss adjustments can only decrease stock.")
        damaged = -(qty_full_change + qty_empty_change)

    balance = ledger.lock_balance(db, product_id, warehouse_id)
    new_full = _current(balance, "qty_full") + qty_full_change
    new_empty = _current(balance, "qty_empty") + qty_empty_change
    if new_full < 0 or new_empty < 0:
        raise StockValidationError(
            f"Adjustment would leave negative stock (full {new_full}, empty {new_empty})."
        )

    balance = ledger.apply(
        db,
        BucketDelta(
            product_id,
            warehouse_id,
            qty_full=qty_full_change,
            qty_empty=qty_empty_change,
            qty_damaged=damaged,
        ),
    )
    record_movement(
        db,
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=ADJUSTMENT_MOVEMENT_TYPES[adjustment],
        qty_full_change=qty_full_change,
        qty_empty_change=qty_empty_change,
        reason=f"{adjustment.value}: {reason}",
    )
    logger.info(
        "Stock adjusted: product_id=%s warehouse_id=%s type=%s full=%+d empty=%+d damaged=%+d",
        product_id,
        warehouse_id,
        adjustment.value,
        qty_full_change,
        qty_empty_change,
        damaged,
    )
    return balance


def transfer(
    db: Session,
    *,
    product_id: int,
    from_warehouse_id: int,
    to_warehouse_id: int,
    qty_full: int = 0,
    qty_empty: int = 0,
    notes: Optional[str] = None,
) -> TransferResult:
    if from_warehouse_id == to_warehouse_id:
        raise StockValidationError("Source and destination warehouses must be different.")
    if qty_full < 0 or qty_empty < 0:
        raise StockValidationError("Transfer quantities cannot be negative.")
    if qty_full == 0 and qty_empty == 0:
        raise StockValidationError("Transfer at least one full or empty unit.")

    locked = ledger.lock_balances(db, [(product_id, from_warehouse_id), (product_id, to_warehouse_id)])
    source = locked[(product_id, from_warehouse_id)]
    # Bounded by raw qty_full, not available; the ledger still refuses to
    # leave reserved above full.
    for bucket, requested in (("qty_full", qty_full), ("qty_empty", qty_empty)):
        on_hand = _current(source, bucket)
        if requested > on_hand:
            raise InsufficientStockError(
                product_id=product_id,
                warehouse_id=from_warehouse_id,
                requested=requested,
                available=on_hand,
                bucket=bucket.removeprefix("qty_"),
            )

    warning_ratio = get_settings().transfer_warning_ratio
    source_full = _current(source, "qty_full")
    if qty_full and Decimal(qty_full) > Decimal(source_full) * warning_ratio:
        logger.warning(
            "Large transfer: moving %s of %s full units of product %s out of warehouse %s",
            qty_full,
            source_full,
            product_id,
            from_warehouse_id,
        )

    debit = BucketDelta(product_id, from_warehouse_id, qty_full=-qty_full, qty_empty=-qty_empty)
    from_balance = ledger.apply(db, debit)
    try:
        to_balance = ledger.apply(
            db, BucketDelta(product_id, to_warehouse_id, qty_full=qty_full, qty_empty=qty_empty)
        )
    except CylinderOpsError:
        ledger.apply(db, debit.inverse())
        raise

    reference_id = uuid4().hex
    reason = (notes or "").strip() or None
    record_movement(
        db,
        product_id=product_id,
        warehouse_id=from_warehouse_id,
        movement_type=MovementType.TRANSFER_OUT,
        qty_full_change=-qty_full,
        qty_empty_change=-qty_empty,
        reason=reason,
        reference_type=REFERENCE_TRANSFER,
        reference_id=reference_id,
    )
    record_movement(
        db,
        product_id=product_id,
        warehouse_id=to_warehouse_id,
        movement_type=MovementType.TRANSFER_IN,
        qty_full_change=qty_full,
        qty_empty_change=qty_empty,
        reason=reason,
        reference_type=REFERENCE_TRANSFER,
        reference_id=reference_id,
    )
    logger.info(
        "Transfer %s: product_id=%s %s -> %s full=%s empty=%s",
        reference_id,
        product_id,
        from_warehouse_id,
        to_warehouse_id,
        qty_full,
        qty_empty,
    )
    return TransferResult(from_balance=from_balance, to_balance=to_balance, reference_id=reference_id)


def receive(
    db: Session,
    *,
    product_id: int,
    warehouse_id: int,
    qty_full: int = 0,
    qty_empty: int = 0,
    reason: Optional[str] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> InventoryBalance:
    if qty_full < 0 or qty_empty < 0:
        raise StockValidationError("Received quantities cannot be negative.")
    if qty_full == 0 and qty_empty == 0:
        raise StockValidationError("Receive at least one full or empty unit.")

    balance = ledger.apply(db, BucketDelta(product_id, warehouse_id, qty_full=qty_full, qty_empty=qty_empty))
    record_movement(
        db,
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=MovementType.RECEIPT,
        qty_full_change=qty_full,
        qty_empty_change=qty_empty,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    return balance


def reserve_stock(
    db: Session,
    *,
    product_id: int,
    warehouse_id: int,
    quantity: int,
    reference_id: Optional[str] = None,
) -> InventoryBalance:
    _require_positive("Reserved quantity", quantity)
    balance = ledger.lock_balance(db, product_id, warehouse_id)
    available = balance.available if balance is not None else 0
    if quantity > available:
        raise InsufficientStockError(
            product_id=product_id,
            warehouse_id=warehouse_id,
            requested=quantity,
            available=available,
        )

    balance = ledger.apply(db, BucketDelta(product_id, warehouse_id, qty_reserved=quantity))
    record_movement(
        db,
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=MovementType.ORDER_RESERVE,
        reason=f"Reserved {quantity}",
        reference_type=REFERENCE_ORDER,
        reference_id=reference_id,
    )
    return balance


def _require_reserved(balance: InventoryBalance | None, quantity: int, product_id: int, warehouse_id: int) -> None:
    reserved = _current(balance, "qty_reserved")
    if quantity > reserved:
        raise StockValidationError(
            f"Only {reserved} units of product {product_id} are reserved at warehouse {warehouse_id}."
        )


def release_reservation(
    db: Session,
    *,
    product_id: int,
    warehouse_id: int,
    quantity: int,
    reference_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> InventoryBalance:
    _require_positive("Released quantity", quantity)
    _require_reserved(ledger.lock_balance(db, product_id, warehouse_id), quantity, product_id, warehouse_id)

    balance = ledger.apply(db, BucketDelta(product_id, warehouse_id, qty_reserved=-quantity))
    record_movement(
        db,
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=MovementType.ORDER_RELEASE,
        reason=reason or f"Released {quantity}",
        reference_type=REFERENCE_ORDER,
        reference_id=reference_id,
    )
    return balance


def fulfill_reservation(
    db: Session,
    *,
    product_id: int,
    warehouse_id: int,
    quantity: int,
    reference_id: Optional[str] = None,
) -> InventoryBalance:
    _require_positive("Fulfilled quantity", quantity)
    _require_reserved(ledger.lock_balance(db, product_id, warehouse_id), quantity, product_id, warehouse_id)

    balance = ledger.apply(
        db, BucketDelta(product_id, warehouse_id, qty_full=-quantity, qty_reserved=-quantity)
    )
    record_movement(
        db,
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=MovementType.ORDER_FULFILL,
        qty_full_change=-quantity,
        reason=f"Delivered {quantity}",
        reference_type=REFERENCE_ORDER,
        reference_id=reference_id,
    )
    return balance


def _state_movement_type(from_state: StockState, to_state: StockState) -> MovementType:
    if to_state is StockState.DAMAGED:
        return MovementType.DAMAGE
    if StockState.UNDER_MAINTENANCE in (from_state, to_state):
        return MovementType.MAINTENANCE
    return MovementType.ADJUSTMENT


def move_stock_state(
    db: Session,
    *,
    product_id: int,
    warehouse_id: int,
    from_state: StockState | str,
    to_state: StockState | str,
    quantity: int,
    reason: Optional[str] = None,
) -> InventoryBalance:
    """Move units between stock states in place, e.g. full -> quarantine."""
    reason = _require_reason(reason)
    _require_positive("Quantity", quantity)
    try:
        source_state = StockState(from_state)
        target_state = StockState(to_state)
    except ValueError:
        raise StockValidationError(f"Unknown stock state: {from_state} -> {to_state}")
    if source_state is target_state:
        raise StockValidationError("Source and target states must be different.")

    source_column = STATE_COLUMNS[source_state]
    target_column = STATE_COLUMNS[target_state]
    current = _current(ledger.lock_balance(db, product_id, warehouse_id), source_column)
    if quantity > current:
        raise InsufficientStockError(
            product_id=product_id,
            warehouse_id=warehouse_id,
            requested=quantity,
            available=current,
            bucket=source_state.value,
        )

    balance = ledger.apply(
        db,
        BucketDelta(product_id, warehouse_id, **{source_column: -quantity, target_column: quantity}),
    )
    full_change = (quantity if target_state is StockState.FULL else 0) - (
        quantity if source_state is StockState.FULL else 0
    )
    empty_change = (quantity if target_state is StockState.EMPTY else 0) - (
        quantity if source_state is StockState.EMPTY else 0
    )
    record_movement(
        db,
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=_state_movement_type(source_state, target_state),
        qty_full_change=full_change,
        qty_empty_change=empty_change,
        reason=f"{source_state.value} -> {target_state.value}: {reason}",
    )
    return balance


def dispose_damaged(
    db: Session,
    *,
    product_id: int,
    warehouse_id: int,
    quantity: int,
    reason: Optional[str] = None,
) -> InventoryBalance:
    reason = _require_reason(reason)
    _require_positive("Quantity", quantity)
    damaged = _current(ledger.lock_balance(db, product_id, warehouse_id), "qty_damaged")
    if quantity > damaged:
        raise InsufficientStockError(
            product_id=product_id,
            warehouse_id=warehouse_id,
            requested=quantity,
            available=damaged,
            bucket="damaged",
        )

    balance = ledger.apply(db, BucketDelta(product_id, warehouse_id, qty_damaged=-quantity))
    record_movement(
        db,
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=MovementType.DISPOSAL,
        reason=reason,
    )
    return balance
