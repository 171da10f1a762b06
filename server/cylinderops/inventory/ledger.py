"""Per-(product, warehouse) inventory balances.

``apply`` is the single write path for balance rows. It re-reads the row under
a ``FOR UPDATE`` lock and checks the resulting buckets before touching it, so
a rejected delta never leaves a partial write behind.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable
import logging

from sqlalchemy.orm import Session

from cylinderops.errors import InvariantViolationError
from cylinderops.models import BALANCE_BUCKETS, InventoryBalance


logger = logging.getLogger(__name__)

BalanceKey = tuple[int, int]


@dataclass(frozen=True)
class BucketDelta:
    product_id: int
    warehouse_id: int
    qty_full: int = 0
    qty_empty: int = 0
    qty_reserved: int = 0
    qty_quarantine: int = 0
    qty_damaged: int = 0
    qty_in_transit: int = 0
    qty_under_maintenance: int = 0

    @property
    def key(self) -> BalanceKey:
        return (self.product_id, self.warehouse_id)

    def changes(self) -> dict[str, int]:
        return {bucket: getattr(self, bucket) for bucket in BALANCE_BUCKETS if getattr(self, bucket)}

    def inverse(self) -> "BucketDelta":
        return BucketDelta(
            self.product_id,
            self.warehouse_id,
            **{bucket: -getattr(self, bucket) for bucket in BALANCE_BUCKETS},
        )


def _zero_balance(product_id: int, warehouse_id: int) -> InventoryBalance:
    return InventoryBalance(
        product_id=product_id,
        warehouse_id=warehouse_id,
        **{bucket: 0 for bucket in BALANCE_BUCKETS},
    )


def _bucket_values(balance: InventoryBalance | None) -> dict[str, int]:
    if balance is None:
        return {bucket: 0 for bucket in BALANCE_BUCKETS}
    return {bucket: int(getattr(balance, bucket) or 0) for bucket in BALANCE_BUCKETS}


def get_balance(db: Session, product_id: int, warehouse_id: int) -> InventoryBalance:
    """Return the balance row, or an unsaved zero balance when none exists."""
    balance = (
        db.query(InventoryBalance)
        .filter(InventoryBalance.product_id == product_id, InventoryBalance.warehouse_id == warehouse_id)
        .first()
    )
    if balance is None:
        logger.debug("No balance row: product_id=%s warehouse_id=%s", product_id, warehouse_id)
        return _zero_balance(product_id, warehouse_id)
    return balance


def lock_balance(db: Session, product_id: int, warehouse_id: int) -> InventoryBalance | None:
    """Lock and re-read the balance row; ``None`` when it does not exist yet."""
    return (
        db.query(InventoryBalance)
        .filter(InventoryBalance.product_id == product_id, InventoryBalance.warehouse_id == warehouse_id)
        .with_for_update()
        .populate_existing()
        .first()
    )


def lock_balances(db: Session, keys: Iterable[BalanceKey]) -> dict[BalanceKey, InventoryBalance | None]:
    # Ascending key order so concurrent multi-row callers cannot deadlock.
    return {key: lock_balance(db, *key) for key in sorted(set(keys))}


def apply(db: Session, delta: BucketDelta) -> InventoryBalance:
    balance = lock_balance(db, delta.product_id, delta.warehouse_id)
    changes = delta.changes()
    if not changes:
        return balance if balance is not None else _zero_balance(delta.product_id, delta.warehouse_id)

    resulting = _bucket_values(balance)
    for bucket, change in changes.items():
        resulting[bucket] += change

    negative = [bucket for bucket, value in resulting.items() if value < 0]
    if negative:
        raise InvariantViolationError(
            f"Applying {changes} to product {delta.product_id} at warehouse {delta.warehouse_id} "
            f"would leave {', '.join(negative)} negative."
        )
    if resulting["qty_reserved"] > resulting["qty_full"]:
        raise InvariantViolationError(
            f"Applying {changes} to product {delta.product_id} at warehouse {delta.warehouse_id} "
            f"would reserve {resulting['qty_reserved']} of {resulting['qty_full']} full units."
        )

    if balance is None:
        balance = InventoryBalance(product_id=delta.product_id, warehouse_id=delta.warehouse_id)
        db.add(balance)
    for bucket, value in resulting.items():
        setattr(balance, bucket, value)
    balance.updated_at = datetime.utcnow()
    db.flush()

    logger.debug(
        "Ledger apply: product_id=%s warehouse_id=%s changes=%s result=%s",
        delta.product_id,
        delta.warehouse_id,
        changes,
        resulting,
    )
    return balance
