"""Empty-return credits for exchange orders.

``generate_for_order`` derives unsaved credit rows from a composed order. Their
lifecycle (persisting, expiry, returns) belongs to a ``CreditStore``;
``SqlCreditStore`` is the one backed by the ``empty_return_credits`` table.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol
import logging

from sqlalchemy.orm import Session

from cylinderops.config import Settings, get_settings
from cylinderops.enums import CreditStatus, OrderFlowType, ProductType, SkuVariant
from cylinderops.errors import CreditNotFoundError, CreditStateError, StockValidationError
from cylinderops.inventory.movements import receive
from cylinderops.models import EmptyReturnCredit
from cylinderops.orders.service import OrderComposition
from cylinderops.utils import quantize_money


logger = logging.getLogger(__name__)

ExpiryCallback = Callable[[EmptyReturnCredit], None]

REFERENCE_CREDIT = "empty_return_credit"


class CreditStore(Protocol):
    def persist(self, credit: EmptyReturnCredit) -> EmptyReturnCredit:
        ...

    def on_expiry(self, credit_id: int, callback: ExpiryCallback) -> None:
        ...


def generate_for_order(
    composition: OrderComposition,
    *,
    settings: Settings | None = None,
) -> list[EmptyReturnCredit]:
    """One credit per exchange cylinder line; nothing for other flows.

    The unit credit is the deposit already charged on the line.
    """
    settings = settings or get_settings()
    if composition.flow_type is not OrderFlowType.EXCHANGE:
        return []

    due_by = composition.created_at + timedelta(days=settings.credit_due_days)
    expires_at = composition.created_at + timedelta(days=settings.credit_expiry_days)
    credits: list[EmptyReturnCredit] = []
    for line in composition.lines:
        if line.sku_variant != SkuVariant.FULL_XCH.value or line.product_type != ProductType.CYLINDER.value:
            continue
        unit_credit = line.deposit_amount
        credits.append(
            EmptyReturnCredit(
                order_reference=composition.reference,
                customer_id=composition.customer_id,
                warehouse_id=composition.warehouse_id,
                product_id=line.product_id,
                quantity=line.quantity,
                quantity_remaining=line.quantity,
                capacity=line.capacity,
                unit_credit_amount=unit_credit,
                credit_value=quantize_money(unit_credit * line.quantity),
                currency_code=settings.currency_code,
                status=CreditStatus.PENDING.value,
                created_at=composition.created_at,
                due_by=due_by,
                expires_at=expires_at,
            )
        )

    logger.debug("Generated %s empty-return credits for order %s", len(credits), composition.reference)
    return credits


class SqlCreditStore:
    def __init__(self, db: Session, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()
        self._expiry_callbacks: dict[int, list[ExpiryCallback]] = {}

    def persist(self, credit: EmptyReturnCredit) -> EmptyReturnCredit:
        self.db.add(credit)
        self.db.flush()
        return credit

    def on_expiry(self, credit_id: int, callback: ExpiryCallback) -> None:
        self._expiry_callbacks.setdefault(credit_id, []).append(callback)

    def get(self, credit_id: int, *, for_update: bool = False) -> EmptyReturnCredit:
        query = self.db.query(EmptyReturnCredit).filter(EmptyReturnCredit.id == credit_id)
        if for_update:
            query = query.with_for_update()
        credit = query.first()
        if credit is None:
            raise CreditNotFoundError(f"Empty-return credit {credit_id} not found.")
        return credit

    def list_credits(
        self,
        *,
        status: Optional[str] = None,
        customer_id: Optional[int] = None,
        order_reference: Optional[str] = None,
    ) -> list[EmptyReturnCredit]:
        query = self.db.query(EmptyReturnCredit)
        if status is not None:
            query = query.filter(EmptyReturnCredit.status == status)
        if customer_id is not None:
            query = query.filter(EmptyReturnCredit.customer_id == customer_id)
        if order_reference is not None:
            query = query.filter(EmptyReturnCredit.order_reference == order_reference)
        return query.order_by(EmptyReturnCredit.expires_at.asc(), EmptyReturnCredit.id.asc()).all()

    def expire_overdue(self, as_of: datetime | None = None) -> list[EmptyReturnCredit]:
        as_of = as_of or datetime.utcnow()
        overdue = (
            self.db.query(EmptyReturnCredit)
            .filter(
                EmptyReturnCredit.status == CreditStatus.PENDING.value,
                EmptyReturnCredit.expires_at < as_of,
            )
            .with_for_update()
            .all()
        )
        for credit in overdue:
            credit.status = CreditStatus.EXPIRED.value
            credit.cancelled_reason = "Return deadline passed"
            credit.updated_at = as_of
        self.db.flush()

        for credit in overdue:
            for callback in self._expiry_callbacks.pop(credit.id, []):
                callback(credit)
        logger.info("Expired %s overdue empty-return credits as of %s", len(overdue), as_of)
        return overdue

    def _require_pending(self, credit: EmptyReturnCredit) -> None:
        if credit.status != CreditStatus.PENDING.value:
            raise CreditStateError(f"Empty-return credit {credit.id} is already {credit.status}.")

    def mark_returned(
        self,
        credit_id: int,
        quantity: int | None = None,
        returned_at: datetime | None = None,
    ) -> EmptyReturnCredit:
        """Book returned empties into the ledger against the credit.

        ``quantity`` defaults to everything still outstanding. The credit stays
        pending until nothing remains.
        """
        credit = self.get(credit_id, for_update=True)
        self._require_pending(credit)
        remaining = int(credit.quantity_remaining)
        quantity = remaining if quantity is None else quantity
        if quantity <= 0:
            raise StockValidationError("Returned quantity must be greater than zero.")
        if quantity > remaining:
            raise StockValidationError(
                f"Cannot return {quantity} cylinders against credit {credit.id}. Only {remaining} remaining."
            )
        returned_at = returned_at or datetime.utcnow()

        receive(
            self.db,
            product_id=credit.product_id,
            warehouse_id=credit.warehouse_id,
            qty_empty=quantity,
            reason=f"Empty return for order {credit.order_reference}",
            reference_type=REFERENCE_CREDIT,
            reference_id=str(credit.id),
        )
        credit.quantity_remaining = remaining - quantity
        credit.updated_at = returned_at
        if credit.quantity_remaining == 0:
            credit.status = CreditStatus.RETURNED.value
            credit.returned_at = returned_at
            self._expiry_callbacks.pop(credit.id, None)
        self.db.flush()
        logger.info(
            "Empty-return credit %s: %s units returned, %s remaining",
            credit.id,
            quantity,
            credit.quantity_remaining,
        )
        return credit

    def cancel(self, credit_id: int, reason: Optional[str]) -> EmptyReturnCredit:
        cleaned = (reason or "").strip()
        if not cleaned:
            raise StockValidationError("A cancellation reason is required.")
        credit = self.get(credit_id, for_update=True)
        self._require_pending(credit)
        credit.status = CreditStatus.CANCELLED.value
        credit.cancelled_reason = cleaned
        credit.updated_at = datetime.utcnow()
        self._expiry_callbacks.pop(credit.id, None)
        self.db.flush()
        return credit

    def expiring_soon(self, as_of: datetime | None = None, within_days: int | None = None) -> list[EmptyReturnCredit]:
        as_of = as_of or datetime.utcnow()
        window = within_days if within_days is not None else self.settings.credit_expiry_warning_days
        return (
            self.db.query(EmptyReturnCredit)
            .filter(
                EmptyReturnCredit.status == CreditStatus.PENDING.value,
                EmptyReturnCredit.expires_at >= as_of,
                EmptyReturnCredit.expires_at <= as_of + timedelta(days=window),
            )
            .order_by(EmptyReturnCredit.expires_at.asc())
            .all()
        )


def persist_credits(store: CreditStore, credits: list[EmptyReturnCredit]) -> list[EmptyReturnCredit]:
    return [store.persist(credit) for credit in credits]
