from datetime import datetime, timedelta
import logging
from decimal import Decimal

import pytest

from cylinderops.config import Settings
from cylinderops.credits.service import SqlCreditStore, generate_for_order, persist_credits
from cylinderops.enums import OrderFlowType, OrderKind
from cylinderops.errors import CreditNotFoundError, CreditStateError, StockValidationError
from cylinderops.inventory import ledger
from cylinderops.models import StockMovement
from cylinderops.orders.calculations import calculate_order_totals, price_order_line
from cylinderops.orders.service import OrderComposition
from cylinderops.pricing.resolvers import ProductInfo, build_price_quote
from cylinderops.tests.factories import create_customer, create_product, create_warehouse


CREATED_AT = datetime(2025, 3, 1, 8, 0)


def make_line(product, quantity, sku_variant=None, product_type=None, deposit="2500"):
    product_info = ProductInfo(
        id=product.id,
        sku_variant=sku_variant or product.sku_variant,
        product_type=product_type or product.product_type,
        capacity=product.capacity,
        status="active",
    )
    return price_order_line(
        product=product_info,
        quantity=quantity,
        fill_percentage=100,
        price=build_price_quote(Decimal("1000"), Decimal("0.16")),
        deposit_amount=Decimal(deposit),
    )


def make_composition(customer, warehouse, lines, flow_type=OrderFlowType.EXCHANGE):
    return OrderComposition(
        reference="ORD-2001",
        customer_id=customer.id,
        warehouse_id=warehouse.id,
        order_kind=OrderKind.DELIVERY,
        flow_type=flow_type,
        lines=tuple(lines),
        totals=calculate_order_totals(lines),
        created_at=CREATED_AT,
    )


@pytest.fixture()
def parties(db):
    customer = create_customer(db)
    depot = create_warehouse(db)
    xch = create_product(db, "LPG-6-XCH", sku_variant="FULL-XCH", capacity=Decimal("6"))
    out = create_product(db, "LPG-6-OUT", sku_variant="FULL-OUT", capacity=Decimal("6"))
    return customer, depot, xch, out


def test_exchange_line_generates_credit(parties):
    customer, depot, xch, _ = parties
    composition = make_composition(customer, depot, [make_line(xch, 3)])

    credits = generate_for_order(composition, settings=Settings())

    assert len(credits) == 1
    credit = credits[0]
    assert credit.quantity == 3
    assert credit.unit_credit_amount == Decimal("2500.00")
    assert credit.credit_value == Decimal("7500.00")
    assert credit.due_by == CREATED_AT + timedelta(days=7)
    assert credit.expires_at == CREATED_AT + timedelta(days=30)
    assert credit.status == "pending"
    assert credit.order_reference == "ORD-2001"
    assert credit.id is None


def test_only_exchange_cylinder_lines_get_credits(parties):
    customer, depot, xch, out = parties
    lines = [
        make_line(xch, 2),
        make_line(out, 4),
        make_line(xch, 1, product_type="accessory"),
    ]

    credits = generate_for_order(make_composition(customer, depot, lines), settings=Settings())

    assert [(credit.product_id, credit.quantity) for credit in credits] == [(xch.id, 2)]


@pytest.mark.parametrize("flow_type", [OrderFlowType.OUTRIGHT, OrderFlowType.NONE])
def test_non_exchange_orders_get_no_credits(parties, flow_type):
    customer, depot, xch, _ = parties
    composition = make_composition(customer, depot, [make_line(xch, 2)], flow_type=flow_type)

    assert generate_for_order(composition, settings=Settings()) == []


def test_credit_uses_deposit_charged_on_the_line(parties, caplog):
    customer, depot, xch, _ = parties
    composition = make_composition(customer, depot, [make_line(xch, 2, deposit="3500")])

    with caplog.at_level(logging.WARNING):
        credit = generate_for_order(composition, settings=Settings())[0]

    assert credit.unit_credit_amount == Decimal("3500.00")
    assert credit.credit_value == Decimal("7000.00")
    assert credit.quantity_remaining == 2
    assert caplog.records == []


def persisted(db, parties, quantity=2):
    customer, depot, xch, _ = parties
    store = SqlCreditStore(db, Settings())
    credits = generate_for_order(
        make_composition(customer, depot, [make_line(xch, quantity)]), settings=Settings()
    )
    return store, persist_credits(store, credits)[0]


def test_persist_assigns_ids_and_lists(db, parties):
    store, credit = persisted(db, parties)

    assert credit.id is not None
    assert store.get(credit.id) is credit
    assert store.list_credits(status="pending") == [credit]
    assert store.list_credits(order_reference="ORD-404") == []
    with pytest.raises(CreditNotFoundError):
        store.get(9999)


def test_expire_overdue_marks_expired_and_fires_callbacks(db, parties):
    store, credit = persisted(db, parties)
    expired_ids = []
    store.on_expiry(credit.id, lambda expired: expired_ids.append(expired.id))

    assert store.expire_overdue(CREATED_AT + timedelta(days=29)) == []
    assert expired_ids == []

    expired = store.expire_overdue(CREATED_AT + timedelta(days=31))

    assert expired == [credit]
    assert credit.status == "expired"
    assert credit.cancelled_reason == "Return deadline passed"
    assert expired_ids == [credit.id]

    # Callbacks fire once.
    store.expire_overdue(CREATED_AT + timedelta(days=40))
    assert expired_ids == [credit.id]


def test_mark_returned_books_empties(db, parties):
    _, depot, xch, _ = parties
    store, credit = persisted(db, parties, quantity=3)
    store.on_expiry(credit.id, lambda expired: pytest.fail("returned credits never expire"))

    returned = store.mark_returned(credit.id, returned_at=CREATED_AT + timedelta(days=2))

    assert returned.status == "returned"
    assert returned.returned_at == CREATED_AT + timedelta(days=2)
    assert ledger.get_balance(db, xch.id, depot.id).qty_empty == 3
    movement = db.query(StockMovement).one()
    assert movement.reference_type == "empty_return_credit"
    assert movement.reference_id == str(credit.id)

    store.expire_overdue(CREATED_AT + timedelta(days=60))
    assert returned.status == "returned"
    with pytest.raises(CreditStateError):
        store.mark_returned(credit.id)


def test_partial_returns_keep_credit_pending_until_all_are_back(db, parties):
    _, depot, xch, _ = parties
    store, credit = persisted(db, parties, quantity=3)
    expired_ids = []
    store.on_expiry(credit.id, lambda expired: expired_ids.append(expired.id))

    store.mark_returned(credit.id, quantity=2, returned_at=CREATED_AT + timedelta(days=1))

    assert credit.status == "pending"
    assert credit.quantity_remaining == 1
    assert credit.returned_at is None
    assert ledger.get_balance(db, xch.id, depot.id).qty_empty == 2

    store.mark_returned(credit.id, returned_at=CREATED_AT + timedelta(days=5))

    assert credit.status == "returned"
    assert credit.quantity_remaining == 0
    assert credit.returned_at == CREATED_AT + timedelta(days=5)
    assert ledger.get_balance(db, xch.id, depot.id).qty_empty == 3
    assert [row.qty_empty_change for row in db.query(StockMovement).order_by(StockMovement.id)] == [2, 1]

    store.expire_overdue(CREATED_AT + timedelta(days=60))
    assert expired_ids == []


@pytest.mark.parametrize("quantity", [4, 0, -1])
def test_return_quantity_must_fit_what_is_outstanding(db, parties, quantity):
    _, depot, xch, _ = parties
    store, credit = persisted(db, parties, quantity=3)

    with pytest.raises(StockValidationError):
        store.mark_returned(credit.id, quantity=quantity)

    assert credit.status == "pending"
    assert credit.quantity_remaining == 3
    assert ledger.get_balance(db, xch.id, depot.id).qty_empty == 0


def test_over_return_after_partial_return_is_rejected(db, parties):
    store, credit = persisted(db, parties, quantity=3)
    store.mark_returned(credit.id, quantity=2)

    with pytest.raises(StockValidationError, match="Only 1 remaining"):
        store.mark_returned(credit.id, quantity=2)
    assert credit.quantity_remaining == 1


def test_cancel_requires_reason_and_pending_credit(db, parties):
    store, credit = persisted(db, parties)

    with pytest.raises(StockValidationError):
        store.cancel(credit.id, "  ")

    cancelled = store.cancel(credit.id, "Customer kept the cylinder")
    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_reason == "Customer kept the cylinder"
    with pytest.raises(CreditStateError):
        store.cancel(credit.id, "Again")


def test_expiring_soon_window(db, parties):
    store, credit = persisted(db, parties)

    assert store.expiring_soon(as_of=CREATED_AT + timedelta(days=20)) == []
    assert store.expiring_soon(as_of=CREATED_AT + timedelta(days=28)) == [credit]
    assert store.expiring_soon(as_of=CREATED_AT + timedelta(days=20), within_days=10) == [credit]
