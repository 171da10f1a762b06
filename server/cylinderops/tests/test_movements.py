import logging

import pytest
from sqlalchemy.exc import OperationalError

from cylinderops.errors import InsufficientStockError, InvariantViolationError, StockValidationError
from cylinderops.inventory import ledger, movements
from cylinderops.models import StockMovement
from cylinderops.tests.factories import create_product, create_warehouse, stock


@pytest.fixture()
def setup(db):
    product = create_product(db, "LPG-13-OUT")
    depot = create_warehouse(db, "Nairobi Depot")
    truck = create_warehouse(db, "Truck KDA 123")
    return product, depot, truck


def test_adjust_physical_count_changes_buckets_and_logs_movement(db, setup):
    product, depot, _ = setup
    stock(db, product, depot, full=10, empty=2)

    balance = movements.adjust(
        db,
        product_id=product.id,
        warehouse_id=depot.id,
        adjustment_type="physical_count",
        qty_full_change=-1,
        qty_empty_change=3,
        reason="Monthly count",
    )

    assert (balance.qty_full, balance.qty_empty) == (9, 5)
    movement = db.query(StockMovement).one()
    assert movement.movement_type == "adjustment"
    assert (movement.qty_full_change, movement.qty_empty_change) == (-1, 3)
    assert movement.reason == "physical_count: Monthly count"


def test_adjust_damage_loss_moves_units_into_damaged(db, setup):
    product, depot, _ = setup
    stock(db, product, depot, full=10)

    balance = movements.adjust(
        db,
        product_id=product.id,
        warehouse_id=depot.id,
        adjustment_type="damage_loss",
        qty_full_change=-2,
        reason="Dropped off the truck",
    )

    assert balance.qty_full == 8
    assert balance.qty_damaged == 2
    assert db.query(StockMovement).one().movement_type == "damage"


def test_adjust_damage_loss_cannot_increase_stock(db, setup):
    product, depot, _ = setup
    stock(db, product, depot, full=10)

    with pytest.raises(StockValidationError, match="only decrease"):
        movements.adjust(
            db,
            product_id=product.id,
            warehouse_id=depot.id,
            adjustment_type="damage_loss",
            qty_full_change=1,
            reason="Typo",
        )


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_adjust_requires_reason(db, setup, reason):
    product, depot, _ = setup
    stock(db, product, depot, full=10)

    with pytest.raises(StockValidationError, match="reason"):
        movements.adjust(
            db,
            product_id=product.id,
            warehouse_id=depot.id,
            adjustment_type="other",
            qty_full_change=1,
            reason=reason,
        )
    assert ledger.get_balance(db, product.id, depot.id).qty_full == 10


def test_adjust_rejects_result_below_zero(db, setup):
    product, depot, _ = setup
    stock(db, product, depot, full=1)

    with pytest.raises(StockValidationError, match="negative"):
        movements.adjust(
            db,
            product_id=product.id,
            warehouse_id=depot.id,
            adjustment_type="physical_count",
            qty_full_change=-2,
            reason="Count",
        )
    assert db.query(StockMovement).count() == 0


def test_adjust_rejects_unknown_type_and_no_op(db, setup):
    product, depot, _ = setup

    with pytest.raises(StockValidationError, match="Unknown adjustment type"):
        movements.adjust(
            db, product_id=product.id, warehouse_id=depot.id, adjustment_type="theft", qty_full_change=-1, reason="x"
        )
    with pytest.raises(StockValidationError, match="at least one"):
        movements.adjust(db, product_id=product.id, warehouse_id=depot.id, adjustment_type="other", reason="x")


def test_transfer_conserves_totals_across_warehouses(db, setup):
    product, depot, truck = setup
    stock(db, product, depot, full=20, empty=6)
    stock(db, product, truck, full=1)

    result = movements.transfer(
        db,
        product_id=product.id,
        from_warehouse_id=depot.id,
        to_warehouse_id=truck.id,
        qty_full=5,
        qty_empty=2,
        notes="Morning load",
    )

    assert (result.from_balance.qty_full, result.from_balance.qty_empty) == (15, 4)
    assert (result.to_balance.qty_full, result.to_balance.qty_empty) == (6, 2)
    assert result.from_balance.qty_full + result.to_balance.qty_full == 21
    assert result.from_balance.qty_empty + result.to_balance.qty_empty == 6

    rows = db.query(StockMovement).order_by(StockMovement.id).all()
    assert [row.movement_type for row in rows] == ["transfer_out", "transfer_in"]
    assert {row.reference_id for row in rows} == {result.reference_id}
    assert rows[0].qty_full_change == -5
    assert rows[1].qty_empty_change == 2


def test_transfer_creates_destination_row(db, setup):
    product, depot, truck = setup
    stock(db, product, depot, full=5)

    result = movements.transfer(
        db, product_id=product.id, from_warehouse_id=depot.id, to_warehouse_id=truck.id, qty_full=2
    )

    assert result.to_balance.id is not None
    assert result.to_balance.qty_full == 2


def test_transfer_rejects_same_warehouse(db, setup):
    product, depot, _ = setup
    stock(db, product, depot, full=5)

    with pytest.raises(StockValidationError, match="different"):
        movements.transfer(
            db, product_id=product.id, from_warehouse_id=depot.id, to_warehouse_id=depot.id, qty_full=1
        )


def test_transfer_rejects_more_than_source_holds(db, setup):
    product, depot, truck = setup
    stock(db, product, depot, full=5, empty=1)

    with pytest.raises(InsufficientStockError) as excinfo:
        movements.transfer(
            db, product_id=product.id, from_warehouse_id=depot.id, to_warehouse_id=truck.id, qty_full=2, qty_empty=3
        )

    assert excinfo.value.bucket == "empty"
    assert excinfo.value.shortfall == 2
    assert ledger.get_balance(db, product.id, depot.id).qty_full == 5
    assert ledger.get_balance(db, product.id, truck.id).id is None
    assert db.query(StockMovement).count() == 0


def test_transfer_cannot_strand_reservations(db, setup):
    product, depot, truck = setup
    stock(db, product, depot, full=5, reserved=4)

    with pytest.raises(InvariantViolationError):
        movements.transfer(
            db, product_id=product.id, from_warehouse_id=depot.id, to_warehouse_id=truck.id, qty_full=3
        )
    assert ledger.get_balance(db, product.id, depot.id).qty_full == 5


def test_transfer_warns_when_moving_most_of_source(db, setup, caplog):
    product, depot, truck = setup
    stock(db, product, depot, full=10)

    with caplog.at_level(logging.WARNING, logger="cylinderops.inventory.movements"):
        movements.transfer(
            db, product_id=product.id, from_warehouse_id=depot.id, to_warehouse_id=truck.id, qty_full=10
        )

    assert "Large transfer" in caplog.text


@pytest.mark.parametrize(
    "value, maximum, expected",
    [(5, 10, 5), (15, 10, 10), (-3, 10, 0), (4, -1, 0), (0, 0, 0)],
)
def test_clamp_quantity(value, maximum, expected):
    assert movements.clamp_quantity(value, maximum) == expected


def test_receive_books_full_and_empty(db, setup):
    product, depot, _ = setup

    balance = movements.receive(db, product_id=product.id, warehouse_id=depot.id, qty_full=12, qty_empty=3)

    assert (balance.qty_full, balance.qty_empty) == (12, 3)
    assert db.query(StockMovement).one().movement_type == "receipt"

    with pytest.raises(StockValidationError):
        movements.receive(db, product_id=product.id, warehouse_id=depot.id, qty_full=-1)


def test_reserve_release_and_fulfill(db, setup):
    product, depot, _ = setup
    stock(db, product, depot, full=10)

    movements.reserve_stock(db, product_id=product.id, warehouse_id=depot.id, quantity=6)
    movements.release_reservation(db, product_id=product.id, warehouse_id=depot.id, quantity=2)
    balance = movements.fulfill_reservation(db, product_id=product.id, warehouse_id=depot.id, quantity=4)

    assert (balance.qty_full, balance.qty_reserved) == (6, 0)
    types = [row.movement_type for row in db.query(StockMovement).order_by(StockMovement.id)]
    assert types == ["order_reserve", "order_release", "order_fulfill"]


def test_reserve_is_bounded_by_available(db, setup):
    product, depot, _ = setup
    stock(db, product, depot, full=10, reserved=7)

    with pytest.raises(InsufficientStockError) as excinfo:
        movements.reserve_stock(db, product_id=product.id, warehouse_id=depot.id, quantity=4)

    assert excinfo.value.available == 3
    assert excinfo.value.shortfall == 1


def test_release_more_than_reserved_is_rejected(db, setup):
    product, depot, _ = setup
    stock(db, product, depot, full=10, reserved=1)

    with pytest.raises(StockValidationError, match="reserved"):
        movements.release_reservation(db, product_id=product.id, warehouse_id=depot.id, quantity=2)


def test_move_stock_state_quarantine_round_trip(db, setup):
    product, depot, _ = setup
    stock(db, product, depot, full=8)

    balance = movements.move_stock_state(
        db,
        product_id=product.id,
        warehouse_id=depot.id,
        from_state="full",
        to_state="quarantine",
        quantity=3,
        reason="Valve leak suspected",
    )
    assert (balance.qty_full, balance.qty_quarantine) == (5, 3)

    balance = movements.move_stock_state(
        db,
        product_id=product.id,
        warehouse_id=depot.id,
        from_state="quarantine",
        to_state="under_maintenance",
        quantity=2,
        reason="Sent for valve replacement",
    )
    assert (balance.qty_quarantine, balance.qty_under_maintenance) == (1, 2)

    rows = db.query(StockMovement).order_by(StockMovement.id).all()
    assert [row.movement_type for row in rows] == ["adjustment", "maintenance"]
    assert rows[0].qty_full_change == -3
    assert rows[1].qty_full_change == 0


def test_move_stock_state_validates_input(db, setup):
    product, depot, _ = setup
    stock(db, product, depot, full=2)

    with pytest.raises(StockValidationError, match="different"):
        movements.move_stock_state(
            db, product_id=product.id, warehouse_id=depot.id, from_state="full", to_state="full", quantity=1, reason="x"
        )
    with pytest.raises(StockValidationError, match="Unknown stock state"):
        movements.move_stock_state(
            db, product_id=product.id, warehouse_id=depot.id, from_state="full", to_state="lost", quantity=1, reason="x"
        )
    with pytest.raises(InsufficientStockError):
        movements.move_stock_state(
            db, product_id=product.id, warehouse_id=depot.id, from_state="full", to_state="damaged", quantity=3, reason="x"
        )


def test_dispose_damaged(db, setup):
    product, depot, _ = setup
    stock(db, product, depot, full=4, damaged=3)

    balance = movements.dispose_damaged(
        db, product_id=product.id, warehouse_id=depot.id, quantity=2, reason="Scrapped"
    )

    assert balance.qty_damaged == 1
    assert balance.qty_full == 4
    assert db.query(StockMovement).one().movement_type == "disposal"

    with pytest.raises(InsufficientStockError):
        movements.dispose_damaged(db, product_id=product.id, warehouse_id=depot.id, quantity=2, reason="Scrapped")


def test_list_movements_filters_and_orders_newest_first(db, setup):
    product, depot, truck = setup
    movements.receive(db, product_id=product.id, warehouse_id=depot.id, qty_full=5)
    movements.receive(db, product_id=product.id, warehouse_id=truck.id, qty_full=1)
    movements.receive(db, product_id=product.id, warehouse_id=depot.id, qty_empty=2)
    db.flush()

    rows = movements.list_movements(db, warehouse_id=depot.id)

    assert [row.qty_empty_change for row in rows] == [2, 0]
    assert len(movements.list_movements(db, limit=1)) == 1


def test_adjust_rechecks_against_balance_committed_by_another_session(db, session_factory, setup):
    product, depot, _ = setup
    stock(db, product, depot, full=10)
    db.commit()
    stale = ledger.get_balance(db, product.id, depot.id)
    assert stale.qty_full == 10

    other = session_factory()
    try:
        movements.adjust(
            other,
            product_id=product.id,
            warehouse_id=depot.id,
            adjustment_type="physical_count",
            qty_full_change=-9,
            reason="Recount on the night shift",
        )
        other.commit()
    finally:
        other.close()

    with pytest.raises(StockValidationError, match="negative"):
        movements.adjust(
            db,
            product_id=product.id,
            warehouse_id=depot.id,
            adjustment_type="physical_count",
            qty_full_change=-5,
            reason="Recount on the day shift",
        )
    assert ledger.lock_balance(db, product.id, depot.id).qty_full == 1


def test_reserve_rechecks_against_balance_committed_by_another_session(db, session_factory, setup):
    product, depot, _ = setup
    stock(db, product, depot, full=6)
    db.commit()
    assert ledger.get_balance(db, product.id, depot.id).available == 6

    other = session_factory()
    try:
        movements.reserve_stock(other, product_id=product.id, warehouse_id=depot.id, quantity=4)
        other.commit()
    finally:
        other.close()

    with pytest.raises(InsufficientStockError) as excinfo:
        movements.reserve_stock(db, product_id=product.id, warehouse_id=depot.id, quantity=3)
    assert excinfo.value.available == 2


def test_transfer_undoes_debit_when_destination_credit_is_rejected(db, setup, monkeypatch):
    product, depot, truck = setup
    stock(db, product, depot, full=6, empty=2)
    real_apply = ledger.apply

    def reject_destination(db, delta):
        if delta.warehouse_id == truck.id:
            raise InvariantViolationError("destination rejected")
        return real_apply(db, delta)

    monkeypatch.setattr(ledger, "apply", reject_destination)

    with pytest.raises(InvariantViolationError, match="destination rejected"):
        movements.transfer(
            db, product_id=product.id, from_warehouse_id=depot.id, to_warehouse_id=truck.id, qty_full=3, qty_empty=1
        )

    balance = ledger.get_balance(db, product.id, depot.id)
    assert (balance.qty_full, balance.qty_empty) == (6, 2)
    assert db.query(StockMovement).count() == 0


def test_transfer_surfaces_database_errors_without_compensating(db, setup, monkeypatch):
    product, depot, truck = setup
    stock(db, product, depot, full=6)
    real_apply = ledger.apply
    applied = []

    def fail_destination(db, delta):
        applied.append(delta)
        if delta.warehouse_id == truck.id:
            raise OperationalError("UPDATE inventory_balances", {}, Exception("database is locked"))
        return real_apply(db, delta)

    monkeypatch.setattr(ledger, "apply", fail_destination)

    with pytest.raises(OperationalError, match="database is locked"):
        movements.transfer(db, product_id=product.id, from_warehouse_id=depot.id, to_warehouse_id=truck.id, qty_full=2)

    assert [delta.warehouse_id for delta in applied] == [depot.id, truck.id]
