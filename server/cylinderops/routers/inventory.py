from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from cylinderops.db import get_db
from cylinderops.errors import CylinderOpsError
from cylinderops.http_errors import to_http_exception
from cylinderops.inventory import ledger, movements, schemas
from cylinderops.models import InventoryBalance, Product, Warehouse


router = APIRouter(prefix="/api/inventory", tags=["inventory"])


def _require_refs(db: Session, product_id: int, *warehouse_ids: int) -> None:
    if db.get(Product, product_id) is None:
        raise HTTPException(status_code=404, detail="Product not found.")
    for warehouse_id in warehouse_ids:
        if db.get(Warehouse, warehouse_id) is None:
            raise HTTPException(status_code=404, detail=f"Warehouse {warehouse_id} not found.")


@router.get("/balances", response_model=List[schemas.InventoryBalanceResponse])
def list_balances(
    warehouse_id: Optional[int] = None,
    product_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    if warehouse_id is not None and product_id is not None:
        return [ledger.get_balance(db, product_id, warehouse_id)]

    query = db.query(InventoryBalance)
    if warehouse_id is not None:
        query = query.filter(InventoryBalance.warehouse_id == warehouse_id)
    if product_id is not None:
        query = query.filter(InventoryBalance.product_id == product_id)
    return query.order_by(InventoryBalance.warehouse_id, InventoryBalance.product_id).all()


@router.post("/adjustments", response_model=schemas.InventoryBalanceResponse, status_code=status.HTTP_201_CREATED)
def create_adjustment(payload: schemas.StockAdjustmentCreate, db: Session = Depends(get_db)):
    _require_refs(db, payload.product_id, payload.warehouse_id)
    try:
        balance = movements.adjust(db, **payload.model_dump())
    except CylinderOpsError as exc:
        db.rollback()
        raise to_http_exception(exc)
    db.commit()
    db.refresh(balance)
    return balance


@router.post("/transfers", response_model=schemas.StockTransferResponse, status_code=status.HTTP_201_CREATED)
def create_transfer(payload: schemas.StockTransferCreate, db: Session = Depends(get_db)):
    _require_refs(db, payload.product_id, payload.from_warehouse_id, payload.to_warehouse_id)
    try:
        result = movements.transfer(db, **payload.model_dump())
    except CylinderOpsError as exc:
        db.rollback()
        raise to_http_exception(exc)
    db.commit()
    db.refresh(result.from_balance)
    db.refresh(result.to_balance)
    return schemas.StockTransferResponse(
        reference_id=result.reference_id,
        from_balance=schemas.InventoryBalanceResponse.model_validate(result.from_balance),
        to_balance=schemas.InventoryBalanceResponse.model_validate(result.to_balance),
    )


@router.post("/receipts", response_model=schemas.InventoryBalanceResponse, status_code=status.HTTP_201_CREATED)
def create_receipt(payload: schemas.StockReceiptCreate, db: Session = Depends(get_db)):
    _require_refs(db, payload.product_id, payload.warehouse_id)
    try:
        balance = movements.receive(db, **payload.model_dump())
    except CylinderOpsError as exc:
        db.rollback()
        raise to_http_exception(exc)
    db.commit()
    db.refresh(balance)
    return balance


@router.post("/state-changes", response_model=schemas.InventoryBalanceResponse, status_code=status.HTTP_201_CREATED)
def create_state_change(payload: schemas.StockStateChangeCreate, db: Session = Depends(get_db)):
    _require_refs(db, payload.product_id, payload.warehouse_id)
    try:
        balance = movements.move_stock_state(db, **payload.model_dump())
    except CylinderOpsError as exc:
        db.rollback()
        raise to_http_exception(exc)
    db.commit()
    db.refresh(balance)
    return balance


@router.get("/movements", response_model=List[schemas.StockMovementResponse])
def list_stock_movements(
    product_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    return movements.list_movements(db, product_id=product_id, warehouse_id=warehouse_id, limit=limit)
