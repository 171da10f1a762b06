from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cylinderops.credits import schemas
from cylinderops.credits.service import SqlCreditStore
from cylinderops.db import get_db
from cylinderops.errors import CylinderOpsError
from cylinderops.http_errors import to_http_exception


router = APIRouter(prefix="/api/credits", tags=["credits"])


def get_credit_store(db: Session = Depends(get_db)) -> SqlCreditStore:
    return SqlCreditStore(db)


@router.get("", response_model=List[schemas.EmptyReturnCreditResponse])
def list_credits(
    status: Optional[str] = None,
    customer_id: Optional[int] = None,
    order_reference: Optional[str] = None,
    store: SqlCreditStore = Depends(get_credit_store),
):
    return store.list_credits(status=status, customer_id=customer_id, order_reference=order_reference)


@router.get("/expiring", response_model=List[schemas.EmptyReturnCreditResponse])
def list_expiring_credits(within_days: Optional[int] = None, store: SqlCreditStore = Depends(get_credit_store)):
    return store.expiring_soon(within_days=within_days)


@router.post("/expire", response_model=schemas.CreditExpiryResponse)
def expire_credits(
    payload: schemas.CreditExpiryRequest,
    db: Session = Depends(get_db),
    store: SqlCreditStore = Depends(get_credit_store),
):
    expired = store.expire_overdue(payload.as_of)
    db.commit()
    return schemas.CreditExpiryResponse(
        expired_count=len(expired),
        credits=[schemas.EmptyReturnCreditResponse.model_validate(credit) for credit in expired],
    )


@router.post("/{credit_id}/return", response_model=schemas.EmptyReturnCreditResponse)
def return_credit(
    credit_id: int,
    payload: Optional[schemas.CreditReturnRequest] = None,
    db: Session = Depends(get_db),
    store: SqlCreditStore = Depends(get_credit_store),
):
    quantity = payload.quantity if payload is not None else None
    try:
        credit = store.mark_returned(credit_id, quantity=quantity)
    except CylinderOpsError as exc:
        db.rollback()
        raise to_http_exception(exc)
    db.commit()
    db.refresh(credit)
    return credit


@router.post("/{credit_id}/cancel", response_model=schemas.EmptyReturnCreditResponse)
def cancel_credit(
    credit_id: int,
    payload: schemas.CreditCancelRequest,
    db: Session = Depends(get_db),
    store: SqlCreditStore = Depends(get_credit_store),
):
    try:
        credit = store.cancel(credit_id, payload.reason)
    except CylinderOpsError as exc:
        db.rollback()
        raise to_http_exception(exc)
    db.commit()
    db.refresh(credit)
    return credit
