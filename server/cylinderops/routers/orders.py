from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from cylinderops.config import get_settings
from cylinderops.credits.service import SqlCreditStore, generate_for_order, persist_credits
from cylinderops.db import get_db
from cylinderops.errors import CylinderOpsError
from cylinderops.http_errors import to_http_exception
from cylinderops.orders import schemas
from cylinderops.orders.service import OrderComposition, compose_order, fulfill_order, release_order
from cylinderops.pricing.resolvers import PricingCollaborators, build_sql_collaborators


router = APIRouter(prefix="/api/orders", tags=["orders"])


def get_collaborators(db: Session = Depends(get_db)) -> PricingCollaborators:
    return build_sql_collaborators(db)


def _to_response(composition: OrderComposition, credits) -> schemas.OrderComposeResponse:
    return schemas.OrderComposeResponse(
        reference=composition.reference,
        customer_id=composition.customer_id,
        warehouse_id=composition.warehouse_id,
        order_kind=composition.order_kind.value,
        flow_type=composition.flow_type.value,
        created_at=composition.created_at,
        lines=[
            schemas.OrderLineResponse(
                product_id=line.product_id,
                quantity=line.quantity,
                fill_percentage=line.fill_percentage,
                is_partial_fill=line.is_partial_fill,
                fill_notes=line.fill_notes,
                gas_price_excl_tax=line.gas_price_excl_tax,
                tax_rate=line.tax_rate,
                tax_amount=line.tax_amount,
                gas_price_incl_tax=line.gas_price_incl_tax,
                deposit_amount=line.deposit_amount,
                line_subtotal=line.line_subtotal,
            )
            for line in composition.lines
        ],
        totals=schemas.OrderTotalsResponse(
            subtotal=composition.totals.subtotal,
            tax_total=composition.totals.tax_total,
            deposit_total=composition.totals.deposit_total,
            grand_total=composition.totals.grand_total,
        ),
        credits=[
            schemas.EmptyReturnCreditSummary(
                id=credit.id,
                product_id=credit.product_id,
                quantity=credit.quantity,
                quantity_remaining=credit.quantity_remaining,
                credit_value=credit.credit_value,
                due_by=credit.due_by,
                expires_at=credit.expires_at,
            )
            for credit in credits
        ],
    )


@router.post("/compose", response_model=schemas.OrderComposeResponse, status_code=status.HTTP_201_CREATED)
def compose_order_endpoint(
    payload: schemas.OrderComposeRequest,
    db: Session = Depends(get_db),
    collaborators: PricingCollaborators = Depends(get_collaborators),
):
    settings = get_settings()
    try:
        composition = compose_order(db, payload.model_dump(), collaborators=collaborators, settings=settings)
        credits = generate_for_order(composition, settings=settings)
        persist_credits(SqlCreditStore(db, settings), credits)
    except CylinderOpsError as exc:
        db.rollback()
        raise to_http_exception(exc)
    db.commit()
    return _to_response(composition, credits)


def _quantities(payload: schemas.OrderSettleRequest) -> dict[int, int]:
    quantities: dict[int, int] = {}
    for line in payload.lines:
        quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity
    return quantities


@router.post("/release", status_code=status.HTTP_204_NO_CONTENT)
def release_order_endpoint(payload: schemas.OrderSettleRequest, db: Session = Depends(get_db)):
    try:
        release_order(db, warehouse_id=payload.warehouse_id, quantities=_quantities(payload), reference=payload.reference)
    except CylinderOpsError as exc:
        db.rollback()
        raise to_http_exception(exc)
    db.commit()


@router.post("/fulfill", status_code=status.HTTP_204_NO_CONTENT)
def fulfill_order_endpoint(payload: schemas.OrderSettleRequest, db: Session = Depends(get_db)):
    try:
        fulfill_order(db, warehouse_id=payload.warehouse_id, quantities=_quantities(payload), reference=payload.reference)
    except CylinderOpsError as exc:
        db.rollback()
        raise to_http_exception(exc)
    db.commit()
