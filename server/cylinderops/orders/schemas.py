from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, condecimal


DecimalValue = condecimal(max_digits=14, decimal_places=2)
OrderFlowTypeValue = Literal["outright", "exchange", "none"]
OrderKindValue = Literal["delivery", "visit"]


class OrderLineRequest(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    fill_percentage: Optional[int] = Field(default=None, ge=1, le=100)
    fill_notes: Optional[str] = None


class OrderComposeRequest(BaseModel):
    customer_id: int
    warehouse_id: int
    order_kind: OrderKindValue = "delivery"
    flow_type: Optional[OrderFlowTypeValue] = None
    reference: Optional[str] = Field(default=None, max_length=64)
    lines: List[OrderLineRequest] = Field(default_factory=list)


class OrderLineResponse(BaseModel):
    product_id: int
    quantity: int
    fill_percentage: int
    is_partial_fill: bool
    fill_notes: Optional[str] = None
    gas_price_excl_tax: DecimalValue
    tax_rate: Decimal
    tax_amount: DecimalValue
    gas_price_incl_tax: DecimalValue
    deposit_amount: DecimalValue
    line_subtotal: DecimalValue


class OrderTotalsResponse(BaseModel):
    subtotal: DecimalValue
    tax_total: DecimalValue
    deposit_total: DecimalValue
    grand_total: DecimalValue


class EmptyReturnCreditSummary(BaseModel):
    id: int
    product_id: int
    quantity: int
    quantity_remaining: int
    credit_value: DecimalValue
    due_by: datetime
    expires_at: datetime


class OrderComposeResponse(BaseModel):
    reference: str
    customer_id: int
    warehouse_id: int
    order_kind: OrderKindValue
    flow_type: OrderFlowTypeValue
    created_at: datetime
    lines: List[OrderLineResponse]
    totals: OrderTotalsResponse
    credits: List[EmptyReturnCreditSummary] = Field(default_factory=list)


class OrderSettleLine(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)


class OrderSettleRequest(BaseModel):
    warehouse_id: int
    reference: Optional[str] = None
    lines: List[OrderSettleLine] = Field(..., min_length=1)
