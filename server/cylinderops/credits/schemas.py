from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal


DecimalValue = condecimal(max_digits=14, decimal_places=2)


class EmptyReturnCreditResponse(BaseModel):
    id: int
    order_reference: str
    customer_id: int
    warehouse_id: int
    product_id: int
    quantity: int
    quantity_remaining: int
    capacity: Optional[Decimal] = None
    unit_credit_amount: DecimalValue
    credit_value: DecimalValue
    currency_code: str
    status: str
    created_at: datetime
    due_by: datetime
    expires_at: datetime
    returned_at: Optional[datetime] = None
    cancelled_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CreditExpiryRequest(BaseModel):
    as_of: Optional[datetime] = None


class CreditExpiryResponse(BaseModel):
    expired_count: int
    credits: List[EmptyReturnCreditResponse]


class CreditReturnRequest(BaseModel):
    quantity: Optional[int] = Field(default=None, gt=0)


class CreditCancelRequest(BaseModel):
    reason: str
