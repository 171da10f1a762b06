from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


AdjustmentTypeValue = Literal["received_full", "received_empty", "physical_count", "damage_loss", "other"]
StockStateValue = Literal["full", "empty", "quarantine", "damaged", "under_maintenance"]


class InventoryBalanceResponse(BaseModel):
    product_id: int
    warehouse_id: int
    qty_full: int
    qty_empty: int
    qty_reserved: int
    qty_quarantine: int
    qty_damaged: int
    qty_in_transit: int
    qty_under_maintenance: int
    on_hand: int
    available: int

    model_config = ConfigDict(from_attributes=True)


class StockAdjustmentCreate(BaseModel):
    product_id: int
    warehouse_id: int
    adjustment_type: AdjustmentTypeValue
    qty_full_change: int = 0
    qty_empty_change: int = 0
    reason: str = Field(..., description="Why the stock is being adjusted.")


class StockTransferCreate(BaseModel):
    product_id: int
    from_warehouse_id: int
    to_warehouse_id: int
    qty_full: int = Field(default=0, ge=0)
    qty_empty: int = Field(default=0, ge=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_quantities(self):
        if self.qty_full == 0 and self.qty_empty == 0:
            raise ValueError("Transfer at least one full or empty unit.")
        return self


class StockTransferResponse(BaseModel):
    reference_id: str
    from_balance: InventoryBalanceResponse
    to_balance: InventoryBalanceResponse


class StockReceiptCreate(BaseModel):
    product_id: int
    warehouse_id: int
    qty_full: int = Field(default=0, ge=0)
    qty_empty: int = Field(default=0, ge=0)
    reason: Optional[str] = None


class StockStateChangeCreate(BaseModel):
    product_id: int
    warehouse_id: int
    from_state: StockStateValue
    to_state: StockStateValue
    quantity: int = Field(..., gt=0)
    reason: str


class StockMovementResponse(BaseModel):
    id: int
    product_id: int
    warehouse_id: int
    movement_type: str
    qty_full_change: int
    qty_empty_change: int
    reason: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
