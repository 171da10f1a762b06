from enum import Enum


class SkuVariant(str, Enum):
    FULL_OUT = "FULL-OUT"
    FULL_XCH = "FULL-XCH"
    EMPTY = "EMPTY"
    OTHER = "OTHER"


class ProductType(str, Enum):
    CYLINDER = "cylinder"
    ACCESSORY = "accessory"


class OrderFlowType(str, Enum):
    OUTRIGHT = "outright"
    EXCHANGE = "exchange"
    NONE = "none"


class OrderKind(str, Enum):
    DELIVERY = "delivery"
    VISIT = "visit"


class AdjustmentType(str, Enum):
    RECEIVED_FULL = "received_full"
    RECEIVED_EMPTY = "received_empty"
    PHYSICAL_COUNT = "physical_count"
    DAMAGE_LOSS = "damage_loss"
    OTHER = "other"


class MovementType(str, Enum):
    ADJUSTMENT = "adjustment"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    ORDER_RESERVE = "order_reserve"
    ORDER_RELEASE = "order_release"
    ORDER_FULFILL = "order_fulfill"
    RECEIPT = "receipt"
    DAMAGE = "damage"
    MAINTENANCE = "maintenance"
    DISPOSAL = "disposal"


class StockState(str, Enum):
    FULL = "full"
    EMPTY = "empty"
    QUARANTINE = "quarantine"
    DAMAGED = "damaged"
    UNDER_MAINTENANCE = "under_maintenance"


class CreditStatus(str, Enum):
    PENDING = "pending"
    RETURNED = "returned"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


# Stock state -> inventory_balances column.
STATE_COLUMNS: dict[StockState, str] = {
    StockState.FULL: "qty_full",
    StockState.EMPTY: "qty_empty",
    StockState.QUARANTINE: "qty_quarantine",
    StockState.DAMAGED: "qty_damaged",
    StockState.UNDER_MAINTENANCE: "qty_under_maintenance",
}

ACTIVE_PRODUCT_STATUSES = {"active"}
