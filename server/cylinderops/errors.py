"""Error taxonomy shared by the ledger, movements, orders and credits.

Every error carries a stable ``code`` so the HTTP layer can surface it
without string matching.
"""


class CylinderOpsError(ValueError):
    code = "CYLINDEROPS_ERROR"

    def to_detail(self) -> dict:
        return {"code": self.code, "message": str(self)}


class InvariantViolationError(CylinderOpsError):
    """A ledger mutation would leave a negative bucket or reserved > full."""

    code = "INVARIANT_VIOLATION"


class StockValidationError(CylinderOpsError):
    code = "VALIDATION_ERROR"


class InsufficientStockError(CylinderOpsError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, *, product_id: int, warehouse_id: int, requested: int, available: int, bucket: str = "available"):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.requested = requested
        self.available = available
        self.bucket = bucket
        self.shortfall = requested - available
        super().__init__(
            f"Insufficient stock for product {product_id} at warehouse {warehouse_id} "
            f"(requested {requested}, {bucket} {available}, short by {self.shortfall})."
        )

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail.update(
            {
                "product_id": self.product_id,
                "warehouse_id": self.warehouse_id,
                "requested": self.requested,
                "available": self.available,
                "shortfall": self.shortfall,
            }
        )
        return detail


class InvalidProductError(CylinderOpsError):
    code = "INVALID_PRODUCT"

    def __init__(self, product_id: int, reason: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} cannot be sold: {reason}")


class PricingUnavailableError(CylinderOpsError):
    code = "PRICING_UNAVAILABLE"

    def __init__(self, product_id: int, customer_id: int | None = None):
        self.product_id = product_id
        self.customer_id = customer_id
        super().__init__(f"No price configured for product {product_id}.")


class EmptyOrderError(CylinderOpsError):
    code = "EMPTY_ORDER"


class CreditNotFoundError(CylinderOpsError):
    code = "CREDIT_NOT_FOUND"


class CreditStateError(CylinderOpsError):
    code = "CREDIT_STATE"
