from fastapi import HTTPException, status

from cylinderops.errors import (
    CreditNotFoundError,
    CreditStateError,
    CylinderOpsError,
    EmptyOrderError,
    InsufficientStockError,
    InvalidProductError,
    InvariantViolationError,
    PricingUnavailableError,
    StockValidationError,
)


STATUS_BY_ERROR: dict[type[CylinderOpsError], int] = {
    InvariantViolationError: status.HTTP_409_CONFLICT,
    StockValidationError: status.HTTP_400_BAD_REQUEST,
    InsufficientStockError: status.HTTP_409_CONFLICT,
    InvalidProductError: status.HTTP_400_BAD_REQUEST,
    PricingUnavailableError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    EmptyOrderError: status.HTTP_400_BAD_REQUEST,
    CreditNotFoundError: status.HTTP_404_NOT_FOUND,
    CreditStateError: status.HTTP_409_CONFLICT,
}


def to_http_exception(exc: CylinderOpsError) -> HTTPException:
    status_code = next(
        (code for error_type, code in STATUS_BY_ERROR.items() if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    return HTTPException(status_code=status_code, detail=exc.to_detail())
