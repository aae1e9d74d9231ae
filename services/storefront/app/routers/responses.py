from __future__ import annotations

from fastapi.responses import JSONResponse
from packages.shared.schemas.result_v1 import ErrorTypeV1, ResultV1

_STATUS_BY_ERROR_TYPE = {
    ErrorTypeV1.VALIDATION_ERROR: 400,
    ErrorTypeV1.INVALID_ADDRESS: 400,
    ErrorTypeV1.INVALID_QUANTITY: 400,
    ErrorTypeV1.NOT_FOUND: 404,
    ErrorTypeV1.AUTHENTICATION_REQUIRED: 401,
    ErrorTypeV1.ORPHANED_PRODUCT: 409,
    ErrorTypeV1.PRODUCT_NOT_AVAILABLE: 409,
    ErrorTypeV1.EMPTY_CART: 409,
    ErrorTypeV1.TOTAL_MISMATCH: 409,
    ErrorTypeV1.PAYMENT_FAILED: 409,
    ErrorTypeV1.GENERATION_FAILED: 503,
    ErrorTypeV1.INFRASTRUCTURE_ERROR: 503,
    ErrorTypeV1.INTERNAL_ERROR: 500,
}


def status_for(result: ResultV1) -> int:
    if result.success:
        return 200
    return _STATUS_BY_ERROR_TYPE.get(result.error_type, 500)


def respond(result: ResultV1) -> JSONResponse:
    return JSONResponse(status_code=status_for(result), content=result.model_dump(mode="json"))
