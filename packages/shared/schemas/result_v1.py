"""Shared operation result envelope (v1).

Every cart and order operation answers with this shape so the storefront pages can
render success and failure the same way.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel


class ErrorTypeV1(str, Enum):
    VALIDATION_ERROR = "validation_error"
    INVALID_ADDRESS = "invalid_address"
    INVALID_QUANTITY = "invalid_quantity"
    NOT_FOUND = "not_found"
    ORPHANED_PRODUCT = "orphaned_product"
    PRODUCT_NOT_AVAILABLE = "product_not_available"
    AUTHENTICATION_REQUIRED = "authentication_required"
    EMPTY_CART = "empty_cart"
    TOTAL_MISMATCH = "total_mismatch"
    PAYMENT_FAILED = "payment_failed"
    GENERATION_FAILED = "generation_failed"
    INFRASTRUCTURE_ERROR = "infrastructure_error"
    INTERNAL_ERROR = "internal_error"


class ResultV1(BaseModel):
    success: bool
    data: dict[str, Any] | None = None

    error: str | None = None
    error_type: ErrorTypeV1 | None = None
    error_details: dict[str, Any] | None = None

    @classmethod
    def ok(cls, data: dict[str, Any]) -> "ResultV1":
        return cls(success=True, data=data)

    @classmethod
    def fail(
        cls,
        error: str,
        error_type: ErrorTypeV1,
        error_details: dict[str, Any] | None = None,
    ) -> "ResultV1":
        return cls(
            success=False,
            error=error,
            error_type=error_type,
            error_details=error_details,
        )
