"""Error taxonomy for the cart and order core.

Everything below is raised inside the core and converted into a ``ResultV1`` envelope
by ``services.boundary.run_operation``; none of it reaches the HTTP layer as an
exception.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, ClassVar

from packages.shared.schemas.result_v1 import ErrorTypeV1
from sqlalchemy.exc import DBAPIError, DisconnectionError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError


class StorefrontError(Exception):
    """Base class for cart and order errors."""

    error_type: ClassVar[ErrorTypeV1] = ErrorTypeV1.INTERNAL_ERROR
    retryable: ClassVar[bool] = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})


class ValidationError(StorefrontError):
    error_type = ErrorTypeV1.VALIDATION_ERROR

    def __init__(self, field: str, value: Any, issue: str, message: str, **extra: Any) -> None:
        super().__init__(message, {"field": field, "value": value, "issue": issue, **extra})
        self.field = field
        self.issue = issue


class InvalidAddressError(ValidationError):
    error_type = ErrorTypeV1.INVALID_ADDRESS

    def __init__(self, address: str) -> None:
        super().__init__("address", address, "invalid_format", "Invalid network address format")


class InvalidQuantityError(ValidationError):
    error_type = ErrorTypeV1.INVALID_QUANTITY

    def __init__(self, quantity: Any, issue: str, message: str, **extra: Any) -> None:
        super().__init__("quantity", quantity, issue, message, **extra)


class NotFoundError(StorefrontError):
    error_type = ErrorTypeV1.NOT_FOUND

    def __init__(self, what: str, **identifiers: Any) -> None:
        super().__init__(f"{what} not found", identifiers)


class ProductNotAvailableError(StorefrontError):
    error_type = ErrorTypeV1.PRODUCT_NOT_AVAILABLE

    def __init__(self, product_id: int) -> None:
        super().__init__(
            "Product is not available. Please refresh the page.",
            {"product_id": product_id},
        )
        self.product_id = product_id


class OrphanedProductError(StorefrontError):
    error_type = ErrorTypeV1.ORPHANED_PRODUCT

    def __init__(self, product_id: int, had_cart_line: bool) -> None:
        super().__init__(
            "Product no longer exists and has been removed from your cart. Please refresh.",
            {
                "product_id": product_id,
                "product_exists": False,
                "had_cart_line": had_cart_line,
                "auto_removed": had_cart_line,
            },
        )
        self.product_id = product_id


class AuthenticationRequiredError(StorefrontError):
    error_type = ErrorTypeV1.AUTHENTICATION_REQUIRED

    def __init__(self, message: str = "Login required") -> None:
        super().__init__(message)


class EmptyCartError(StorefrontError):
    error_type = ErrorTypeV1.EMPTY_CART

    def __init__(self, removed_items: int = 0) -> None:
        super().__init__("Cart is empty. Cannot create order.", {"removed_items": removed_items})


class TotalMismatchError(StorefrontError):
    error_type = ErrorTypeV1.TOTAL_MISMATCH

    def __init__(self, expected_total: Decimal, provided_total: Decimal, breakdown: dict[str, str]) -> None:
        difference = abs(expected_total - provided_total)
        super().__init__(
            "Cart total mismatch. Please refresh and try again.",
            {
                **breakdown,
                "calculated_total": str(expected_total),
                "provided_total": str(provided_total),
                "difference": str(difference),
            },
        )
        self.expected_total = expected_total
        self.provided_total = provided_total


class PaymentFailedError(StorefrontError):
    error_type = ErrorTypeV1.PAYMENT_FAILED

    def __init__(self, message: str, method: str, retryable: bool = False) -> None:
        super().__init__(message, {"payment_method": method, "retryable": retryable})
        self.method = method
        self.retryable = retryable


class GenerationFailedError(StorefrontError):
    error_type = ErrorTypeV1.GENERATION_FAILED
    retryable = True

    def __init__(self, max_attempts: int) -> None:
        super().__init__(
            "Failed to generate a unique invoice number. Please try again.",
            {"max_attempts": max_attempts, "retryable": True},
        )
        self.max_attempts = max_attempts


class ConfigurationError(StorefrontError):
    """A STOREFRONT_* environment value that cannot be used."""

    def __init__(self, name: str, value: str, expected: str) -> None:
        super().__init__(
            "Server configuration error",
            {"setting": name, "value": value, "expected": expected},
        )
        self.setting = name


class InfrastructureError(StorefrontError):
    error_type = ErrorTypeV1.INFRASTRUCTURE_ERROR
    retryable = True

    _MESSAGES: ClassVar[dict[str, str]] = {
        "connection_lost": "Database connection lost. Please try again.",
        "too_many_connections": "Server is busy. Please try again later.",
        "lock_timeout": "System is busy. Please try again in a moment.",
        "deadlock": "System is busy. Please try again in a moment.",
        "catalog_unavailable": "Product catalog is temporarily unavailable. Please try again.",
    }

    def __init__(self, category: str, operation: str, cause: str | None = None) -> None:
        super().__init__(
            self._MESSAGES.get(category, "Database operation failed. Please try again."),
            {
                "category": category,
                "operation": operation,
                "retryable": True,
                "recommendation": "retry_with_backoff",
                "cause": cause,
            },
        )
        self.category = category

    @classmethod
    def from_db_error(cls, exc: SQLAlchemyError, operation: str) -> "InfrastructureError":
        return cls(classify_db_error(exc), operation, cause=type(exc).__name__)


# MySQL error numbers and PostgreSQL SQLSTATEs that mean "try again".
_MYSQL_CATEGORIES = {
    1040: "too_many_connections",
    1205: "lock_timeout",
    1213: "deadlock",
    2006: "connection_lost",
    2013: "connection_lost",
}
_PG_CATEGORIES = {
    "40P01": "deadlock",
    "55P03": "lock_timeout",
    "53300": "too_many_connections",
    "08006": "connection_lost",
    "08003": "connection_lost",
}


def classify_db_error(exc: SQLAlchemyError) -> str:
    """Collapse a storage failure into one of the retryable categories."""

    if isinstance(exc, PoolTimeoutError):
        return "too_many_connections"
    if isinstance(exc, DisconnectionError):
        return "connection_lost"

    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return "connection_lost"

        orig = exc.orig
        pgcode = getattr(orig, "pgcode", None)
        if pgcode in _PG_CATEGORIES:
            return _PG_CATEGORIES[pgcode]

        args = getattr(orig, "args", ()) or ()
        if args and isinstance(args[0], int) and args[0] in _MYSQL_CATEGORIES:
            return _MYSQL_CATEGORIES[args[0]]

        text = str(orig).lower()
        if "database is locked" in text or "lock wait timeout" in text:
            return "lock_timeout"
        if "deadlock" in text:
            return "deadlock"
        if "too many connections" in text:
            return "too_many_connections"
        if "gone away" in text or "lost connection" in text or "connection refused" in text:
            return "connection_lost"

    return "database_error"


def is_lock_error(exc: SQLAlchemyError) -> bool:
    return classify_db_error(exc) in {"lock_timeout", "deadlock"}
