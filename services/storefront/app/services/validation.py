from __future__ import annotations

from typing import Any

from services.storefront.app.db.models import MAX_LINE_QUANTITY
from services.storefront.app.errors import InvalidQuantityError, ValidationError
from services.storefront.app.settings import SUPPORTED_CURRENCIES

MAX_IDENTIFIER = 2_147_483_647

PAYMENT_METHODS = (
    "simulated_success",
    "simulated_failure",
    "simulated_timeout",
    "credit_card",
    "debit_card",
    "paypal",
    "bank_transfer",
)

MIN_EXPIRY_HOURS = 1
MAX_EXPIRY_HOURS = 168


def _positive_identifier(field: str, value: Any, label: str) -> int:
    if value is None or value == "":
        raise ValidationError(field, value, "missing_or_empty", f"{label} is required")
    if isinstance(value, bool):
        raise ValidationError(field, value, "not_numeric", f"{label} must be a valid number")
    try:
        number = int(str(value).strip())
    except ValueError:
        raise ValidationError(field, value, "not_numeric", f"{label} must be a valid number") from None
    if number <= 0:
        raise ValidationError(field, number, "not_positive", f"{label} must be a positive number")
    if number > MAX_IDENTIFIER:
        raise ValidationError(
            field, number, "too_large", f"{label} is too large", max_allowed=MAX_IDENTIFIER
        )
    return number


def validate_product_id(value: Any) -> int:
    return _positive_identifier("product_id", value, "Product ID")


def validate_customer_id(value: Any) -> int:
    return _positive_identifier("customer_id", value, "Customer ID")


def validate_order_id(value: Any) -> int:
    return _positive_identifier("order_id", value, "Order ID")


def validate_quantity(value: Any, *, allow_zero: bool = False) -> int:
    if value is None or value == "" or isinstance(value, bool):
        raise InvalidQuantityError(value, "missing_or_empty", "Quantity is required")
    try:
        quantity = int(str(value).strip())
    except ValueError:
        raise InvalidQuantityError(value, "not_numeric", "Quantity must be a valid number") from None

    minimum = 0 if allow_zero else 1
    if quantity < minimum:
        message = "Quantity must be zero or greater" if allow_zero else "Quantity must be at least 1"
        raise InvalidQuantityError(quantity, "below_minimum", message, min_allowed=minimum)
    if quantity > MAX_LINE_QUANTITY:
        raise InvalidQuantityError(
            quantity,
            "above_maximum",
            f"Quantity must be at most {MAX_LINE_QUANTITY}",
            max_allowed=MAX_LINE_QUANTITY,
        )
    return quantity


def validate_currency(value: str | None, default: str) -> str:
    if value is None or not value.strip():
        return default

    currency = value.strip().upper()
    if len(currency) != 3 or not currency.isalpha():
        raise ValidationError(
            "currency", value, "invalid_format", "Currency must be a 3-letter ISO code"
        )
    if currency not in SUPPORTED_CURRENCIES:
        raise ValidationError(
            "currency",
            currency,
            "unsupported_currency",
            "Unsupported currency code",
            supported_currencies=list(SUPPORTED_CURRENCIES),
        )
    return currency


def validate_payment_method(value: str | None) -> str:
    if value is None or not value.strip():
        raise ValidationError("payment_method", value, "missing_or_empty", "Payment method is required")

    method = value.strip().lower()
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            "payment_method",
            method,
            "invalid_method",
            "Unsupported payment method",
            valid_methods=list(PAYMENT_METHODS),
        )
    return method


def validate_expiry_hours(value: Any) -> int:
    try:
        hours = int(value)
    except (TypeError, ValueError):
        raise ValidationError("expiry_hours", value, "not_numeric", "Expiry hours must be a number") from None
    if not MIN_EXPIRY_HOURS <= hours <= MAX_EXPIRY_HOURS:
        raise ValidationError(
            "expiry_hours",
            hours,
            "out_of_range",
            f"Expiry hours must be between {MIN_EXPIRY_HOURS} and {MAX_EXPIRY_HOURS}",
            min_allowed=MIN_EXPIRY_HOURS,
            max_allowed=MAX_EXPIRY_HOURS,
        )
    return hours
