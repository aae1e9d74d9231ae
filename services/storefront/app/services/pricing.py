"""Monetary policy: tax, conditional free shipping, and total reconciliation.

Amounts are carried as integer cents everywhere except at the edges, where callers
send and receive decimal currency units.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from services.storefront.app.errors import ConfigurationError, TotalMismatchError, ValidationError

CENT = Decimal("0.01")
MAX_ORDER_AMOUNT = Decimal("999999.99")


def to_cents(amount: Decimal) -> int:
    return int((amount / CENT).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) * CENT).quantize(CENT)


def parse_amount(value: object, field: str = "total_amount") -> Decimal:
    """Validate a caller-supplied amount (positive, bounded, numeric)."""

    if value is None or value == "":
        raise ValidationError(field, value, "missing_or_empty", "Order amount is required")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(field, value, "not_numeric", "Order amount must be a valid number") from None
    if not amount.is_finite():
        raise ValidationError(field, str(value), "not_numeric", "Order amount must be a valid number")
    if amount <= 0:
        raise ValidationError(field, str(amount), "not_positive", "Order amount must be greater than zero")
    if amount > MAX_ORDER_AMOUNT:
        raise ValidationError(
            field,
            str(amount),
            "above_maximum",
            f"Order amount exceeds maximum allowed value of {MAX_ORDER_AMOUNT}",
            max_allowed=str(MAX_ORDER_AMOUNT),
        )
    return amount


@dataclass(frozen=True, slots=True)
class PricingPolicy:
    tax_rate: Decimal
    free_shipping_threshold_cents: int
    flat_shipping_fee_cents: int
    tolerance: Decimal

    @classmethod
    def from_env(cls) -> "PricingPolicy":
        return cls(
            tax_rate=_env_decimal("STOREFRONT_TAX_RATE", "0.08"),
            free_shipping_threshold_cents=to_cents(_env_decimal("STOREFRONT_FREE_SHIPPING_THRESHOLD", "50.00")),
            flat_shipping_fee_cents=to_cents(_env_decimal("STOREFRONT_FLAT_SHIPPING_FEE", "5.99")),
            tolerance=_env_decimal("STOREFRONT_TOTAL_TOLERANCE", "0.01"),
        )


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name, default).strip()
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ConfigurationError(name, raw, "non-negative decimal") from None
    if not value.is_finite() or value < 0:
        raise ConfigurationError(name, raw, "non-negative decimal")
    return value


@dataclass(frozen=True, slots=True)
class PriceBreakdown:
    subtotal_cents: int
    tax_cents: int
    shipping_cents: int

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents + self.tax_cents + self.shipping_cents

    @property
    def total(self) -> Decimal:
        return from_cents(self.total_cents)

    def as_details(self) -> dict[str, str]:
        return {
            "subtotal": str(from_cents(self.subtotal_cents)),
            "tax": str(from_cents(self.tax_cents)),
            "shipping": str(from_cents(self.shipping_cents)),
        }


def compute_breakdown(subtotal_cents: int, policy: PricingPolicy) -> PriceBreakdown:
    tax_cents = int(
        (Decimal(subtotal_cents) * policy.tax_rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )
    if subtotal_cents >= policy.free_shipping_threshold_cents:
        shipping_cents = 0
    else:
        shipping_cents = policy.flat_shipping_fee_cents

    return PriceBreakdown(
        subtotal_cents=subtotal_cents,
        tax_cents=tax_cents,
        shipping_cents=shipping_cents,
    )


def reconcile(breakdown: PriceBreakdown, provided_total: Decimal, policy: PricingPolicy) -> None:
    """Reject a client total that drifted from the server-side total.

    A mismatch is never corrected here; the client has to refresh and resubmit.
    """

    if abs(breakdown.total - provided_total) > policy.tolerance:
        raise TotalMismatchError(breakdown.total, provided_total, breakdown.as_details())
