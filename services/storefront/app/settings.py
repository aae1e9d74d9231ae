from __future__ import annotations

import os
from dataclasses import dataclass

from services.storefront.app.errors import ConfigurationError
from services.storefront.app.services.pricing import PricingPolicy

SUPPORTED_CURRENCIES = (
    "USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY", "SEK", "NZD",
    "MXN", "SGD", "HKD", "NOK", "TRY", "RUB", "INR", "BRL", "ZAR", "KRW",
)  # fmt: skip


@dataclass(frozen=True, slots=True)
class StorefrontSettings:
    """Runtime configuration for the cart and order core.

    Env vars:
    - STOREFRONT_TAX_RATE (default: 0.08)
    - STOREFRONT_FREE_SHIPPING_THRESHOLD (default: 50.00)
    - STOREFRONT_FLAT_SHIPPING_FEE (default: 5.99)
    - STOREFRONT_TOTAL_TOLERANCE (default: 0.01)
    - STOREFRONT_DEFAULT_CURRENCY (default: USD)
    - STOREFRONT_GUEST_FALLBACK_ADDRESS (default: 127.0.0.1)
    - STOREFRONT_TRUST_FORWARDED_FOR (default: false; enable only behind a trusted proxy)
    - STOREFRONT_INVOICE_MAX_ATTEMPTS (default: 10)
    - STOREFRONT_GUEST_EXPIRY_HOURS (default: 24)
    - STOREFRONT_ADMIN_API_KEY (default: unset, admin endpoints open)
    """

    pricing: PricingPolicy
    default_currency: str
    guest_fallback_address: str
    trust_forwarded_for: bool
    invoice_max_attempts: int
    guest_expiry_hours: int
    admin_api_key: str | None

    @classmethod
    def from_env(cls) -> "StorefrontSettings":
        return cls(
            pricing=PricingPolicy.from_env(),
            default_currency=os.getenv("STOREFRONT_DEFAULT_CURRENCY", "USD").strip().upper(),
            guest_fallback_address=os.getenv("STOREFRONT_GUEST_FALLBACK_ADDRESS", "127.0.0.1").strip(),
            trust_forwarded_for=_parse_bool(os.getenv("STOREFRONT_TRUST_FORWARDED_FOR", "false")),
            invoice_max_attempts=_env_int("STOREFRONT_INVOICE_MAX_ATTEMPTS", "10"),
            guest_expiry_hours=_env_int("STOREFRONT_GUEST_EXPIRY_HOURS", "24"),
            admin_api_key=os.getenv("STOREFRONT_ADMIN_API_KEY", "").strip() or None,
        )


def get_settings() -> StorefrontSettings:
    # Read per call so tests can monkeypatch the environment.
    return StorefrontSettings.from_env()


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default).strip()
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(name, raw, "positive integer") from None
    if value < 1:
        raise ConfigurationError(name, raw, "positive integer")
    return value
