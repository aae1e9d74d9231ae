from __future__ import annotations

import os

from services.storefront.app.services.payment_base import PaymentProcessor
from services.storefront.app.services.payment_mock import SimulatedPaymentProcessor


def get_payment_processor() -> PaymentProcessor:
    """Select a payment processor based on env vars.

    Only the simulated processor exists; STOREFRONT_PAYMENTS is still checked so a
    misconfigured deployment fails loudly instead of silently simulating charges.
    """

    mode = os.getenv("STOREFRONT_PAYMENTS", "mock").strip().lower()

    if mode == "mock":
        return SimulatedPaymentProcessor()

    raise ValueError(f"Unknown STOREFRONT_PAYMENTS={mode!r}. Expected mock.")
