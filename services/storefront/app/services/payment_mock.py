from __future__ import annotations

from uuid import uuid4

from services.storefront.app.errors import PaymentFailedError
from services.storefront.app.services.payment_base import PaymentResult


class SimulatedPaymentProcessor:
    """Deterministic payments keyed off the method name.

    ``simulated_failure`` declines, ``simulated_timeout`` times out (retryable), every
    other supported method succeeds.
    """

    name = "mock"

    def charge(self, customer_id: int, amount_cents: int, currency: str, method: str) -> PaymentResult:
        del customer_id

        if method == "simulated_failure":
            raise PaymentFailedError("Payment was declined", method=method)
        if method == "simulated_timeout":
            raise PaymentFailedError("Payment provider timed out. Please try again.", method=method, retryable=True)

        return PaymentResult(
            provider_reference=f"sim_{uuid4().hex[:12]}",
            amount_cents=amount_cents,
            currency=currency,
            method=method,
        )
