from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class PaymentResult:
    provider_reference: str
    amount_cents: int
    currency: str
    method: str


class PaymentProcessor(Protocol):
    """Charges a customer for a reconciled total.

    Implementations raise ``PaymentFailedError`` on decline or timeout; nothing is
    persisted by the processor itself.
    """

    name: str

    def charge(self, customer_id: int, amount_cents: int, currency: str, method: str) -> PaymentResult: ...
