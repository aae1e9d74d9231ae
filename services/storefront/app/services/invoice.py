from __future__ import annotations

import random
import threading
import time
from collections import deque
from collections.abc import Callable

import structlog
from services.storefront.app.errors import GenerationFailedError

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 10


class InvoiceNumberGenerator:
    """Invoice numbers of the form ``<unix seconds><4 random digits>``.

    Candidates are checked against persisted orders (``exists``) and against numbers
    already handed out by this process, under one lock, so two concurrent checkouts
    never receive the same number even before either order is committed.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        suffix: Callable[[], int] | None = None,
        remember: int = 10_000,
    ) -> None:
        self._clock = clock
        self._suffix = suffix or (lambda: random.randint(0, 9999))
        self._lock = threading.Lock()
        self._issued: set[str] = set()
        self._order: deque[str] = deque()
        self._remember = remember

    def candidate(self) -> str:
        return f"{int(self._clock())}{self._suffix():04d}"

    def generate_unique(
        self,
        exists: Callable[[str], bool],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> tuple[str, int]:
        """Return ``(invoice_no, attempts_used)`` or raise ``GenerationFailedError``."""

        with self._lock:
            for attempt in range(1, max_attempts + 1):
                candidate = self.candidate()
                if candidate in self._issued or exists(candidate):
                    logger.debug("Invoice number collision", candidate=candidate, attempt=attempt)
                    continue

                self._remember_issued(candidate)
                return candidate, attempt

        logger.error("Invoice number generation exhausted", max_attempts=max_attempts)
        raise GenerationFailedError(max_attempts)

    def _remember_issued(self, invoice_no: str) -> None:
        self._issued.add(invoice_no)
        self._order.append(invoice_no)
        # Old numbers carry an older timestamp prefix and can no longer be drawn.
        while len(self._order) > self._remember:
            self._issued.discard(self._order.popleft())


invoice_numbers = InvoiceNumberGenerator()
