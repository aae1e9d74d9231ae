from __future__ import annotations

from decimal import Decimal

import pytest
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from services.storefront.app.db.models import Order, OrderLine, Payment, PendingCartCleanup
from services.storefront.app.errors import (
    AuthenticationRequiredError,
    EmptyCartError,
    PaymentFailedError,
    TotalMismatchError,
    ValidationError,
)
from services.storefront.app.services.audit import list_events
from services.storefront.app.services.cart_store import CartStore
from services.storefront.app.services.catalog_mock import MockCatalogLookup
from services.storefront.app.services.identity import Customer, Guest
from services.storefront.app.services.invoice import InvoiceNumberGenerator
from services.storefront.app.services.janitor import GuestCartJanitor
from services.storefront.app.services.order_assembler import OrderAssembler
from services.storefront.app.settings import StorefrontSettings
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

DANA = Customer(31)


def _assembler(store: CartStore, settings: StorefrontSettings, **kwargs) -> OrderAssembler:
    return OrderAssembler(store, settings, **kwargs)


def _order_count(db: Session) -> int:
    return db.scalar(select(func.count(Order.id)))


def test_checkout_creates_confirmed_order_and_empties_cart(
    store: CartStore, settings: StorefrontSettings, db: Session
) -> None:
    store.add(DANA, 5, 1)

    result = _assembler(store, settings).checkout(DANA, "49.19")

    order = result.order
    assert order.status == "confirmed"
    assert order.subtotal == Decimal("40.00")
    assert order.tax == Decimal("3.20")
    assert order.shipping == Decimal("5.99")
    assert order.total_amount == Decimal("49.19")
    assert order.currency == "USD"
    assert len(order.invoice_no) == 14
    assert [(i.product_id, i.title, i.quantity) for i in order.items] == [(5, "Desk Lamp", 1)]

    assert result.cart_emptied is True
    assert result.items_count == 1
    assert store.list(DANA).count == 0

    payment = db.get(Payment, result.payment_id)
    assert payment is not None
    assert payment.amount_cents == 4919
    assert payment.method == "simulated_success"


def test_checkout_accepts_total_within_tolerance(store: CartStore, settings: StorefrontSettings) -> None:
    store.add(DANA, 5, 1)
    result = _assembler(store, settings).checkout(DANA, Decimal("49.20"))
    assert result.order.total_amount == Decimal("49.19")


def test_checkout_rejects_total_mismatch_without_side_effects(
    store: CartStore, settings: StorefrontSettings, db: Session
) -> None:
    store.add(DANA, 5, 1)

    with pytest.raises(TotalMismatchError) as exc:
        _assembler(store, settings).checkout(DANA, "50.00")

    assert exc.value.details["calculated_total"] == "49.19"
    assert exc.value.details["shipping"] == "5.99"
    assert _order_count(db) == 0
    assert store.list(DANA).count == 1


def test_free_shipping_at_threshold(store: CartStore, settings: StorefrontSettings) -> None:
    store.add(DANA, 4, 1)

    result = _assembler(store, settings).checkout(DANA, "54.00")

    assert result.order.shipping == Decimal("0.00")
    assert result.order.total_amount == Decimal("54.00")


def test_order_lines_freeze_purchase_price(
    store: CartStore, catalog: MockCatalogLookup, settings: StorefrontSettings, db: Session
) -> None:
    store.add(DANA, 1, 2)

    result = _assembler(store, settings).checkout(DANA, "32.99")
    catalog.reprice(1, 9999)

    line = db.scalars(select(OrderLine).where(OrderLine.order_id == result.order.order_id)).one()
    assert line.unit_price_cents == 1250
    assert line.line_total_cents == 2500


def test_checkout_requires_customer(store: CartStore, settings: StorefrontSettings) -> None:
    store.add(Guest("10.0.0.9"), 1, 1)
    with pytest.raises(AuthenticationRequiredError):
        _assembler(store, settings).checkout(Guest("10.0.0.9"), "19.49")


def test_checkout_of_empty_cart(store: CartStore, settings: StorefrontSettings) -> None:
    with pytest.raises(EmptyCartError):
        _assembler(store, settings).checkout(DANA, "10.00")


def test_checkout_after_all_products_vanished(
    store: CartStore, catalog: MockCatalogLookup, settings: StorefrontSettings
) -> None:
    store.add(DANA, 3, 1)
    catalog.discontinue(3)

    with pytest.raises(EmptyCartError) as exc:
        _assembler(store, settings).checkout(DANA, "32.99")
    assert exc.value.details["removed_items"] == 1


@pytest.mark.parametrize(
    ("field", "kwargs"),
    [
        ("total_amount", {"total_amount": "-1"}),
        ("currency", {"total_amount": "49.19", "currency": "XYZ"}),
        ("payment_method", {"total_amount": "49.19", "payment_method": "barter"}),
    ],
)
def test_checkout_validates_inputs(
    store: CartStore, settings: StorefrontSettings, field: str, kwargs: dict
) -> None:
    store.add(DANA, 5, 1)
    with pytest.raises(ValidationError) as exc:
        _assembler(store, settings).checkout(DANA, **kwargs)
    assert exc.value.field == field


def test_declined_payment_creates_no_order(
    store: CartStore, settings: StorefrontSettings, db: Session
) -> None:
    store.add(DANA, 5, 1)

    with pytest.raises(PaymentFailedError) as exc:
        _assembler(store, settings).checkout(DANA, "49.19", payment_method="simulated_failure")

    assert exc.value.retryable is False
    assert _order_count(db) == 0
    assert store.list(DANA).count == 1


def test_payment_timeout_is_retryable(store: CartStore, settings: StorefrontSettings) -> None:
    store.add(DANA, 5, 1)
    with pytest.raises(PaymentFailedError) as exc:
        _assembler(store, settings).checkout(DANA, "49.19", payment_method="simulated_timeout")
    assert exc.value.retryable is True
    assert exc.value.details["retryable"] is True


def test_invoice_taken_at_insert_is_regenerated(
    store: CartStore, settings: StorefrontSettings, db: Session
) -> None:
    db.add(
        Order(
            customer_id=99,
            invoice_no="17000000000001",
            status="confirmed",
            currency="USD",
            subtotal_cents=100,
            tax_cents=8,
            shipping_cents=599,
            total_cents=707,
        )
    )
    db.commit()
    store.add(DANA, 5, 1)

    class _StaleGenerator:
        # Hands out a number another process already committed, then a fresh one.
        def __init__(self) -> None:
            self._numbers = iter(["17000000000001", "17000000000002"])

        def generate_unique(self, exists, max_attempts: int = 10) -> tuple[str, int]:
            return next(self._numbers), 1

    result = _assembler(store, settings, invoices=_StaleGenerator()).checkout(DANA, "49.19")

    assert result.order.invoice_no == "17000000000002"
    assert result.invoice_attempts == 2
    assert _order_count(db) == 2


def test_invoice_collision_with_existing_order_is_skipped(
    store: CartStore, settings: StorefrontSettings, db: Session
) -> None:
    db.add(
        Order(
            customer_id=99,
            invoice_no="17000000000005",
            status="confirmed",
            currency="USD",
            subtotal_cents=100,
            tax_cents=8,
            shipping_cents=599,
            total_cents=707,
        )
    )
    db.commit()
    store.add(DANA, 5, 1)

    suffixes = iter([5, 6])
    generator = InvoiceNumberGenerator(clock=lambda: 1700000000, suffix=lambda: next(suffixes))
    result = _assembler(store, settings, invoices=generator).checkout(DANA, "49.19")

    assert result.order.invoice_no == "17000000000006"
    assert result.invoice_attempts == 2


def test_failed_cart_empty_is_deferred_and_retried(
    store: CartStore, settings: StorefrontSettings, db: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    store.add(DANA, 5, 1)

    def broken_empty(owner):
        raise OperationalError("DELETE FROM cart_lines", {}, Exception("database is locked"))

    monkeypatch.setattr(store, "empty", broken_empty)

    result = _assembler(store, settings).checkout(DANA, "49.19")

    assert result.cart_emptied is False
    assert _order_count(db) == 1

    pending = db.scalars(select(PendingCartCleanup)).one()
    assert pending.order_id == result.order.order_id
    assert pending.resolved_at is None
    assert store.list(DANA).count == 1

    retried = GuestCartJanitor(db).retry_pending_cleanups()

    assert (retried.attempted, retried.resolved, retried.failed) == (1, 1, 0)
    assert store.list(DANA).count == 0
    db.refresh(pending)
    assert pending.resolved_at is not None


def test_checkout_is_audited(store: CartStore, settings: StorefrontSettings, db: Session) -> None:
    store.add(DANA, 5, 1)
    result = _assembler(store, settings).checkout(DANA, "49.19")

    events = list_events(db, EntityTypeV1.ORDER, str(result.order.order_id))
    assert [e.event_type for e in events] == [EventTypeV1.ORDER_CREATED]
    assert events[0].payload["invoice_no"] == result.order.invoice_no
