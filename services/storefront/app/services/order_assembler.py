"""Checkout: turn a customer's cart into a paid, persisted order.

The sequence is snapshot -> price -> reconcile -> pay -> persist -> empty cart. Order
creation and cart emptying are separate commits: once the order exists a failed empty
is recorded as a ``PendingCartCleanup`` and the checkout still succeeds.
"""

from __future__ import annotations

from uuid import uuid4

import structlog
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from services.storefront.app.db.models import Order, OrderLine, Payment, PendingCartCleanup
from services.storefront.app.errors import (
    AuthenticationRequiredError,
    EmptyCartError,
    GenerationFailedError,
)
from services.storefront.app.models.order import CheckoutOut
from services.storefront.app.services.audit import log_event
from services.storefront.app.services.cart_store import CartStore, ValidatedCartSnapshot, cart_key
from services.storefront.app.services.identity import CartOwner, Customer
from services.storefront.app.services.invoice import InvoiceNumberGenerator, invoice_numbers
from services.storefront.app.services.orders import order_out
from services.storefront.app.services.payment_base import PaymentProcessor, PaymentResult
from services.storefront.app.services.payment_factory import get_payment_processor
from services.storefront.app.services.pricing import PriceBreakdown, compute_breakdown, parse_amount, reconcile
from services.storefront.app.services.validation import validate_currency, validate_payment_method
from services.storefront.app.settings import StorefrontSettings
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = structlog.get_logger(__name__)

CONFIRMED = "confirmed"


class OrderAssembler:
    def __init__(
        self,
        store: CartStore,
        settings: StorefrontSettings,
        payments: PaymentProcessor | None = None,
        invoices: InvoiceNumberGenerator | None = None,
    ) -> None:
        self._store = store
        self._db = store.db
        self._settings = settings
        self._payments = payments or get_payment_processor()
        self._invoices = invoices or invoice_numbers

    def checkout(
        self,
        owner: CartOwner,
        total_amount: object,
        currency: str | None = None,
        payment_method: str | None = "simulated_success",
    ) -> CheckoutOut:
        if not isinstance(owner, Customer):
            raise AuthenticationRequiredError("Login required to place an order")

        provided_total = parse_amount(total_amount)
        currency = validate_currency(currency, self._settings.default_currency)
        method = validate_payment_method(payment_method)

        snapshot = self._store.snapshot(owner)
        if not snapshot.lines:
            raise EmptyCartError(snapshot.removed_items)

        policy = self._settings.pricing
        breakdown = compute_breakdown(snapshot.subtotal_cents, policy)
        reconcile(breakdown, provided_total, policy)

        payment = self._payments.charge(owner.customer_id, breakdown.total_cents, currency, method)

        order, payment_id, attempts = self._persist(owner, snapshot, breakdown, currency, payment)
        result = order_out(order, self._order_lines(order.id))
        logger.info(
            "Order created",
            order_id=result.order_id,
            customer_id=owner.customer_id,
            invoice_no=result.invoice_no,
            total_cents=breakdown.total_cents,
            items_count=len(snapshot.lines),
        )

        cart_emptied = self._empty_cart(owner, result.order_id)

        return CheckoutOut(
            order=result,
            payment_id=payment_id,
            payment_method=method,
            invoice_attempts=attempts,
            items_count=len(snapshot.lines),
            removed_items=snapshot.removed_items,
            cart_emptied=cart_emptied,
        )

    def _invoice_exists(self, invoice_no: str) -> bool:
        return self._db.scalar(select(Order.id).where(Order.invoice_no == invoice_no)) is not None

    def _order_lines(self, order_id: int) -> list[OrderLine]:
        return (
            self._db.query(OrderLine)
            .filter(OrderLine.order_id == order_id)
            .order_by(OrderLine.id.asc())
            .all()
        )

    def _persist(
        self,
        owner: Customer,
        snapshot: ValidatedCartSnapshot,
        breakdown: PriceBreakdown,
        currency: str,
        payment: PaymentResult,
    ) -> tuple[Order, str, int]:
        """Write order, lines and payment in one transaction.

        A unique-constraint hit on ``invoice_no`` (another process won the number)
        regenerates; the total number of draws stays bounded.
        """

        max_attempts = self._settings.invoice_max_attempts
        used = 0
        while used < max_attempts:
            invoice_no, attempts = self._invoices.generate_unique(
                self._invoice_exists, max_attempts=max_attempts - used
            )
            used += attempts

            order = Order(
                customer_id=owner.customer_id,
                invoice_no=invoice_no,
                status=CONFIRMED,
                currency=currency,
                subtotal_cents=breakdown.subtotal_cents,
                tax_cents=breakdown.tax_cents,
                shipping_cents=breakdown.shipping_cents,
                total_cents=breakdown.total_cents,
            )
            try:
                self._db.add(order)
                self._db.flush()

                for line in snapshot.lines:
                    self._db.add(
                        OrderLine(
                            order_id=order.id,
                            product_id=line.product_id,
                            product_title=line.title,
                            unit_price_cents=line.unit_price_cents,
                            quantity=line.quantity,
                            line_total_cents=line.line_total_cents,
                        )
                    )

                payment_id = uuid4().hex
                self._db.add(
                    Payment(
                        id=payment_id,
                        order_id=order.id,
                        customer_id=owner.customer_id,
                        amount_cents=payment.amount_cents,
                        currency=payment.currency,
                        method=payment.method,
                        provider_reference=payment.provider_reference,
                    )
                )

                log_event(
                    self._db,
                    customer_id=owner.customer_id,
                    entity_type=EntityTypeV1.ORDER,
                    entity_id=str(order.id),
                    event_type=EventTypeV1.ORDER_CREATED,
                    event_payload={
                        "invoice_no": invoice_no,
                        "total_cents": breakdown.total_cents,
                        "currency": currency,
                        "items_count": len(snapshot.lines),
                    },
                )
                log_event(
                    self._db,
                    customer_id=owner.customer_id,
                    entity_type=EntityTypeV1.PAYMENT,
                    entity_id=payment_id,
                    event_type=EventTypeV1.PAYMENT_CAPTURED,
                    event_payload={
                        "order_id": order.id,
                        "method": payment.method,
                        "provider_reference": payment.provider_reference,
                        "amount_cents": payment.amount_cents,
                    },
                )

                self._db.commit()
                return order, payment_id, used
            except IntegrityError as e:
                self._db.rollback()
                if "invoice_no" not in str(e.orig).lower():
                    raise
                logger.warning("Invoice number taken at insert; regenerating", invoice_no=invoice_no)

        raise GenerationFailedError(max_attempts)

    def _empty_cart(self, owner: Customer, order_id: int) -> bool:
        try:
            self._store.empty(owner)
            return True
        except SQLAlchemyError as e:
            self._db.rollback()
            error = type(e).__name__
            logger.warning(
                "Cart empty failed after order was created; deferring",
                order_id=order_id,
                customer_id=owner.customer_id,
                error=error,
            )

        try:
            self._db.add(
                PendingCartCleanup(
                    id=uuid4().hex,
                    owner_kind=owner.kind,
                    owner_ref=owner.ref,
                    order_id=order_id,
                    last_error=error,
                    attempts=1,
                )
            )
            log_event(
                self._db,
                customer_id=owner.customer_id,
                entity_type=EntityTypeV1.CART,
                entity_id=cart_key(owner),
                event_type=EventTypeV1.CART_EMPTY_DEFERRED,
                event_payload={"order_id": order_id},
            )
            self._db.commit()
        except SQLAlchemyError:
            self._db.rollback()
            logger.exception("Could not record deferred cart cleanup", order_id=order_id)
        return False
