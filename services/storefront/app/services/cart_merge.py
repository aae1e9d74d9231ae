from __future__ import annotations

import structlog
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from packages.shared.schemas.result_v1 import ErrorTypeV1
from services.storefront.app.db.models import MAX_LINE_QUANTITY, CartLine, utcnow
from services.storefront.app.models.cart import TransferError, TransferOut
from services.storefront.app.services.audit import log_event
from services.storefront.app.services.cart_store import CartStore, cart_key
from services.storefront.app.services.identity import Customer, Guest, normalize_address
from services.storefront.app.services.validation import validate_customer_id
from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError

logger = structlog.get_logger(__name__)


class CartMergeEngine:
    """Folds a guest cart into a customer cart after login.

    Each guest line is handled in its own savepoint, so one bad line is reported in
    ``errors`` without undoing the lines already moved.
    """

    def __init__(self, store: CartStore) -> None:
        self._store = store
        self._db = store.db

    def transfer_guest_to_customer(self, guest_address: str, customer_id: object) -> TransferOut:
        customer = Customer(validate_customer_id(customer_id))
        guest = Guest(normalize_address(guest_address))

        guest_lines = self._store.lines(guest)
        products = self._store.catalog.lookup_many(line.product_id for line in guest_lines)

        transferred = 0
        merged = 0
        clamped = 0
        errors: list[TransferError] = []

        for line in guest_lines:
            product_id = line.product_id
            quantity = line.quantity
            line_id = line.id

            if product_id not in products:
                self._db.execute(
                    delete(CartLine)
                    .where(CartLine.id == line_id)
                    .execution_options(synchronize_session=False)
                )
                errors.append(
                    TransferError(
                        product_id=product_id,
                        error_type=ErrorTypeV1.ORPHANED_PRODUCT.value,
                        message="Product no longer exists; guest line removed",
                    )
                )
                continue

            try:
                with self._db.begin_nested():
                    existing = self._store.find_line(customer, product_id)
                    if existing is None:
                        self._db.execute(
                            update(CartLine)
                            .where(CartLine.id == line_id)
                            .values(
                                owner_kind=customer.kind,
                                owner_ref=customer.ref,
                                updated_at=utcnow(),
                            )
                            .execution_options(synchronize_session=False)
                        )
                        transferred += 1
                    else:
                        if existing.quantity + quantity > MAX_LINE_QUANTITY:
                            clamped += 1
                        self._store.increment(customer, product_id, quantity)
                        self._db.execute(
                            delete(CartLine)
                            .where(CartLine.id == line_id)
                            .execution_options(synchronize_session=False)
                        )
                        merged += 1
            except SQLAlchemyError as e:
                logger.warning(
                    "Guest line transfer failed",
                    product_id=product_id,
                    customer_id=customer.customer_id,
                    guest_address=guest.address,
                    error=type(e).__name__,
                )
                errors.append(
                    TransferError(
                        product_id=product_id,
                        error_type=ErrorTypeV1.INFRASTRUCTURE_ERROR.value,
                        message="Could not transfer this item; it was left in the guest cart",
                    )
                )

        result = TransferOut(
            customer_id=customer.customer_id,
            guest_address=guest.address,
            transferred_items=transferred,
            merged_items=merged,
            clamped_items=clamped,
            total_processed=len(guest_lines),
            errors=errors,
        )

        if guest_lines:
            log_event(
                self._db,
                customer_id=customer.customer_id,
                entity_type=EntityTypeV1.CART,
                entity_id=cart_key(customer),
                event_type=EventTypeV1.CART_TRANSFERRED,
                event_payload=result.model_dump(mode="json"),
            )
        self._db.commit()

        logger.info(
            "Guest cart transferred",
            customer_id=customer.customer_id,
            guest_address=guest.address,
            transferred_items=transferred,
            merged_items=merged,
            errors=len(errors),
        )
        return result
