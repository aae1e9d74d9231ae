from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from services.storefront.app.db.models import CartLine, OrderLine, PendingCartCleanup, utcnow
from services.storefront.app.models.admin import (
    ExpiredGuestCartsOut,
    GuestCartStatisticsOut,
    PendingCleanupOut,
)
from services.storefront.app.services.audit import log_event
from services.storefront.app.services.cart_store import cart_key, owner_filter
from services.storefront.app.services.identity import Customer, Guest, owner_from_row
from services.storefront.app.services.validation import validate_expiry_hours
from sqlalchemy import delete, distinct, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = structlog.get_logger(__name__)


class GuestCartJanitor:
    """Periodic maintenance: expire stale guest carts and finish deferred cart empties."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def cleanup_expired(self, expiry_hours: object, now: datetime | None = None) -> ExpiredGuestCartsOut:
        hours = validate_expiry_hours(expiry_hours)
        cutoff = (now or utcnow()) - timedelta(hours=hours)

        expired = (CartLine.owner_kind == Guest.kind, CartLine.added_at < cutoff)

        guests = self._db.scalar(select(func.count(distinct(CartLine.owner_ref))).where(*expired)) or 0
        deleted = self._db.execute(
            delete(CartLine).where(*expired).execution_options(synchronize_session=False)
        ).rowcount

        if deleted:
            log_event(
                self._db,
                customer_id=None,
                entity_type=EntityTypeV1.GUEST_CARTS,
                entity_id="guest",
                event_type=EventTypeV1.GUEST_CARTS_EXPIRED,
                event_payload={
                    "expiry_hours": hours,
                    "cutoff": cutoff.isoformat(),
                    "guests_affected": guests,
                    "lines_deleted": deleted,
                },
            )
        self._db.commit()

        logger.info(
            "Expired guest carts cleaned up",
            expiry_hours=hours,
            guests_affected=guests,
            lines_deleted=deleted,
        )
        return ExpiredGuestCartsOut(
            expiry_hours=hours,
            cutoff=cutoff.isoformat(),
            guests_affected=guests,
            lines_deleted=deleted,
        )

    def guest_cart_statistics(self) -> GuestCartStatisticsOut:
        row = self._db.execute(
            select(
                func.count(distinct(CartLine.owner_ref)),
                func.count(CartLine.id),
                func.coalesce(func.sum(CartLine.quantity), 0),
                func.min(CartLine.added_at),
            ).where(CartLine.owner_kind == Guest.kind)
        ).one()
        guests, lines, quantity, oldest = row

        return GuestCartStatisticsOut(
            unique_guests=guests,
            total_guest_items=lines,
            total_guest_quantity=int(quantity),
            avg_items_per_guest=round(lines / guests, 2) if guests else 0.0,
            oldest_added_at=oldest.isoformat() if oldest is not None else None,
        )

    def retry_pending_cleanups(self, limit: int = 100) -> PendingCleanupOut:
        """Empty carts whose post-order cleanup failed.

        Only lines for products on the order, added before the failure, are removed;
        anything the customer put in the cart since stays.
        """

        pending = (
            self._db.query(PendingCartCleanup)
            .filter(PendingCartCleanup.resolved_at.is_(None))
            .order_by(PendingCartCleanup.created_at.asc())
            .limit(limit)
            .all()
        )

        resolved = 0
        failed = 0
        for cleanup in pending:
            owner = owner_from_row(cleanup.owner_kind, cleanup.owner_ref)
            ordered = select(OrderLine.product_id).where(OrderLine.order_id == cleanup.order_id)

            cleanup.attempts += 1
            try:
                with self._db.begin_nested():
                    removed = self._db.execute(
                        delete(CartLine)
                        .where(
                            *owner_filter(owner),
                            CartLine.product_id.in_(ordered),
                            CartLine.added_at <= cleanup.created_at,
                        )
                        .execution_options(synchronize_session=False)
                    ).rowcount
                    cleanup.resolved_at = utcnow()
                    cleanup.last_error = None
                    log_event(
                        self._db,
                        customer_id=owner.customer_id if isinstance(owner, Customer) else None,
                        entity_type=EntityTypeV1.CART,
                        entity_id=cart_key(owner),
                        event_type=EventTypeV1.CART_EMPTY_RETRIED,
                        event_payload={"order_id": cleanup.order_id, "removed_rows": removed},
                    )
                resolved += 1
            except SQLAlchemyError as e:
                cleanup.last_error = type(e).__name__
                failed += 1
                logger.warning(
                    "Deferred cart cleanup failed again",
                    order_id=cleanup.order_id,
                    attempts=cleanup.attempts,
                    error=type(e).__name__,
                )

        self._db.commit()

        if pending:
            logger.info("Deferred cart cleanups retried", attempted=len(pending), resolved=resolved, failed=failed)
        return PendingCleanupOut(attempted=len(pending), resolved=resolved, failed=failed)
