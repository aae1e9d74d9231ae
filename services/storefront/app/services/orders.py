from __future__ import annotations

from datetime import date, datetime, time, timedelta

import structlog
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from services.storefront.app.db.models import Order, OrderLine, utcnow
from services.storefront.app.errors import NotFoundError, ValidationError
from services.storefront.app.models.order import (
    OrderLineOut,
    OrderListOut,
    OrderOut,
    OrderStatisticsOut,
    OrderStatusOut,
)
from services.storefront.app.services.audit import log_event
from services.storefront.app.services.pricing import from_cents
from services.storefront.app.services.validation import validate_customer_id, validate_order_id
from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session

logger = structlog.get_logger(__name__)

# Statuses reachable from each status; an empty set is terminal.
ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"processing", "cancelled"}),
    "processing": frozenset({"shipped", "cancelled"}),
    "shipped": frozenset({"delivered"}),
    "delivered": frozenset(),
    "cancelled": frozenset(),
}
ORDER_STATUSES = tuple(ORDER_TRANSITIONS)

MAX_PAGE_SIZE = 100
DEFAULT_STATISTICS_DAYS = 30


def order_out(order: Order, lines: list[OrderLine]) -> OrderOut:
    return OrderOut(
        order_id=order.id,
        customer_id=order.customer_id,
        invoice_no=order.invoice_no,
        status=order.status,
        currency=order.currency,
        subtotal=from_cents(order.subtotal_cents),
        tax=from_cents(order.tax_cents),
        shipping=from_cents(order.shipping_cents),
        total_amount=from_cents(order.total_cents),
        order_date=order.order_date.isoformat(),
        items=[
            OrderLineOut(
                product_id=line.product_id,
                title=line.product_title,
                unit_price=from_cents(line.unit_price_cents),
                quantity=line.quantity,
                line_total=from_cents(line.line_total_cents),
            )
            for line in lines
        ],
    )


def _parse_day(value: str | None, field: str) -> date | None:
    if value is None or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(field, value, "invalid_format", "Invalid date format. Use YYYY-MM-DD") from None


class OrderService:
    """Read and lifecycle operations on persisted orders."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def _lines(self, order_id: int) -> list[OrderLine]:
        return (
            self._db.query(OrderLine)
            .filter(OrderLine.order_id == order_id)
            .order_by(OrderLine.id.asc())
            .all()
        )

    def get_order(self, order_id: object, customer_id: object | None = None) -> OrderOut:
        """Fetch one order. With ``customer_id``, other customers' orders read as missing."""

        order_id = validate_order_id(order_id)
        order = self._db.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order", order_id=order_id)
        if customer_id is not None and order.customer_id != validate_customer_id(customer_id):
            raise NotFoundError("Order", order_id=order_id)
        return order_out(order, self._lines(order.id))

    def list_customer_orders(self, customer_id: object, limit: int = 20, offset: int = 0) -> OrderListOut:
        customer_id = validate_customer_id(customer_id)
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(
                "limit", limit, "out_of_range", f"Limit must be between 1 and {MAX_PAGE_SIZE}"
            )
        if offset < 0:
            raise ValidationError("offset", offset, "not_positive", "Offset must be zero or greater")

        orders = (
            self._db.query(Order)
            .filter(Order.customer_id == customer_id)
            .order_by(Order.order_date.desc(), Order.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return OrderListOut(
            customer_id=customer_id,
            orders=[order_out(order, self._lines(order.id)) for order in orders],
            count=len(orders),
            limit=limit,
            offset=offset,
        )

    def update_status(self, order_id: object, status: str) -> OrderStatusOut:
        order_id = validate_order_id(order_id)
        new_status = (status or "").strip().lower()
        if new_status not in ORDER_TRANSITIONS:
            raise ValidationError(
                "status",
                status,
                "invalid_status",
                "Invalid order status",
                valid_statuses=list(ORDER_STATUSES),
            )

        order = self._db.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order", order_id=order_id)

        previous = order.status
        allowed = ORDER_TRANSITIONS[previous]
        if new_status not in allowed:
            raise ValidationError(
                "status",
                new_status,
                "invalid_transition",
                f"Cannot move an order from {previous} to {new_status}",
                current_status=previous,
                allowed_statuses=sorted(allowed),
            )

        order.status = new_status
        order.updated_at = utcnow()
        log_event(
            self._db,
            customer_id=order.customer_id,
            entity_type=EntityTypeV1.ORDER,
            entity_id=str(order.id),
            event_type=EventTypeV1.ORDER_STATUS_CHANGED,
            event_payload={"from": previous, "to": new_status},
        )
        self._db.commit()

        logger.info("Order status changed", order_id=order_id, previous_status=previous, status=new_status)
        return OrderStatusOut(order_id=order_id, previous_status=previous, status=new_status)

    def order_statistics(self, start: str | None = None, end: str | None = None) -> OrderStatisticsOut:
        """Totals over ``[start, end]`` (whole days, inclusive). Defaults to the last 30 days."""

        end_day = _parse_day(end, "end") or utcnow().date()
        start_day = _parse_day(start, "start") or end_day - timedelta(days=DEFAULT_STATISTICS_DAYS)
        if start_day > end_day:
            raise ValidationError(
                "start", start_day.isoformat(), "after_end", "Start date must not be after end date"
            )

        window = (
            Order.order_date >= datetime.combine(start_day, time.min),
            Order.order_date < datetime.combine(end_day + timedelta(days=1), time.min),
        )

        total_orders, customers, revenue_cents = self._db.execute(
            select(
                func.count(Order.id),
                func.count(distinct(Order.customer_id)),
                func.coalesce(func.sum(Order.total_cents), 0),
            ).where(*window)
        ).one()

        by_status = dict(
            self._db.execute(
                select(Order.status, func.count(Order.id)).where(*window).group_by(Order.status)
            ).all()
        )

        revenue_cents = int(revenue_cents)
        avg_cents = round(revenue_cents / total_orders) if total_orders else 0
        return OrderStatisticsOut(
            start=start_day.isoformat(),
            end=end_day.isoformat(),
            total_orders=total_orders,
            unique_customers=customers,
            total_revenue=from_cents(revenue_cents),
            avg_order_value=from_cents(avg_cents),
            orders_by_status={status: by_status.get(status, 0) for status in ORDER_STATUSES},
        )
