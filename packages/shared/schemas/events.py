"""Shared event schema (v1).

The backend stores an append-only event log of cart and order activity. Clients can
consume these events to render an order timeline.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EntityTypeV1(str, Enum):
    CART = "Cart"
    ORDER = "Order"
    PAYMENT = "Payment"
    GUEST_CARTS = "GuestCarts"


class EventTypeV1(str, Enum):
    CART_TRANSFERRED = "CART_TRANSFERRED"
    CART_EMPTY_DEFERRED = "CART_EMPTY_DEFERRED"
    CART_EMPTY_RETRIED = "CART_EMPTY_RETRIED"
    ORPHANED_LINES_REMOVED = "ORPHANED_LINES_REMOVED"
    GUEST_CARTS_EXPIRED = "GUEST_CARTS_EXPIRED"
    PAYMENT_CAPTURED = "PAYMENT_CAPTURED"
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"


class EventV1(BaseModel):
    id: str
    customer_id: int | None = None

    entity_type: EntityTypeV1
    entity_id: str

    event_type: EventTypeV1
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: str
