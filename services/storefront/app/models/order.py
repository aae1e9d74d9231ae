from __future__ import annotations

from decimal import Decimal

from packages.shared.schemas.events import EventV1
from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    # The total the customer was shown; re-derived server-side before any order exists.
    total_amount: Decimal
    currency: str | None = None
    payment_method: str = "simulated_success"


class OrderStatusRequest(BaseModel):
    status: str


class OrderLineOut(BaseModel):
    product_id: int
    title: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class OrderOut(BaseModel):
    order_id: int
    customer_id: int
    invoice_no: str
    status: str
    currency: str

    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total_amount: Decimal

    order_date: str
    items: list[OrderLineOut] = Field(default_factory=list)


class CheckoutOut(BaseModel):
    order: OrderOut
    payment_id: str
    payment_method: str
    invoice_attempts: int
    items_count: int
    removed_items: int
    cart_emptied: bool


class OrderListOut(BaseModel):
    customer_id: int
    orders: list[OrderOut] = Field(default_factory=list)
    count: int
    limit: int
    offset: int


class OrderStatusOut(BaseModel):
    order_id: int
    previous_status: str
    status: str


class OrderStatisticsOut(BaseModel):
    start: str | None = None
    end: str | None = None
    total_orders: int
    unique_customers: int
    total_revenue: Decimal
    avg_order_value: Decimal
    orders_by_status: dict[str, int] = Field(default_factory=dict)


class OrderEventsOut(BaseModel):
    order_id: int
    events: list[EventV1] = Field(default_factory=list)
