from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from packages.shared.schemas.events import EntityTypeV1
from services.storefront.app.db.deps import get_db, get_request_context
from services.storefront.app.models.order import OrderEventsOut
from services.storefront.app.routers.responses import respond
from services.storefront.app.services.audit import list_events
from services.storefront.app.services.boundary import run_operation
from services.storefront.app.services.identity import RequestContext, require_customer
from services.storefront.app.services.orders import OrderService
from services.storefront.app.settings import StorefrontSettings, get_settings
from sqlalchemy.orm import Session

router = APIRouter(tags=["orders"])


@router.get("/v1/orders")
def list_orders(
    limit: int = 20,
    offset: int = 0,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: StorefrontSettings = Depends(get_settings),
) -> JSONResponse:
    def op():
        customer = require_customer(context, settings, "view orders")
        return OrderService(db).list_customer_orders(customer.customer_id, limit=limit, offset=offset)

    return respond(run_operation(db, "orders.list", op))


@router.get("/v1/orders/{order_id}")
def get_order(
    order_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: StorefrontSettings = Depends(get_settings),
) -> JSONResponse:
    def op():
        customer = require_customer(context, settings, "view orders")
        return OrderService(db).get_order(order_id, customer_id=customer.customer_id)

    return respond(run_operation(db, "orders.get", op, order_id=order_id))


@router.get("/v1/orders/{order_id}/events")
def get_order_events(
    order_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: StorefrontSettings = Depends(get_settings),
) -> JSONResponse:
    def op():
        customer = require_customer(context, settings, "view orders")
        order = OrderService(db).get_order(order_id, customer_id=customer.customer_id)
        return OrderEventsOut(
            order_id=order.order_id,
            events=list_events(db, EntityTypeV1.ORDER, str(order.order_id)),
        )

    return respond(run_operation(db, "orders.events", op, order_id=order_id))
