from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from services.storefront.app.db.deps import get_db, get_request_context
from services.storefront.app.models.order import CheckoutRequest
from services.storefront.app.routers.responses import respond
from services.storefront.app.services.boundary import run_operation
from services.storefront.app.services.cart_store import CartStore
from services.storefront.app.services.catalog_factory import get_catalog
from services.storefront.app.services.identity import RequestContext, require_customer
from services.storefront.app.services.order_assembler import OrderAssembler
from services.storefront.app.settings import StorefrontSettings, get_settings
from sqlalchemy.orm import Session

router = APIRouter(tags=["checkout"])


@router.post("/v1/checkout")
def checkout(
    payload: CheckoutRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: StorefrontSettings = Depends(get_settings),
) -> JSONResponse:
    def op():
        customer = require_customer(context, settings, "place an order")
        assembler = OrderAssembler(CartStore(db, get_catalog(db)), settings)
        return assembler.checkout(
            customer,
            payload.total_amount,
            currency=payload.currency,
            payment_method=payload.payment_method,
        )

    return respond(run_operation(db, "checkout", op))
