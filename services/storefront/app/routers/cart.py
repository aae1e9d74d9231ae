from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from services.storefront.app.db.deps import get_db, get_request_context
from services.storefront.app.models.cart import AddToCartRequest, UpdateQuantityRequest
from services.storefront.app.routers.responses import respond
from services.storefront.app.services.boundary import run_operation
from services.storefront.app.services.cart_merge import CartMergeEngine
from services.storefront.app.services.cart_store import CartStore
from services.storefront.app.services.catalog_factory import get_catalog
from services.storefront.app.services.identity import (
    RequestContext,
    guest_address,
    require_customer,
    resolve,
)
from services.storefront.app.settings import StorefrontSettings, get_settings
from sqlalchemy.orm import Session

router = APIRouter(tags=["cart"])


def _store(db: Session) -> CartStore:
    return CartStore(db, get_catalog(db))


@router.get("/v1/cart")
def list_cart(
    self_heal: bool = True,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: StorefrontSettings = Depends(get_settings),
) -> JSONResponse:
    def op():
        return _store(db).list(resolve(context, settings), self_heal=self_heal)

    return respond(run_operation(db, "cart.list", op))


@router.get("/v1/cart/count")
def count_cart(
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: StorefrontSettings = Depends(get_settings),
) -> JSONResponse:
    def op():
        return _store(db).count(resolve(context, settings))

    return respond(run_operation(db, "cart.count", op))


@router.delete("/v1/cart")
def empty_cart(
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: StorefrontSettings = Depends(get_settings),
) -> JSONResponse:
    def op():
        return _store(db).empty(resolve(context, settings))

    return respond(run_operation(db, "cart.empty", op))


@router.post("/v1/cart/items")
def add_to_cart(
    payload: AddToCartRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: StorefrontSettings = Depends(get_settings),
) -> JSONResponse:
    def op():
        return _store(db).add(resolve(context, settings), payload.product_id, payload.quantity)

    return respond(run_operation(db, "cart.add", op, product_id=payload.product_id))


@router.patch("/v1/cart/items/{product_id}")
def update_cart_quantity(
    product_id: str,
    payload: UpdateQuantityRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: StorefrontSettings = Depends(get_settings),
) -> JSONResponse:
    def op():
        return _store(db).update_quantity(resolve(context, settings), product_id, payload.quantity)

    return respond(run_operation(db, "cart.update_quantity", op, product_id=product_id))


@router.delete("/v1/cart/items/{product_id}")
def remove_from_cart(
    product_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: StorefrontSettings = Depends(get_settings),
) -> JSONResponse:
    def op():
        return _store(db).remove(resolve(context, settings), product_id)

    return respond(run_operation(db, "cart.remove", op, product_id=product_id))


@router.get("/v1/cart/items/{product_id}/integrity")
def check_item_integrity(
    product_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: StorefrontSettings = Depends(get_settings),
) -> JSONResponse:
    def op():
        return _store(db).validate_item_integrity(product_id, resolve(context, settings))

    return respond(run_operation(db, "cart.validate_item_integrity", op, product_id=product_id))


@router.post("/v1/cart/transfer")
def transfer_guest_cart(
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: StorefrontSettings = Depends(get_settings),
) -> JSONResponse:
    def op():
        customer = require_customer(context, settings, "transfer a guest cart")
        # Only the caller's own guest cart can be transferred.
        address = guest_address(context, settings)
        return CartMergeEngine(_store(db)).transfer_guest_to_customer(address, customer.customer_id)

    return respond(run_operation(db, "cart.transfer", op))
