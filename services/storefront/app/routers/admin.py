from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from services.storefront.app.db.deps import get_db, require_admin
from services.storefront.app.models.admin import CleanupOut, CleanupRequest, IntegrityRequest
from services.storefront.app.models.order import OrderStatusRequest
from services.storefront.app.routers.responses import respond
from services.storefront.app.services.boundary import run_operation
from services.storefront.app.services.catalog_factory import get_catalog
from services.storefront.app.services.identity import owner_from_params
from services.storefront.app.services.integrity import CartIntegrityChecker
from services.storefront.app.services.janitor import GuestCartJanitor
from services.storefront.app.services.orders import OrderService
from services.storefront.app.settings import StorefrontSettings, get_settings
from sqlalchemy.orm import Session

router = APIRouter(tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/v1/admin/orders/statistics")
def order_statistics(
    start: str | None = None,
    end: str | None = None,
    db: Session = Depends(get_db),
) -> JSONResponse:
    def op():
        return OrderService(db).order_statistics(start=start, end=end)

    return respond(run_operation(db, "orders.statistics", op))


@router.post("/v1/admin/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    payload: OrderStatusRequest,
    db: Session = Depends(get_db),
) -> JSONResponse:
    def op():
        return OrderService(db).update_status(order_id, payload.status)

    return respond(run_operation(db, "orders.update_status", op, order_id=order_id))


@router.post("/v1/admin/cart/cleanup")
def cleanup_guest_carts(
    payload: CleanupRequest | None = None,
    db: Session = Depends(get_db),
    settings: StorefrontSettings = Depends(get_settings),
) -> JSONResponse:
    request = payload or CleanupRequest()

    def op():
        janitor = GuestCartJanitor(db)
        hours = request.expiry_hours if request.expiry_hours is not None else settings.guest_expiry_hours
        expired = janitor.cleanup_expired(hours)
        pending = janitor.retry_pending_cleanups() if request.retry_pending else None
        return CleanupOut(expired=expired, pending=pending)

    return respond(run_operation(db, "cart.cleanup", op))


@router.get("/v1/admin/cart/guest-statistics")
def guest_cart_statistics(db: Session = Depends(get_db)) -> JSONResponse:
    def op():
        return GuestCartJanitor(db).guest_cart_statistics()

    return respond(run_operation(db, "cart.guest_statistics", op))


@router.get("/v1/admin/cart/integrity")
def verify_cart_integrity(
    customer_id: str | None = None,
    guest_address: str | None = None,
    db: Session = Depends(get_db),
) -> JSONResponse:
    def op():
        owner = owner_from_params(customer_id, guest_address)
        return CartIntegrityChecker(db, get_catalog(db)).verify(owner)

    return respond(run_operation(db, "cart.verify_integrity", op))


@router.post("/v1/admin/cart/integrity")
def remove_orphaned_lines(
    payload: IntegrityRequest | None = None,
    db: Session = Depends(get_db),
) -> JSONResponse:
    request = payload or IntegrityRequest()

    def op():
        owner = owner_from_params(request.customer_id, request.guest_address)
        return CartIntegrityChecker(db, get_catalog(db)).remove_orphaned(owner)

    return respond(run_operation(db, "cart.remove_orphaned", op))
