"""Storefront cart and order service entrypoint."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from packages.shared.schemas.result_v1 import ErrorTypeV1, ResultV1
from services.storefront.app.db.init_db import init_db
from services.storefront.app.errors import StorefrontError
from services.storefront.app.routers.admin import router as admin_router
from services.storefront.app.routers.cart import router as cart_router
from services.storefront.app.routers.checkout import router as checkout_router
from services.storefront.app.routers.orders import router as orders_router
from services.storefront.app.routers.responses import respond
from services.storefront.app.services.boundary import failure
from services.storefront.app.utils.logging import configure_logging

app = FastAPI(title="Storefront API")

app.include_router(cart_router)
app.include_router(checkout_router)
app.include_router(orders_router)
app.include_router(admin_router)


@app.on_event("startup")
def _startup() -> None:
    configure_logging()
    init_db()


@app.exception_handler(RequestValidationError)
async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    del request
    errors = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return respond(
        ResultV1.fail("Invalid request", ErrorTypeV1.VALIDATION_ERROR, {"errors": errors})
    )


@app.exception_handler(StorefrontError)
async def _storefront_error(request: Request, exc: StorefrontError) -> JSONResponse:
    # Dependencies (settings, admin key check) raise outside run_operation.
    del request
    return respond(failure(exc))


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
