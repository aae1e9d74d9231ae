from __future__ import annotations

import hmac
from collections.abc import Generator

from fastapi import Depends, Header, Request
from services.storefront.app.db.database import db_session
from services.storefront.app.errors import AuthenticationRequiredError
from services.storefront.app.services.identity import RequestContext, context_from_request
from services.storefront.app.settings import StorefrontSettings, get_settings
from sqlalchemy.orm import Session


def get_db() -> Generator[Session, None, None]:
    db = db_session()
    try:
        yield db
    finally:
        db.close()


def get_request_context(
    request: Request, settings: StorefrontSettings = Depends(get_settings)
) -> RequestContext:
    return context_from_request(request, settings)


def require_admin(
    x_admin_key: str | None = Header(default=None),
    settings: StorefrontSettings = Depends(get_settings),
) -> None:
    """Gate admin routes on STOREFRONT_ADMIN_API_KEY; open when the key is unset."""

    expected = settings.admin_api_key
    if expected is None:
        return
    if x_admin_key is None or not hmac.compare_digest(x_admin_key, expected):
        raise AuthenticationRequiredError("Valid X-Admin-Key header required")
