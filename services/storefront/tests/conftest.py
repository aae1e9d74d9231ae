from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from services.storefront.app.db.models import Product
from services.storefront.app.services.catalog_base import ProductInfo
from services.storefront.app.services.catalog_mock import MockCatalogLookup
from services.storefront.app.services.cart_store import CartStore
from services.storefront.app.settings import StorefrontSettings
from sqlalchemy.orm import Session

PRODUCTS = (
    ProductInfo(product_id=1, title="Canvas Tote Bag", price_cents=1250),
    ProductInfo(product_id=2, title="Ceramic Mug", price_cents=1500),
    ProductInfo(product_id=3, title="Linen Apron", price_cents=2500),
    ProductInfo(product_id=4, title="Cast Iron Skillet", price_cents=5000),
    ProductInfo(product_id=5, title="Desk Lamp", price_cents=4000),
)

_STOREFRONT_ENV = (
    "STOREFRONT_TAX_RATE",
    "STOREFRONT_FREE_SHIPPING_THRESHOLD",
    "STOREFRONT_FLAT_SHIPPING_FEE",
    "STOREFRONT_TOTAL_TOLERANCE",
    "STOREFRONT_DEFAULT_CURRENCY",
    "STOREFRONT_GUEST_FALLBACK_ADDRESS",
    "STOREFRONT_TRUST_FORWARDED_FOR",
    "STOREFRONT_INVOICE_MAX_ATTEMPTS",
    "STOREFRONT_GUEST_EXPIRY_HOURS",
    "STOREFRONT_ADMIN_API_KEY",
    "STOREFRONT_CATALOG",
    "STOREFRONT_PAYMENTS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _STOREFRONT_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def database_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    url = f"sqlite+pysqlite:///{tmp_path / 'storefront_test.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("STOREFRONT_DB_AUTO_CREATE", "true")
    return url


@pytest.fixture()
def db(database_url: str) -> Iterator[Session]:
    from services.storefront.app.db.database import db_session
    from services.storefront.app.db.init_db import init_db

    init_db()
    session = db_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def catalog() -> MockCatalogLookup:
    return MockCatalogLookup(PRODUCTS)


@pytest.fixture()
def store(db: Session, catalog: MockCatalogLookup) -> CartStore:
    return CartStore(db, catalog)


@pytest.fixture()
def settings() -> StorefrontSettings:
    return StorefrontSettings.from_env()


def seed_products(products: tuple[ProductInfo, ...] = PRODUCTS) -> None:
    from services.storefront.app.db.database import db_session

    session = db_session()
    try:
        for p in products:
            session.add(Product(id=p.product_id, title=p.title, price_cents=p.price_cents))
        session.commit()
    finally:
        session.close()


@pytest.fixture()
def client(database_url: str, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    monkeypatch.setenv("STOREFRONT_CATALOG", "sql")
    monkeypatch.setenv("STOREFRONT_PAYMENTS", "mock")
    # The test app sits behind a trusted proxy; guests are told apart by X-Forwarded-For.
    monkeypatch.setenv("STOREFRONT_TRUST_FORWARDED_FOR", "true")

    from services.storefront.app.main import app

    with TestClient(app) as c:
        seed_products()
        yield c
