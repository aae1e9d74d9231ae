from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from services.storefront.app.db.models import Product
from services.storefront.app.services.catalog_base import CatalogLookupError, ProductInfo
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session


@contextmanager
def _lookup(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as e:
        raise CatalogLookupError(operation, type(e).__name__) from e


class SqlCatalogLookup:
    """Catalog lookup over the ``products`` table in the storefront database."""

    name = "sql"

    def __init__(self, db: Session) -> None:
        self._db = db

    def exists(self, product_id: int) -> bool:
        with _lookup("exists"):
            return self._db.scalar(select(Product.id).where(Product.id == product_id)) is not None

    def price_and_title(self, product_id: int) -> ProductInfo | None:
        with _lookup("price_and_title"):
            row = self._db.execute(
                select(Product.id, Product.title, Product.price_cents).where(Product.id == product_id)
            ).first()
        if row is None:
            return None
        return ProductInfo(product_id=row.id, title=row.title, price_cents=row.price_cents)

    def lookup_many(self, product_ids: Iterable[int]) -> dict[int, ProductInfo]:
        ids = sorted(set(product_ids))
        if not ids:
            return {}

        with _lookup("lookup_many"):
            rows = self._db.execute(
                select(Product.id, Product.title, Product.price_cents).where(Product.id.in_(ids))
            ).all()
        return {
            row.id: ProductInfo(product_id=row.id, title=row.title, price_cents=row.price_cents)
            for row in rows
        }
