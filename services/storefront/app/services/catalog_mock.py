from __future__ import annotations

from collections.abc import Iterable

from services.storefront.app.services.catalog_base import ProductInfo


class MockCatalogLookup:
    """Deterministic in-memory catalog for local dev and tests."""

    name = "mock"

    def __init__(self, products: Iterable[ProductInfo] | None = None) -> None:
        if products is None:
            products = (
                ProductInfo(product_id=1, title="Canvas Tote Bag", price_cents=1250),
                ProductInfo(product_id=2, title="Ceramic Mug", price_cents=1500),
                ProductInfo(product_id=3, title="Linen Apron", price_cents=2500),
                ProductInfo(product_id=4, title="Cast Iron Skillet", price_cents=5000),
            )
        self._products = {p.product_id: p for p in products}

    def exists(self, product_id: int) -> bool:
        return product_id in self._products

    def price_and_title(self, product_id: int) -> ProductInfo | None:
        return self._products.get(product_id)

    def lookup_many(self, product_ids: Iterable[int]) -> dict[int, ProductInfo]:
        return {pid: self._products[pid] for pid in set(product_ids) if pid in self._products}

    def discontinue(self, product_id: int) -> None:
        self._products.pop(product_id, None)

    def reprice(self, product_id: int, price_cents: int) -> None:
        current = self._products[product_id]
        self._products[product_id] = ProductInfo(
            product_id=product_id, title=current.title, price_cents=price_cents
        )
