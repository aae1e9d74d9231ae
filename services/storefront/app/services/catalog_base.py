from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol


class CatalogLookupError(Exception):
    """Catalog could not be consulted (timeout, connection failure)."""

    def __init__(self, operation: str, cause: str) -> None:
        super().__init__(f"Catalog lookup failed during {operation}: {cause}")
        self.operation = operation
        self.cause = cause


@dataclass(frozen=True, slots=True)
class ProductInfo:
    product_id: int
    title: str
    price_cents: int


class CatalogLookup(Protocol):
    """Read-only view of the product catalog. The cart core never writes products."""

    name: str

    def exists(self, product_id: int) -> bool: ...

    def price_and_title(self, product_id: int) -> ProductInfo | None: ...

    def lookup_many(self, product_ids: Iterable[int]) -> dict[int, ProductInfo]: ...
