from __future__ import annotations

import os

from services.storefront.app.services.catalog_base import CatalogLookup
from services.storefront.app.services.catalog_mock import MockCatalogLookup
from services.storefront.app.services.catalog_sql import SqlCatalogLookup
from sqlalchemy.orm import Session


def get_catalog(db: Session) -> CatalogLookup:
    """Select the catalog lookup based on env vars.

    Defaults to the SQL catalog, which reads the ``products`` table in the same
    database. Set STOREFRONT_CATALOG=mock for a fixed in-memory catalog.
    """

    mode = os.getenv("STOREFRONT_CATALOG", "sql").strip().lower()

    if mode == "sql":
        return SqlCatalogLookup(db)

    if mode == "mock":
        return MockCatalogLookup()

    raise ValueError(f"Unknown STOREFRONT_CATALOG={mode!r}. Expected sql or mock.")
