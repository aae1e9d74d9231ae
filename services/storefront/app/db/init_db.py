from __future__ import annotations

import os
from pathlib import Path

from services.storefront.app.db.database import get_engine
from services.storefront.app.db.models import Base


def init_db() -> None:
    if os.getenv("STOREFRONT_DB_AUTO_CREATE", "true").strip().lower() not in {"1", "true", "yes", "y"}:
        return

    engine = get_engine()
    database = engine.url.database
    if engine.url.get_backend_name() == "sqlite" and database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)

    Base.metadata.create_all(bind=engine)
