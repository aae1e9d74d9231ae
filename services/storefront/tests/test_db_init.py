from pathlib import Path

from sqlalchemy import inspect


def test_init_db_creates_tables(tmp_path: Path, monkeypatch) -> None:
    db_path = tmp_path / "nested" / "storefront_init.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{db_path}")
    monkeypatch.setenv("STOREFRONT_DB_AUTO_CREATE", "true")

    from services.storefront.app.db.database import get_engine
    from services.storefront.app.db.init_db import init_db

    init_db()

    inspector = inspect(get_engine())
    tables = set(inspector.get_table_names())

    assert {"products", "cart_lines", "orders", "order_lines", "payments"} <= tables
    assert "pending_cart_cleanups" in tables
    assert "event_log" in tables

    uniques = {u["name"] for u in inspector.get_unique_constraints("cart_lines")}
    assert "uq_cart_lines_owner_product" in uniques


def test_init_db_respects_auto_create_flag(tmp_path: Path, monkeypatch) -> None:
    db_path = tmp_path / "skipped.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{db_path}")
    monkeypatch.setenv("STOREFRONT_DB_AUTO_CREATE", "false")

    from services.storefront.app.db.init_db import init_db

    init_db()

    assert not db_path.exists()
