from __future__ import annotations

import os

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

_ENGINE: Engine | None = None
_ENGINE_URL: str | None = None
_SESSIONMAKER: sessionmaker | None = None


def _default_db_url() -> str:
    # Local-only default. Production must provide DATABASE_URL explicitly.
    return "sqlite+pysqlite:///.local/storefront.db"


def get_engine() -> Engine:
    """Return a cached SQLAlchemy engine.

    We cache based on DATABASE_URL so tests can override DATABASE_URL before first use.
    """

    global _ENGINE, _ENGINE_URL, _SESSIONMAKER

    url = os.getenv("DATABASE_URL", _default_db_url())

    if _ENGINE is not None and _ENGINE_URL == url:
        return _ENGINE

    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    _ENGINE = create_engine(url, future=True, connect_args=connect_args)
    if url.startswith("sqlite"):
        _enable_sqlite_savepoints(_ENGINE)

    _ENGINE_URL = url
    _SESSIONMAKER = sessionmaker(bind=_ENGINE, class_=Session, autocommit=False, autoflush=False)
    return _ENGINE


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy own BEGIN so SAVEPOINTs nest inside a real transaction.

    The cart upsert and the per-item guest cart merge both rely on savepoints.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        del connection_record
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")


def db_session() -> Session:
    get_engine()  # ensure _SESSIONMAKER is created
    assert _SESSIONMAKER is not None
    return _SESSIONMAKER()
