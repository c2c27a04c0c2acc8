"""Engine and read-only connections for report queries.

One pooled engine per process.  Report queries only ever run inside
`readonly_connection`: a READ ONLY transaction with a statement timeout,
rolled back when the block exits.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

from managed_reports.core.config import get_settings
from managed_reports.core.logging import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None


def get_engine() -> Engine:
    """Shared engine, created on first use from the Postgres settings."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
        logger.info("DB engine ready  host=%s  db=%s", settings.postgres_host, settings.postgres_db)
    return _engine


@contextmanager
def readonly_connection(engine: Engine | None = None, timeout_ms: int | None = None) -> Iterator[Connection]:
    """Yield a connection inside a READ ONLY transaction.

    ``timeout_ms`` (default: ``query_timeout_ms``) becomes the transaction's
    statement_timeout.  Nothing is ever committed.
    """
    if timeout_ms is None:
        timeout_ms = get_settings().query_timeout_ms
    engine = engine or get_engine()
    with engine.connect() as conn:
        trans = conn.begin()
        try:
            conn.execute(text("SET TRANSACTION READ ONLY"))
            conn.execute(
                text("SELECT set_config('statement_timeout', :timeout, true)"),
                {"timeout": str(int(timeout_ms))},
            )
            yield conn
        finally:
            trans.rollback()
