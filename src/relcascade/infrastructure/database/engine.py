"""Engine setup for SQLite, sync and async.

SQLAlchemy Core (not ORM) is used: the cascade engine keeps its own
per-call identity map, so an ORM session would only duplicate it.
Pragmas are applied on every new DBAPI connection.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, event
from sqlalchemy.ext.asyncio import create_async_engine

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine
    from sqlalchemy.ext.asyncio import AsyncEngine

    from relcascade.config.models import DatabaseConfig
    from relcascade.config.settings import RelcascadeSettings


def _install_pragmas(engine: Engine, config: DatabaseConfig) -> None:
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute(f"PRAGMA journal_mode={config.journal_mode}")
        cursor.execute(f"PRAGMA foreign_keys={'ON' if config.foreign_keys else 'OFF'}")
        cursor.close()


def create_db_engine(settings: RelcascadeSettings) -> Engine:
    """Create a SQLite engine with the configured pragmas."""
    config = settings.database
    engine = create_engine(config.url, echo=config.echo)
    _install_pragmas(engine, config)
    return engine


def create_async_db_engine(settings: RelcascadeSettings) -> AsyncEngine:
    """Create an aiosqlite-backed engine with the configured pragmas.

    A plain ``sqlite://`` URL is switched to the ``sqlite+aiosqlite``
    driver.
    """
    config = settings.database
    url = config.url
    if url.startswith("sqlite:"):
        url = "sqlite+aiosqlite:" + url.removeprefix("sqlite:")
    engine = create_async_engine(url, echo=config.echo)
    _install_pragmas(engine.sync_engine, config)
    return engine
