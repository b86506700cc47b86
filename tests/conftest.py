"""Shared pytest fixtures and test helpers for relcascade tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from shop_models import ALL_TYPES
from sqlalchemy import Connection, create_engine
from sqlalchemy.engine import Engine

from relcascade import Database, RelcascadeSettings, create_db_engine
from relcascade.infrastructure.database.store import Store


@pytest.fixture
def db_engine(tmp_path: Path) -> Generator[Engine]:
    """SQLite engine on a temp file, disposed after the test."""
    engine = create_engine(f"sqlite:///{tmp_path / 'relcascade.db'}")
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database]:
    """Database facade with every shop table created."""
    settings = RelcascadeSettings(
        database={"url": f"sqlite:///{tmp_path / 'shop.db'}"},
    )
    database = Database(create_db_engine(settings), settings=settings)
    database.create_table(*ALL_TYPES)
    try:
        yield database
    finally:
        database.dispose()


@pytest.fixture
def conn(db: Database) -> Generator[Connection]:
    """Connection inside an open transaction on the shop database."""
    with db.engine.begin() as connection:
        yield connection


@pytest.fixture
def store(conn: Connection) -> Store:
    return Store(conn)
