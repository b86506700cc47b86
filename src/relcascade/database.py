"""Database facades: the public entry points of relcascade.

:class:`Database` wraps a synchronous SQLAlchemy ``Engine``,
:class:`AsyncDatabase` an ``AsyncEngine``. Every method is one top-level
call: it opens ``engine.begin()``, so the whole cascade commits or rolls
back together, and builds a fresh reader or writer (and with it a fresh
identity tracker) over a :class:`Store` bound to that connection.

The async facade runs the same cascade code through
``AsyncConnection.run_sync``, so storage calls stay strictly sequential.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, TypeVar

from relcascade.cascade.reader import GraphReader
from relcascade.cascade.writer import GraphWriter
from relcascade.config.logging import configure_logging
from relcascade.errors import RecordNotFoundError
from relcascade.infrastructure.database.engine import create_async_db_engine, create_db_engine
from relcascade.infrastructure.database.store import DEFAULT_CHUNK_SIZE, Predicate, Store
from relcascade.metadata.resolver import MetadataResolver, default_resolver

if TYPE_CHECKING:
    from sqlalchemy import Connection
    from sqlalchemy.engine import Engine
    from sqlalchemy.ext.asyncio import AsyncEngine

    from relcascade.config.settings import RelcascadeSettings
    from relcascade.infrastructure.textblob import TextBlobSerializer

_T = TypeVar("_T")
_R = TypeVar("_R")


def _apply_logging(settings: RelcascadeSettings) -> None:
    """Configure logging when the settings ask for verbose or JSON output."""
    if settings.verbose or settings.log_json:
        configure_logging(verbose=settings.verbose, log_json=settings.log_json)


class _DatabaseBase:
    def __init__(
        self,
        *,
        settings: RelcascadeSettings | None = None,
        resolver: MetadataResolver | None = None,
        serializer: TextBlobSerializer | None = None,
    ) -> None:
        self._resolver = resolver or default_resolver
        self._serializer = serializer
        self._chunk_size = (
            settings.cascade.query_chunk_size if settings is not None else DEFAULT_CHUNK_SIZE
        )

    @property
    def resolver(self) -> MetadataResolver:
        return self._resolver

    def _store(self, conn: Connection) -> Store:
        return Store(conn, self._resolver, chunk_size=self._chunk_size)

    def _reader(self, conn: Connection) -> GraphReader:
        return GraphReader(self._store(conn), self._serializer)

    def _writer(self, conn: Connection) -> GraphWriter:
        return GraphWriter(self._store(conn), self._serializer)

    def _get_with_children(
        self, conn: Connection, entity_type: type[_T], key: Any, recursive: bool
    ) -> _T:
        record = self._reader(conn).get_with_children(entity_type, key, recursive=recursive)
        if record is None:
            raise RecordNotFoundError(entity_type, key)
        return record


class Database(_DatabaseBase):
    """Synchronous facade over a SQLAlchemy ``Engine``."""

    def __init__(
        self,
        engine: Engine,
        *,
        settings: RelcascadeSettings | None = None,
        resolver: MetadataResolver | None = None,
        serializer: TextBlobSerializer | None = None,
    ) -> None:
        super().__init__(settings=settings, resolver=resolver, serializer=serializer)
        self._engine = engine

    @classmethod
    def from_settings(cls, settings: RelcascadeSettings, **kwargs: Any) -> Database:
        """Build a facade from *settings*, applying its logging flags."""
        _apply_logging(settings)
        return cls(create_db_engine(settings), settings=settings, **kwargs)

    @property
    def engine(self) -> Engine:
        return self._engine

    def dispose(self) -> None:
        self._engine.dispose()

    def _run(self, fn: Callable[[Connection], _R]) -> _R:
        with self._engine.begin() as conn:
            return fn(conn)

    # --- Schema ---

    def create_table(self, *entity_types: type) -> None:
        def create(conn: Connection) -> None:
            store = self._store(conn)
            for entity_type in entity_types:
                store.create_table(entity_type)

        self._run(create)

    def drop_table(self, *entity_types: type) -> None:
        def drop(conn: Connection) -> None:
            store = self._store(conn)
            for entity_type in entity_types:
                store.drop_table(entity_type)

        self._run(drop)

    def table_exists(self, entity_type: type) -> bool:
        return self._run(lambda conn: self._store(conn).table_exists(entity_type))

    # --- Flat rows ---

    def insert(self, record: Any) -> Any:
        return self._run(lambda conn: self._store(conn).insert(record))

    def insert_or_replace(self, record: Any) -> Any:
        return self._run(lambda conn: self._store(conn).insert_or_replace(record))

    def update(self, record: Any) -> int:
        return self._run(lambda conn: self._store(conn).update(record))

    def delete(self, record: Any) -> int:
        return self._run(lambda conn: self._store(conn).delete(record))

    def delete_by_key(self, entity_type: type, key: Any) -> int:
        return self._run(lambda conn: self._store(conn).delete_by_key(entity_type, key))

    def find(self, entity_type: type[_T], key: Any) -> _T | None:
        return self._run(lambda conn: self._store(conn).find(entity_type, key))

    def query(
        self, entity_type: type[_T], where: Predicate | None = None, **filters: Any
    ) -> list[_T]:
        return self._run(lambda conn: self._store(conn).query(entity_type, where, **filters))

    # --- Reads ---

    def get_with_children(self, entity_type: type[_T], key: Any, *, recursive: bool = False) -> _T:
        """Load a record that is expected to exist, with its relationships.

        Use :meth:`find_with_children` when a missing row is an ordinary
        outcome; it returns None instead of raising.

        Raises:
            RecordNotFoundError: If no row has primary key *key*.
        """
        return self._run(lambda conn: self._get_with_children(conn, entity_type, key, recursive))

    def find_with_children(
        self, entity_type: type[_T], key: Any, *, recursive: bool = False
    ) -> _T | None:
        """Load a record and its relationships, or None if the row is missing."""
        return self._run(
            lambda conn: self._reader(conn).get_with_children(
                entity_type, key, recursive=recursive
            )
        )

    def get_all_with_children(
        self,
        entity_type: type[_T],
        where: Predicate | None = None,
        *,
        recursive: bool = False,
        **filters: Any,
    ) -> list[_T]:
        return self._run(
            lambda conn: self._reader(conn).get_all_with_children(
                entity_type, where, recursive=recursive, **filters
            )
        )

    def get_children(self, record: _T, *, recursive: bool = False) -> _T:
        return self._run(lambda conn: self._reader(conn).get_children(record, recursive=recursive))

    def get_child(self, record: Any, field_name: str, *, recursive: bool = False) -> Any:
        return self._run(
            lambda conn: self._reader(conn).get_child(record, field_name, recursive=recursive)
        )

    # --- Writes ---

    def insert_with_children(self, record: Any, *, recursive: bool = False) -> None:
        self._run(lambda conn: self._writer(conn).insert_with_children(record, recursive=recursive))

    def insert_or_replace_with_children(self, record: Any, *, recursive: bool = False) -> None:
        self._run(
            lambda conn: self._writer(conn).insert_or_replace_with_children(
                record, recursive=recursive
            )
        )

    def insert_all_with_children(self, records: Iterable[Any], *, recursive: bool = False) -> None:
        self._run(
            lambda conn: self._writer(conn).insert_all_with_children(records, recursive=recursive)
        )

    def insert_or_replace_all_with_children(
        self, records: Iterable[Any], *, recursive: bool = False
    ) -> None:
        self._run(
            lambda conn: self._writer(conn).insert_or_replace_all_with_children(
                records, recursive=recursive
            )
        )

    def update_with_children(self, record: Any, *, recursive: bool = False) -> None:
        self._run(lambda conn: self._writer(conn).update_with_children(record, recursive=recursive))

    def delete_with_children(self, record: Any, *, recursive: bool = False) -> int:
        return self._run(
            lambda conn: self._writer(conn).delete_with_children(record, recursive=recursive)
        )

    def delete_all(self, records: Iterable[Any], *, recursive: bool = False) -> int:
        return self._run(lambda conn: self._writer(conn).delete_all(records, recursive=recursive))

    def delete_all_ids(self, entity_type: type, keys: Iterable[Any]) -> int:
        return self._run(lambda conn: self._writer(conn).delete_all_ids(entity_type, keys))


class AsyncDatabase(_DatabaseBase):
    """Asynchronous facade over a SQLAlchemy ``AsyncEngine`` (aiosqlite)."""

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        settings: RelcascadeSettings | None = None,
        resolver: MetadataResolver | None = None,
        serializer: TextBlobSerializer | None = None,
    ) -> None:
        super().__init__(settings=settings, resolver=resolver, serializer=serializer)
        self._engine = engine

    @classmethod
    def from_settings(cls, settings: RelcascadeSettings, **kwargs: Any) -> AsyncDatabase:
        _apply_logging(settings)
        return cls(create_async_db_engine(settings), settings=settings, **kwargs)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def dispose(self) -> None:
        await self._engine.dispose()

    async def _run(self, fn: Callable[[Connection], _R]) -> _R:
        async with self._engine.begin() as conn:
            return await conn.run_sync(fn)

    # --- Schema ---

    async def create_table(self, *entity_types: type) -> None:
        def create(conn: Connection) -> None:
            store = self._store(conn)
            for entity_type in entity_types:
                store.create_table(entity_type)

        await self._run(create)

    async def drop_table(self, *entity_types: type) -> None:
        def drop(conn: Connection) -> None:
            store = self._store(conn)
            for entity_type in entity_types:
                store.drop_table(entity_type)

        await self._run(drop)

    async def table_exists(self, entity_type: type) -> bool:
        return await self._run(lambda conn: self._store(conn).table_exists(entity_type))

    # --- Flat rows ---

    async def insert(self, record: Any) -> Any:
        return await self._run(lambda conn: self._store(conn).insert(record))

    async def insert_or_replace(self, record: Any) -> Any:
        return await self._run(lambda conn: self._store(conn).insert_or_replace(record))

    async def update(self, record: Any) -> int:
        return await self._run(lambda conn: self._store(conn).update(record))

    async def delete(self, record: Any) -> int:
        return await self._run(lambda conn: self._store(conn).delete(record))

    async def delete_by_key(self, entity_type: type, key: Any) -> int:
        return await self._run(lambda conn: self._store(conn).delete_by_key(entity_type, key))

    async def find(self, entity_type: type[_T], key: Any) -> _T | None:
        return await self._run(lambda conn: self._store(conn).find(entity_type, key))

    async def query(
        self, entity_type: type[_T], where: Predicate | None = None, **filters: Any
    ) -> list[_T]:
        return await self._run(
            lambda conn: self._store(conn).query(entity_type, where, **filters)
        )

    # --- Reads ---

    async def get_with_children(
        self, entity_type: type[_T], key: Any, *, recursive: bool = False
    ) -> _T:
        """Load a record that is expected to exist, with its relationships.

        Use :meth:`find_with_children` when a missing row is an ordinary
        outcome; it returns None instead of raising.

        Raises:
            RecordNotFoundError: If no row has primary key *key*.
        """
        return await self._run(
            lambda conn: self._get_with_children(conn, entity_type, key, recursive)
        )

    async def find_with_children(
        self, entity_type: type[_T], key: Any, *, recursive: bool = False
    ) -> _T | None:
        """Load a record and its relationships, or None if the row is missing."""
        return await self._run(
            lambda conn: self._reader(conn).get_with_children(
                entity_type, key, recursive=recursive
            )
        )

    async def get_all_with_children(
        self,
        entity_type: type[_T],
        where: Predicate | None = None,
        *,
        recursive: bool = False,
        **filters: Any,
    ) -> list[_T]:
        return await self._run(
            lambda conn: self._reader(conn).get_all_with_children(
                entity_type, where, recursive=recursive, **filters
            )
        )

    async def get_children(self, record: _T, *, recursive: bool = False) -> _T:
        return await self._run(
            lambda conn: self._reader(conn).get_children(record, recursive=recursive)
        )

    async def get_child(self, record: Any, field_name: str, *, recursive: bool = False) -> Any:
        return await self._run(
            lambda conn: self._reader(conn).get_child(record, field_name, recursive=recursive)
        )

    # --- Writes ---

    async def insert_with_children(self, record: Any, *, recursive: bool = False) -> None:
        await self._run(
            lambda conn: self._writer(conn).insert_with_children(record, recursive=recursive)
        )

    async def insert_or_replace_with_children(
        self, record: Any, *, recursive: bool = False
    ) -> None:
        await self._run(
            lambda conn: self._writer(conn).insert_or_replace_with_children(
                record, recursive=recursive
            )
        )

    async def insert_all_with_children(
        self, records: Iterable[Any], *, recursive: bool = False
    ) -> None:
        await self._run(
            lambda conn: self._writer(conn).insert_all_with_children(records, recursive=recursive)
        )

    async def insert_or_replace_all_with_children(
        self, records: Iterable[Any], *, recursive: bool = False
    ) -> None:
        await self._run(
            lambda conn: self._writer(conn).insert_or_replace_all_with_children(
                records, recursive=recursive
            )
        )

    async def update_with_children(self, record: Any, *, recursive: bool = False) -> None:
        await self._run(
            lambda conn: self._writer(conn).update_with_children(record, recursive=recursive)
        )

    async def delete_with_children(self, record: Any, *, recursive: bool = False) -> int:
        return await self._run(
            lambda conn: self._writer(conn).delete_with_children(record, recursive=recursive)
        )

    async def delete_all(self, records: Iterable[Any], *, recursive: bool = False) -> int:
        return await self._run(
            lambda conn: self._writer(conn).delete_all(records, recursive=recursive)
        )

    async def delete_all_ids(self, entity_type: type, keys: Iterable[Any]) -> int:
        return await self._run(lambda conn: self._writer(conn).delete_all_ids(entity_type, keys))
