"""Store: flat-row CRUD for record types over one SQLAlchemy connection.

This is the storage collaborator the cascade engine is written against:
it knows how to write and read a single record (or a batch of records of
one type) and nothing about relationships. The caller owns the
connection and therefore the transaction, exactly like the counter
helpers that take a ``Connection`` from ``engine.begin()``.

Statements whose parameter count grows with the input (``IN`` lists) are
split into chunks of ``chunk_size`` keys so SQLite's host-parameter limit
is never hit.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import delete, insert, inspect, select, update

from relcascade.domain.keys import is_unset_key
from relcascade.infrastructure.database.mapping import materialize, row_values, table_for
from relcascade.metadata.resolver import MetadataResolver, default_resolver

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement, Connection, Table

    from relcascade.metadata.descriptors import ColumnInfo, EntityInfo

_T = TypeVar("_T")

DEFAULT_CHUNK_SIZE = 990

type Predicate = Callable[[Table], ColumnElement[bool]]


def chunked(items: Sequence[_T], size: int) -> Iterator[Sequence[_T]]:
    """Yield consecutive slices of at most *size* items."""
    if size < 1:
        msg = f"Chunk size must be at least 1, got {size}"
        raise ValueError(msg)
    for start in range(0, len(items), size):
        yield items[start : start + size]


class Store:
    """Single-record persistence primitives bound to a connection."""

    def __init__(
        self,
        conn: Connection,
        resolver: MetadataResolver = default_resolver,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._conn = conn
        self._resolver = resolver
        self._chunk_size = chunk_size

    @property
    def resolver(self) -> MetadataResolver:
        return self._resolver

    def entity(self, entity_type: type) -> EntityInfo:
        return self._resolver.entity(entity_type)

    def table(self, entity_type: type) -> Table:
        return table_for(self.entity(entity_type))

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def table_exists(self, entity_type: type) -> bool:
        return inspect(self._conn).has_table(self.entity(entity_type).table_name)

    def create_table(self, entity_type: type) -> None:
        self.table(entity_type).create(self._conn, checkfirst=True)

    def drop_table(self, entity_type: type) -> None:
        self.table(entity_type).drop(self._conn, checkfirst=True)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, record: Any) -> Any:
        """Insert *record* and return its primary key.

        An unset auto-increment key is omitted from the statement and the
        generated value is written back onto *record*.
        """
        return self._insert(record, replace=False)

    def insert_or_replace(self, record: Any) -> Any:
        """Insert *record*, replacing any row with the same primary key."""
        return self._insert(record, replace=True)

    def _insert(self, record: Any, *, replace: bool) -> Any:
        info = self.entity(type(record))
        table = table_for(info)
        values = row_values(info, record)
        pk = info.primary_key
        generated = (
            pk is not None and pk.autoincrement and is_unset_key(values[pk.column_name])
        )
        if generated:
            assert pk is not None
            del values[pk.column_name]

        stmt = insert(table).values(values)
        if replace:
            stmt = stmt.prefix_with("OR REPLACE")
        result = self._conn.execute(stmt)

        if pk is None:
            return None
        if generated:
            setattr(record, pk.field_name, result.inserted_primary_key[0])
        return getattr(record, pk.field_name)

    def update(self, record: Any) -> int:
        """Write every non-key column of *record*; returns rows affected."""
        info = self.entity(type(record))
        pk = self._require_key(info)
        table = table_for(info)
        values = row_values(info, record)
        key = values.pop(pk.column_name)
        if not values:
            return 0
        stmt = update(table).where(table.c[pk.column_name] == key).values(values)
        return self._conn.execute(stmt).rowcount

    def delete(self, record: Any) -> int:
        info = self.entity(type(record))
        return self.delete_by_key(type(record), info.key_of(record))

    def delete_by_key(self, entity_type: type, key: Any) -> int:
        return self.delete_all_ids(entity_type, [key])

    def delete_all_ids(self, entity_type: type, keys: Iterable[Any]) -> int:
        """Delete rows by primary key in chunks; returns rows affected."""
        info = self.entity(entity_type)
        pk = self._require_key(info)
        table = table_for(info)
        key_list = [k for k in keys if k is not None]
        removed = 0
        for chunk in chunked(key_list, self._chunk_size):
            stmt = delete(table).where(table.c[pk.column_name].in_(chunk))
            removed += self._conn.execute(stmt).rowcount
        return removed

    def delete_where(self, entity_type: type, **filters: Any) -> int:
        """Delete rows matching equality *filters* (field name -> value)."""
        info = self.entity(entity_type)
        table = table_for(info)
        stmt = delete(table).where(*self._criteria(info, table, filters))
        return self._conn.execute(stmt).rowcount

    def delete_in(
        self, entity_type: type, field_name: str, values: Iterable[Any], **filters: Any
    ) -> int:
        """Delete rows whose *field_name* is one of *values*, in chunks."""
        info = self.entity(entity_type)
        table = table_for(info)
        column = table.c[info.column(field_name).column_name]
        criteria = self._criteria(info, table, filters)
        value_list = list(values)
        removed = 0
        for chunk in chunked(value_list, self._chunk_size):
            stmt = delete(table).where(column.in_(chunk), *criteria)
            removed += self._conn.execute(stmt).rowcount
        return removed

    def assign_column(
        self, entity_type: type, field_name: str, value: Any, keys: Iterable[Any]
    ) -> int:
        """Set *field_name* to *value* on the rows with the given primary keys."""
        info = self.entity(entity_type)
        pk = self._require_key(info)
        table = table_for(info)
        column_name = info.column(field_name).column_name
        key_list = [k for k in keys if k is not None]
        changed = 0
        for chunk in chunked(key_list, self._chunk_size):
            stmt = (
                update(table)
                .where(table.c[pk.column_name].in_(chunk))
                .values({column_name: value})
            )
            changed += self._conn.execute(stmt).rowcount
        return changed

    def clear_column(
        self,
        entity_type: type,
        field_name: str,
        value: Any,
        *,
        keep: Iterable[Any] = (),
    ) -> int:
        """Reset *field_name* to its default on rows where it equals *value*.

        Rows whose primary key is in *keep* are left alone. Only the rows
        that actually change are updated.
        """
        info = self.entity(entity_type)
        pk = self._require_key(info)
        current = self.query_column(entity_type, pk.field_name, **{field_name: value})
        kept = set(keep)
        stale = [k for k in current if k not in kept]
        if not stale:
            return 0
        return self.assign_column(entity_type, field_name, info.column(field_name).default, stale)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(self, entity_type: type[_T], key: Any) -> _T | None:
        """Load one record by primary key, or None if absent."""
        info = self.entity(entity_type)
        pk = self._require_key(info)
        table = table_for(info)
        stmt = select(table).where(table.c[pk.column_name] == key)
        row = self._conn.execute(stmt).mappings().first()
        return materialize(info, row) if row is not None else None

    def find_many(self, entity_type: type[_T], keys: Iterable[Any]) -> list[_T]:
        """Load records for *keys* in chunked ``IN`` queries.

        The result follows the order of *keys*; missing keys are skipped.
        """
        info = self.entity(entity_type)
        pk = self._require_key(info)
        table = table_for(info)
        key_list = list(dict.fromkeys(k for k in keys if k is not None))
        found: dict[Any, _T] = {}
        for chunk in chunked(key_list, self._chunk_size):
            stmt = select(table).where(table.c[pk.column_name].in_(chunk))
            for row in self._conn.execute(stmt).mappings():
                found[row[pk.column_name]] = materialize(info, row)
        return [found[k] for k in key_list if k in found]

    def query(
        self, entity_type: type[_T], where: Predicate | None = None, **filters: Any
    ) -> list[_T]:
        """Load every record matching *where* and equality *filters*.

        *where* receives the record's ``Table`` and returns a SQLAlchemy
        boolean clause, e.g. ``lambda t: t.c.name.like("A%")``.
        """
        info = self.entity(entity_type)
        table = table_for(info)
        stmt = select(table).where(*self._criteria(info, table, filters))
        if where is not None:
            stmt = stmt.where(where(table))
        if info.primary_key is not None:
            stmt = stmt.order_by(table.c[info.primary_key.column_name])
        return [materialize(info, row) for row in self._conn.execute(stmt).mappings()]

    def query_column(self, entity_type: type, field_name: str, **filters: Any) -> list[Any]:
        """Values of one field for the rows matching equality *filters*."""
        info = self.entity(entity_type)
        table = table_for(info)
        column = table.c[info.column(field_name).column_name]
        stmt = select(column).where(*self._criteria(info, table, filters))
        return [row[0] for row in self._conn.execute(stmt)]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _criteria(
        info: EntityInfo, table: Table, filters: dict[str, Any]
    ) -> list[ColumnElement[bool]]:
        criteria = []
        for field_name, value in filters.items():
            column = table.c[info.column(field_name).column_name]
            criteria.append(column.is_(None) if value is None else column == value)
        return criteria

    @staticmethod
    def _require_key(info: EntityInfo) -> ColumnInfo:
        if info.primary_key is None:
            msg = f"{info.entity_type.__name__} has no primary key"
            raise TypeError(msg)
        return info.primary_key
