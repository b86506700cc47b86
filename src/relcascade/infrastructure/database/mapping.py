"""SQLAlchemy Core tables derived from resolved record metadata.

Each record type gets its own ``Table`` in its own ``MetaData`` so that
unrelated record types declaring the same table name (common in test
suites) never collide. No database-level foreign-key constraints are
emitted; key consistency is maintained by the cascade engine.
"""

from __future__ import annotations

import datetime as dt
import decimal
import enum
import threading
import uuid
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    Integer,
    LargeBinary,
    MetaData,
    Numeric,
    Table,
    Text,
    Uuid,
)

if TYPE_CHECKING:
    from sqlalchemy import RowMapping
    from sqlalchemy.types import TypeEngine

    from relcascade.metadata.descriptors import EntityInfo

# bool before int: bool is an int subclass.
_SQL_TYPES: tuple[tuple[type, Any], ...] = (
    (bool, Boolean),
    (int, Integer),
    (float, Float),
    (decimal.Decimal, Numeric),
    (str, Text),
    (bytes, LargeBinary),
    (uuid.UUID, Uuid),
    (dt.datetime, DateTime),
    (dt.date, Date),
)

_tables: dict[type, Table] = {}
_lock = threading.Lock()


def sql_type(python_type: Any) -> TypeEngine[Any]:
    """Column type for a field annotation; unknown types map to TEXT."""
    if isinstance(python_type, type):
        if issubclass(python_type, enum.Enum):
            return Enum(python_type, native_enum=False)
        for candidate, sa_type in _SQL_TYPES:
            if issubclass(python_type, candidate):
                return sa_type()
    return Text()


def table_for(info: EntityInfo) -> Table:
    """Return the cached ``Table`` for a record type."""
    existing = _tables.get(info.entity_type)
    if existing is not None:
        return existing

    columns = [
        Column(
            col.column_name,
            sql_type(col.python_type),
            primary_key=col.primary_key,
            autoincrement=col.autoincrement if col.primary_key else False,
            nullable=not col.primary_key,
        )
        for col in info.columns
    ]
    built = Table(info.table_name, MetaData(), *columns)
    with _lock:
        return _tables.setdefault(info.entity_type, built)


def row_values(info: EntityInfo, record: Any) -> dict[str, Any]:
    """Column-name keyed values of *record*, relationships excluded."""
    return {col.column_name: getattr(record, col.field_name) for col in info.columns}


def materialize(info: EntityInfo, row: RowMapping) -> Any:
    """Build a record instance from a result row.

    Relationship fields keep their declared default (None) and are left
    for the reader to populate.
    """
    init_kwargs: dict[str, Any] = {}
    late: dict[str, Any] = {}
    for col in info.columns:
        target = init_kwargs if col.init else late
        target[col.field_name] = row[col.column_name]

    record = info.entity_type(**init_kwargs)
    for name, value in late.items():
        setattr(record, name, value)
    return record
