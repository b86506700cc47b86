"""Declaration helpers for record types.

Records are plain ``@dataclass`` classes. Column and relationship
metadata ride along in ``dataclasses.field(metadata=...)`` under the
:data:`METADATA_KEY` entry, so a record stays an ordinary dataclass that
can be constructed, compared and printed without the engine::

    @table("customers")
    @dataclass
    class Customer:
        id: int | None = primary_key(autoincrement=True)
        name: str = ""
        orders: list[Order] | None = one_to_many(cascade=CascadeOperation.ALL)

Relationship and blob fields are excluded from ``__eq__`` and ``__repr__``
because object graphs may be cyclic.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from relcascade.domain.types import CascadeOperation, RelationshipKind

METADATA_KEY = "relcascade"

_T = TypeVar("_T")


@dataclass(frozen=True)
class ColumnSpec:
    """Column-level declaration: explicit name, key role, referenced type."""

    name: str | None = None
    primary_key: bool = False
    autoincrement: bool = False
    foreign_type: type | str | None = None


@dataclass(frozen=True)
class RelationshipSpec:
    """Relationship declaration as written on the record.

    ``kind`` is None for :func:`relationship`, in which case the resolver
    infers it from the field shape and the reciprocal field.
    """

    kind: RelationshipKind | None
    foreign_key: str | None = None
    inverse_foreign_key: str | None = None
    inverse_property: str | None = None
    cascade: CascadeOperation = CascadeOperation.NONE
    read_only: bool = False
    target: type | str | None = None
    through: type | str | None = None
    text_field: str | None = None


def _field(spec: ColumnSpec | RelationshipSpec, default: Any, **kwargs: Any) -> Any:
    metadata = {METADATA_KEY: spec}
    if default is dataclasses.MISSING:
        return dataclasses.field(metadata=metadata, **kwargs)
    return dataclasses.field(default=default, metadata=metadata, **kwargs)


def primary_key(
    *, autoincrement: bool = False, name: str | None = None, default: Any = None
) -> Any:
    """Declare the primary-key column.

    With ``autoincrement=True`` an unset key (``None`` or ``0``) is left
    out of the INSERT and the generated rowid is written back.
    """
    return _field(ColumnSpec(name=name, primary_key=True, autoincrement=autoincrement), default)


def column(*, name: str | None = None, default: Any = dataclasses.MISSING) -> Any:
    """Declare a plain column with an explicit column name."""
    return _field(ColumnSpec(name=name), default)


def foreign_key(target: type | str, *, name: str | None = None, default: Any = None) -> Any:
    """Declare a column holding the primary key of *target*.

    *target* may be the class itself or its name, for classes declared
    further down the module.
    """
    return _field(ColumnSpec(name=name, foreign_type=target), default)


def _relationship(spec: RelationshipSpec) -> Any:
    return _field(spec, None, compare=False, repr=False)


def relationship(
    *,
    foreign_key: str | None = None,
    inverse_foreign_key: str | None = None,
    inverse_property: str | None = None,
    cascade: CascadeOperation = CascadeOperation.NONE,
    read_only: bool = False,
    target: type | str | None = None,
    through: type | str | None = None,
) -> Any:
    """Declare a relationship whose kind is inferred at resolve time."""
    return _relationship(
        RelationshipSpec(
            kind=None,
            foreign_key=foreign_key,
            inverse_foreign_key=inverse_foreign_key,
            inverse_property=inverse_property,
            cascade=cascade,
            read_only=read_only,
            target=target,
            through=through,
        )
    )


def one_to_one(
    foreign_key: str | None = None,
    inverse_property: str | None = None,
    *,
    cascade: CascadeOperation = CascadeOperation.NONE,
    read_only: bool = False,
    target: type | str | None = None,
) -> Any:
    """Single reference; the foreign key may live on either record."""
    return _relationship(
        RelationshipSpec(
            kind=RelationshipKind.ONE_TO_ONE,
            foreign_key=foreign_key,
            inverse_property=inverse_property,
            cascade=cascade,
            read_only=read_only,
            target=target,
        )
    )


def many_to_one(
    foreign_key: str | None = None,
    inverse_property: str | None = None,
    *,
    cascade: CascadeOperation = CascadeOperation.NONE,
    read_only: bool = False,
    target: type | str | None = None,
) -> Any:
    """Single reference; the foreign key lives on the owner."""
    return _relationship(
        RelationshipSpec(
            kind=RelationshipKind.MANY_TO_ONE,
            foreign_key=foreign_key,
            inverse_property=inverse_property,
            cascade=cascade,
            read_only=read_only,
            target=target,
        )
    )


def one_to_many(
    inverse_foreign_key: str | None = None,
    inverse_property: str | None = None,
    *,
    cascade: CascadeOperation = CascadeOperation.NONE,
    read_only: bool = False,
    target: type | str | None = None,
) -> Any:
    """Collection; each target row holds a foreign key back to the owner."""
    return _relationship(
        RelationshipSpec(
            kind=RelationshipKind.ONE_TO_MANY,
            inverse_foreign_key=inverse_foreign_key,
            inverse_property=inverse_property,
            cascade=cascade,
            read_only=read_only,
            target=target,
        )
    )


def many_to_many(
    through: type | str,
    foreign_key: str | None = None,
    inverse_foreign_key: str | None = None,
    inverse_property: str | None = None,
    *,
    cascade: CascadeOperation = CascadeOperation.NONE,
    read_only: bool = False,
    target: type | str | None = None,
) -> Any:
    """Collection linked through the intermediate record type *through*.

    *inverse_foreign_key* names the column on *through* pointing at the
    owner, *foreign_key* the one pointing at the target.
    """
    return _relationship(
        RelationshipSpec(
            kind=RelationshipKind.MANY_TO_MANY,
            foreign_key=foreign_key,
            inverse_foreign_key=inverse_foreign_key,
            inverse_property=inverse_property,
            cascade=cascade,
            read_only=read_only,
            target=target,
            through=through,
        )
    )


def text_blob(text_field: str) -> Any:
    """Store the field's value serialized in the string column *text_field*."""
    return _field(
        RelationshipSpec(kind=RelationshipKind.TEXT_BLOB, text_field=text_field),
        None,
        compare=False,
    )


def table(name: str) -> Callable[[type[_T]], type[_T]]:
    """Class decorator giving a record type an explicit table name."""

    def decorate(cls: type[_T]) -> type[_T]:
        cls.__tablename__ = name  # type: ignore[attr-defined]
        return cls

    return decorate


def field_spec(f: dataclasses.Field[Any]) -> ColumnSpec | RelationshipSpec | None:
    """Return the relcascade declaration attached to a dataclass field."""
    return f.metadata.get(METADATA_KEY)
