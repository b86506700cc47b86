"""Resolved, immutable metadata for a record type.

An :class:`EntityInfo` is built once per record type by the resolver and
never changes afterwards. Reader and writer only ever consult these
objects; they never look at dataclass fields or annotations directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from relcascade.domain.types import CascadeOperation, EnclosedType, RelationshipKind


@dataclass(frozen=True)
class ColumnInfo:
    """One persisted field of a record type."""

    field_name: str
    column_name: str
    python_type: Any
    default: Any = None
    init: bool = True
    primary_key: bool = False
    autoincrement: bool = False
    foreign_type: type | None = None


@dataclass(frozen=True)
class ManyToManyInfo:
    """Intermediate record type and its two foreign-key fields.

    ``origin_field`` points at the owner of the relationship,
    ``destination_field`` at the target.
    """

    through: type
    origin_field: str
    destination_field: str


@dataclass(frozen=True)
class RelationshipDescriptor:
    """A navigation (or text-blob) field and everything needed to follow it.

    ``foreign_key`` is a field on the owner, ``inverse_foreign_key`` a field
    on the target; a one-to-one relationship may carry either or both.
    """

    owner: type
    navigation: str
    kind: RelationshipKind
    target: Any
    enclosed: EnclosedType = EnclosedType.NONE
    cascade: CascadeOperation = CascadeOperation.NONE
    read_only: bool = False
    foreign_key: str | None = None
    inverse_foreign_key: str | None = None
    inverse_property: str | None = None
    inverse_is_collection: bool = False
    many_to_many: ManyToManyInfo | None = None
    text_field: str | None = None

    def cascades(self, operation: CascadeOperation) -> bool:
        return operation in self.cascade

    @property
    def is_text_blob(self) -> bool:
        return self.kind is RelationshipKind.TEXT_BLOB

    @property
    def owner_holds_key(self) -> bool:
        """True when the owner row stores the target's key.

        The referenced row then has to exist before the owner is written.
        """
        return self.foreign_key is not None and self.kind in (
            RelationshipKind.MANY_TO_ONE,
            RelationshipKind.ONE_TO_ONE,
        )


@dataclass(frozen=True)
class EntityInfo:
    """Table mapping plus relationship descriptors of one record type."""

    entity_type: type
    table_name: str
    columns: tuple[ColumnInfo, ...]
    primary_key: ColumnInfo | None
    relationships: tuple[RelationshipDescriptor, ...]

    def column(self, field_name: str) -> ColumnInfo:
        for col in self.columns:
            if col.field_name == field_name:
                return col
        msg = f"{self.entity_type.__name__} has no column field {field_name!r}"
        raise KeyError(msg)

    def relationship(self, field_name: str) -> RelationshipDescriptor:
        for rel in self.relationships:
            if rel.navigation == field_name:
                return rel
        msg = f"{self.entity_type.__name__} has no relationship field {field_name!r}"
        raise KeyError(msg)

    def key_of(self, record: Any) -> Any:
        """Current primary-key value of *record*, or None without a key column."""
        if self.primary_key is None:
            return None
        return getattr(record, self.primary_key.field_name)
