"""Declarations, enums and key handling shared by every layer."""

from relcascade.domain.fields import (
    column,
    foreign_key,
    many_to_many,
    many_to_one,
    one_to_many,
    one_to_one,
    primary_key,
    relationship,
    table,
    text_blob,
)
from relcascade.domain.types import CascadeOperation, EnclosedType, RelationshipKind

__all__ = [
    "CascadeOperation",
    "EnclosedType",
    "RelationshipKind",
    "column",
    "foreign_key",
    "many_to_many",
    "many_to_one",
    "one_to_many",
    "one_to_one",
    "primary_key",
    "relationship",
    "table",
    "text_blob",
]
