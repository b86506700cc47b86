"""Relationship kinds, cascade flags and collection shapes.

These enums are the closed vocabulary the resolver, reader and writer
dispatch on. Each relationship field resolves to exactly one
:class:`RelationshipKind`; text blobs are tagged separately because they
never touch another table.
"""

from __future__ import annotations

from enum import Flag, StrEnum, auto


class RelationshipKind(StrEnum):
    """How a navigation field relates its owner to the target type."""

    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"
    MANY_TO_MANY = "many_to_many"
    TEXT_BLOB = "text_blob"


class CascadeOperation(Flag):
    """Operations that follow a relationship into its target records."""

    NONE = 0
    INSERT = auto()
    READ = auto()
    UPDATE = auto()
    DELETE = auto()
    ALL = INSERT | READ | UPDATE | DELETE


class EnclosedType(StrEnum):
    """Container shape of a navigation field."""

    NONE = "none"
    LIST = "list"
    TUPLE = "tuple"
