"""Resolved record metadata and the resolver that builds it."""

from relcascade.metadata.descriptors import (
    ColumnInfo,
    EntityInfo,
    ManyToManyInfo,
    RelationshipDescriptor,
)
from relcascade.metadata.resolver import MetadataResolver, default_resolver

__all__ = [
    "ColumnInfo",
    "EntityInfo",
    "ManyToManyInfo",
    "MetadataResolver",
    "RelationshipDescriptor",
    "default_resolver",
]
