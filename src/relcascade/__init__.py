"""relcascade: relationship cascades for dataclass records on SQLite.

Declare records as dataclasses with :func:`one_to_many`,
:func:`many_to_one`, :func:`one_to_one`, :func:`many_to_many` and
:func:`text_blob` fields, then read and write whole object graphs
through :class:`Database` or :class:`AsyncDatabase`.
"""

from relcascade.config.settings import RelcascadeSettings
from relcascade.database import AsyncDatabase, Database
from relcascade.domain import (
    CascadeOperation,
    EnclosedType,
    RelationshipKind,
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
from relcascade.errors import (
    ConfigurationError,
    IncorrectRelationshipError,
    RecordNotFoundError,
    RelcascadeError,
)
from relcascade.infrastructure.database.engine import create_async_db_engine, create_db_engine
from relcascade.infrastructure.textblob import (
    JsonBlobSerializer,
    TextBlobSerializer,
    get_text_serializer,
    set_text_serializer,
)

__version__ = "0.1.0"

__all__ = [
    "AsyncDatabase",
    "CascadeOperation",
    "ConfigurationError",
    "Database",
    "EnclosedType",
    "IncorrectRelationshipError",
    "JsonBlobSerializer",
    "RecordNotFoundError",
    "RelationshipKind",
    "RelcascadeError",
    "RelcascadeSettings",
    "TextBlobSerializer",
    "column",
    "create_async_db_engine",
    "create_db_engine",
    "foreign_key",
    "get_text_serializer",
    "many_to_many",
    "many_to_one",
    "one_to_many",
    "one_to_one",
    "primary_key",
    "relationship",
    "set_text_serializer",
    "table",
    "text_blob",
]
