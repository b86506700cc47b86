"""Exception hierarchy for relcascade.

Configuration problems surface when a record type is first resolved and
are never retried. Storage errors raised by SQLAlchemy propagate
unchanged and are not wrapped here.
"""

from __future__ import annotations

from typing import Any


class RelcascadeError(Exception):
    """Base class for every error raised by relcascade itself."""


class ConfigurationError(RelcascadeError):
    """A record type is declared in a way the engine cannot interpret."""


class IncorrectRelationshipError(ConfigurationError):
    """A relationship field is missing a key, a container or a target."""

    def __init__(self, type_name: str, field_name: str, message: str) -> None:
        super().__init__(f"{type_name}.{field_name}: {message}")
        self.type_name = type_name
        self.field_name = field_name


class RecordNotFoundError(RelcascadeError):
    """Raised by ``get_with_children`` when the root row does not exist."""

    def __init__(self, entity_type: type, key: Any) -> None:
        super().__init__(f"No {entity_type.__name__} row with primary key {key!r}")
        self.entity_type = entity_type
        self.key = key
