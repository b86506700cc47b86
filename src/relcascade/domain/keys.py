"""Primary-key values and identity keys.

Supported key types are a small closed set: integers, UUIDs and
strings. Identity lookups compare normalized values structurally, so a
UUID read back from the database matches the UUID held in memory and an
integer key never collides with its string spelling.
"""

from __future__ import annotations

import uuid
from typing import Any

type KeyValue = int | uuid.UUID | str
type IdentityKey = tuple[type, KeyValue]

_NIL_UUID = uuid.UUID(int=0)


def normalize_key(value: Any) -> KeyValue:
    """Coerce a raw key value into one of the supported key types.

    Raises:
        TypeError: If *value* is not an int, UUID, str or bytes UUID.
    """
    if isinstance(value, bool):
        msg = f"Boolean values cannot be used as primary keys: {value!r}"
        raise TypeError(msg)
    if isinstance(value, (int, uuid.UUID, str)):
        return value
    if isinstance(value, bytes) and len(value) == 16:
        return uuid.UUID(bytes=value)
    msg = f"Unsupported primary key type {type(value).__name__}: {value!r}"
    raise TypeError(msg)


def is_unset_key(value: Any) -> bool:
    """True for key values that mean "not assigned yet"."""
    return value is None or value == 0 or value == "" or value == _NIL_UUID


def identity_key(entity_type: type, value: Any) -> IdentityKey:
    """Build the ``(type, key)`` pair used by the identity tracker."""
    return (entity_type, normalize_key(value))
