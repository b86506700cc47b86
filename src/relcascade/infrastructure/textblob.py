"""Text-blob codec: embedded values stored in a single string column.

The default serializer is JSON through pydantic ``TypeAdapter``, which
round-trips dataclasses, pydantic models, lists and dicts into the
declared field type. Any object with ``serialize``/``deserialize`` can be
installed instead via :func:`set_text_serializer`.
"""

from __future__ import annotations

import functools
from typing import Any, Protocol

from pydantic import TypeAdapter

from relcascade.metadata.descriptors import RelationshipDescriptor


class TextBlobSerializer(Protocol):
    def serialize(self, value: Any) -> str: ...

    def deserialize(self, text: str, target_type: Any) -> Any: ...


@functools.lru_cache(maxsize=256)
def _adapter(target_type: Any) -> TypeAdapter[Any]:
    return TypeAdapter(target_type)


class JsonBlobSerializer:
    """JSON text blobs validated against the declared field type."""

    def serialize(self, value: Any) -> str:
        return _adapter(type(value)).dump_json(value).decode("utf-8")

    def deserialize(self, text: str, target_type: Any) -> Any:
        return _adapter(target_type).validate_json(text)


_serializer: TextBlobSerializer | None = None


def set_text_serializer(serializer: TextBlobSerializer | None) -> None:
    """Install the process-wide serializer; None restores the JSON default."""
    global _serializer
    _serializer = serializer


def get_text_serializer() -> TextBlobSerializer:
    global _serializer
    if _serializer is None:
        _serializer = JsonBlobSerializer()
    return _serializer


def load_text_blob(
    record: Any, descriptor: RelationshipDescriptor, serializer: TextBlobSerializer | None = None
) -> None:
    """Populate a blob field from its backing text column."""
    assert descriptor.text_field is not None
    text = getattr(record, descriptor.text_field)
    codec = serializer or get_text_serializer()
    value = codec.deserialize(text, descriptor.target) if text is not None else None
    setattr(record, descriptor.navigation, value)


def store_text_blob(
    record: Any, descriptor: RelationshipDescriptor, serializer: TextBlobSerializer | None = None
) -> None:
    """Serialize a blob field into its backing text column."""
    assert descriptor.text_field is not None
    value = getattr(record, descriptor.navigation)
    codec = serializer or get_text_serializer()
    setattr(record, descriptor.text_field, codec.serialize(value) if value is not None else None)
