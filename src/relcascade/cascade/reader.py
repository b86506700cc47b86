"""GraphReader: hydrate relationship fields from the store.

Every public call builds its own :class:`IdentityTracker`. A row that is
reached a second time, through any path, resolves to the instance built
the first time and is not descended into again, which is what makes
cyclic graphs terminate.

The root record always has all of its direct relationships loaded.
When ``recursive`` is set, newly loaded targets are descended into
following only relationships flagged with ``CascadeOperation.READ``.
Text blobs are decoded on every record that is loaded.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, TypeVar

from relcascade.cascade.identity import IdentityTracker
from relcascade.domain.keys import is_unset_key
from relcascade.domain.types import CascadeOperation, EnclosedType, RelationshipKind
from relcascade.infrastructure.textblob import TextBlobSerializer, load_text_blob

if TYPE_CHECKING:
    from relcascade.infrastructure.database.store import Predicate, Store
    from relcascade.metadata.descriptors import RelationshipDescriptor

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

type _Loaded = list[tuple[Any, bool]]


class GraphReader:
    """Read side of the cascade engine."""

    def __init__(self, store: Store, serializer: TextBlobSerializer | None = None) -> None:
        self._store = store
        self._serializer = serializer

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_with_children(
        self, entity_type: type[_T], key: Any, *, recursive: bool = False
    ) -> _T | None:
        """Load the row with primary key *key* and its relationships.

        Returns None when the row does not exist.
        """
        record = self._store.find(entity_type, key)
        if record is None:
            return None
        tracker = IdentityTracker()
        tracker.adopt(record, self._store.entity(entity_type).key_of(record))
        self._load_children(record, tracker, recursive=recursive, cascade_only=False)
        return record

    def get_all_with_children(
        self,
        entity_type: type[_T],
        where: Predicate | None = None,
        *,
        recursive: bool = False,
        **filters: Any,
    ) -> list[_T]:
        """Load every matching row and hydrate each one.

        One tracker is shared across the batch, so records reachable from
        several roots are loaded once.
        """
        rows = self._store.query(entity_type, where, **filters)
        tracker = IdentityTracker()
        info = self._store.entity(entity_type)
        records = [tracker.adopt(row, info.key_of(row))[0] for row in rows]
        for record in records:
            self._load_children(record, tracker, recursive=recursive, cascade_only=False)
        return records

    def get_children(self, record: Any, *, recursive: bool = False) -> Any:
        """Populate every relationship of an already loaded *record* in place."""
        tracker = self._tracker_for(record)
        self._load_children(record, tracker, recursive=recursive, cascade_only=False)
        return record

    def get_child(self, record: Any, field_name: str, *, recursive: bool = False) -> Any:
        """Populate the single relationship *field_name* of *record*.

        Raises:
            KeyError: If *field_name* is not a relationship of the record type.
        """
        rel = self._store.entity(type(record)).relationship(field_name)
        tracker = self._tracker_for(record)
        if rel.is_text_blob:
            load_text_blob(record, rel, self._serializer)
        else:
            self._load_relationship(record, rel, tracker, recursive=recursive)
        return getattr(record, field_name)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _tracker_for(self, record: Any) -> IdentityTracker:
        tracker = IdentityTracker()
        tracker.mark(record, self._store.entity(type(record)).key_of(record))
        return tracker

    def _load_children(
        self, record: Any, tracker: IdentityTracker, *, recursive: bool, cascade_only: bool
    ) -> None:
        self._load_blobs(record)
        for rel in self._store.entity(type(record)).relationships:
            if rel.is_text_blob:
                continue
            if not cascade_only or rel.cascades(CascadeOperation.READ):
                self._load_relationship(record, rel, tracker, recursive=recursive)

    def _load_blobs(self, record: Any) -> None:
        for rel in self._store.entity(type(record)).relationships:
            if rel.is_text_blob:
                load_text_blob(record, rel, self._serializer)

    def _load_relationship(
        self,
        record: Any,
        rel: RelationshipDescriptor,
        tracker: IdentityTracker,
        *,
        recursive: bool,
    ) -> None:
        match rel.kind:
            case RelationshipKind.MANY_TO_ONE:
                loaded = self._load_reference(record, rel, tracker)
            case RelationshipKind.ONE_TO_ONE:
                if rel.foreign_key is not None:
                    loaded = self._load_reference(record, rel, tracker)
                else:
                    loaded = self._load_inverse_reference(record, rel, tracker)
            case RelationshipKind.ONE_TO_MANY:
                loaded = self._load_collection(record, rel, tracker)
            case RelationshipKind.MANY_TO_MANY:
                loaded = self._load_linked(record, rel, tracker)
            case _:
                msg = f"Unsupported relationship kind: {rel.kind}"
                raise ValueError(msg)

        logger.debug(
            "Loaded %s.%s: %d %s record(s)",
            rel.owner.__name__,
            rel.navigation,
            len(loaded),
            rel.target.__name__,
        )
        for instance, is_new in loaded:
            if not is_new:
                continue
            if recursive:
                self._load_children(instance, tracker, recursive=True, cascade_only=True)
            else:
                self._load_blobs(instance)

    def _load_reference(
        self, record: Any, rel: RelationshipDescriptor, tracker: IdentityTracker
    ) -> _Loaded:
        assert rel.foreign_key is not None
        key = getattr(record, rel.foreign_key)
        if is_unset_key(key):
            setattr(record, rel.navigation, None)
            return []

        instance = tracker.get(rel.target, key)
        is_new = False
        if instance is None:
            row = self._store.find(rel.target, key)
            if row is not None:
                instance, is_new = tracker.adopt(row, key)
        setattr(record, rel.navigation, instance)
        if instance is None:
            return []
        self._set_back_reference(rel, [instance], record)
        return [(instance, is_new)]

    def _load_inverse_reference(
        self, record: Any, rel: RelationshipDescriptor, tracker: IdentityTracker
    ) -> _Loaded:
        assert rel.inverse_foreign_key is not None
        owner_key = self._store.entity(type(record)).key_of(record)
        if is_unset_key(owner_key):
            setattr(record, rel.navigation, None)
            return []

        rows = self._store.query(rel.target, **{rel.inverse_foreign_key: owner_key})
        loaded = self._adopt_all(rel.target, rows[:1], tracker)
        setattr(record, rel.navigation, loaded[0][0] if loaded else None)
        self._set_back_reference(rel, [instance for instance, _ in loaded], record)
        return loaded

    def _load_collection(
        self, record: Any, rel: RelationshipDescriptor, tracker: IdentityTracker
    ) -> _Loaded:
        assert rel.inverse_foreign_key is not None
        owner_key = self._store.entity(type(record)).key_of(record)
        if is_unset_key(owner_key):
            setattr(record, rel.navigation, None)
            return []

        rows = self._store.query(rel.target, **{rel.inverse_foreign_key: owner_key})
        loaded = self._adopt_all(rel.target, rows, tracker)
        instances = [instance for instance, _ in loaded]
        setattr(record, rel.navigation, _container(rel, instances))
        self._set_back_reference(rel, instances, record)
        return loaded

    def _load_linked(
        self, record: Any, rel: RelationshipDescriptor, tracker: IdentityTracker
    ) -> _Loaded:
        link = rel.many_to_many
        assert link is not None
        owner_key = self._store.entity(type(record)).key_of(record)
        if is_unset_key(owner_key):
            setattr(record, rel.navigation, None)
            return []

        target_keys = self._store.query_column(
            link.through, link.destination_field, **{link.origin_field: owner_key}
        )
        cached: dict[Any, Any] = {}
        missing: list[Any] = []
        for key in target_keys:
            instance = tracker.get(rel.target, key)
            if instance is None:
                missing.append(key)
            else:
                cached[key] = instance

        target_info = self._store.entity(rel.target)
        fetched = {
            target_info.key_of(row): tracker.adopt(row, target_info.key_of(row))
            for row in self._store.find_many(rel.target, missing)
        }

        loaded: _Loaded = []
        for key in dict.fromkeys(target_keys):
            if key in cached:
                loaded.append((cached[key], False))
            elif key in fetched:
                loaded.append(fetched[key])
        setattr(record, rel.navigation, _container(rel, [instance for instance, _ in loaded]))
        return loaded

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _adopt_all(
        self, entity_type: type, rows: Iterable[Any], tracker: IdentityTracker
    ) -> _Loaded:
        info = self._store.entity(entity_type)
        return [tracker.adopt(row, info.key_of(row)) for row in rows]

    @staticmethod
    def _set_back_reference(
        rel: RelationshipDescriptor, instances: Iterable[Any], owner: Any
    ) -> None:
        if rel.inverse_property is None or rel.inverse_is_collection:
            return
        for instance in instances:
            setattr(instance, rel.inverse_property, owner)


def _container(rel: RelationshipDescriptor, instances: list[Any]) -> list[Any] | tuple[Any, ...]:
    if rel.enclosed is EnclosedType.TUPLE:
        return tuple(instances)
    return instances
