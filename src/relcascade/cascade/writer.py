"""GraphWriter: insert, update and delete records with their relationships.

Write order follows where each foreign key lives:

- a reference whose key is stored on the owner (many-to-one, owning
  one-to-one) is written before the owner, so its key is known when the
  owner row is written;
- dependents (one-to-many children, inverse one-to-one, many-to-many
  targets) are written after the owner, with their foreign key and back
  reference already pointing at it.

Once every row of a call is written, each record gets a final pass: its
own foreign keys are refreshed from its navigation fields (rewriting the
row if a key only became known later in the call), then the foreign keys
held by other rows are synchronized. That second step runs for every
non read-only relationship regardless of cascade flags: children no
longer in a collection are detached, the one-to-one inverse row is
re-pointed, and many-to-many link rows are reconciled. Rows written in the
same call that point back at the record from their own side are kept.

Deletes run in the opposite direction: dependents first, then the
record, then the rows it references.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from relcascade.cascade.identity import IdentityTracker
from relcascade.cascade.many_to_many import ManyToManyReconciler
from relcascade.domain.keys import is_unset_key
from relcascade.domain.types import CascadeOperation, RelationshipKind
from relcascade.infrastructure.database.mapping import row_values
from relcascade.infrastructure.textblob import TextBlobSerializer, store_text_blob

if TYPE_CHECKING:
    from relcascade.infrastructure.database.store import Store
    from relcascade.metadata.descriptors import EntityInfo, RelationshipDescriptor

logger = logging.getLogger(__name__)


@dataclass
class _WriteContext:
    """State of one top-level write call."""

    tracker: IdentityTracker
    recursive: bool
    replace: bool = False
    written: list[tuple[Any, dict[str, Any]]] = field(default_factory=list)


def _items(value: Any) -> list[Any]:
    """Navigation value as a list; None counts as empty."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [item for item in value if item is not None]
    return [value]


class GraphWriter:
    """Write side of the cascade engine."""

    def __init__(self, store: Store, serializer: TextBlobSerializer | None = None) -> None:
        self._store = store
        self._serializer = serializer
        self._reconciler = ManyToManyReconciler(store)

    # ------------------------------------------------------------------
    # Inserts
    # ------------------------------------------------------------------

    def insert_with_children(self, record: Any, *, recursive: bool = False) -> None:
        """Insert *record* and its insert-cascading relationships.

        Without ``recursive`` only the direct targets are inserted, as
        flat rows. An existing row with the same key raises the store's
        integrity error.
        """
        self._insert_batch([record], replace=False, recursive=recursive)

    def insert_or_replace_with_children(self, record: Any, *, recursive: bool = False) -> None:
        """Like :meth:`insert_with_children`, replacing rows that already exist.

        Records whose auto-increment key is still unassigned are inserted.
        """
        self._insert_batch([record], replace=True, recursive=recursive)

    def insert_all_with_children(
        self, records: Iterable[Any], *, recursive: bool = False
    ) -> None:
        self._insert_batch(records, replace=False, recursive=recursive)

    def insert_or_replace_all_with_children(
        self, records: Iterable[Any], *, recursive: bool = False
    ) -> None:
        self._insert_batch(records, replace=True, recursive=recursive)

    def _insert_batch(self, records: Iterable[Any], *, replace: bool, recursive: bool) -> None:
        ctx = _WriteContext(IdentityTracker(), recursive=recursive, replace=replace)
        for record in records:
            self._insert_graph(ctx, record)
        self._finish(ctx)

    def _insert_graph(self, ctx: _WriteContext, record: Any) -> None:
        info = self._store.entity(type(record))
        if not ctx.tracker.mark(record, info.key_of(record)):
            return

        cascading = self._cascading(info, CascadeOperation.INSERT)
        for rel in cascading:
            if rel.owner_holds_key:
                self._insert_value(ctx, getattr(record, rel.navigation))

        self._refresh_foreign_keys(record, info)
        self._write_row(ctx, record, info)
        ctx.written.append((record, row_values(info, record)))

        for rel in cascading:
            if not rel.owner_holds_key:
                self._link_dependents(record, info, rel)
                self._insert_value(ctx, getattr(record, rel.navigation))

    def _insert_value(self, ctx: _WriteContext, value: Any) -> None:
        for item in _items(value):
            if ctx.recursive:
                self._insert_graph(ctx, item)
            else:
                self._insert_flat(ctx, item)

    def _insert_flat(self, ctx: _WriteContext, record: Any) -> None:
        info = self._store.entity(type(record))
        if not ctx.tracker.mark(record, info.key_of(record)):
            return
        for rel in info.relationships:
            if rel.is_text_blob:
                store_text_blob(record, rel, self._serializer)
        self._write_row(ctx, record, info)

    def _write_row(self, ctx: _WriteContext, record: Any, info: EntityInfo) -> None:
        pk = info.primary_key
        generated = pk is not None and pk.autoincrement and is_unset_key(info.key_of(record))
        if ctx.replace and not generated:
            key = self._store.insert_or_replace(record)
        else:
            key = self._store.insert(record)
        ctx.tracker.finalize(record, key)
        logger.debug("Wrote %s key=%r", info.entity_type.__name__, key)

    def _finish(self, ctx: _WriteContext) -> None:
        """Post-write pass: late foreign keys, then inverse synchronization."""
        for record, snapshot in ctx.written:
            info = self._store.entity(type(record))
            self._refresh_foreign_keys(record, info)
            if info.primary_key is not None and row_values(info, record) != snapshot:
                self._store.update(record)
        written = [record for record, _ in ctx.written]
        for record in written:
            self._sync_inverse(record, self._store.entity(type(record)), written)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update_with_children(self, record: Any, *, recursive: bool = False) -> None:
        """Write *record* and bring every foreign key in line with its graph.

        All related records must already have primary keys. With
        ``recursive`` the update is repeated on targets of relationships
        flagged ``CascadeOperation.UPDATE``.
        """
        ctx = _WriteContext(IdentityTracker(), recursive=recursive)
        self._update_graph(ctx, record)

    def _update_graph(self, ctx: _WriteContext, record: Any) -> None:
        info = self._store.entity(type(record))
        if not ctx.tracker.mark(record, info.key_of(record)):
            return

        self._refresh_foreign_keys(record, info)
        self._store.update(record)
        self._sync_inverse(record, info)
        logger.debug("Updated %s key=%r", info.entity_type.__name__, info.key_of(record))

        if ctx.recursive:
            for rel in self._cascading(info, CascadeOperation.UPDATE):
                for item in _items(getattr(record, rel.navigation)):
                    self._update_graph(ctx, item)

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    def delete_with_children(self, record: Any, *, recursive: bool = False) -> int:
        """Delete *record*; with ``recursive`` also its delete-cascading graph.

        Returns the number of rows removed, link rows excluded.
        """
        return self.delete_all([record], recursive=recursive)

    def delete_all(self, records: Iterable[Any], *, recursive: bool = False) -> int:
        tracker = IdentityTracker()
        ordered: list[Any] = []
        for record in records:
            self._collect_deletes(tracker, record, recursive, ordered)

        removed = 0
        for entity_type, group in itertools.groupby(ordered, key=type):
            info = self._store.entity(entity_type)
            removed += self.delete_all_ids(entity_type, [info.key_of(r) for r in group])
        logger.debug("Deleted %d row(s) from %d record(s)", removed, len(ordered))
        return removed

    def delete_all_ids(self, entity_type: type, keys: Iterable[Any]) -> int:
        """Delete rows by primary key; relationships are not followed.

        Many-to-many link rows pointing at the deleted keys are removed
        as well.
        """
        key_list = [k for k in keys if not is_unset_key(k)]
        if not key_list:
            return 0
        self._remove_links(entity_type, key_list)
        return self._store.delete_all_ids(entity_type, key_list)

    def _collect_deletes(
        self, tracker: IdentityTracker, record: Any, recursive: bool, ordered: list[Any]
    ) -> None:
        info = self._store.entity(type(record))
        if not tracker.mark(record, info.key_of(record)):
            return

        cascading = self._cascading(info, CascadeOperation.DELETE) if recursive else []
        referenced = [
            rel
            for rel in cascading
            if rel.owner_holds_key or rel.kind is RelationshipKind.MANY_TO_MANY
        ]
        for rel in cascading:
            if rel not in referenced:
                for item in _items(getattr(record, rel.navigation)):
                    self._collect_deletes(tracker, item, recursive, ordered)
        ordered.append(record)
        for rel in referenced:
            for item in _items(getattr(record, rel.navigation)):
                self._collect_deletes(tracker, item, recursive, ordered)

    def _remove_links(self, entity_type: type, keys: list[Any]) -> None:
        info = self._store.entity(entity_type)
        for rel in info.relationships:
            if rel.many_to_many is not None:
                link = rel.many_to_many
                self._store.delete_in(link.through, link.origin_field, keys)
        for rel in self._store.resolver.inbound_many_to_many(entity_type):
            assert rel.many_to_many is not None
            link = rel.many_to_many
            self._store.delete_in(link.through, link.destination_field, keys)

    # ------------------------------------------------------------------
    # Foreign-key synchronization
    # ------------------------------------------------------------------

    @staticmethod
    def _cascading(info: EntityInfo, operation: CascadeOperation) -> list[RelationshipDescriptor]:
        return [
            rel
            for rel in info.relationships
            if not rel.read_only and not rel.is_text_blob and rel.cascades(operation)
        ]

    def _refresh_foreign_keys(self, record: Any, info: EntityInfo) -> None:
        """Copy referenced keys into the owner's own foreign-key fields.

        A cleared navigation field resets its foreign key to the column
        default. Text blobs are serialized here as well.
        """
        for rel in info.relationships:
            if rel.read_only:
                continue
            if rel.is_text_blob:
                store_text_blob(record, rel, self._serializer)
            elif rel.owner_holds_key:
                assert rel.foreign_key is not None
                target = getattr(record, rel.navigation)
                value = None
                if target is not None:
                    value = self._store.entity(type(target)).key_of(target)
                if is_unset_key(value):
                    value = info.column(rel.foreign_key).default
                setattr(record, rel.foreign_key, value)

    def _link_dependents(self, record: Any, info: EntityInfo, rel: RelationshipDescriptor) -> None:
        """Point dependents' foreign key and back reference at *record* in memory."""
        if rel.kind not in (RelationshipKind.ONE_TO_MANY, RelationshipKind.ONE_TO_ONE):
            return
        owner_key = info.key_of(record)
        for child in _items(getattr(record, rel.navigation)):
            if rel.inverse_foreign_key is not None and not is_unset_key(owner_key):
                setattr(child, rel.inverse_foreign_key, owner_key)
            if rel.inverse_property is not None and not rel.inverse_is_collection:
                setattr(child, rel.inverse_property, record)

    def _sync_inverse(self, record: Any, info: EntityInfo, written: Sequence[Any] = ()) -> None:
        """Make rows on the other side of each relationship agree with *record*.

        Rows in *written* that already point back at *record* from their own
        side are kept, even when *record*'s collection does not list them.
        """
        owner_key = info.key_of(record)
        if is_unset_key(owner_key):
            return

        for rel in info.relationships:
            if rel.read_only or rel.is_text_blob:
                continue
            match rel.kind:
                case RelationshipKind.ONE_TO_MANY:
                    self._link_dependents(record, info, rel)
                    children = _items(getattr(record, rel.navigation))
                    self._sync_children(owner_key, rel, children, written)
                case RelationshipKind.ONE_TO_ONE if rel.inverse_foreign_key is not None:
                    self._link_dependents(record, info, rel)
                    children = _items(getattr(record, rel.navigation))
                    self._sync_children(owner_key, rel, children, written)
                case RelationshipKind.MANY_TO_MANY:
                    assert rel.many_to_many is not None
                    target_info = self._store.entity(rel.target)
                    targets = _items(getattr(record, rel.navigation))
                    targets += _linking_back(record, rel, written)
                    keys = [target_info.key_of(t) for t in targets]
                    self._reconciler.reconcile(owner_key, keys, rel.many_to_many)

    def _sync_children(
        self,
        owner_key: Any,
        rel: RelationshipDescriptor,
        children: list[Any],
        written: Sequence[Any],
    ) -> None:
        assert rel.inverse_foreign_key is not None
        target_info = self._store.entity(rel.target)
        if target_info.primary_key is None:
            return
        keys = list(self._child_keys(target_info, children))
        pointing_back = [
            r
            for r in written
            if type(r) is rel.target and getattr(r, rel.inverse_foreign_key) == owner_key
        ]
        keep = keys + list(self._child_keys(target_info, pointing_back))
        self._store.clear_column(rel.target, rel.inverse_foreign_key, owner_key, keep=keep)
        if keys:
            self._store.assign_column(rel.target, rel.inverse_foreign_key, owner_key, keys)

    @staticmethod
    def _child_keys(target_info: EntityInfo, children: list[Any]) -> Iterator[Any]:
        for child in children:
            key = target_info.key_of(child)
            if not is_unset_key(key):
                yield key


def _linking_back(record: Any, rel: RelationshipDescriptor, written: Sequence[Any]) -> list[Any]:
    """Written targets whose own many-to-many collection contains *record*."""
    if rel.inverse_property is None:
        return []
    return [
        r
        for r in written
        if type(r) is rel.target
        and any(item is record for item in _items(getattr(r, rel.inverse_property)))
    ]
