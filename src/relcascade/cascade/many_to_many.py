"""ManyToManyReconciler: keep link rows equal to in-memory membership.

Only the delta is written: link rows that already exist and are still
wanted are never touched. Membership is compared by target primary key,
not by object identity.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from relcascade.domain.keys import is_unset_key

if TYPE_CHECKING:
    from relcascade.infrastructure.database.store import Store
    from relcascade.metadata.descriptors import ManyToManyInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """Target keys whose link rows were inserted or deleted."""

    inserted: tuple[Any, ...] = ()
    deleted: tuple[Any, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.inserted or self.deleted)


class ManyToManyReconciler:
    def __init__(self, store: Store) -> None:
        self._store = store

    def persisted(self, owner_key: Any, link: ManyToManyInfo) -> list[Any]:
        """Target keys currently linked to *owner_key*."""
        return self._store.query_column(
            link.through, link.destination_field, **{link.origin_field: owner_key}
        )

    def reconcile(
        self, owner_key: Any, current: Iterable[Any], link: ManyToManyInfo
    ) -> ReconcileResult:
        """Insert and delete link rows so they match *current*.

        Unset keys in *current* (targets not written yet) are ignored.
        """
        wanted = list(dict.fromkeys(k for k in current if not is_unset_key(k)))
        persisted = self.persisted(owner_key, link)
        existing = set(persisted)
        wanted_set = set(wanted)

        to_insert = [k for k in wanted if k not in existing]
        to_delete = list(dict.fromkeys(k for k in persisted if k not in wanted_set))

        for target_key in to_insert:
            self._store.insert(
                link.through(
                    **{link.origin_field: owner_key, link.destination_field: target_key}
                )
            )
        if to_delete:
            self._store.delete_in(
                link.through,
                link.destination_field,
                to_delete,
                **{link.origin_field: owner_key},
            )

        result = ReconcileResult(inserted=tuple(to_insert), deleted=tuple(to_delete))
        if result.changed:
            logger.debug(
                "Reconciled %s for %r: +%d -%d",
                link.through.__name__,
                owner_key,
                len(result.inserted),
                len(result.deleted),
            )
        return result
