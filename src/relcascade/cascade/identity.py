"""IdentityTracker: one live object per logical row, per top-level call.

Created fresh by every reader or writer entry point and dropped when the
call returns. Two indexes are kept:

- ``(type, key)`` -> instance, so every navigation field that refers to
  the same row ends up pointing at the same object;
- ``id(instance)`` -> instance, so records without an assigned key yet
  (auto-increment inserts) are still visited once. Holding the instance
  keeps its ``id()`` from being reused during the call.

Not shared between threads or calls.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

from relcascade.domain.keys import IdentityKey, identity_key, is_unset_key

_T = TypeVar("_T")


class IdentityTracker:
    """Identity map plus visited set for a single traversal."""

    def __init__(self) -> None:
        self._by_key: dict[IdentityKey, Any] = {}
        self._visited: dict[int, Any] = {}

    def __len__(self) -> int:
        return len(self._visited)

    def get(self, entity_type: type, key: Any) -> Any | None:
        """Instance already registered for ``(entity_type, key)``, if any."""
        if is_unset_key(key):
            return None
        return self._by_key.get(identity_key(entity_type, key))

    def get_or_create(
        self, entity_type: type[_T], key: Any, factory: Callable[[], _T]
    ) -> tuple[_T, bool]:
        """Return the tracked instance for ``(entity_type, key)``.

        The first caller runs *factory* and registers its result; later
        callers get the same instance and ``False``, which is the signal to
        stop recursing into it.
        """
        existing = self.get(entity_type, key)
        if existing is not None:
            return existing, False
        instance = factory()
        self._register(instance, entity_type, key)
        return instance, True

    def adopt(self, instance: _T, key: Any) -> tuple[_T, bool]:
        """Swap a freshly loaded *instance* for the tracked one when possible."""
        return self.get_or_create(type(instance), key, lambda: instance)

    def mark(self, instance: Any, key: Any = None) -> bool:
        """Record that *instance* is being processed.

        Returns False when it was already visited in this traversal. An
        unset *key* registers a placeholder by identity only; call
        :meth:`finalize` once the real key is known.
        """
        if id(instance) in self._visited:
            return False
        self._register(instance, type(instance), key)
        return True

    def finalize(self, instance: Any, key: Any) -> None:
        """Register *instance* under its now-assigned primary key."""
        self._register(instance, type(instance), key)

    def _register(self, instance: Any, entity_type: type, key: Any) -> None:
        self._visited[id(instance)] = instance
        if not is_unset_key(key):
            self._by_key.setdefault(identity_key(entity_type, key), instance)
