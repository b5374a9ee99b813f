"""
Routes attribute changes reported by items into index relocations.
"""

from __future__ import annotations

import logging
from typing import Any

from .cache import QueryCache
from .guard import ConcurrencyGuard
from .index import IndexStore, ensure_hashable
from .item import ReportsChanges

logger = logging.getLogger(__name__)


class ChangeNotifier:
    """
    Subscribes to the registry's items and keeps their index buckets current.

    Only items implementing the change-reporting contract can be attached;
    other items stay indexed under the values they had when they were added
    until they go through ``Registry.set`` or are removed and re-added.
    """

    def __init__(self, store: IndexStore, cache: QueryCache, guard: ConcurrencyGuard) -> None:
        self._store = store
        self._cache = cache
        self._guard = guard
        self._attached: dict[int, Any] = {}

    @property
    def guard(self) -> ConcurrencyGuard:
        """Held by reporting items around every assignment they announce."""
        return self._guard

    def attach(self, item: Any) -> bool:
        """Start tracking `item`. Returns whether the item reports changes."""
        if self.is_attached(item):
            return True
        if not isinstance(item, ReportsChanges):
            return False
        item.add_change_listener(self)
        self._attached[id(item)] = item
        return True

    def detach(self, item: Any) -> None:
        if not self.is_attached(item):
            return
        del self._attached[id(item)]
        item.remove_change_listener(self)

    def detach_all(self) -> None:
        items = list(self._attached.values())
        self._attached.clear()
        for item in items:
            item.remove_change_listener(self)
        if items:
            logger.debug("Stopped tracking %d items", len(items))

    def is_attached(self, item: Any) -> bool:
        return self._attached.get(id(item)) is item

    def on_attribute_changed(self, item: Any, attribute: str, old_value: Any, new_value: Any) -> None:
        """Relocate `item` in every index covering `attribute`."""
        if old_value == new_value:
            return
        with self._guard:
            if not self.is_attached(item):
                return
            self.apply(item, attribute, old_value, new_value)

    def apply(self, item: Any, attribute: str, old_value: Any, new_value: Any) -> None:
        """
        Relocate a member whose `attribute` went from `old_value` to `new_value`.

        All new keys are validated before any index moves, so a failure leaves
        every index where it was.
        """
        moves = []
        for index in self._store.indexes_on(attribute):
            new_key = index.key_with(item, attribute, new_value)
            ensure_hashable(new_key, index.name, item)
            moves.append((index.name, index.key_with(item, attribute, old_value), new_key))
        if not moves:
            return
        for name, old_key, new_key in moves:
            self._store.relocate(name, item, old_key, new_key)
        self._cache.invalidate_all()

    def __len__(self) -> int:
        return len(self._attached)
