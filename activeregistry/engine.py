"""
Registry facade that wires together indexing, change tracking and caching.
"""

from __future__ import annotations

import itertools
import warnings
from collections.abc import Hashable, Iterable, Iterator, Mapping
from typing import Any

from .cache import QUERY_CACHE_LIMIT, CacheStats, QueryCache
from .errors import MoreThanOneRecordFound, MoreThanOneRecordWarning
from .guard import ConcurrencyGuard, synchronized
from .index import AttributeIndex, IndexName, IndexStore, ensure_hashable
from .item import ReportsChanges, read_attribute, write_attribute
from .watch import ChangeNotifier

Criteria = Mapping[Any, Any]


def _merge_criteria(criteria: Criteria | None, attributes: dict[str, Any]) -> dict[Any, Any]:
    merged = dict(criteria or {})
    merged.update(attributes)
    return merged


def _criteria_key(criteria: Criteria) -> tuple[tuple[Any, Any], ...]:
    # repr() orders plain and compound (tuple) names together.
    return tuple(sorted(criteria.items(), key=lambda pair: repr(pair[0])))


def _check_page(offset: int, limit: int | None) -> None:
    if offset < 0:
        raise ValueError("offset must be >= 0")
    if limit is not None and limit < 0:
        raise ValueError("limit must be >= 0")


class Registry:
    """
    In-memory collection of items with equality indexes and cached queries.

    Membership is by identity. Every registry carries an identity index
    ("object_id"); further indexes are declared with `index`. Queries are
    conjunctions of attribute == value constraints.

    Registries returned by `where` share their parent's lock and subscribe to
    the change notifications of every item they hold, so each live result
    costs one listener per item and is notified on every tracked mutation.
    Close results (or drop them) once they are no longer needed.
    """

    def __init__(
        self,
        items: Iterable[Any] = (),
        indexes: Iterable[Any] = (),
        *,
        thread_safe: bool = False,
        cache_size: int = QUERY_CACHE_LIMIT,
        _guard: ConcurrencyGuard | None = None,
    ) -> None:
        self.thread_safe = thread_safe
        self._guard = _guard if _guard is not None else ConcurrencyGuard(thread_safe)
        self._items: dict[int, Any] = {}
        self._positions: dict[int, int] = {}
        self._sequence = itertools.count()
        for item in items:
            self._remember(item)
        self._store = IndexStore()
        self._cache = QueryCache(cache_size)
        self._notifier = ChangeNotifier(self._store, self._cache, self._guard)
        self.reindex(indexes)

    # --- mutation ---------------------------------------------------------

    @synchronized
    def add(self, item: Any) -> Any:
        """
        Add `item` and index it under every declared index.

        Raises MissingAttributeError (registry unchanged) if the item lacks an
        indexed attribute. Re-adding a member re-verifies its buckets.
        """
        self._store.insert(item)
        self._remember(item)
        if self._store.user_names():
            self._notifier.attach(item)
        self._cache.invalidate_all()
        return item

    @synchronized
    def delete(self, item: Any) -> None:
        """Remove `item` from the registry and every index."""
        self._store.remove(item)
        item_id = id(item)
        if self._items.get(item_id) is item:
            del self._items[item_id]
            del self._positions[item_id]
        self._notifier.detach(item)
        self._cache.invalidate_all()

    def set(self, item: Any, attribute: str, value: Any) -> None:
        """
        Assign `attribute` on `item` and move it to the matching buckets.

        This is the supported way to change an indexed attribute of an item
        that does not report its own changes (including mapping items).
        """
        if isinstance(item, ReportsChanges):
            self._set_reported(item, attribute, value)
            return

        with self._guard:
            indexes = self._store.indexes_on(attribute) if item in self else []
            if not indexes:
                write_attribute(item, attribute, value)
                return
            ensure_hashable(value, attribute, item)
            old_value = read_attribute(item, attribute, "updated")
            write_attribute(item, attribute, value)
            new_value = read_attribute(item, attribute, "updated")
            if old_value != new_value:
                self._notifier.apply(item, attribute, old_value, new_value)

    def __lshift__(self, item: Any) -> "Registry":
        """``registry << item`` adds the item and returns the registry."""
        self.add(item)
        return self

    @synchronized
    def index(self, *names: Any) -> None:
        """
        Declare one index per name; a tuple of names declares a compound index.

        Each declaration is all-or-nothing. Declaring an existing index is a
        no-op. Indexes declared before a failing name stay declared and live.
        """
        items = list(self._items.values())
        declared = False
        try:
            for name in names:
                declared = self._store.declare_index(name, items) or declared
        finally:
            if declared:
                for item in items:
                    self._notifier.attach(item)
                self._cache.invalidate_all()

    @synchronized
    def reindex(self, indexes: Iterable[Any] = ()) -> None:
        """Drop all indexes and rebuild the identity index plus `indexes`."""
        self._store.reindex_all(list(indexes), list(self._items.values()))
        self._notifier.detach_all()
        if self._store.user_names():
            for item in self._items.values():
                self._notifier.attach(item)
        self._cache.invalidate_all()

    @synchronized
    def close(self) -> None:
        """Stop receiving change notifications from every item."""
        self._notifier.detach_all()

    # --- queries ----------------------------------------------------------

    @synchronized
    def where(
        self,
        criteria: Criteria | None = None,
        /,
        *,
        limit: int | None = None,
        offset: int = 0,
        **attributes: Any,
    ) -> "Registry":
        """
        Return a new registry holding the items that match every criterion.

        Empty criteria match nothing. `offset`/`limit` slice the matches in
        registry order.
        """
        _check_page(offset, limit)
        criteria = _merge_criteria(criteria, attributes)
        ids = self._query(criteria, offset, limit) if criteria else ()
        return Registry(
            (self._items[item_id] for item_id in ids),
            self._store.user_names(),
            thread_safe=self.thread_safe,
            cache_size=self._cache.capacity,
            _guard=self._guard,
        )

    @synchronized
    def exists(self, criteria: Criteria | None = None, /, **attributes: Any) -> bool:
        """Whether any item matches; never reads or fills the query cache."""
        criteria = _merge_criteria(criteria, attributes)
        if not criteria:
            return False
        return bool(self._match(self._resolve(criteria)))

    @synchronized
    def count_where(self, criteria: Criteria | None = None, /, **attributes: Any) -> int:
        criteria = _merge_criteria(criteria, attributes)
        if not criteria:
            return 0
        return len(self._query(criteria, 0, None))

    @synchronized
    def find(self, criteria: Criteria | None = None, /, **attributes: Any) -> Any | None:
        """First match or None; warns if more than one item matches."""
        ids = self._find_ids(_merge_criteria(criteria, attributes))
        if len(ids) > 1:
            warnings.warn("There were more than 1 records found", MoreThanOneRecordWarning, stacklevel=3)
        return self._items[ids[0]] if ids else None

    @synchronized
    def find_strict(self, criteria: Criteria | None = None, /, **attributes: Any) -> Any | None:
        """First match or None; raises MoreThanOneRecordFound on ambiguity."""
        ids = self._find_ids(_merge_criteria(criteria, attributes))
        if len(ids) > 1:
            raise MoreThanOneRecordFound(f"There were {len(ids)} records found, expected at most 1")
        return self._items[ids[0]] if ids else None

    @synchronized
    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    # --- collection protocol ------------------------------------------------

    @property
    def indexes(self) -> list[IndexName]:
        """Declared index names, without the identity index."""
        return self._store.user_names()

    @synchronized
    def to_list(self) -> list[Any]:
        return list(self._items.values())

    @synchronized
    def to_dict(self) -> dict[IndexName, dict[Hashable, list[Any]]]:
        """Index name -> {value: [items]} snapshot, items in registry order."""
        return {
            name: {key: [self._items[i] for i in self._ordered(ids)] for key, ids in buckets.items()}
            for name, buckets in self._store.as_dict().items()
        }

    def first(self) -> Any | None:
        return next(iter(self), None)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.to_list())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item: Any) -> bool:
        return self._items.get(id(item)) is item

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_list()!r})"

    def __enter__(self) -> "Registry":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # --- internal helpers -------------------------------------------------

    def _set_reported(self, item: Any, attribute: str, value: Any) -> None:
        # Never assign while holding our own lock: the item takes the lock of
        # every registry listening to it, in a fixed order, around the write.
        with self._guard:
            indexes = self._store.indexes_on(attribute) if item in self else []
            if indexes:
                ensure_hashable(value, attribute, item)
            untracked = bool(indexes) and not self._notifier.is_attached(item)
            old_value = read_attribute(item, attribute, "updated") if untracked else None
        write_attribute(item, attribute, value)
        if not untracked:
            return

        # Member of a closed registry: no notification arrives, relocate here.
        with self._guard:
            new_value = read_attribute(item, attribute, "updated")
            if item in self and old_value != new_value:
                self._notifier.apply(item, attribute, old_value, new_value)

    def _remember(self, item: Any) -> None:
        item_id = id(item)
        if item_id not in self._items:
            self._items[item_id] = item
            self._positions[item_id] = next(self._sequence)

    def _resolve(self, criteria: Criteria) -> list[tuple[AttributeIndex, Any]]:
        """
        Map criteria onto declared indexes.

        An exact compound match wins; otherwise every name must be indexed on
        its own. All names and values are validated before anything is looked up.
        """
        if all(isinstance(name, str) for name in criteria):
            compound = self._store.compound_for(list(criteria))
            if compound is not None:
                value = tuple(criteria[attr] for attr in compound.attributes)
                ensure_hashable(value, compound.name)
                return [(compound, value)]

        plan = []
        for name, value in criteria.items():
            index = self._store.get(name)
            ensure_hashable(value, index.name)
            plan.append((index, value))
        return plan

    def _match(self, plan: list[tuple[AttributeIndex, Any]]) -> set[int]:
        """Intersect buckets in criteria order, stopping at the first empty result."""
        result: set[int] | None = None
        for index, value in plan:
            bucket = index.bucket(value)
            result = set(bucket) if result is None else result & bucket
            if not result:
                break
        return result or set()

    def _query(self, criteria: Criteria, offset: int, limit: int | None) -> tuple[int, ...]:
        plan = self._resolve(criteria)
        key = (_criteria_key(criteria), offset, limit)
        cached = self._cache.lookup(key)
        if cached is not None:
            return cached

        ids = self._ordered(self._match(plan))
        ids = ids[offset:] if limit is None else ids[offset : offset + limit]
        self._cache.store(key, ids)
        return ids

    def _find_ids(self, criteria: Criteria) -> tuple[int, ...]:
        return self._query(criteria, 0, None) if criteria else ()

    def _ordered(self, ids: Iterable[int]) -> tuple[int, ...]:
        return tuple(sorted(ids, key=self._positions.__getitem__))


# Backward-compat alias.
ActiveRegistry = Registry
