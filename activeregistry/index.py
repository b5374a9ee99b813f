"""
In-memory equality indexes keyed by attribute value.

Buckets hold item identities (``id(item)``), never the items themselves, so
membership stays identity-based even for items that define ``__eq__``.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Hashable, Iterable
from typing import Any

from .errors import IndexNotFound, UnhashableValueError
from .item import MISSING, read_attribute

logger = logging.getLogger(__name__)

IndexName = str | tuple[str, ...]

DEFAULT_INDEX = "object_id"


def normalize_index_name(name: Any) -> IndexName:
    """
    Accept an attribute name or a sequence of names (compound index).

    A one-element sequence collapses to the plain attribute name.
    """
    if isinstance(name, str):
        return name
    if isinstance(name, (tuple, list)) and name and all(isinstance(part, str) for part in name):
        return name[0] if len(name) == 1 else tuple(name)
    raise TypeError(f"index name must be a string or a tuple of strings, got {name!r}")


def ensure_hashable(value: Any, name: IndexName, item: Any = MISSING) -> None:
    try:
        hash(value)
    except TypeError:
        owner = "" if item is MISSING else f" of item {item!r}"
        raise UnhashableValueError(
            f"Value {value!r}{owner} for index '{name}' is not hashable and cannot be indexed."
        ) from None


class AttributeIndex:
    """
    One index: value -> set of item ids, plus the reverse id -> value map.

    The reverse map records the bucket each item actually sits in, so removals
    and relocations never depend on the item still holding its indexed value.
    """

    def __init__(self, name: IndexName) -> None:
        self.name = name
        self.attributes: tuple[str, ...] = name if isinstance(name, tuple) else (name,)
        self._buckets: dict[Hashable, set[int]] = {}
        self._keys: dict[int, Hashable] = {}

    @property
    def compound(self) -> bool:
        return len(self.attributes) > 1

    def read(self, item: Any, action: str = "indexed") -> Any:
        """Read the raw (possibly unhashable) key value of `item`."""
        if self.name == DEFAULT_INDEX:
            return id(item)
        if self.compound:
            return tuple(read_attribute(item, attr, action) for attr in self.attributes)
        return read_attribute(item, self.name, action)

    def key_for(self, item: Any, action: str = "indexed") -> Hashable:
        key = self.read(item, action)
        ensure_hashable(key, self.name, item)
        return key

    def key_with(self, item: Any, attribute: str, value: Any) -> Any:
        """The item's key with `attribute` replaced by `value`."""
        if not self.compound:
            return value
        return tuple(
            value if attr == attribute else read_attribute(item, attr)
            for attr in self.attributes
        )

    def add(self, item_id: int, key: Hashable) -> None:
        previous = self._keys.get(item_id, MISSING)
        if previous is not MISSING:
            if previous == key:
                return
            self._discard_from(previous, item_id)
        self._buckets.setdefault(key, set()).add(item_id)
        self._keys[item_id] = key

    def discard(self, item_id: int) -> None:
        key = self._keys.pop(item_id, MISSING)
        if key is not MISSING:
            self._discard_from(key, item_id)

    def get(self, value: Any) -> frozenset[int]:
        ensure_hashable(value, self.name)
        return frozenset(self._buckets.get(value, ()))

    def bucket(self, value: Any) -> set[int]:
        """The live bucket for `value`; callers must not mutate it."""
        ensure_hashable(value, self.name)
        return self._buckets.get(value, set())

    def items(self) -> Iterable[tuple[Hashable, set[int]]]:
        return self._buckets.items()

    def __contains__(self, item_id: int) -> bool:
        return item_id in self._keys

    def __len__(self) -> int:
        return len(self._buckets)

    def _discard_from(self, key: Hashable, item_id: int) -> None:
        bucket = self._buckets.get(key)
        if bucket is None:
            return
        bucket.discard(item_id)
        if not bucket:
            del self._buckets[key]


class IndexStore:
    """
    Owns every AttributeIndex of a registry and keeps them in step.

    The identity index is not created implicitly here; the registry declares
    it first through `reindex_all`.
    """

    def __init__(self) -> None:
        self._indexes: dict[IndexName, AttributeIndex] = {}

    @property
    def names(self) -> list[IndexName]:
        return list(self._indexes)

    def get(self, name: IndexName) -> AttributeIndex:
        try:
            return self._indexes[name]
        except (KeyError, TypeError):
            raise IndexNotFound(
                f"Index '{name}' not found. Available indexes: {self.user_names()!r}. "
                f"Add it with '.index({name!r})'"
            ) from None

    def user_names(self) -> list[IndexName]:
        return [name for name in self._indexes if name != DEFAULT_INDEX]

    def declare_index(self, name: Any, items: Iterable[Any]) -> bool:
        """
        Build and register an index over `items`.

        Returns False when the index already exists. Nothing is registered if
        any item fails to produce a key.
        """
        name = normalize_index_name(name)
        if name in self._indexes:
            logger.warning("Index %r already exists", name)
            return False
        self._indexes[name] = self._build(name, items)
        return True

    def reindex_all(self, names: Iterable[Any], items: Collection[Any]) -> None:
        """Drop every index and rebuild the identity index plus `names`."""
        rebuilt: dict[IndexName, AttributeIndex] = {}
        for raw in [DEFAULT_INDEX, *names]:
            name = normalize_index_name(raw)
            if name not in rebuilt:
                rebuilt[name] = self._build(name, items)
        self._indexes = rebuilt
        logger.debug("Reindexed %d items on %r", len(items), list(rebuilt))

    def insert(self, item: Any) -> None:
        """Index `item` everywhere, or nowhere if any key cannot be computed."""
        keys = [(index, index.key_for(item, "added")) for index in self._indexes.values()]
        item_id = id(item)
        for index, key in keys:
            index.add(item_id, key)

    def remove(self, item: Any) -> None:
        for index in self._indexes.values():
            index.read(item, "deleted")
        item_id = id(item)
        for index in self._indexes.values():
            index.discard(item_id)

    def relocate(self, name: IndexName, item: Any, old_value: Any, new_value: Any) -> None:
        """
        Move `item` to the `new_value` bucket of index `name`.

        The item leaves whichever bucket it is recorded in, which is the
        `old_value` bucket unless the item was mutated behind the index's back.
        """
        if old_value == new_value:
            return
        index = self.get(name)
        item_id = id(item)
        if item_id not in index:
            return
        ensure_hashable(new_value, name, item)
        index.add(item_id, new_value)

    def lookup(self, name: IndexName, value: Any) -> frozenset[int]:
        return self.get(name).get(value)

    def indexes_on(self, attribute: str) -> list[AttributeIndex]:
        return [
            index
            for name, index in self._indexes.items()
            if name != DEFAULT_INDEX and attribute in index.attributes
        ]

    def compound_for(self, attributes: Collection[Any]) -> AttributeIndex | None:
        """Return a compound index over exactly `attributes`, if declared."""
        wanted = set(attributes)
        if len(wanted) < 2 or len(wanted) != len(attributes):
            return None
        for index in self._indexes.values():
            if index.compound and set(index.attributes) == wanted:
                return index
        return None

    def as_dict(self) -> dict[IndexName, dict[Hashable, set[int]]]:
        return {
            name: {key: set(ids) for key, ids in index.items()}
            for name, index in self._indexes.items()
        }

    def __contains__(self, name: Any) -> bool:
        try:
            return name in self._indexes
        except TypeError:
            return False

    def __len__(self) -> int:
        return len(self._indexes)

    # --- internal helpers -------------------------------------------------

    def _build(self, name: IndexName, items: Iterable[Any]) -> AttributeIndex:
        index = AttributeIndex(name)
        for item in items:
            index.add(id(item), index.key_for(item))
        logger.debug("Built index %r (%d buckets)", name, len(index))
        return index
