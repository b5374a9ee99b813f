"""
Item access helpers and the change-reporting contract.

Items are plain Python objects (attributes read with ``getattr``) or mappings
(attributes read by key). Items that want indexes to follow their mutations
implement ``add_change_listener`` / ``remove_change_listener`` and call
``listener.on_attribute_changed(item, attribute, old, new)`` after every
assignment. ``Observable`` does exactly that.
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import Mapping, MutableMapping
from typing import Any, Protocol, runtime_checkable

from .errors import MissingAttributeError
from .guard import hold_all


_LISTENERS = "_change_listeners"
MISSING = object()
_LISTENERS_LOCK = threading.Lock()


@runtime_checkable
class ChangeListener(Protocol):
    def on_attribute_changed(self, item: Any, attribute: str, old_value: Any, new_value: Any) -> None:
        ...


@runtime_checkable
class ReportsChanges(Protocol):
    def add_change_listener(self, listener: ChangeListener) -> None:
        ...

    def remove_change_listener(self, listener: ChangeListener) -> None:
        ...


def read_attribute(item: Any, attribute: str, action: str = "indexed") -> Any:
    """
    Return the item's current value for `attribute`.

    `action` only shapes the error message ("added", "deleted", ...).
    """
    try:
        if isinstance(item, Mapping):
            return item[attribute]
        return getattr(item, attribute)
    except (KeyError, AttributeError):
        raise MissingAttributeError(
            f"Item {item!r} cannot be {action} because indexable attribute "
            f"'{attribute}' is missing or not accessible."
        ) from None


def write_attribute(item: Any, attribute: str, value: Any) -> None:
    if isinstance(item, MutableMapping):
        item[attribute] = value
    else:
        setattr(item, attribute, value)


class Observable:
    """
    Mixin that reports attribute assignments to registered listeners.

    Listeners are held weakly, so a registry that is dropped without being
    closed stops receiving notifications instead of being kept alive by the
    items it used to hold. A listener may expose a ``guard``; every listener
    guard is held around the assignment and its notifications, so a
    thread-safe registry never shows the new value with the old buckets.
    Requires an instance ``__dict__``.
    """

    def add_change_listener(self, listener: ChangeListener) -> None:
        with _LISTENERS_LOCK:
            listeners = self.__dict__.get(_LISTENERS)
            if listeners is None:
                listeners = weakref.WeakSet()
                object.__setattr__(self, _LISTENERS, listeners)
            listeners.add(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        with _LISTENERS_LOCK:
            listeners = self.__dict__.get(_LISTENERS)
            if listeners is not None:
                listeners.discard(listener)

    def __setattr__(self, name: str, value: Any) -> None:
        listeners = self._change_listener_snapshot() if name != _LISTENERS else []
        if not listeners:
            super().__setattr__(name, value)
            return

        with hold_all(getattr(listener, "guard", None) for listener in listeners):
            old_value = getattr(self, name, MISSING)
            super().__setattr__(name, value)
            if old_value is MISSING:
                return
            # Re-read so properties that coerce on assignment report what is stored.
            new_value = getattr(self, name)
            for listener in listeners:
                listener.on_attribute_changed(self, name, old_value, new_value)

    def _change_listener_snapshot(self) -> list[ChangeListener]:
        with _LISTENERS_LOCK:
            listeners = self.__dict__.get(_LISTENERS)
            return list(listeners) if listeners else []

    def __getstate__(self) -> dict[str, Any]:
        # Copies and pickles start out unobserved.
        state = dict(self.__dict__)
        state.pop(_LISTENERS, None)
        return state
