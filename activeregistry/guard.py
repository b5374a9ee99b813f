"""
Optional coarse-grained locking for registries.
"""

from __future__ import annotations

import contextlib
import functools
import threading
from collections.abc import Callable, Iterable, Iterator
from typing import Any, TypeVar

F = TypeVar("F", bound=Callable[..., Any])


class ConcurrencyGuard:
    """
    Context manager around a single reentrant lock, or a no-op when disabled.

    Reentrancy lets a public operation call another one (``find`` -> ``where``)
    and lets a reporting item notify registries whose guards it already holds.
    """

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled
        self._lock = threading.RLock() if enabled else None

    def __enter__(self) -> "ConcurrencyGuard":
        if self._lock is not None:
            self._lock.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._lock is not None:
            self._lock.release()


def synchronized(method: F) -> F:
    """Run a method while holding ``self._guard``."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._guard:
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


@contextlib.contextmanager
def hold_all(guards: Iterable[ConcurrencyGuard | None]) -> Iterator[None]:
    """
    Hold several guards at once, each acquired once and in ``id`` order.

    Every caller that needs more than one registry lock goes through here, so
    two threads never take the same pair of locks in opposite order.
    """
    unique = {id(guard): guard for guard in guards if guard is not None}
    with contextlib.ExitStack() as stack:
        for _, guard in sorted(unique.items(), key=lambda pair: pair[0]):
            stack.enter_context(guard)
        yield
