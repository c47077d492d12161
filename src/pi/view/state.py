"""Thread-safe application state shared by the main loop and workers.

The store is the only object touched from more than one thread.  Reads
take a shared lock, writes an exclusive one, and neither is held while
listeners run or while expressions are evaluated.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping

logger = logging.getLogger(__name__)

# Reserved key under which the whole-state root is exposed to expressions.
ROOT_KEY = "$"

# Reserved key holding per-node render errors.
ERRORS_KEY = "__errors"

StateListener = Callable[[dict[str, Any]], None]


class ReadWriteLock:
    """Many concurrent readers or a single writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class StateStore:
    """Key/value map with snapshot reads and change notification."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})
        self._lock = ReadWriteLock()
        self._version = 0
        self._listeners: list[StateListener] = []

    # -- reads ---------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock.read():
            return self._data.get(key, default)

    def __contains__(self, key: object) -> bool:
        with self._lock.read():
            return key in self._data

    def snapshot(self) -> dict[str, Any]:
        """Return a shallow copy of the current state."""
        with self._lock.read():
            return dict(self._data)

    @property
    def version(self) -> int:
        """Monotonic counter bumped on every write."""
        with self._lock.read():
            return self._version

    # -- writes --------------------------------------------------------------

    def set(self, key: str, value: Any) -> None:
        with self._lock.write():
            self._data[key] = value
            self._version += 1
        self._notify({key: value})

    def update(self, values: Mapping[str, Any]) -> None:
        """Apply several keys under one write lock."""
        if not values:
            return
        with self._lock.write():
            self._data.update(values)
            self._version += 1
        self._notify(dict(values))

    def delete(self, key: str) -> None:
        with self._lock.write():
            if key not in self._data:
                return
            del self._data[key]
            self._version += 1
        self._notify({key: None})

    def replace(self, values: Mapping[str, Any]) -> None:
        """Swap the whole map (used on structural reload)."""
        with self._lock.write():
            self._data = dict(values)
            self._version += 1
        self._notify(dict(values))

    # -- listeners -----------------------------------------------------------

    def subscribe(self, fn: StateListener) -> Callable[[], None]:
        """Call *fn* with the changed keys after every write.

        Returns an unsubscribe function.
        """
        self._listeners.append(fn)

        def unsubscribe() -> None:
            if fn in self._listeners:
                self._listeners.remove(fn)

        return unsubscribe

    def _notify(self, changed: dict[str, Any]) -> None:
        for listener in list(self._listeners):
            listener(changed)


# ---------------------------------------------------------------------------
# Initial state preparation
# ---------------------------------------------------------------------------


def flatten_data(data: dict[str, Any]) -> dict[str, Any]:
    """Add dotted keys for every nested path, keeping the nested originals.

    ``{"user": {"name": "x"}}`` gains ``"user.name"``; lists gain
    ``"items.0"`` style keys.
    """
    if not data:
        return data

    flat: dict[str, Any] = {}

    def walk(prefix: str, value: Any) -> None:
        if isinstance(value, dict):
            for k, v in value.items():
                path = f"{prefix}.{k}"
                flat[path] = v
                walk(path, v)
        elif isinstance(value, list):
            for i, v in enumerate(value):
                path = f"{prefix}.{i}"
                flat[path] = v
                walk(path, v)

    for key, value in data.items():
        walk(key, value)

    data.update(flat)
    return data


def merge_data(
    existing: dict[str, Any] | None,
    external: Mapping[str, Any] | None,
    override: bool = True,
) -> dict[str, Any]:
    """Merge *external* into *existing*.

    With ``override`` the external values win; otherwise external keys are
    only added when absent.
    """
    if existing is None:
        existing = {}
    if not external:
        return existing
    for key, value in external.items():
        if override or key not in existing:
            existing[key] = value
    return existing


def prepare_initial_state(
    data: Mapping[str, Any] | None,
    external: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the initial state from static config data and external data.

    External data takes priority; the result is flattened.
    """
    merged = merge_data(dict(data or {}), external, override=True)
    if external:
        logger.debug("Merged %d external keys into initial state", len(external))
    return flatten_data(merged)
