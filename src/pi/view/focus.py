"""Focus ownership and Tab navigation."""

from __future__ import annotations

import logging
from typing import Callable

from pi.view.registry import ComponentRegistry

logger = logging.getLogger(__name__)

FocusListener = Callable[["str | None", "str | None"], None]


class FocusManager:
    """Tracks which id holds focus among an ordered list of focusable ids.

    Focus changes go through the registry, which forwards ``set_focus`` to
    an instance only on an actual transition.  Unknown ids are ignored.
    """

    def __init__(
        self,
        registry: ComponentRegistry,
        cycle: bool = True,
        on_change: FocusListener | None = None,
    ) -> None:
        self.registry = registry
        self.cycle = cycle
        self.on_change = on_change
        self._ids: list[str] = []
        self._current: str | None = None

    @property
    def current(self) -> str | None:
        return self._current

    @property
    def ids(self) -> list[str]:
        return list(self._ids)

    def set_ids(self, ids: list[str]) -> None:
        """Replace the navigation order after a structural change.

        If the focused id disappeared, focus is dropped.
        """
        self._ids = list(ids)
        if self._current is not None and self._current not in self._ids:
            previous = self._current
            self._current = None
            self.registry.set_focus(previous, False)
            self._notify(previous, None)

    def focus(self, node_id: str | None) -> bool:
        """Move focus to *node_id* (``None`` clears).  Returns ``True`` on change."""
        if node_id is not None and node_id not in self._ids:
            logger.debug("Ignoring focus request for unknown id %r", node_id)
            return False
        if node_id == self._current:
            return False
        previous = self._current
        if previous is not None:
            self.registry.set_focus(previous, False)
        self._current = node_id
        if node_id is not None:
            self.registry.set_focus(node_id, True)
        self._notify(previous, node_id)
        return True

    def clear(self) -> bool:
        return self.focus(None)

    def next(self) -> bool:
        return self._step(1)

    def prev(self) -> bool:
        return self._step(-1)

    def _step(self, delta: int) -> bool:
        if not self._ids:
            return False
        if self._current is None:
            target = self._ids[0] if delta > 0 else self._ids[-1]
            return self.focus(target)
        index = self._ids.index(self._current) + delta
        if self.cycle:
            index %= len(self._ids)
        elif not 0 <= index < len(self._ids):
            return False
        return self.focus(self._ids[index])

    def sync(self) -> None:
        """Make the registry agree with :attr:`current`.

        Blurs any other instance still flagged as focused and focuses the
        current holder if its instance was just (re)created.
        """
        for node_id in self.registry.focused_ids():
            if node_id != self._current:
                self.registry.set_focus(node_id, False)
        if self._current is not None:
            self.registry.set_focus(self._current, True)

    def _notify(self, previous: str | None, current: str | None) -> None:
        if self.on_change is not None:
            self.on_change(previous, current)
