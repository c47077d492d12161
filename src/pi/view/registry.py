"""Long-lived component instances keyed by node id.

The view tree is rebuilt whenever its structure changes, but a node id
keeps pointing at the same instance (with its cursor, scroll offset and
timers) for as long as the id stays in the tree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator

from pi.view.component import Component, ComponentFactory, RenderConfig

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    instance: Component
    type_name: str
    last_config: RenderConfig | None = None
    last_focus: bool = False


class ComponentRegistry:
    """One instance per live id, with focus-transition tracking."""

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    # -- lookup --------------------------------------------------------------

    def get(self, node_id: str) -> Component | None:
        entry = self._entries.get(node_id)
        return entry.instance if entry else None

    def type_of(self, node_id: str) -> str | None:
        entry = self._entries.get(node_id)
        return entry.type_name if entry else None

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def items(self) -> list[tuple[str, Component]]:
        return [(k, e.instance) for k, e in self._entries.items()]

    # -- lifecycle -----------------------------------------------------------

    def get_or_create(
        self,
        node_id: str,
        type_name: str,
        factory: ComponentFactory,
        config: RenderConfig,
    ) -> tuple[Component, bool]:
        """Return the instance for *node_id*, creating it if needed.

        An existing instance of the same type is returned untouched.  A type
        change replaces it (the old one is cleaned up first).
        """
        entry = self._entries.get(node_id)
        if entry is not None:
            if entry.type_name == type_name:
                return entry.instance, False
            logger.debug(
                "Component %s changed type %s -> %s; recreating",
                node_id,
                entry.type_name,
                type_name,
            )
            self.remove(node_id)

        instance = factory(config)
        self._entries[node_id] = _Entry(instance, type_name, last_config=config)
        logger.debug("Created component %s (%s)", node_id, type_name)
        return instance, True

    def update_config(self, node_id: str, config: RenderConfig) -> bool:
        """Push *config* to the instance if it differs from the last one applied.

        Returns ``True`` when the instance was updated.  Errors from the
        instance propagate and leave the last-applied config unchanged.
        """
        entry = self._entries.get(node_id)
        if entry is None:
            return False
        if entry.last_config == config:
            return False
        entry.instance.update_config(config)
        entry.last_config = config
        return True

    def last_config(self, node_id: str) -> RenderConfig | None:
        entry = self._entries.get(node_id)
        return entry.last_config if entry else None

    def remove(self, node_id: str) -> None:
        """Drop *node_id* and run its cleanup exactly once."""
        entry = self._entries.pop(node_id, None)
        if entry is None:
            return
        try:
            entry.instance.cleanup()
        except Exception:
            logger.exception("Cleanup failed for component %s", node_id)

    def retain(self, live_ids: Iterable[str]) -> list[str]:
        """Remove every instance whose id is not in *live_ids*.

        Returns the removed ids.
        """
        keep = set(live_ids)
        removed = [k for k in self._entries if k not in keep]
        for node_id in removed:
            self.remove(node_id)
        if removed:
            logger.debug("Removed %d stale components", len(removed))
        return removed

    def clear(self) -> None:
        for node_id in list(self._entries):
            self.remove(node_id)

    # -- focus ---------------------------------------------------------------

    def set_focus(self, node_id: str, focused: bool) -> bool:
        """Forward a focus change only when it is an actual transition.

        Returns ``True`` when ``set_focus`` was called on the instance.
        """
        entry = self._entries.get(node_id)
        if entry is None or entry.last_focus == focused:
            return False
        entry.instance.set_focus(focused)
        entry.last_focus = focused
        return True

    def focused_ids(self) -> list[str]:
        return [k for k, e in self._entries.items() if e.last_focus]
