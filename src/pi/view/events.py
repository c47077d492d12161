"""Routing of input messages to component instances.

Messages are routed by their dispatch class alone:

* geometry (pointer) events go through text selection first, then are
  hit-tested against the latest layout and delivered to the topmost box;
* component events (keys, ticks) go to the focused instance, after Tab
  navigation has had its turn;
* system events are broadcast to every instance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from pi.view.component import Component, Scrollable, is_focusable
from pi.view.errors import UnhandledMessageError
from pi.view.focus import FocusManager
from pi.view.layout import LayoutEngine
from pi.view.messages import Command, DispatchClass, KeyMsg, MouseMsg, batch
from pi.view.registry import ComponentRegistry
from pi.view.selection import SelectionManager

logger = logging.getLogger(__name__)

NEXT_KEYS = frozenset({"tab"})
PREV_KEYS = frozenset({"shift+tab"})


@dataclass
class DispatchResult:
    handled: bool = False
    command: Command | None = None
    targets: list[str] = field(default_factory=list)
    selection: bool = False
    scrolled: str | None = None
    focus_moved: bool = False


class EventDispatcher:
    """Classifies messages and delivers them to instances."""

    def __init__(
        self,
        registry: ComponentRegistry,
        focus: FocusManager,
        selection: SelectionManager,
        engine: LayoutEngine | None = None,
    ) -> None:
        self.registry = registry
        self.focus = focus
        self.selection = selection
        self.engine = engine
        self._routes = {
            DispatchClass.GEOMETRY: self.dispatch_pointer,
            DispatchClass.COMPONENT: self.dispatch_component,
            DispatchClass.SYSTEM: self.broadcast,
        }

    def dispatch(self, message: Any) -> DispatchResult:
        route = self._routes.get(getattr(type(message), "dispatch", None))  # type: ignore[arg-type]
        if route is None:
            raise UnhandledMessageError(message)
        return route(message)

    # -- geometry ------------------------------------------------------------

    def dispatch_pointer(self, msg: MouseMsg) -> DispatchResult:
        result = DispatchResult()
        item = self.engine.hit_item(msg.x, msg.y) if self.engine is not None else None
        node = self.engine.tree[item.handle] if item is not None else None
        instance = node.instance if node is not None else None

        if msg.is_wheel:
            if node is not None:
                self._scroll(self.engine, node.handle, -1 if msg.button == "wheel_up" else 1, result)
            return result

        if self.selection.handle_mouse(msg, over_focusable=is_focusable(instance)):
            result.handled = True
            result.selection = True
            return result

        if item is None or node is None or instance is None:
            return result

        if msg.action == "press" and is_focusable(instance):
            result.focus_moved = self.focus.focus(node.node_id)

        local = replace(msg, x=msg.x - item.rect.x, y=msg.y - item.rect.y)
        self._deliver(node.node_id, instance, local, result)
        return result

    def _scroll(self, engine: LayoutEngine, handle: int, delta: int, result: DispatchResult) -> None:
        tree = engine.tree
        node = tree[handle]
        if isinstance(node.instance, Scrollable):
            try:
                node.instance.scroll_by(delta)
            except Exception:
                logger.exception("scroll_by failed for %s", node.node_id)
                return
            tree.mark_dirty(handle, layout=False)
            result.handled = True
            result.scrolled = node.node_id
            return
        container = engine.nearest_scroll_container(handle)
        if container is not None and engine.scroll_by(container.handle, dy=delta):
            result.handled = True
            result.scrolled = container.node_id

    # -- component -----------------------------------------------------------

    def dispatch_component(self, msg: Any) -> DispatchResult:
        result = DispatchResult()
        if isinstance(msg, KeyMsg):
            if msg.key in NEXT_KEYS:
                result.focus_moved = self.focus.next()
                result.handled = True
                return result
            if msg.key in PREV_KEYS:
                result.focus_moved = self.focus.prev()
                result.handled = True
                return result

        current = self.focus.current
        instance = self.registry.get(current) if current is not None else None
        if current is not None and instance is not None:
            self._deliver(current, instance, msg, result)

        if isinstance(msg, KeyMsg) and msg.key == "escape" and not result.handled and current is not None:
            result.focus_moved = self.focus.clear()
            result.handled = True
        return result

    # -- system --------------------------------------------------------------

    def broadcast(self, msg: Any) -> DispatchResult:
        result = DispatchResult()
        for node_id, instance in self.registry.items():
            self._deliver(node_id, instance, msg, result)
        return result

    def deliver(self, node_id: str, msg: Any) -> DispatchResult:
        """Send *msg* to one instance by id; an unknown id is a no-op."""
        result = DispatchResult()
        instance = self.registry.get(node_id)
        if instance is None:
            logger.debug("Dropping message for unknown target %r", node_id)
            return result
        self._deliver(node_id, instance, msg, result)
        return result

    def _deliver(self, node_id: str, instance: Component, msg: Any, result: DispatchResult) -> None:
        try:
            _, cmd, handled = instance.handle_message(msg)
        except Exception:
            logger.exception("%s: handle_message failed for %s", node_id, type(msg).__name__)
            return
        result.targets.append(node_id)
        result.command = batch(result.command, cmd)
        result.handled = result.handled or handled
