"""Component protocols and the type-name catalog.

Every instance the runtime drives implements :class:`Component`.  The
narrower protocols below are checked structurally at the call-sites that
need them, so a widget opts into a capability just by providing it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Protocol, runtime_checkable

from pi.view.errors import UnknownComponentTypeError

if TYPE_CHECKING:
    from pi.view.messages import Command

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Render configuration
# ---------------------------------------------------------------------------


@dataclass
class RenderConfig:
    """What an instance is told about itself each time it is (re)configured."""

    node_id: str
    props: dict[str, Any] = field(default_factory=dict)
    width: int = 0
    height: int = 0


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class Component(Protocol):
    """The full capability surface of a component instance."""

    def measure(self, max_width: int, max_height: int) -> tuple[int, int]:
        """Natural size within the given bounds."""
        ...

    def render(self, config: RenderConfig) -> str:
        """Return the instance's text (may contain SGR codes).  May raise."""
        ...

    def update_config(self, config: RenderConfig) -> None:
        ...

    def set_focus(self, focused: bool) -> None:
        ...

    def get_focus(self) -> bool:
        ...

    def handle_message(self, message: Any) -> tuple[Component, Command | None, bool]:
        """Return ``(component, command, handled)``."""
        ...

    def cleanup(self) -> None:
        ...


@runtime_checkable
class Measurable(Protocol):
    def measure(self, max_width: int, max_height: int) -> tuple[int, int]: ...


@runtime_checkable
class Focusable(Protocol):
    """An instance that takes part in Tab navigation."""

    focusable: bool


@runtime_checkable
class Scrollable(Protocol):
    def scroll_by(self, delta: int) -> None: ...


def is_focusable(instance: object | None) -> bool:
    return instance is not None and bool(getattr(instance, "focusable", False))


ComponentFactory = Callable[[RenderConfig], Component]


class BaseComponent:
    """Convenience base with no-op defaults for every capability."""

    focusable = False

    def __init__(self, config: RenderConfig) -> None:
        self.config = config
        self.focused = False

    def measure(self, max_width: int, max_height: int) -> tuple[int, int]:
        return (0, 0)

    def render(self, config: RenderConfig) -> str:
        return ""

    def update_config(self, config: RenderConfig) -> None:
        self.config = config

    def set_focus(self, focused: bool) -> None:
        self.focused = focused

    def get_focus(self) -> bool:
        return self.focused

    def handle_message(self, message: Any) -> tuple[Component, Command | None, bool]:
        return self, None, False

    def cleanup(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class ComponentCatalog:
    """Maps node type names to factories."""

    def __init__(self, factories: dict[str, ComponentFactory] | None = None) -> None:
        self._factories: dict[str, ComponentFactory] = dict(factories or {})

    def register(self, type_name: str, factory: ComponentFactory) -> None:
        if type_name in self._factories:
            logger.debug("Replacing factory for component type %r", type_name)
        self._factories[type_name] = factory

    def unregister(self, type_name: str) -> None:
        self._factories.pop(type_name, None)

    def get(self, type_name: str) -> ComponentFactory:
        factory = self._factories.get(type_name)
        if factory is None:
            raise UnknownComponentTypeError(type_name)
        return factory

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._factories

    def types(self) -> list[str]:
        return sorted(self._factories)
