"""Built-in components."""

from pi.view.component import ComponentCatalog
from pi.view.components.placeholder import PLACEHOLDER_TYPE, Placeholder, placeholder_config
from pi.view.components.text import Text


def default_catalog() -> ComponentCatalog:
    """A new catalog with the built-in ``text`` component registered."""
    return ComponentCatalog({"text": Text})


__all__ = [
    "PLACEHOLDER_TYPE",
    "Placeholder",
    "Text",
    "default_catalog",
    "placeholder_config",
]
