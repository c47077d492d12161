"""Placeholder drawn in place of a node that cannot render."""

from __future__ import annotations

from pi.view.component import BaseComponent, RenderConfig
from pi.view.resolver import get_str_prop
from pi.view.text import truncate_to_width, visible_width

PLACEHOLDER_TYPE = "__placeholder"


class Placeholder(BaseComponent):
    """One dim line of text: an unknown type or an inline render error."""

    @property
    def message(self) -> str:
        return get_str_prop(self.config.props, "message", "?")

    def measure(self, max_width: int, max_height: int) -> tuple[int, int]:
        if max_height <= 0:
            return 0, 0
        return min(visible_width(self.message) + 2, max_width), 1

    def render(self, config: RenderConfig) -> str:
        text = truncate_to_width(f"[{get_str_prop(config.props, 'message', '?')}]", config.width, "…")
        return f"\x1b[2m{text}\x1b[22m"


def placeholder_config(node_id: str, message: str) -> RenderConfig:
    return RenderConfig(node_id, {"message": message})
