"""Text component - static or bound text with optional word wrapping."""

from __future__ import annotations

from typing import Any

from pi.view.component import BaseComponent, RenderConfig
from pi.view.expression import stringify
from pi.view.resolver import BIND_DATA_KEY, get_bool_prop
from pi.view.text import visible_width, wrap_text


def content_of(props: dict[str, Any]) -> str:
    """The text to show: ``content``, else the bound value."""
    if "content" in props:
        return stringify(props["content"])
    return stringify(props.get(BIND_DATA_KEY))


class Text(BaseComponent):
    """Multi-line text.  Props: ``content`` (str), ``wrap`` (bool, default true)."""

    def __init__(self, config: RenderConfig) -> None:
        super().__init__(config)
        self._text = content_of(config.props)
        self._wrap = get_bool_prop(config.props, "wrap", True)

        # Cache
        self._cached_width: int | None = None
        self._cached_lines: list[str] | None = None

    @property
    def text(self) -> str:
        return self._text

    def update_config(self, config: RenderConfig) -> None:
        super().update_config(config)
        text = content_of(config.props)
        wrap = get_bool_prop(config.props, "wrap", True)
        if text != self._text or wrap != self._wrap:
            self._text = text
            self._wrap = wrap
            self._cached_lines = None

    def lines(self, width: int) -> list[str]:
        if self._cached_lines is not None and self._cached_width == width:
            return self._cached_lines
        if not self._text:
            result: list[str] = []
        elif self._wrap and width > 0:
            result = wrap_text(self._text, width)
        else:
            result = self._text.split("\n")
        self._cached_width = width
        self._cached_lines = result
        return result

    def measure(self, max_width: int, max_height: int) -> tuple[int, int]:
        lines = self.lines(max_width)
        width = max((visible_width(line) for line in lines), default=0)
        return min(width, max_width), min(len(lines), max_height)

    def render(self, config: RenderConfig) -> str:
        return "\n".join(self.lines(config.width))
