"""Paints individual layout nodes into the frame buffer.

A node owns only the cells of its visible box that none of its children
cover.  Painting a node blanks those cells and writes the node's own text
into them, so nodes can be repainted one at a time in any order without
wiping out a sibling or a child painted earlier.
"""

from __future__ import annotations

import logging
from typing import Callable

from pi.view.buffer import DEFAULT_ATTR, CellAttr, CellBuffer
from pi.view.geometry import Rect
from pi.view.layout import LayoutEngine, LayoutNode, PaintItem
from pi.view.text import split_sgr

logger = logging.getLogger(__name__)

# Returns the node's text for a content box of the given size, or None
# when the node draws nothing of its own.
TextSource = Callable[[LayoutNode, int, int], "str | None"]


def line_start_attrs(lines: list[str]) -> list[CellAttr]:
    """SGR state in effect at the start of each line."""
    attrs: list[CellAttr] = []
    attr = DEFAULT_ATTR
    for line in lines:
        attrs.append(attr)
        for kind, value in split_sgr(line):
            if kind == "sgr":
                attr = attr.apply(value)
    return attrs


def _uncovered(lo: int, hi: int, covered: list[tuple[int, int]]) -> list[tuple[int, int]]:
    out: list[tuple[int, int]] = []
    pos = lo
    for a, b in sorted(covered):
        if b <= pos:
            continue
        if a > pos:
            out.append((pos, min(a, hi)))
        pos = max(pos, b)
        if pos >= hi:
            break
    if pos < hi:
        out.append((pos, hi))
    return [(a, b) for a, b in out if b > a]


class Painter:
    def __init__(self, engine: LayoutEngine, buffer: CellBuffer, text_for: TextSource) -> None:
        self.engine = engine
        self.buffer = buffer
        self.text_for = text_for
        self._items: dict[int, PaintItem] | None = None

    def invalidate(self) -> None:
        """Drop cached screen geometry (after relayout or scrolling)."""
        self._items = None

    def items(self) -> dict[int, PaintItem]:
        if self._items is None:
            self._items = {item.handle: item for item in self.engine.paint_order()}
        return self._items

    def visible_rect(self, handle: int) -> Rect:
        item = self.items().get(handle)
        if item is None:
            return Rect()
        return item.rect.intersect(item.clip)

    def gaps(self, node: LayoutNode) -> list[Rect]:
        """One-row rectangles of *node*'s visible box not covered by children."""
        area = self.visible_rect(node.handle)
        if area.empty:
            return []
        child_areas = [self.visible_rect(c) for c in node.children]
        child_areas = [r for r in child_areas if not r.empty]
        out: list[Rect] = []
        for y in range(area.y, area.bottom):
            covered = [(r.x, r.right) for r in child_areas if r.y <= y < r.bottom]
            for a, b in _uncovered(area.x, area.right, covered):
                out.append(Rect(a, y, b - a, 1))
        return out

    def paint(self, handle: int) -> None:
        node = self.engine.tree[handle]
        item = self.items().get(handle)
        if item is None:
            return
        gaps = self.gaps(node)
        for gap in gaps:
            self.buffer.fill(gap)
        if node.instance is None or not gaps:
            return

        content = node.content_rect.translate(item.rect.x - node.rect.x, item.rect.y - node.rect.y)
        text = self.text_for(node, content.width, content.height)
        if not text:
            return

        lines = text.split("\n")
        attrs = line_start_attrs(lines)
        origin_x = content.x - node.scroll_x
        origin_y = content.y - node.scroll_y
        for gap in gaps:
            clip = gap.intersect(content)
            if clip.empty:
                continue
            index = clip.y - origin_y
            if 0 <= index < len(lines):
                self.buffer.write_text(origin_x, clip.y, lines[index], clip, attrs[index])
