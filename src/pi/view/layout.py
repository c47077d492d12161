"""Two-pass box layout over an arena of nodes.

The tree is stored as a flat list of :class:`LayoutNode` addressed by
integer handles.  A container owns its ``children`` list; a child only
keeps its parent's handle for upward queries.

Layout runs in two passes:

* **measure** (bottom-up) computes each node's natural size from its size
  policy, delegating leaf sizes to the component's ``measure``;
* **layout** (top-down) partitions each content box among the children
  along the main axis: sized children first, the rest shared among flex
  children by weight.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Iterator

from pi.view.component import Component, Measurable, is_focusable
from pi.view.config import NodeConfig, StyleConfig
from pi.view.geometry import Rect

logger = logging.getLogger(__name__)

# Passed to ``measure`` in place of an unbounded dimension.
UNBOUNDED = 2**31 - 1

# ---------------------------------------------------------------------------
# Priority tiers
# ---------------------------------------------------------------------------


class Tier(IntEnum):
    """Repaint priority; lower value is more urgent."""

    HIGH = 0
    NORMAL = 1
    LOW = 2


ZONE_TIERS: dict[str, Tier] = {
    "interactive": Tier.HIGH,
    "data": Tier.NORMAL,
    "background": Tier.LOW,
}

_PRIORITY_TIERS: dict[str, Tier] = {
    "high": Tier.HIGH,
    "normal": Tier.NORMAL,
    "low": Tier.LOW,
}


# ---------------------------------------------------------------------------
# Nodes and the arena
# ---------------------------------------------------------------------------


@dataclass
class LayoutNode:
    handle: int
    node_id: str
    config: NodeConfig
    parent: int | None = None
    children: list[int] = field(default_factory=list)
    instance: Component | None = None
    tier: Tier = Tier.NORMAL

    measured_width: int = 0
    measured_height: int = 0
    rect: Rect = field(default_factory=Rect)
    content_rect: Rect = field(default_factory=Rect)
    content_width: int = 0
    content_height: int = 0
    scroll_x: int = 0
    scroll_y: int = 0

    layout_dirty: bool = True
    paint_dirty: bool = True
    dirty_tier: Tier | None = None

    @property
    def style(self) -> StyleConfig:
        return self.config.style

    @property
    def type_name(self) -> str:
        return self.config.type

    @property
    def direction(self) -> str:
        return self.config.direction

    @property
    def overflow(self) -> str:
        return self.config.style.overflow

    @property
    def is_flex(self) -> bool:
        return self.config.style.flex is not None

    @property
    def is_dirty(self) -> bool:
        return self.layout_dirty or self.paint_dirty

    def padding(self) -> tuple[int, int, int, int]:
        return self.config.style.padding_box()


@dataclass(frozen=True)
class PaintItem:
    """A node's on-screen rectangle (scroll applied) and its clip."""

    handle: int
    rect: Rect
    clip: Rect


InstanceLookup = Callable[[NodeConfig, str], "Component | None"]


class LayoutTree:
    """Arena of layout nodes."""

    def __init__(self) -> None:
        self.nodes: list[LayoutNode] = []
        self.root: int | None = None
        self._by_id: dict[str, int] = {}

    def add(self, node_id: str, config: NodeConfig, parent: int | None = None) -> int:
        handle = len(self.nodes)
        node = LayoutNode(handle, node_id, config, parent=parent)
        self.nodes.append(node)
        self._by_id[node_id] = handle
        if parent is None:
            self.root = handle
        else:
            self.nodes[parent].children.append(handle)
        return handle

    def __getitem__(self, handle: int) -> LayoutNode:
        return self.nodes[handle]

    def __len__(self) -> int:
        return len(self.nodes)

    def find(self, node_id: str) -> LayoutNode | None:
        handle = self._by_id.get(node_id)
        return self.nodes[handle] if handle is not None else None

    def parent(self, handle: int) -> LayoutNode | None:
        p = self.nodes[handle].parent
        return self.nodes[p] if p is not None else None

    def ancestors(self, handle: int) -> Iterator[LayoutNode]:
        p = self.nodes[handle].parent
        while p is not None:
            yield self.nodes[p]
            p = self.nodes[p].parent

    def walk(self, handle: int | None = None) -> Iterator[LayoutNode]:
        """Pre-order traversal from *handle* (default: the root)."""
        start = self.root if handle is None else handle
        if start is None:
            return
        stack = [start]
        while stack:
            node = self.nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def focusable_ids(self) -> list[str]:
        """Ids of focusable instances in traversal order."""
        return [n.node_id for n in self.walk() if is_focusable(n.instance)]

    # -- dirty flags ---------------------------------------------------------

    def mark_dirty(self, handle: int, layout: bool = True, tier: Tier | None = None) -> None:
        """Flag a node for repaint (and relayout when *layout*).

        A node already dirty keeps the more urgent of its pending tier and
        *tier*.
        """
        node = self.nodes[handle]
        effective = node.tier if tier is None else tier
        if node.is_dirty and node.dirty_tier is not None:
            effective = min(effective, node.dirty_tier)
        node.dirty_tier = effective
        node.paint_dirty = True
        if layout:
            node.layout_dirty = True

    def mark_all_dirty(self) -> None:
        for node in self.nodes:
            node.layout_dirty = True
            node.paint_dirty = True
            node.dirty_tier = node.tier

    def clear_paint(self, handle: int) -> None:
        node = self.nodes[handle]
        node.paint_dirty = False
        if not node.layout_dirty:
            node.dirty_tier = None


def _generated_id(path: str) -> str:
    return f"@{path}"


def build_tree(root: NodeConfig, instance_for: InstanceLookup | None = None) -> LayoutTree:
    """Mirror *root* into a new :class:`LayoutTree`.

    *instance_for* is called with each non-container node and its id and
    returns the component instance to attach (or ``None``).  Nodes without
    an explicit id get one derived from their position.
    """
    tree = LayoutTree()

    def add(config: NodeConfig, parent: int | None, path: str) -> None:
        node_id = config.id or _generated_id(path)
        handle = tree.add(node_id, config, parent)
        node = tree[handle]
        if instance_for is not None and not config.is_container:
            node.instance = instance_for(config, node_id)
        node.tier = classify_tier(node)
        for i, child in enumerate(config.children):
            add(child, handle, f"{path}.{i}")

    add(root, None, "0")
    return tree


def classify_tier(node: LayoutNode) -> Tier:
    """Repaint tier from the node's style, falling back to its capabilities."""
    style = node.style
    if style.priority is not None:
        return _PRIORITY_TIERS[style.priority]
    if style.zone is not None:
        return ZONE_TIERS[style.zone]
    if is_focusable(node.instance):
        return Tier.HIGH
    return Tier.NORMAL


# ---------------------------------------------------------------------------
# Size policy helpers
# ---------------------------------------------------------------------------


def _is_percent(value: object) -> bool:
    return isinstance(value, str) and value.endswith("%")


def _percent_of(value: str, base: float, node_id: str) -> int:
    if not math.isfinite(base):
        logger.warning("%s: percentage size %s of an unbounded parent resolves to 0", node_id, value)
        return 0
    return max(0, int(float(value[:-1]) * base / 100))


def _fixed(value: int | str | None, base: float, node_id: str) -> int | None:
    """Exact size for int and percent policies, ``None`` otherwise."""
    if isinstance(value, int):
        return value
    if _is_percent(value):
        return _percent_of(value, base, node_id)  # type: ignore[arg-type]
    return None


def _constrain(value: int, lo: int | None, hi: int | None) -> int:
    if hi is not None:
        value = min(value, hi)
    if lo is not None:
        value = max(value, lo)
    return max(0, value)


def _as_int(value: float) -> int:
    return int(value) if math.isfinite(value) else UNBOUNDED


def distribute(remaining: int, weights: list[float]) -> list[int]:
    """Split *remaining* cells by *weights*; shares sum exactly to *remaining*.

    Weight-zero entries get nothing.  When every weight is zero nothing is
    handed out.
    """
    total = sum(w for w in weights if w > 0)
    if remaining <= 0 or total <= 0:
        return [0] * len(weights)
    shares = [int(remaining * w / total) if w > 0 else 0 for w in weights]
    leftover = remaining - sum(shares)
    i = 0
    while leftover > 0:
        if weights[i % len(weights)] > 0:
            shares[i % len(weights)] += 1
            leftover -= 1
        i += 1
    return shares


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class LayoutEngine:
    """Runs measure and layout passes over a :class:`LayoutTree`."""

    def __init__(self, tree: LayoutTree) -> None:
        self.tree = tree
        self.width = 0
        self.height = 0

    # -- entry points --------------------------------------------------------

    def layout(self, width: int, height: int) -> None:
        """Full measure + layout for a screen of ``width`` x ``height``."""
        self.width, self.height = width, height
        root = self.tree.root
        if root is None:
            return
        self.measure(root, width, height)
        node = self.tree[root]
        w = self._root_size(node.style.width, width, node.measured_width, node)
        h = self._root_size(node.style.height, height, node.measured_height, node)
        self._layout(root, Rect(0, 0, w, h))

    def relayout(self, handle: int) -> int:
        """Re-measure and re-position the smallest subtree containing *handle*.

        Climbs to the nearest ancestor whose size does not depend on its
        content, so siblings of a resized node move with it.  Returns the
        handle of the subtree root that was laid out.
        """
        target = handle
        parent = self.tree[target].parent
        if parent is not None:
            target = parent
            while self.tree[target].parent is not None and not self._is_sized(self.tree[target]):
                target = self.tree[target].parent  # type: ignore[assignment]

        node = self.tree[target]
        if node.parent is None:
            self.layout(self.width, self.height)
            return target
        parent_node = self.tree[node.parent]
        box = parent_node.content_rect
        self.measure(target, box.width, box.height)
        self._layout(target, node.rect)
        return target

    def measure(self, handle: int, avail_w: float, avail_h: float) -> tuple[int, int]:
        """Bottom-up natural size of *handle* within ``avail_w`` x ``avail_h``."""
        node = self.tree[handle]
        style = node.style
        top, right, bottom, left = node.padding()
        pad_w, pad_h = left + right, top + bottom

        fixed_w = _fixed(style.width, avail_w, node.node_id)
        fixed_h = _fixed(style.height, avail_h, node.node_id)
        inner_w = max(0.0, (fixed_w if fixed_w is not None else avail_w) - pad_w)
        inner_h = max(0.0, (fixed_h if fixed_h is not None else avail_h) - pad_h)

        if node.children:
            row = node.direction == "row"
            cw = ch = 0
            for c in node.children:
                w, h = self.measure(c, inner_w, inner_h)
                flex = self.tree[c].is_flex
                if row:
                    cw += 0 if flex else w
                    ch = max(ch, h)
                else:
                    ch += 0 if flex else h
                    cw = max(cw, w)
            natural_w, natural_h = cw, ch
        elif isinstance(node.instance, Measurable):
            try:
                natural_w, natural_h = node.instance.measure(_as_int(inner_w), _as_int(inner_h))
            except Exception as exc:
                logger.warning("%s: measure failed: %s", node.node_id, exc)
                natural_w = natural_h = 0
        else:
            natural_w = natural_h = 0

        node.content_width = max(0, natural_w)
        node.content_height = max(0, natural_h)

        w = fixed_w if fixed_w is not None else node.content_width + pad_w
        h = fixed_h if fixed_h is not None else node.content_height + pad_h
        w = _constrain(w, style.min_width, style.max_width)
        h = _constrain(h, style.min_height, style.max_height)
        if node.overflow != "visible":
            if math.isfinite(avail_w):
                w = min(w, int(avail_w))
            if math.isfinite(avail_h):
                h = min(h, int(avail_h))
        node.measured_width, node.measured_height = w, h
        return w, h

    # -- layout pass ---------------------------------------------------------

    def _layout(self, handle: int, rect: Rect) -> None:
        node = self.tree[handle]
        node.rect = rect
        node.layout_dirty = False
        node.paint_dirty = True
        if node.dirty_tier is None:
            node.dirty_tier = node.tier

        top, right, bottom, left = node.padding()
        content = Rect(
            rect.x + left,
            rect.y + top,
            max(0, rect.width - left - right),
            max(0, rect.height - top - bottom),
        )
        node.content_rect = content

        if not node.children:
            self.clamp_scroll(handle)
            return

        row = node.direction == "row"
        main_total = content.width if row else content.height
        cross_total = content.height if row else content.width

        sizes: list[int] = []
        weights: list[float] = []
        used = 0
        for c in node.children:
            child = self.tree[c]
            if child.is_flex:
                sizes.append(0)
                weights.append(child.style.flex or 0.0)
            else:
                s = self._main_size(child, main_total, row)
                sizes.append(s)
                weights.append(0.0)
                used += s

        shares = distribute(max(0, main_total - used), weights)
        for i, c in enumerate(node.children):
            child = self.tree[c]
            if child.is_flex:
                lo, hi = (child.style.min_width, child.style.max_width) if row else (
                    child.style.min_height,
                    child.style.max_height,
                )
                sizes[i] = _constrain(shares[i], lo, hi)

        pos = content.x if row else content.y
        extent_main = 0
        extent_cross = 0
        placed: list[tuple[int, Rect]] = []
        for c, size in zip(node.children, sizes):
            child = self.tree[c]
            cross = self._cross_size(child, cross_total, row)
            if child.overflow != "visible":
                size = min(size, main_total)
                cross = min(cross, cross_total)
            if row:
                child_rect = Rect(pos, content.y, size, cross)
            else:
                child_rect = Rect(content.x, pos, cross, size)
            if child.overflow != "visible":
                # The parent's box may be smaller than what measure offered.
                child.measured_width = min(child.measured_width, child_rect.width)
                child.measured_height = min(child.measured_height, child_rect.height)
            placed.append((c, child_rect))
            pos += size
            extent_main += size
            extent_cross = max(extent_cross, cross)

        if row:
            node.content_width, node.content_height = extent_main, extent_cross
        else:
            node.content_width, node.content_height = extent_cross, extent_main
        self.clamp_scroll(handle)

        for c, child_rect in placed:
            self._layout(c, child_rect)

    def _main_size(self, child: LayoutNode, total: int, row: bool) -> int:
        style = child.style
        value = style.width if row else style.height
        if isinstance(value, int):
            size = value
        elif _is_percent(value):
            size = _percent_of(value, total, child.node_id)  # type: ignore[arg-type]
        else:
            size = child.measured_width if row else child.measured_height
        lo, hi = (style.min_width, style.max_width) if row else (style.min_height, style.max_height)
        return _constrain(size, lo, hi)

    def _cross_size(self, child: LayoutNode, total: int, row: bool) -> int:
        style = child.style
        value = style.height if row else style.width
        if isinstance(value, int):
            size = value
        elif _is_percent(value):
            size = _percent_of(value, total, child.node_id)  # type: ignore[arg-type]
        elif value == "auto":
            size = child.measured_height if row else child.measured_width
        else:
            size = total
        lo, hi = (style.min_height, style.max_height) if row else (style.min_width, style.max_width)
        return _constrain(size, lo, hi)

    def _root_size(self, value: int | str | None, screen: int, measured: int, node: LayoutNode) -> int:
        if isinstance(value, int):
            return value
        if _is_percent(value):
            return _percent_of(value, screen, node.node_id)  # type: ignore[arg-type]
        if value == "auto":
            return measured
        return screen

    @staticmethod
    def _is_sized(node: LayoutNode) -> bool:
        def explicit(v: object) -> bool:
            return isinstance(v, int) or _is_percent(v)

        return explicit(node.style.width) and explicit(node.style.height)

    # -- scrolling -----------------------------------------------------------

    def clamp_scroll(self, handle: int) -> None:
        node = self.tree[handle]
        max_x = max(0, node.content_width - node.content_rect.width)
        max_y = max(0, node.content_height - node.content_rect.height)
        node.scroll_x = min(max(0, node.scroll_x), max_x)
        node.scroll_y = min(max(0, node.scroll_y), max_y)

    def scroll_by(self, handle: int, dx: int = 0, dy: int = 0) -> bool:
        """Move a scroll container's offset; returns ``True`` when it moved."""
        node = self.tree[handle]
        if node.overflow != "scroll":
            return False
        before = (node.scroll_x, node.scroll_y)
        node.scroll_x += dx
        node.scroll_y += dy
        self.clamp_scroll(handle)
        if (node.scroll_x, node.scroll_y) == before:
            return False
        for n in self.tree.walk(handle):
            self.tree.mark_dirty(n.handle, layout=False)
        return True

    def nearest_scroll_container(self, handle: int) -> LayoutNode | None:
        node = self.tree[handle]
        if node.overflow == "scroll":
            return node
        for ancestor in self.tree.ancestors(handle):
            if ancestor.overflow == "scroll":
                return ancestor
        return None

    # -- geometry queries ----------------------------------------------------

    def paint_order(self) -> list[PaintItem]:
        """Nodes back-to-front with screen rects and clip rectangles.

        Siblings are ordered by ``z_index`` (stable).  Scroll offsets of
        ancestors translate descendants; a child is clipped to its parent's
        content box unless its own overflow is ``visible``.
        """
        root = self.tree.root
        if root is None:
            return []
        screen = Rect(0, 0, self.width, self.height)
        items: list[PaintItem] = []

        def visit(handle: int, dx: int, dy: int, clip: Rect) -> None:
            node = self.tree[handle]
            items.append(PaintItem(handle, node.rect.translate(dx, dy), clip))
            content = node.content_rect.translate(dx, dy)
            child_dx, child_dy = dx, dy
            if node.overflow == "scroll":
                child_dx -= node.scroll_x
                child_dy -= node.scroll_y
            ordered = sorted(node.children, key=lambda c: self.tree[c].style.z_index)
            for c in ordered:
                child = self.tree[c]
                child_clip = clip if child.overflow == "visible" else clip.intersect(content)
                visit(c, child_dx, child_dy, child_clip)

        visit(root, 0, 0, screen)
        return items

    def hit_item(self, x: int, y: int) -> PaintItem | None:
        """Paint item of the topmost node whose visible rectangle contains (*x*, *y*).

        Its ``rect`` is the on-screen box, scroll offsets applied.
        """
        for item in reversed(self.paint_order()):
            if item.rect.intersect(item.clip).contains(x, y):
                return item
        return None

    def hit_test(self, x: int, y: int) -> LayoutNode | None:
        item = self.hit_item(x, y)
        return self.tree[item.handle] if item is not None else None
