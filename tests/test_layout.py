"""Tests for pi.view.layout: measure/layout passes, tiers, scrolling, hit testing."""

from __future__ import annotations

import math

from pi.view.component import RenderConfig
from pi.view.config import NodeConfig
from pi.view.geometry import Rect
from pi.view.layout import LayoutEngine, LayoutTree, Tier, build_tree, distribute

from .fakes import FocusWidget, Widget


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make(
    layout: dict, sizes: dict[str, tuple[int, int]] | None = None
) -> tuple[LayoutTree, LayoutEngine, dict[str, Widget]]:
    sizes = sizes or {}
    instances: dict[str, Widget] = {}

    def instance_for(config: NodeConfig, node_id: str) -> Widget:
        cls = FocusWidget if config.type == "focus" else Widget
        inst = cls(RenderConfig(node_id, dict(config.props)))
        inst.size = sizes.get(node_id, (5, 1))
        instances[node_id] = inst
        return inst

    tree = build_tree(NodeConfig.model_validate(layout), instance_for)
    return tree, LayoutEngine(tree), instances


def rect(tree: LayoutTree, node_id: str) -> Rect:
    node = tree.find(node_id)
    assert node is not None
    return node.rect


def leaf(node_id: str, **style) -> dict:
    return {"id": node_id, "type": "widget", "style": style}


# ---------------------------------------------------------------------------
# Tree construction
# ---------------------------------------------------------------------------


class TestBuildTree:
    def test_generated_ids(self) -> None:
        tree, _, _ = make({"type": "column", "children": [{"type": "widget"}, {"type": "widget"}]})
        assert [n.node_id for n in tree.walk()] == ["@0", "@0.0", "@0.1"]

    def test_containers_have_no_instance(self) -> None:
        tree, _, instances = make({"id": "root", "type": "row", "children": [leaf("a")]})
        root = tree.find("root")
        assert root is not None and root.instance is None
        assert tree.find("a").instance is instances["a"]

    def test_parent_and_ancestors(self) -> None:
        tree, _, _ = make(
            {"id": "root", "type": "column", "children": [{"id": "box", "type": "box", "children": [leaf("a")]}]}
        )
        a = tree.find("a")
        assert tree.parent(a.handle).node_id == "box"
        assert [n.node_id for n in tree.ancestors(a.handle)] == ["box", "root"]

    def test_focusable_ids_in_order(self) -> None:
        tree, _, _ = make(
            {
                "type": "column",
                "children": [
                    {"id": "x", "type": "focus"},
                    {"id": "y", "type": "widget"},
                    {"id": "z", "type": "focus"},
                ],
            }
        )
        assert tree.focusable_ids() == ["x", "z"]


class TestTiers:
    def test_classification(self) -> None:
        tree, _, _ = make(
            {
                "type": "column",
                "children": [
                    leaf("a", priority="low"),
                    leaf("b", zone="interactive"),
                    {"id": "c", "type": "focus"},
                    leaf("d"),
                    leaf("e", zone="background"),
                ],
            }
        )
        tiers = {n: tree.find(n).tier for n in "abcde"}
        assert tiers == {
            "a": Tier.LOW,
            "b": Tier.HIGH,
            "c": Tier.HIGH,
            "d": Tier.NORMAL,
            "e": Tier.LOW,
        }

    def test_mark_dirty_keeps_most_urgent_tier(self) -> None:
        tree, engine, _ = make({"type": "column", "children": [leaf("a")]})
        engine.layout(10, 5)
        for node in tree.walk():
            tree.clear_paint(node.handle)
        a = tree.find("a")
        assert not a.is_dirty
        tree.mark_dirty(a.handle, layout=False, tier=Tier.HIGH)
        tree.mark_dirty(a.handle, layout=False, tier=Tier.LOW)
        assert a.dirty_tier == Tier.HIGH
        assert a.paint_dirty and not a.layout_dirty


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


class TestDistribute:
    def test_exact_sum(self) -> None:
        assert distribute(10, [1, 1, 1]) == [4, 3, 3]
        assert sum(distribute(101, [1, 2, 3.5])) == 101

    def test_zero_weight_gets_nothing(self) -> None:
        assert distribute(5, [0, 1]) == [0, 5]

    def test_nothing_to_share(self) -> None:
        assert distribute(0, [1, 1]) == [0, 0]
        assert distribute(5, [0, 0]) == [0, 0]


class TestLayout:
    def test_flex_takes_remaining_space(self) -> None:
        tree, engine, _ = make(
            {"id": "root", "type": "row", "children": [leaf("a", width=20), leaf("b", flex=1), leaf("c", width=10)]}
        )
        engine.layout(100, 10)
        assert rect(tree, "a") == Rect(0, 0, 20, 10)
        assert rect(tree, "b") == Rect(20, 0, 70, 10)
        assert rect(tree, "c") == Rect(90, 0, 10, 10)

    def test_flex_weights_fill_exactly(self) -> None:
        tree, engine, _ = make(
            {"type": "row", "children": [leaf("a", flex=1), leaf("b", flex=1), leaf("c", flex=1)]}
        )
        engine.layout(10, 1)
        widths = [rect(tree, n).width for n in "abc"]
        assert sum(widths) == 10
        assert rect(tree, "c").right == 10

    def test_column_natural_heights(self) -> None:
        tree, engine, _ = make({"type": "column", "children": [leaf("a"), leaf("b")]}, sizes={"a": (5, 2)})
        engine.layout(20, 10)
        assert rect(tree, "a") == Rect(0, 0, 20, 2)
        assert rect(tree, "b") == Rect(0, 2, 20, 1)

    def test_auto_uses_natural_cross_size(self) -> None:
        tree, engine, _ = make({"type": "column", "children": [leaf("a", width="auto")]}, sizes={"a": (7, 1)})
        engine.layout(20, 10)
        assert rect(tree, "a").width == 7

    def test_percent(self) -> None:
        tree, engine, _ = make({"type": "row", "children": [leaf("a", width="50%"), leaf("b", width="25%")]})
        engine.layout(80, 4)
        assert rect(tree, "a").width == 40
        assert rect(tree, "b") == Rect(40, 0, 20, 4)

    def test_percent_of_unbounded_is_zero(self) -> None:
        tree, engine, _ = make({"type": "box", "children": [leaf("a", width="50%")]})
        a = tree.find("a")
        assert engine.measure(a.handle, math.inf, math.inf) == (0, 1)

    def test_padding(self) -> None:
        tree, engine, _ = make({"id": "root", "type": "box", "style": {"padding": 1}, "children": [leaf("a")]})
        engine.layout(10, 5)
        assert tree.find("root").content_rect == Rect(1, 1, 8, 3)
        assert rect(tree, "a") == Rect(1, 1, 8, 1)

    def test_min_max_constraints(self) -> None:
        tree, engine, _ = make(
            {"type": "column", "children": [leaf("a", minHeight=3), leaf("b", maxWidth=4)]}
        )
        engine.layout(20, 10)
        assert rect(tree, "a").height == 3
        assert rect(tree, "b").width == 4

    def test_hidden_overflow_clamps_to_parent(self) -> None:
        tree, engine, _ = make({"type": "column", "children": [leaf("a", width=30)]})
        engine.layout(10, 5)
        assert rect(tree, "a").width == 10
        assert tree.find("a").measured_width == 10

    def test_hidden_overflow_clamps_to_shrunk_flex_parent(self) -> None:
        layout = {
            "type": "row",
            "children": [
                leaf("fixed", width=90),
                {"id": "flex", "type": "column", "style": {"flex": 1}, "children": [leaf("inner", width=50)]},
            ],
        }
        tree, engine, _ = make(layout)
        engine.layout(100, 5)
        flex = tree.find("flex")
        inner = tree.find("inner")
        assert flex.content_rect.width == 10
        assert inner.measured_width <= flex.content_rect.width
        assert rect(tree, "inner").width == 10

    def test_visible_overflow_keeps_size(self) -> None:
        tree, engine, _ = make({"type": "column", "children": [leaf("a", width=30, overflow="visible")]})
        engine.layout(10, 5)
        assert rect(tree, "a").width == 30

    def test_layout_clears_layout_flag(self) -> None:
        tree, engine, _ = make({"type": "column", "children": [leaf("a")]})
        engine.layout(10, 5)
        assert all(not n.layout_dirty and n.paint_dirty for n in tree.walk())


class TestRelayout:
    def test_sibling_moves_with_resized_node(self) -> None:
        tree, engine, instances = make({"id": "root", "type": "column", "children": [leaf("a"), leaf("b")]})
        engine.layout(20, 10)
        instances["a"].size = (5, 3)
        a = tree.find("a")
        tree.mark_dirty(a.handle)
        assert engine.relayout(a.handle) == tree.root
        assert rect(tree, "b").y == 3

    def test_stops_at_sized_ancestor(self) -> None:
        tree, engine, instances = make(
            {
                "id": "root",
                "type": "column",
                "children": [
                    {"id": "panel", "type": "column", "style": {"width": 20, "height": 5}, "children": [leaf("a"), leaf("b")]},
                    leaf("after"),
                ],
            }
        )
        engine.layout(40, 20)
        instances["a"].size = (5, 2)
        handle = engine.relayout(tree.find("a").handle)
        assert handle == tree.find("panel").handle
        assert rect(tree, "b").y == 2
        assert rect(tree, "after").y == 5


# ---------------------------------------------------------------------------
# Scrolling and geometry queries
# ---------------------------------------------------------------------------


def scroll_tree() -> tuple[LayoutTree, LayoutEngine]:
    children = [leaf(f"r{i}") for i in range(5)]
    tree, engine, _ = make({"id": "list", "type": "column", "style": {"overflow": "scroll"}, "children": children})
    engine.layout(10, 3)
    return tree, engine


class TestScrolling:
    def test_content_extent(self) -> None:
        tree, _ = scroll_tree()
        assert tree.find("list").content_height == 5

    def test_scroll_is_clamped(self) -> None:
        tree, engine = scroll_tree()
        root = tree.find("list")
        assert engine.scroll_by(root.handle, dy=10) is True
        assert root.scroll_y == 2
        assert engine.scroll_by(root.handle, dy=1) is False

    def test_scroll_requires_scroll_overflow(self) -> None:
        tree, engine, _ = make({"id": "root", "type": "column", "children": [leaf("a")]})
        engine.layout(10, 3)
        assert engine.scroll_by(tree.root, dy=1) is False

    def test_nearest_scroll_container(self) -> None:
        tree, engine = scroll_tree()
        assert engine.nearest_scroll_container(tree.find("r3").handle).node_id == "list"

    def test_paint_order_applies_scroll(self) -> None:
        tree, engine = scroll_tree()
        engine.scroll_by(tree.root, dy=2)
        items = {tree[i.handle].node_id: i for i in engine.paint_order()}
        assert items["r2"].rect.y == 0
        assert items["r0"].rect.y == -2
        assert items["r0"].clip == Rect(0, 0, 10, 3)

    def test_hit_test_after_scroll(self) -> None:
        tree, engine = scroll_tree()
        engine.scroll_by(tree.root, dy=2)
        assert engine.hit_test(0, 0).node_id == "r2"
        assert engine.hit_test(50, 50) is None


class TestPaintOrder:
    def test_z_index_orders_siblings(self) -> None:
        tree, engine, _ = make({"id": "root", "type": "row", "children": [leaf("a", zIndex=1), leaf("b")]})
        engine.layout(10, 1)
        order = [tree[i.handle].node_id for i in engine.paint_order()]
        assert order == ["root", "b", "a"]

    def test_hit_test_prefers_topmost(self) -> None:
        panel = {
            "id": "panel",
            "type": "column",
            "style": {"height": 1, "zIndex": 1},
            "children": [leaf("tall", height=3, overflow="visible")],
        }
        tree, engine, _ = make({"id": "root", "type": "column", "children": [panel, leaf("below")]})
        engine.layout(10, 5)
        assert rect(tree, "below").y == 1
        assert engine.hit_test(0, 1).node_id == "tall"
