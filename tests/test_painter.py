"""Tests for pi.view.painter.Painter."""

from __future__ import annotations

from pi.view.buffer import CellBuffer
from pi.view.component import RenderConfig
from pi.view.config import NodeConfig
from pi.view.layout import LayoutEngine, LayoutNode, LayoutTree, build_tree
from pi.view.painter import Painter, line_start_attrs

from .fakes import Widget


def setup(layout: dict, width: int, height: int) -> tuple[LayoutTree, LayoutEngine, Painter, CellBuffer]:
    def instance_for(config: NodeConfig, node_id: str) -> Widget:
        inst = Widget(RenderConfig(node_id, dict(config.props)))
        inst.size = (len(str(config.props.get("label", ""))), str(config.props.get("label", "")).count("\n") + 1)
        return inst

    tree = build_tree(NodeConfig.model_validate(layout), instance_for)
    engine = LayoutEngine(tree)
    engine.layout(width, height)
    buffer = CellBuffer(width, height)

    def text_for(node: LayoutNode, w: int, h: int) -> str:
        return str(node.config.props.get("label", ""))

    return tree, engine, Painter(engine, buffer, text_for), buffer


def paint_all(tree: LayoutTree, painter: Painter) -> None:
    for node in tree.walk():
        painter.paint(node.handle)


def label(node_id: str, text: str, **style) -> dict:
    return {"id": node_id, "type": "widget", "props": {"label": text}, "style": style}


class TestPaint:
    def test_labels_land_in_their_boxes(self) -> None:
        tree, _, painter, buf = setup(
            {"type": "row", "children": [label("a", "left", width=6), label("b", "right")]}, 12, 1
        )
        paint_all(tree, painter)
        assert buf.row_text(0) == "left  right "

    def test_text_is_clipped_to_box(self) -> None:
        tree, _, painter, buf = setup(
            {"type": "row", "children": [label("a", "abcdefgh", width=3), label("b", "xy", width=2)]}, 6, 1
        )
        paint_all(tree, painter)
        assert buf.row_text(0) == "abcxy "

    def test_parent_repaint_keeps_children(self) -> None:
        tree, _, painter, buf = setup(
            {"id": "root", "type": "box", "style": {"padding": 1}, "children": [label("a", "hi")]}, 6, 3
        )
        paint_all(tree, painter)
        buf.fill(buf.bounds, "#")
        painter.paint(tree.find("root").handle)
        assert buf.plain_lines() == ["      ", " #### ", "      "]

    def test_repaint_blanks_stale_text(self) -> None:
        tree, _, painter, buf = setup({"type": "column", "children": [label("a", "hello")]}, 6, 1)
        paint_all(tree, painter)
        tree.find("a").config.props["label"] = "yo"
        painter.paint(tree.find("a").handle)
        assert buf.row_text(0) == "yo    "

    def test_scrolled_container(self) -> None:
        rows = [label(f"r{i}", f"row{i}") for i in range(4)]
        tree, engine, painter, buf = setup(
            {"id": "list", "type": "column", "style": {"overflow": "scroll"}, "children": rows}, 5, 2
        )
        engine.scroll_by(tree.root, dy=1)
        painter.invalidate()
        paint_all(tree, painter)
        assert buf.plain_lines() == ["row1 ", "row2 "]

    def test_multiline_sgr_carried(self) -> None:
        tree, _, painter, buf = setup({"type": "column", "children": [label("a", "\x1b[1mab\ncd")]}, 4, 2)
        paint_all(tree, painter)
        assert buf.get(0, 1).attr.bold


class TestGaps:
    def test_gaps_exclude_children(self) -> None:
        tree, _, painter, _ = setup(
            {"id": "root", "type": "row", "children": [label("a", "x", width=2)]}, 5, 1
        )
        gaps = painter.gaps(tree.find("root"))
        assert [(g.x, g.width) for g in gaps] == [(2, 3)]


def test_line_start_attrs() -> None:
    attrs = line_start_attrs(["\x1b[31ma", "b\x1b[0m", "c"])
    assert attrs[0].fg is None
    assert attrs[1].fg == "31"
    assert attrs[2].fg is None
