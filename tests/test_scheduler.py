"""Tests for pi.view.scheduler: tier ordering and frame budgets."""

from __future__ import annotations

from pi.view.component import RenderConfig
from pi.view.config import NodeConfig
from pi.view.layout import LayoutEngine, LayoutTree, Tier, build_tree
from pi.view.scheduler import Scheduler

from .fakes import ManualClock, Widget

LAYOUT = {
    "id": "root",
    "type": "column",
    "children": [
        {"id": "a", "type": "widget", "style": {"priority": "low"}},
        {"id": "b", "type": "widget", "style": {"priority": "high"}},
        {"id": "c", "type": "widget"},
    ],
}


class Recorder:
    """Paint callback that records node ids and optionally burns clock time."""

    def __init__(self, tree: LayoutTree, clock: ManualClock, cost: float = 0.0) -> None:
        self.tree = tree
        self.clock = clock
        self.cost = cost
        self.painted: list[str] = []

    def __call__(self, handle: int) -> None:
        self.painted.append(self.tree[handle].node_id)
        self.clock.advance(self.cost)


def setup(cost: float = 0.0, budget_ms: float = 2.0) -> tuple[LayoutTree, LayoutEngine, Scheduler, Recorder]:
    tree = build_tree(
        NodeConfig.model_validate(LAYOUT),
        lambda config, node_id: Widget(RenderConfig(node_id)),
    )
    engine = LayoutEngine(tree)
    engine.layout(20, 10)
    clock = ManualClock()
    recorder = Recorder(tree, clock, cost)
    scheduler = Scheduler(tree, engine, recorder, budget_ms=budget_ms, clock=clock)
    return tree, engine, scheduler, recorder


class TestTierOrder:
    def test_high_then_normal_then_low(self) -> None:
        _, _, scheduler, recorder = setup()
        report = scheduler.render_frame()
        assert recorder.painted == ["b", "root", "c", "a"]
        assert report.painted[Tier.HIGH] == ["b"]
        assert report.painted[Tier.NORMAL] == ["root", "c"]
        assert report.painted[Tier.LOW] == ["a"]
        assert report.exhausted is None
        assert report.remaining == 0

    def test_clean_frame_paints_nothing(self) -> None:
        _, _, scheduler, recorder = setup()
        scheduler.render_frame()
        recorder.painted.clear()
        report = scheduler.render_frame()
        assert recorder.painted == []
        assert report.painted_ids == []
        assert not scheduler.has_dirty()

    def test_escalated_node_paints_first(self) -> None:
        tree, _, scheduler, recorder = setup()
        scheduler.render_frame()
        recorder.painted.clear()
        tree.mark_dirty(tree.find("c").handle, layout=False)
        tree.mark_dirty(tree.find("a").handle, layout=False, tier=Tier.HIGH)
        scheduler.render_frame()
        assert recorder.painted == ["a", "c"]

    def test_dirty_handles_by_tier(self) -> None:
        tree, _, scheduler, _ = setup()
        assert [tree[h].node_id for h in scheduler.dirty_handles(Tier.NORMAL)] == ["root", "c"]


class TestBudget:
    def test_exhaustion_stops_the_frame(self) -> None:
        tree, _, scheduler, recorder = setup(cost=0.003)
        report = scheduler.render_frame()
        assert recorder.painted == ["b", "root"]
        assert report.exhausted == Tier.NORMAL
        assert Tier.LOW not in report.painted
        assert report.remaining == 2
        assert tree.find("c").paint_dirty
        assert tree.find("a").paint_dirty

    def test_leftovers_paint_next_frame(self) -> None:
        _, _, scheduler, recorder = setup(cost=0.003)
        scheduler.render_frame()
        recorder.painted.clear()
        report = scheduler.render_frame()
        assert recorder.painted == ["c", "a"]
        assert report.remaining == 0

    def test_unbounded_ignores_budget(self) -> None:
        _, _, scheduler, recorder = setup(cost=0.003)
        report = scheduler.render_frame(unbounded=True)
        assert recorder.painted == ["b", "root", "c", "a"]
        assert report.exhausted is None

    def test_each_tier_gets_its_own_budget(self) -> None:
        _, _, scheduler, recorder = setup(cost=0.0015)
        report = scheduler.render_frame()
        assert recorder.painted == ["b", "root", "c", "a"]
        assert report.exhausted is None


class TestRelayout:
    def test_layout_dirty_node_is_relaid_before_paint(self) -> None:
        tree, _, scheduler, _ = setup()
        scheduler.render_frame()
        calls: list[int] = []
        scheduler.on_relayout = lambda: calls.append(1)
        c = tree.find("c")
        c.instance.size = (5, 2)
        tree.mark_dirty(c.handle, layout=True)
        report = scheduler.render_frame()
        assert report.relaid == ["c"]
        assert calls == [1]
        assert c.rect.height == 2

    def test_relayout_dirtied_nodes_paint_in_tier_order(self) -> None:
        tree, _, scheduler, recorder = setup()
        scheduler.render_frame()
        recorder.painted.clear()
        c = tree.find("c")
        c.instance.size = (5, 2)
        tree.mark_dirty(c.handle, layout=True)
        report = scheduler.render_frame()
        assert report.painted[Tier.NORMAL] == ["c", "root"]
        assert recorder.painted == ["c", "b", "root", "a"]
        assert report.remaining == 0
