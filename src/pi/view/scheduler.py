"""Priority-tiered, time-sliced repaint scheduling.

Dirty state lives on the layout nodes themselves (``layout_dirty``,
``paint_dirty`` and the pending ``dirty_tier``).  Each frame walks the
tiers from most to least urgent; within a tier every dirty node is
re-laid-out if needed and then painted, until the tier's time budget runs
out.  Running out of budget ends the frame: lower tiers wait for the next
one and keep their dirty flags.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from pi.view.layout import LayoutEngine, LayoutTree, Tier

logger = logging.getLogger(__name__)

DEFAULT_BUDGET_MS = 2.0

Clock = Callable[[], float]
PaintFn = Callable[[int], None]


@dataclass
class FrameReport:
    """What one :meth:`Scheduler.render_frame` call did."""

    painted: dict[Tier, list[str]] = field(default_factory=dict)
    relaid: list[str] = field(default_factory=list)
    exhausted: Tier | None = None
    remaining: int = 0

    @property
    def painted_ids(self) -> list[str]:
        return [node_id for tier in Tier for node_id in self.painted.get(tier, [])]


class Scheduler:
    """Repaints dirty nodes in tier order under a per-tier budget.

    *paint* is called with a node handle after the node's layout is
    current; the scheduler clears the paint flag once it returns.
    *on_relayout* is called after any relayout so geometry caches can be
    dropped.
    """

    def __init__(
        self,
        tree: LayoutTree,
        engine: LayoutEngine,
        paint: PaintFn,
        budget_ms: float = DEFAULT_BUDGET_MS,
        clock: Clock = time.perf_counter,
        on_relayout: Callable[[], None] | None = None,
    ) -> None:
        self.tree = tree
        self.engine = engine
        self.paint = paint
        self.budget = budget_ms / 1000.0
        self.clock = clock
        self.on_relayout = on_relayout
        self.frames = 0

    def dirty_handles(self, tier: Tier) -> list[int]:
        """Dirty nodes whose pending tier is *tier*, in pre-order."""
        out: list[int] = []
        for node in self.tree.walk():
            if not node.is_dirty:
                continue
            pending = node.dirty_tier if node.dirty_tier is not None else node.tier
            if pending == tier:
                out.append(node.handle)
        return out

    def has_dirty(self) -> bool:
        return any(node.is_dirty for node in self.tree.walk())

    def render_frame(self, unbounded: bool = False) -> FrameReport:
        """Process dirty nodes High -> Normal -> Low.

        A relayout can dirty nodes in any tier.  Same-tier nodes join the
        current pass; if a more urgent tier gained dirty nodes, processing
        goes back to that tier before continuing.

        With *unbounded* the budget is ignored (used after a resize or a
        structural rebuild, where a complete frame is required).
        """
        self.frames += 1
        report = FrameReport()
        tiers = list(Tier)
        pos = 0
        while pos < len(tiers):
            tier = tiers[pos]
            pos += 1
            start = self.clock()
            painted = report.painted.setdefault(tier, [])
            queue = self.dirty_handles(tier)
            seen = set(queue)
            i = 0
            while i < len(queue):
                handle = queue[i]
                i += 1
                if not unbounded and self.clock() - start > self.budget:
                    report.exhausted = tier
                    break
                node = self.tree[handle]
                if not node.is_dirty:
                    continue
                relaid = node.layout_dirty
                if relaid:
                    self.engine.relayout(handle)
                    report.relaid.append(node.node_id)
                    if self.on_relayout is not None:
                        self.on_relayout()
                    for extra in self.dirty_handles(tier):
                        if extra not in seen:
                            seen.add(extra)
                            queue.append(extra)
                self.paint(handle)
                self.tree.clear_paint(handle)
                painted.append(node.node_id)
                if relaid:
                    urgent = self._first_dirty_tier(tiers[: pos - 1])
                    if urgent is not None:
                        pos = tiers.index(urgent)
                        break
            if report.exhausted is not None:
                logger.debug(
                    "Frame %d: %s tier over budget after %d nodes",
                    self.frames,
                    tier.name,
                    len(painted),
                )
                break
        report.remaining = sum(1 for node in self.tree.walk() if node.is_dirty)
        return report

    def _first_dirty_tier(self, tiers: list[Tier]) -> Tier | None:
        for tier in tiers:
            if self.dirty_handles(tier):
                return tier
        return None
