"""Mouse text selection.

Selection runs ahead of normal pointer dispatch.  A left press on a
non-focusable area starts selecting; motion extends the selection while a
button is held; release ends it.  Repeated presses at one cell within the
click threshold step the granularity char -> word -> line, after which
the click counter starts again at 1.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from pi.view.buffer import CellBuffer
from pi.view.messages import MouseMsg
from pi.view.text import is_word_char

Point = tuple[int, int]


class SelectionMode(Enum):
    CHAR = "char"
    WORD = "word"
    LINE = "line"


class SelectionState(Enum):
    IDLE = "idle"
    SELECTING = "selecting"


_MODES = {1: SelectionMode.CHAR, 2: SelectionMode.WORD, 3: SelectionMode.LINE}


@dataclass(frozen=True)
class Selection:
    anchor: Point
    head: Point
    mode: SelectionMode

    def ordered(self) -> tuple[Point, Point]:
        """Endpoints in reading order."""
        a, b = self.anchor, self.head
        if (a[1], a[0]) <= (b[1], b[0]):
            return a, b
        return b, a


class SelectionManager:
    """Press/drag/release state machine with multi-click detection."""

    def __init__(
        self,
        enabled: bool = True,
        threshold_ms: float = 500.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.enabled = enabled
        self.threshold = threshold_ms / 1000.0
        self.clock = clock
        self.state = SelectionState.IDLE
        self.selection: Selection | None = None
        self.click_count = 0
        self._last_press: Point | None = None
        self._last_time = 0.0

    @property
    def active(self) -> bool:
        return self.selection is not None

    def clear(self) -> None:
        self.selection = None
        self.state = SelectionState.IDLE

    def handle_mouse(self, msg: MouseMsg, over_focusable: bool = False) -> bool:
        """Feed a pointer event; returns ``True`` when selection claims it."""
        if not self.enabled or msg.is_wheel:
            return False

        if msg.action == "press":
            if msg.button != "left" or over_focusable:
                self.clear()
                return False
            self._press((msg.x, msg.y))
            return True

        if self.state is not SelectionState.SELECTING or self.selection is None:
            return False

        self.selection = Selection(self.selection.anchor, (msg.x, msg.y), self.selection.mode)
        if msg.action == "release":
            self.state = SelectionState.IDLE
        return True

    def _press(self, point: Point) -> None:
        now = self.clock()
        repeat = point == self._last_press and (now - self._last_time) < self.threshold
        self.click_count = self.click_count + 1 if repeat else 1
        mode = _MODES.get(self.click_count, SelectionMode.CHAR)
        if mode is SelectionMode.LINE:
            self.click_count = 1
        self._last_press = point
        self._last_time = now
        self.selection = Selection(point, point, mode)
        self.state = SelectionState.SELECTING

    # -- extraction ----------------------------------------------------------

    def cells(self, buffer: CellBuffer) -> list[Point]:
        """Buffer cells covered by the selection, row-major."""
        if self.selection is None:
            return []
        (x0, y0), (x1, y1) = self._span(self.selection, buffer)
        out: list[Point] = []
        for y in range(max(0, y0), min(buffer.height - 1, y1) + 1):
            start = x0 if y == y0 else 0
            end = x1 if y == y1 else buffer.width - 1
            out.extend((x, y) for x in range(max(0, start), min(buffer.width - 1, end) + 1))
        return out

    def text(self, buffer: CellBuffer) -> str:
        """Selected text, rows joined by newlines, trailing blanks trimmed."""
        rows: dict[int, list[str]] = {}
        for x, y in self.cells(buffer):
            rows.setdefault(y, []).append(buffer.get(x, y).char)
        return "\n".join("".join(rows[y]).rstrip() for y in sorted(rows))

    @staticmethod
    def _span(selection: Selection, buffer: CellBuffer) -> tuple[Point, Point]:
        (x0, y0), (x1, y1) = selection.ordered()
        mode = selection.mode
        if mode is SelectionMode.LINE:
            return (0, y0), (buffer.width - 1, y1)
        if mode is SelectionMode.WORD:
            x0 = SelectionManager._word_edge(buffer, x0, y0, -1)
            x1 = SelectionManager._word_edge(buffer, x1, y1, 1)
        return (x0, y0), (x1, y1)

    @staticmethod
    def _word_edge(buffer: CellBuffer, x: int, y: int, step: int) -> int:
        if not is_word_char(buffer.get(x, y).char):
            return x
        while 0 <= x + step < buffer.width:
            nxt = buffer.get(x + step, y)
            if nxt.is_continuation:
                x += step
                continue
            if not is_word_char(nxt.char):
                break
            x += step
        return x
