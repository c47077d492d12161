"""Character/attribute frame buffer.

The render pipeline paints component text into a :class:`CellBuffer`; a
terminal writer turns :meth:`CellBuffer.lines` into output.  SGR escape
codes inside component text are parsed into per-cell attributes so that
clipping and selection highlighting work on cells, not on byte strings.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Iterator

from pi.view.geometry import Rect
from pi.view.text import iter_cells, split_sgr

# ---------------------------------------------------------------------------
# Attributes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CellAttr:
    """Display attributes of one cell.

    Colours are kept as raw SGR parameter strings (``"31"``,
    ``"38;5;208"``, ``"48;2;0;0;0"``) so any colour form round-trips.
    """

    fg: str | None = None
    bg: str | None = None
    bold: bool = False
    dim: bool = False
    italic: bool = False
    underline: bool = False
    reverse: bool = False

    @property
    def is_default(self) -> bool:
        return self == DEFAULT_ATTR

    def sgr(self) -> str:
        """Return the escape sequence that selects these attributes."""
        params: list[str] = []
        if self.bold:
            params.append("1")
        if self.dim:
            params.append("2")
        if self.italic:
            params.append("3")
        if self.underline:
            params.append("4")
        if self.reverse:
            params.append("7")
        if self.fg:
            params.append(self.fg)
        if self.bg:
            params.append(self.bg)
        if not params:
            return ""
        return f"\x1b[{';'.join(params)}m"

    def apply(self, params_str: str) -> CellAttr:
        """Return a copy updated by the SGR parameter list *params_str*."""
        if not params_str:
            return DEFAULT_ATTR

        attr = self
        params = params_str.split(";")
        i = 0
        while i < len(params):
            p = params[i]
            val = int(p) if p.isdigit() else 0

            if val == 0:
                attr = DEFAULT_ATTR
            elif val == 1:
                attr = replace(attr, bold=True)
            elif val == 2:
                attr = replace(attr, dim=True)
            elif val == 3:
                attr = replace(attr, italic=True)
            elif val == 4:
                attr = replace(attr, underline=True)
            elif val == 7:
                attr = replace(attr, reverse=True)
            elif val == 22:
                attr = replace(attr, bold=False, dim=False)
            elif val == 23:
                attr = replace(attr, italic=False)
            elif val == 24:
                attr = replace(attr, underline=False)
            elif val == 27:
                attr = replace(attr, reverse=False)
            elif 30 <= val <= 37 or 90 <= val <= 97:
                attr = replace(attr, fg=str(val))
            elif val == 39:
                attr = replace(attr, fg=None)
            elif 40 <= val <= 47 or 100 <= val <= 107:
                attr = replace(attr, bg=str(val))
            elif val == 49:
                attr = replace(attr, bg=None)
            elif val in (38, 48):
                # Extended colour: 38;5;N or 38;2;R;G;B
                mode = params[i + 1] if i + 1 < len(params) else ""
                if mode == "5" and i + 2 < len(params):
                    colour = ";".join(params[i : i + 3])
                    i += 2
                elif mode == "2" and i + 4 < len(params):
                    colour = ";".join(params[i : i + 5])
                    i += 4
                else:
                    colour = None
                if colour is not None:
                    attr = replace(attr, fg=colour) if val == 38 else replace(attr, bg=colour)
            i += 1
        return attr


DEFAULT_ATTR = CellAttr()

_RESET = "\x1b[0m"


@dataclass(frozen=True)
class Cell:
    """One terminal cell.

    ``width`` is 2 for the leading half of a wide character and 0 for the
    continuation cell that follows it.
    """

    char: str = " "
    attr: CellAttr = DEFAULT_ATTR
    width: int = 1

    @property
    def is_continuation(self) -> bool:
        return self.width == 0


BLANK = Cell()
_CONTINUATION = Cell("", DEFAULT_ATTR, 0)


# ---------------------------------------------------------------------------
# Buffer
# ---------------------------------------------------------------------------


class CellBuffer:
    """A ``width`` x ``height`` grid of :class:`Cell`."""

    def __init__(self, width: int, height: int) -> None:
        self.width = max(0, width)
        self.height = max(0, height)
        self._rows: list[list[Cell]] = [[BLANK] * self.width for _ in range(self.height)]

    @property
    def bounds(self) -> Rect:
        return Rect(0, 0, self.width, self.height)

    def get(self, x: int, y: int) -> Cell:
        if 0 <= x < self.width and 0 <= y < self.height:
            return self._rows[y][x]
        return BLANK

    def set(self, x: int, y: int, cell: Cell) -> None:
        if 0 <= x < self.width and 0 <= y < self.height:
            self._rows[y][x] = cell

    def clear(self) -> None:
        for row in self._rows:
            row[:] = [BLANK] * self.width

    def fill(self, rect: Rect, char: str = " ", attr: CellAttr = DEFAULT_ATTR) -> None:
        area = rect.intersect(self.bounds)
        cell = Cell(char, attr)
        for y in range(area.y, area.bottom):
            row = self._rows[y]
            for x in range(area.x, area.right):
                row[x] = cell

    def copy(self) -> CellBuffer:
        dup = CellBuffer(0, 0)
        dup.width = self.width
        dup.height = self.height
        dup._rows = [list(row) for row in self._rows]
        return dup

    # -- writing -------------------------------------------------------------

    def write_text(
        self,
        x: int,
        y: int,
        text: str,
        clip: Rect | None = None,
        attr: CellAttr = DEFAULT_ATTR,
    ) -> CellAttr:
        """Write one line of *text* starting at (*x*, *y*).

        Cells outside *clip* (and outside the buffer) are skipped.  A wide
        character that would straddle the right clip edge is replaced by a
        blank.  Returns the SGR state at the end of the line so callers can
        carry it onto the next line.
        """
        area = self.bounds if clip is None else clip.intersect(self.bounds)
        col = x
        inside_row = area.y <= y < area.bottom
        for kind, value in split_sgr(text):
            if kind == "sgr":
                attr = attr.apply(value)
                continue
            if "\n" in value:
                value = value.replace("\n", " ")
            for g, w in iter_cells(value):
                if w == 0:
                    continue
                if inside_row:
                    self._put(col, y, g, w, attr, area)
                col += w
        return attr

    def write_lines(
        self,
        x: int,
        y: int,
        text: str | Iterable[str],
        clip: Rect | None = None,
    ) -> None:
        """Write multi-line *text*, carrying SGR state across lines."""
        lines = text.split("\n") if isinstance(text, str) else text
        attr = DEFAULT_ATTR
        for i, line in enumerate(lines):
            attr = self.write_text(x, y + i, line, clip, attr)

    def _put(self, x: int, y: int, g: str, w: int, attr: CellAttr, area: Rect) -> None:
        if x + w <= area.x or x >= area.right:
            return
        row = self._rows[y]
        if w == 2 and (x < area.x or x + 1 >= area.right):
            # Wide character cut by the clip edge: blank the visible half
            visible = x + 1 if x < area.x else x
            self._erase(row, visible)
            row[visible] = Cell(" ", attr)
            return
        self._erase(row, x)
        row[x] = Cell(g, attr, w)
        if w == 2:
            self._erase(row, x + 1)
            row[x + 1] = _CONTINUATION

    def _erase(self, row: list[Cell], x: int) -> None:
        # Overwriting half of a wide character blanks the other half
        cell = row[x]
        if cell.width == 2 and x + 1 < self.width:
            row[x + 1] = BLANK
        elif cell.is_continuation and x > 0:
            row[x - 1] = BLANK

    def highlight(self, cells: Iterable[tuple[int, int]]) -> None:
        """Toggle reverse video on each ``(x, y)`` in *cells*."""
        for x, y in cells:
            cell = self.get(x, y)
            if cell.is_continuation:
                continue
            self.set(x, y, replace(cell, attr=replace(cell.attr, reverse=not cell.attr.reverse)))

    # -- reading -------------------------------------------------------------

    def row_text(self, y: int) -> str:
        """Plain text of row *y*, continuation cells omitted."""
        if not 0 <= y < self.height:
            return ""
        return "".join(c.char for c in self._rows[y] if not c.is_continuation)

    def plain_lines(self) -> list[str]:
        return [self.row_text(y) for y in range(self.height)]

    def lines(self) -> list[str]:
        """Rows with SGR sequences re-emitted at attribute changes."""
        out: list[str] = []
        for row in self._rows:
            parts: list[str] = []
            current = DEFAULT_ATTR
            for cell in row:
                if cell.is_continuation:
                    continue
                if cell.attr != current:
                    parts.append(_RESET)
                    parts.append(cell.attr.sgr())
                    current = cell.attr
                parts.append(cell.char)
            if not current.is_default:
                parts.append(_RESET)
            out.append("".join(parts))
        return out

    def __iter__(self) -> Iterator[list[Cell]]:
        return iter(self._rows)
