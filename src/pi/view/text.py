"""Terminal text helpers: ANSI stripping, cell widths, wrapping.

Widths are measured per grapheme cluster so that emoji sequences and
combining marks occupy the number of cells a terminal actually draws.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Iterator

import grapheme
import wcwidth as _wcwidth

# ---------------------------------------------------------------------------
# Escape sequence patterns
# ---------------------------------------------------------------------------

# CSI SGR sequences: ESC[ <params> m
_SGR_RE = re.compile(r"\x1b\[([0-9;]*)m")

_STRIP_RE = re.compile(
    r"\x1b\[[0-9;?]*[A-Za-z]"              # CSI
    r"|\x1b\]8;;[^\x07]*\x07"               # OSC 8
    r"|\x1b_[^\x07\x1b]*(?:\x07|\x1b\\)"    # APC
)

TAB_WIDTH = 3

# ---------------------------------------------------------------------------
# Width cache (capped)
# ---------------------------------------------------------------------------

_width_cache: dict[str, int] = {}
_WIDTH_CACHE_MAX = 512


def _cache_width(key: str, value: int) -> int:
    if len(_width_cache) >= _WIDTH_CACHE_MAX:
        _width_cache.clear()
    _width_cache[key] = value
    return value


def grapheme_width(g: str) -> int:
    """Return the number of terminal cells one grapheme cluster occupies."""
    if not g:
        return 0

    if len(g) == 1:
        cp = ord(g)
        if cp < 0x20 or (0x7F <= cp <= 0x9F):
            return 0
        return max(_wcwidth.wcwidth(g), 0)

    for ch in g:
        cp = ord(ch)
        # VS16, ZWJ, skin tone modifiers, regional indicators
        if cp in (0xFE0F, 0x200D) or 0x1F3FB <= cp <= 0x1F3FF or 0x1F1E6 <= cp <= 0x1F1FF:
            return 2

    first = g[0]
    if ord(first) >= 0x1F000 or 0x2600 <= ord(first) <= 0x27BF:
        return 2
    if unicodedata.category(first).startswith("M") or unicodedata.category(first) == "Cf":
        return 0
    return max(_wcwidth.wcwidth(first), 0)


def strip_ansi(text: str) -> str:
    """Remove escape sequences from *text*."""
    return _STRIP_RE.sub("", text)


def visible_width(text: str) -> int:
    """Visible cell width of *text*, ignoring escape sequences.

    Tabs count as ``TAB_WIDTH`` cells.
    """
    if not text:
        return 0
    stripped = strip_ansi(text).replace("\t", " " * TAB_WIDTH)
    if not stripped:
        return 0
    if stripped.isascii() and stripped.isprintable():
        return len(stripped)

    cached = _width_cache.get(stripped)
    if cached is not None:
        return cached
    total = sum(grapheme_width(g) for g in grapheme.graphemes(stripped))
    return _cache_width(stripped, total)


def iter_cells(text: str) -> Iterator[tuple[str, int]]:
    """Yield ``(grapheme, width)`` pairs for plain (escape-free) *text*."""
    for g in grapheme.graphemes(text.replace("\t", " " * TAB_WIDTH)):
        yield g, grapheme_width(g)


def split_sgr(text: str) -> Iterator[tuple[str, str]]:
    """Split *text* into ``("sgr", params)`` and ``("text", chunk)`` tokens.

    Escape sequences other than SGR are dropped.
    """
    pos = 0
    for m in _SGR_RE.finditer(text):
        if m.start() > pos:
            chunk = strip_ansi(text[pos : m.start()])
            if chunk:
                yield "text", chunk
        yield "sgr", m.group(1)
        pos = m.end()
    if pos < len(text):
        chunk = strip_ansi(text[pos:])
        if chunk:
            yield "text", chunk


# ---------------------------------------------------------------------------
# Truncation / wrapping (plain text)
# ---------------------------------------------------------------------------


def truncate_to_width(text: str, width: int, ellipsis: str = "") -> str:
    """Cut plain *text* so it fits in *width* cells, appending *ellipsis*."""
    if width <= 0:
        return ""
    if visible_width(text) <= width:
        return text
    budget = width - visible_width(ellipsis)
    if budget <= 0:
        return ellipsis[:width]
    out: list[str] = []
    used = 0
    for g, w in iter_cells(text):
        if used + w > budget:
            break
        out.append(g)
        used += w
    return "".join(out) + ellipsis


def wrap_text(text: str, width: int) -> list[str]:
    """Word-wrap plain *text* to *width* cells.

    Existing newlines are kept.  Words longer than *width* are broken at
    the cell boundary.
    """
    if width <= 0:
        return []
    result: list[str] = []
    for raw_line in text.split("\n"):
        if not raw_line:
            result.append("")
            continue
        result.extend(_wrap_line(raw_line, width))
    return result


def _wrap_line(line: str, width: int) -> list[str]:
    lines: list[str] = []
    current = ""
    current_w = 0
    for word in re.split(r"(\s+)", line):
        if not word:
            continue
        word_w = visible_width(word)
        if word.isspace():
            if current_w + word_w <= width:
                current += word
                current_w += word_w
            else:
                lines.append(current.rstrip())
                current, current_w = "", 0
            continue
        if current_w + word_w <= width:
            current += word
            current_w += word_w
            continue
        if current:
            lines.append(current.rstrip())
            current, current_w = "", 0
        # Hard-break words wider than the line, keeping SGR codes intact
        for kind, chunk in split_sgr(word):
            if kind == "sgr":
                current += f"\x1b[{chunk}m"
                continue
            for g, w in iter_cells(chunk):
                if current_w + w > width and current_w:
                    lines.append(current)
                    current, current_w = "", 0
                current += g
                current_w += w
    if current or not lines:
        lines.append(current.rstrip())
    return lines


def is_word_char(ch: str) -> bool:
    """True for characters that belong to a word for selection purposes."""
    return bool(ch) and (ch.isalnum() or ch == "_")
