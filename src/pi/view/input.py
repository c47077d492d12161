"""Raw terminal input decoding.

Turns bytes read from a terminal in raw mode into :class:`KeyMsg` and
:class:`MouseMsg` values.  Escape sequences can arrive split across reads,
so :class:`InputDecoder` holds an incomplete tail until the rest arrives.
"""

from __future__ import annotations

import logging
import re

from pi.view.messages import KeyMsg, Message, MouseMsg

logger = logging.getLogger(__name__)

ESC = "\x1b"

# ---------------------------------------------------------------------------
# Sequence tables
# ---------------------------------------------------------------------------

_CSI_KEYS: dict[str, str] = {
    "A": "up",
    "B": "down",
    "C": "right",
    "D": "left",
    "H": "home",
    "F": "end",
    "Z": "shift+tab",
    "1~": "home",
    "2~": "insert",
    "3~": "delete",
    "4~": "end",
    "5~": "pageUp",
    "6~": "pageDown",
    "7~": "home",
    "8~": "end",
    "15~": "f5",
    "17~": "f6",
    "18~": "f7",
    "19~": "f8",
    "20~": "f9",
    "21~": "f10",
    "23~": "f11",
    "24~": "f12",
}

_SS3_KEYS: dict[str, str] = {
    "A": "up",
    "B": "down",
    "C": "right",
    "D": "left",
    "H": "home",
    "F": "end",
    "P": "f1",
    "Q": "f2",
    "R": "f3",
    "S": "f4",
}

# xterm modifier parameter -> prefix ("1;5A" is ctrl+up)
_MODIFIER_PREFIX: dict[str, str] = {
    "2": "shift+",
    "3": "alt+",
    "4": "shift+alt+",
    "5": "ctrl+",
    "6": "ctrl+shift+",
    "7": "ctrl+alt+",
    "8": "ctrl+shift+alt+",
}

_CONTROL_KEYS: dict[str, str] = {
    "\r": "enter",
    "\n": "enter",
    "\t": "tab",
    "\x7f": "backspace",
    "\x08": "backspace",
    "\x00": "ctrl+space",
}

_SGR_MOUSE_RE = re.compile(r"<(\d+);(\d+);(\d+)([Mm])")
_CSI_MODIFIED_RE = re.compile(r"^(\d+);(\d+)([A-Z~])$")


def _char_key(ch: str) -> KeyMsg:
    if ch in _CONTROL_KEYS:
        return KeyMsg(_CONTROL_KEYS[ch])
    cp = ord(ch)
    if 1 <= cp <= 26:
        return KeyMsg(f"ctrl+{chr(cp + 96)}")
    if ch == " ":
        return KeyMsg("space", " ")
    return KeyMsg(ch, ch)


def _csi_key(payload: str) -> KeyMsg | None:
    key = _CSI_KEYS.get(payload)
    if key is not None:
        return KeyMsg(key)
    m = _CSI_MODIFIED_RE.match(payload)
    if m is None:
        return None
    number, modifier, final = m.groups()
    base = _CSI_KEYS.get(final) if final != "~" else _CSI_KEYS.get(f"{number}~")
    prefix = _MODIFIER_PREFIX.get(modifier)
    if base is None or prefix is None:
        return None
    return KeyMsg(prefix + base)


def _mouse(payload: str) -> MouseMsg | None:
    m = _SGR_MOUSE_RE.fullmatch(payload)
    if m is None:
        return None
    code, col, row, final = int(m.group(1)), int(m.group(2)), int(m.group(3)), m.group(4)
    x, y = max(0, col - 1), max(0, row - 1)
    if code & 64:
        return MouseMsg(x, y, "wheel_down" if code & 1 else "wheel_up", "press")
    buttons = {0: "left", 1: "middle", 2: "right", 3: "none"}
    button = buttons[code & 3]
    if code & 32:
        return MouseMsg(x, y, button, "motion")  # type: ignore[arg-type]
    return MouseMsg(x, y, button, "release" if final == "m" else "press")  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------


class InputDecoder:
    """Stateful decoder for chunked terminal input."""

    def __init__(self) -> None:
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, data: str) -> list[Message]:
        """Decode *data*; an incomplete trailing sequence is kept for later."""
        buf = self._pending + data
        self._pending = ""
        out: list[Message] = []
        i = 0
        while i < len(buf):
            ch = buf[i]
            if ch != ESC:
                out.append(_char_key(ch))
                i += 1
                continue

            if i + 1 >= len(buf):
                self._pending = buf[i:]
                break

            nxt = buf[i + 1]
            if nxt == "[":
                end = self._csi_end(buf, i + 2)
                if end < 0:
                    self._pending = buf[i:]
                    break
                payload = buf[i + 2 : end + 1]
                msg = _mouse(payload) if payload.startswith("<") else _csi_key(payload)
                if msg is None:
                    logger.debug("Ignoring unknown sequence %r", buf[i : end + 1])
                else:
                    out.append(msg)
                i = end + 1
            elif nxt == "O":
                if i + 2 >= len(buf):
                    self._pending = buf[i:]
                    break
                key = _SS3_KEYS.get(buf[i + 2])
                if key is not None:
                    out.append(KeyMsg(key))
                i += 3
            elif nxt == ESC:
                out.append(KeyMsg("escape"))
                i += 1
            else:
                inner = _char_key(nxt)
                out.append(KeyMsg(f"alt+{inner.key}"))
                i += 2
        return out

    def flush(self) -> list[Message]:
        """Resolve a held tail: a lone ESC becomes the escape key."""
        pending, self._pending = self._pending, ""
        if pending == ESC:
            return [KeyMsg("escape")]
        if pending:
            logger.debug("Dropping incomplete sequence %r", pending)
        return []

    @staticmethod
    def _csi_end(buf: str, start: int) -> int:
        for j in range(start, len(buf)):
            if 0x40 <= ord(buf[j]) <= 0x7E:
                return j
        return -1


def decode_input(data: str) -> list[Message]:
    """Decode a complete chunk of input in one go."""
    decoder = InputDecoder()
    return decoder.feed(data) + decoder.flush()
