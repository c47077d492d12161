"""Tests for pi.view.input decoding."""

from __future__ import annotations

import pytest

from pi.view.input import InputDecoder, decode_input
from pi.view.messages import KeyMsg, MouseMsg


class TestKeys:
    @pytest.mark.parametrize(
        ("data", "key"),
        [
            ("\r", "enter"),
            ("\t", "tab"),
            ("\x7f", "backspace"),
            ("\x03", "ctrl+c"),
            ("\x1b[A", "up"),
            ("\x1b[Z", "shift+tab"),
            ("\x1b[3~", "delete"),
            ("\x1b[1;5C", "ctrl+right"),
            ("\x1b[3;2~", "shift+delete"),
            ("\x1bOP", "f1"),
            ("\x1bx", "alt+x"),
        ],
    )
    def test_key_ids(self, data: str, key: str) -> None:
        assert decode_input(data) == [KeyMsg(key)]

    def test_printable_carries_text(self) -> None:
        assert decode_input("ab") == [KeyMsg("a", "a"), KeyMsg("b", "b")]

    def test_space(self) -> None:
        assert decode_input(" ") == [KeyMsg("space", " ")]

    def test_lone_escape(self) -> None:
        assert decode_input("\x1b") == [KeyMsg("escape")]

    def test_double_escape(self) -> None:
        assert decode_input("\x1b\x1b[A") == [KeyMsg("escape"), KeyMsg("up")]

    def test_unknown_sequence_dropped(self) -> None:
        assert decode_input("\x1b[99Xa") == [KeyMsg("a", "a")]


class TestMouse:
    def test_press_is_zero_based(self) -> None:
        assert decode_input("\x1b[<0;5;3M") == [MouseMsg(4, 2, "left", "press")]

    def test_release(self) -> None:
        assert decode_input("\x1b[<0;1;1m") == [MouseMsg(0, 0, "left", "release")]

    def test_motion(self) -> None:
        assert decode_input("\x1b[<32;2;2M") == [MouseMsg(1, 1, "left", "motion")]

    def test_wheel(self) -> None:
        assert decode_input("\x1b[<64;1;1M") == [MouseMsg(0, 0, "wheel_up", "press")]
        assert decode_input("\x1b[<65;1;1M") == [MouseMsg(0, 0, "wheel_down", "press")]


class TestChunking:
    def test_split_csi_is_held(self) -> None:
        decoder = InputDecoder()
        assert decoder.feed("a\x1b[") == [KeyMsg("a", "a")]
        assert decoder.pending == "\x1b["
        assert decoder.feed("B") == [KeyMsg("down")]
        assert decoder.pending == ""

    def test_split_mouse(self) -> None:
        decoder = InputDecoder()
        assert decoder.feed("\x1b[<0;1") == []
        assert decoder.feed(";1M") == [MouseMsg(0, 0, "left", "press")]

    def test_flush_resolves_escape(self) -> None:
        decoder = InputDecoder()
        assert decoder.feed("\x1b") == []
        assert decoder.flush() == [KeyMsg("escape")]

    def test_flush_drops_partial(self) -> None:
        decoder = InputDecoder()
        decoder.feed("\x1b[1;")
        assert decoder.flush() == []
