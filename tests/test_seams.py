"""Tests for loomstream.seams — join state and seam normalization."""

from __future__ import annotations

from loomstream.seams import (
    JoinState,
    ends_with_newline,
    ends_with_whitespace,
    is_whitespace_only,
    normalize_join,
    update_join_state,
)

_AFTER_SPACE = JoinState(has_emitted_any=True, ended_with_whitespace=True, ended_with_newline=False)
_AFTER_NEWLINE = JoinState(has_emitted_any=True, ended_with_whitespace=True, ended_with_newline=True)
_AFTER_WORD = JoinState(has_emitted_any=True, ended_with_whitespace=False, ended_with_newline=False)


class TestNormalizeJoin:
    def test_drops_duplicated_leading_space(self):
        assert normalize_join(_AFTER_SPACE, " world") == "world"

    def test_drops_multiple_leading_spaces_and_tabs(self):
        assert normalize_join(_AFTER_SPACE, " \t  world") == "world"

    def test_keeps_newline_after_space(self):
        assert normalize_join(_AFTER_SPACE, "\nworld") == "\nworld"

    def test_drops_leading_newlines_after_newline(self):
        assert normalize_join(_AFTER_NEWLINE, "\n\nHello") == "Hello"

    def test_drops_crlf_runs_after_newline(self):
        assert normalize_join(_AFTER_NEWLINE, "\r\n\r\nHello") == "Hello"
        assert normalize_join(_AFTER_NEWLINE, "\r\n\n\r\nHello") == "Hello"

    def test_keeps_indentation_after_newline(self):
        assert normalize_join(_AFTER_NEWLINE, "\n  indented") == "  indented"

    def test_unchanged_after_word(self):
        assert normalize_join(_AFTER_WORD, "  world") == "  world"

    def test_unchanged_when_nothing_emitted(self):
        assert normalize_join(JoinState(), "\n\nHello") == "\n\nHello"

    def test_never_invents_separator(self):
        assert "abc" + normalize_join(_AFTER_WORD, "def") == "abcdef"

    def test_empty_fragment(self):
        assert normalize_join(_AFTER_SPACE, "") == ""


class TestUpdateJoinState:
    def test_tracks_trailing_space(self):
        state = update_join_state(JoinState(), "Hello ")
        assert state == JoinState(True, True, False)

    def test_tracks_trailing_newline(self):
        state = update_join_state(JoinState(), "Hello\r\n")
        assert state.ended_with_newline
        assert state.ended_with_whitespace

    def test_tracks_word_ending(self):
        state = update_join_state(_AFTER_NEWLINE, "word")
        assert state == _AFTER_WORD

    def test_empty_emission_keeps_state(self):
        assert update_join_state(_AFTER_SPACE, "") is _AFTER_SPACE


class TestHelpers:
    def test_whitespace_only(self):
        assert is_whitespace_only(" \t\r\n")
        assert is_whitespace_only("")
        assert not is_whitespace_only("  a ")

    def test_ends_with_newline(self):
        assert ends_with_newline("a\n")
        assert ends_with_newline("a\r\n")
        assert not ends_with_newline("a\n ")

    def test_ends_with_whitespace(self):
        assert ends_with_whitespace("a\t")
        assert not ends_with_whitespace("a")
