"""Whitespace handling at the seams between emitted fragments.

The join state summarises the trailing characters of everything already sent
to the client, so the next fragment can be normalized without re-reading the
emitted text. Normalization only ever removes leading whitespace that would
duplicate a separator already sent; it never inserts one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# One or more leading line breaks (LF or CRLF)
LEADING_NEWLINES_RE = re.compile(r"\A(?:\r?\n)+")

# Leading spaces/tabs, never newlines
LEADING_SPACES_TABS_RE = re.compile(r"\A[ \t]+")

ENDING_NEWLINE_RE = re.compile(r"\r?\n\Z")
ENDING_WHITESPACE_RE = re.compile(r"\s\Z")
NON_WHITESPACE_RE = re.compile(r"\S")


@dataclass(frozen=True)
class JoinState:
    """Trailing character class of the last fragment sent to the client."""

    has_emitted_any: bool = False
    ended_with_whitespace: bool = False
    ended_with_newline: bool = False


def is_whitespace_only(text: str) -> bool:
    return NON_WHITESPACE_RE.search(text) is None


def ends_with_newline(text: str) -> bool:
    return ENDING_NEWLINE_RE.search(text) is not None


def ends_with_whitespace(text: str) -> bool:
    return ENDING_WHITESPACE_RE.search(text) is not None


def normalize_join(state: JoinState, fragment: str) -> str:
    """Drop leading whitespace that would duplicate the previous tail.

    - After a newline, leading line breaks are removed.
    - After a space or tab, leading spaces/tabs are removed; a leading
      newline is kept since it is the stronger separator.
    - Otherwise the fragment is returned unchanged.

    Text straddling the seam without whitespace is never separated:
    ``"abc"`` followed by ``"def"`` stays ``"abcdef"``.
    """
    if not fragment:
        return fragment
    if state.ended_with_newline:
        return LEADING_NEWLINES_RE.sub("", fragment)
    if state.ended_with_whitespace:
        return LEADING_SPACES_TABS_RE.sub("", fragment)
    return fragment


def update_join_state(state: JoinState, emitted: str) -> JoinState:
    """Return the join state after ``emitted`` (the normalized fragment) is sent."""
    if not emitted:
        return state
    return JoinState(
        has_emitted_any=True,
        ended_with_whitespace=ends_with_whitespace(emitted),
        ended_with_newline=ends_with_newline(emitted),
    )
