"""Boundary detection over an append-only accumulation buffer.

Each pattern-based length mode has one precompiled delimiter pattern. The
matched span always includes the delimiter characters, so cutting at the
match end preserves them in the emitted text.

Chunk seams can fall inside a delimiter (``"Hello world"`` then ``". More"``).
Instead of carrying partial-match state between chunks, every scan re-reads
a small overlap window before the already-sent index.

A match that ends exactly at the end of the buffer is only provisional: the
next chunk can extend it (``'Go.'`` then ``'"'``) or cancel it (``"3."`` then
``"14"``).
"""

from __future__ import annotations

import re
from types import MappingProxyType

from loomstream.presets import LengthMode

# Characters re-scanned before the sent index on every call
OVERLAP_WINDOW = 32

# Markdown horizontal rule alone on a line (up to 3 leading spaces)
_HORIZONTAL_RULE = (
    r"(?:^|\r?\n)[ \t]{0,3}"
    r"(?:-{3,}|\*{3,}|_{3,})"
    r"[ \t]*(?:\r?\n|\Z)"
)

_BOUNDARY_PATTERNS: MappingProxyType[LengthMode, re.Pattern[str]] = MappingProxyType({
    # ., ? or ! plus optional closing quotes/brackets; trailing space not consumed
    LengthMode.SENTENCE: re.compile(
        r"[.?!]"
        r"(?:['\"”’»)\]}]+)?"
        r"(?=\s|\Z)"
    ),
    # Blank line (spaces/tabs allowed on it) or horizontal rule
    LengthMode.PARAGRAPH: re.compile(
        r"\r?\n[ \t]*\r?\n|" + _HORIZONTAL_RULE
    ),
    # Three or more line breaks or horizontal rule
    LengthMode.PAGE: re.compile(
        r"\r?\n(?:[ \t]*\r?\n){2,}|" + _HORIZONTAL_RULE
    ),
})


def get_boundary_pattern(mode: LengthMode) -> re.Pattern[str] | None:
    """Return the delimiter pattern for a mode, or None for word mode."""
    return _BOUNDARY_PATTERNS.get(mode)


def find_boundary(
    accumulated: str,
    sent_index: int,
    pattern: re.Pattern[str],
) -> re.Match[str] | None:
    """Find the first boundary match whose end lies strictly beyond sent_index.

    Scanning starts OVERLAP_WINDOW characters before ``sent_index`` so that a
    delimiter straddling the previous chunk seam is seen whole. Matches that
    end at or before ``sent_index`` were already cut and are skipped.

    Args:
        accumulated: Full upstream text received so far.
        sent_index: Index up to which text has already been emitted.
        pattern: Delimiter pattern for the request's length mode.

    Returns:
        The match, or None when no new boundary exists yet.
    """
    start = max(0, sent_index - OVERLAP_WINDOW)
    # pos keeps ^ anchored to the true start of text, not the window start
    for match in pattern.finditer(accumulated, start):
        if match.end() > sent_index:
            return match
    return None


def find_boundary_cutoff(
    accumulated: str,
    sent_index: int,
    pattern: re.Pattern[str],
) -> int | None:
    """Absolute end offset of the next boundary, or None."""
    match = find_boundary(accumulated, sent_index, pattern)
    return match.end() if match else None
