"""Length presets — stopping granularities for a generation request.

Each length mode carries a token ceiling and a boundary policy. Word mode is
token-based (stop after the first token holding non-whitespace); the other
modes stop at the first match of a mode-specific delimiter pattern.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import StrEnum

logger = logging.getLogger(__name__)


class LengthMode(StrEnum):
    """Stopping granularity selected by the caller."""

    WORD = "word"
    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"
    PAGE = "page"


@dataclass(frozen=True)
class LengthPreset:
    """Display label and token ceiling for one length mode."""

    label: str
    max_tokens: int
    token_based: bool = False


LENGTH_PRESETS: dict[LengthMode, LengthPreset] = {
    LengthMode.WORD: LengthPreset("Word", 12, token_based=True),
    LengthMode.SENTENCE: LengthPreset("Sentence", 120),
    LengthMode.PARAGRAPH: LengthPreset("Paragraph", 400),
    LengthMode.PAGE: LengthPreset("Page", 900),
}

DEFAULT_LENGTH_MODE = LengthMode.SENTENCE


@dataclass(frozen=True)
class BoundaryPolicy:
    """Resolved per-request stopping policy.

    ``pattern`` is None for token-based (word) mode.
    """

    mode: LengthMode
    max_tokens: int
    pattern: re.Pattern[str] | None

    @property
    def token_based(self) -> bool:
        return self.pattern is None


def resolve_length_mode(value: str | LengthMode | None) -> LengthMode:
    """Map a requested mode to a LengthMode, falling back to the default.

    Unknown or missing values are not an error: the request is served with
    DEFAULT_LENGTH_MODE.
    """
    if value is None or value == "":
        return DEFAULT_LENGTH_MODE
    try:
        return LengthMode(str(value).strip().lower())
    except ValueError:
        logger.debug("Unknown length mode %r, using %s", value, DEFAULT_LENGTH_MODE)
        return DEFAULT_LENGTH_MODE


def resolve_token_budget(
    mode: LengthMode,
    model_ceiling: int,
    requested: int | None = None,
) -> int:
    """Return the effective token budget for a request.

    Args:
        mode: Resolved length mode.
        model_ceiling: The model's maximum-token ceiling.
        requested: Optional caller-requested cap.

    Returns:
        ``min(preset cap, model ceiling, requested)``, ignoring ``requested``
        when it is None.
    """
    caps = [LENGTH_PRESETS[mode].max_tokens, model_ceiling]
    if requested is not None:
        caps.append(requested)
    return min(caps)


def resolve_policy(
    mode: str | LengthMode | None,
    model_ceiling: int,
    requested: int | None = None,
) -> BoundaryPolicy:
    """Resolve mode, budget and boundary pattern for one request."""
    # Imported here: boundaries imports LengthMode from this module.
    from loomstream.boundaries import get_boundary_pattern

    length_mode = resolve_length_mode(mode)
    return BoundaryPolicy(
        mode=length_mode,
        max_tokens=resolve_token_budget(length_mode, model_ceiling, requested),
        pattern=get_boundary_pattern(length_mode),
    )
