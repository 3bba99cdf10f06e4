"""Abstract base classes for upstream completion providers.

Defines the CompletionProvider interface every upstream adapter implements
and the CompletionStream handle it returns. The orchestrator interacts
exclusively through these interfaces — it never calls provider SDKs
directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator

from loomstream.schemas.generation import ModelConfig


class UpstreamError(RuntimeError):
    """The upstream model call failed (transport, auth, or model error)."""


class CompletionStream(ABC):
    """An open upstream completion: an async iterator of text deltas.

    Deltas are yielded in arrival order and never empty. ``aclose()`` stops
    the upstream call and releases its connection; it is safe to call more
    than once.
    """

    @abstractmethod
    def __aiter__(self) -> AsyncGenerator[str, None]:
        """Iterate the text deltas of the completion."""

    @abstractmethod
    async def aclose(self) -> None:
        """Abort the upstream call."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        """Whether aclose() has been called."""


class CompletionProvider(ABC):
    """Abstract interface for any model that can stream a completion.

    Initialized from a ModelConfig loaded from the TOML registry.
    """

    def __init__(self, config: ModelConfig) -> None:
        self._config = config

    @property
    def max_tokens(self) -> int:
        """The model's maximum-token ceiling."""
        return self._config.max_tokens

    @abstractmethod
    async def open_stream(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float | None = None,
    ) -> CompletionStream:
        """Open a streaming completion for ``prompt``.

        No stop sequences are sent upstream: stopping is decided by the
        caller so delimiter characters arrive verbatim.

        Args:
            prompt: User prompt sent as a single user message.
            max_tokens: Token budget for the completion.
            temperature: Sampling temperature (None = model default).

        Returns:
            An open CompletionStream.

        Raises:
            UpstreamError: If the upstream call cannot be opened.
        """
