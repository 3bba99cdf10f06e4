"""Boundary-bounded streaming over an upstream completion.

Drives one upstream CompletionStream for one request, cuts it at the first
boundary of the requested length mode, and produces client-visible
StreamEvents. One BoundedStream instance per request; nothing is shared.

Phases: STREAMING -> EMITTING -> STREAMING ... -> CLOSED, with ABORTED
reachable from any non-terminal phase (client disconnect, upstream error).
The upstream call is cancelled at most once, through UpstreamCancellation.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncGenerator, Awaitable, Callable
from enum import StrEnum

from loomstream.boundaries import find_boundary
from loomstream.presets import BoundaryPolicy
from loomstream.providers.base import CompletionStream
from loomstream.schemas.streaming import StreamEvent
from loomstream.seams import JoinState, is_whitespace_only, normalize_join, update_join_state

logger = logging.getLogger(__name__)

# Leading separator plus the first non-whitespace run
_FIRST_WORD_RE = re.compile(r"\s*\S+")
_TRAILING_WHITESPACE_RE = re.compile(r"\s+\Z")

DisconnectProbe = Callable[[], Awaitable[bool]]


class StreamPhase(StrEnum):
    """Lifecycle phase of a bounded stream."""

    STREAMING = "streaming"
    EMITTING = "emitting"
    CLOSED = "closed"
    ABORTED = "aborted"


class CancelReason(StrEnum):
    """Why the upstream call was cancelled."""

    BOUNDARY = "boundary"
    CLIENT_DISCONNECT = "client_disconnect"
    UPSTREAM_ERROR = "upstream_error"


_TRANSITIONS: dict[StreamPhase, frozenset[StreamPhase]] = {
    StreamPhase.STREAMING: frozenset(
        {StreamPhase.EMITTING, StreamPhase.CLOSED, StreamPhase.ABORTED}
    ),
    StreamPhase.EMITTING: frozenset(
        {StreamPhase.STREAMING, StreamPhase.CLOSED, StreamPhase.ABORTED}
    ),
    StreamPhase.CLOSED: frozenset(),
    StreamPhase.ABORTED: frozenset(),
}


class UpstreamCancellation:
    """Single-shot cancellation handle for one upstream call."""

    def __init__(self, upstream: CompletionStream) -> None:
        self._upstream = upstream
        self._reason: CancelReason | None = None

    @property
    def reason(self) -> CancelReason | None:
        return self._reason

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    async def cancel(self, reason: CancelReason) -> bool:
        """Abort the upstream call. Returns False if it was already cancelled."""
        if self._reason is not None:
            return False
        self._reason = reason
        logger.debug("Cancelling upstream (%s)", reason)
        await self._upstream.aclose()
        return True


class BoundedStream:
    """Consume an upstream completion until the first length-mode boundary.

    Args:
        upstream: The open upstream completion.
        policy: Resolved length mode, budget and boundary pattern.
        is_disconnected: Optional async probe polled before every upstream
            read; when it returns True the stream is aborted silently.
    """

    def __init__(
        self,
        upstream: CompletionStream,
        policy: BoundaryPolicy,
        *,
        is_disconnected: DisconnectProbe | None = None,
    ) -> None:
        self._upstream = upstream
        self._policy = policy
        self._is_disconnected = is_disconnected
        self._cancellation = UpstreamCancellation(upstream)
        self._phase = StreamPhase.STREAMING

        self._accumulated = ""
        self._sent_index = 0
        # Boundaries ending at or before this index were leading whitespace
        self._scan_index = 0
        self._join = JoinState()
        self._has_emitted_non_whitespace = False
        self._word_buffer = ""
        self._emitted: list[str] = []
        self._delta_count = 0

    # ── Inspection ────────────────────────────────────────────

    @property
    def phase(self) -> StreamPhase:
        return self._phase

    @property
    def accumulated(self) -> str:
        """Full upstream text received so far."""
        return self._accumulated

    @property
    def sent_index(self) -> int:
        return self._sent_index

    @property
    def emitted_text(self) -> str:
        """Concatenation of every content fragment produced so far."""
        return "".join(self._emitted)

    @property
    def cancel_reason(self) -> CancelReason | None:
        return self._cancellation.reason

    # ── Event loop ────────────────────────────────────────────

    async def events(self) -> AsyncGenerator[StreamEvent, None]:
        """Yield content events, then a DONE or ERROR event.

        Nothing more is yielded after a client disconnect. Closing this
        generator early counts as a disconnect and cancels the upstream call.
        """
        deltas = self._upstream.__aiter__()
        try:
            try:
                while True:
                    if await self._client_gone():
                        await self._abort(CancelReason.CLIENT_DISCONNECT)
                        return

                    try:
                        delta = await deltas.__anext__()
                    except StopAsyncIteration:
                        break

                    fragment, finished = self._consume(delta)
                    if finished:
                        await self._cancellation.cancel(CancelReason.BOUNDARY)
                    if fragment is not None:
                        self._transition(StreamPhase.EMITTING)
                        yield StreamEvent.fragment(fragment)
                    if finished:
                        self._close()
                        yield StreamEvent.done()
                        return
                    self._transition(StreamPhase.STREAMING)
            except Exception as exc:
                logger.error("Upstream stream failed after %d deltas: %s", self._delta_count, exc)
                await self._abort(CancelReason.UPSTREAM_ERROR)
                yield StreamEvent.failure(str(exc) or "An error occurred during text generation")
                return

            # Upstream exhausted; a delimiter ending the text is flushed with it
            fragment = self._flush()
            if fragment is not None:
                self._transition(StreamPhase.EMITTING)
                yield StreamEvent.fragment(fragment)
            self._close()
            yield StreamEvent.done()
        finally:
            if self._phase not in (StreamPhase.CLOSED, StreamPhase.ABORTED):
                await self._abort(CancelReason.CLIENT_DISCONNECT)
            await deltas.aclose()

    # ── Consumption ───────────────────────────────────────────

    def _consume(self, delta: str) -> tuple[str | None, bool]:
        """Accumulate one delta.

        Returns:
            The fragment to emit (or None) and whether the stream is finished.
        """
        self._delta_count += 1
        self._accumulated += delta
        if self._policy.token_based:
            return self._consume_word(delta)
        return self._consume_pattern()

    def _consume_word(self, delta: str) -> tuple[str | None, bool]:
        self._word_buffer += delta
        if is_whitespace_only(delta):
            return None, False
        word = _FIRST_WORD_RE.match(self._word_buffer).group(0)
        return self._take(self._sent_index + len(word)), True

    def _consume_pattern(self) -> tuple[str | None, bool]:
        pattern = self._policy.pattern
        hold_from = len(self._accumulated)
        match = find_boundary(
            self._accumulated, max(self._sent_index, self._scan_index), pattern
        )
        while match is not None:
            segment = self._accumulated[self._sent_index:match.end()]
            if self._has_emitted_non_whitespace or not is_whitespace_only(segment):
                if match.end() < len(self._accumulated):
                    return self._take(match.end()), True
                # Delimiter ends the buffer: the next delta may extend or cancel it
                hold_from = match.start()
                break
            # A boundary before any content (e.g. an opening blank line) is not a stop
            self._scan_index = match.end()
            match = find_boundary(self._accumulated, match.end(), pattern)

        # Hold trailing whitespace back so a whitespace run never spans two fragments
        trailing = _TRAILING_WHITESPACE_RE.search(
            self._accumulated, self._sent_index, hold_from
        )
        end = trailing.start() if trailing else hold_from
        if end <= self._sent_index:
            return None, False
        return self._take(end), False

    def _flush(self) -> str | None:
        remainder = self._accumulated[self._sent_index:]
        if not remainder:
            return None
        if not self._has_emitted_non_whitespace and is_whitespace_only(remainder):
            return None
        return self._take(len(self._accumulated))

    def _take(self, end: int) -> str | None:
        """Advance sent_index to ``end`` and return the normalized fragment."""
        raw = self._accumulated[self._sent_index:end]
        self._sent_index = end
        fragment = normalize_join(self._join, raw)
        if not fragment:
            return None
        self._join = update_join_state(self._join, fragment)
        if not is_whitespace_only(fragment):
            self._has_emitted_non_whitespace = True
        self._emitted.append(fragment)
        return fragment

    # ── State transitions ─────────────────────────────────────

    def _transition(self, phase: StreamPhase) -> None:
        if phase == self._phase:
            return
        if phase not in _TRANSITIONS[self._phase]:
            raise RuntimeError(f"Invalid stream transition: {self._phase} -> {phase}")
        self._phase = phase

    def _close(self) -> None:
        self._transition(StreamPhase.CLOSED)
        logger.info(
            "Stream closed: mode=%s deltas=%d chars=%d reason=%s",
            self._policy.mode, self._delta_count, self._sent_index,
            self._cancellation.reason or "exhausted",
        )

    async def _abort(self, reason: CancelReason) -> None:
        self._transition(StreamPhase.ABORTED)
        await self._cancellation.cancel(reason)
        logger.info(
            "Stream aborted: mode=%s deltas=%d reason=%s",
            self._policy.mode, self._delta_count, reason,
        )

    async def _client_gone(self) -> bool:
        if self._is_disconnected is None:
            return False
        return await self._is_disconnected()
