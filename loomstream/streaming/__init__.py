"""Boundary-bounded streaming of upstream completions."""

from loomstream.streaming.orchestrator import (
    BoundedStream,
    CancelReason,
    StreamPhase,
    UpstreamCancellation,
)

__all__ = [
    "BoundedStream",
    "CancelReason",
    "StreamPhase",
    "UpstreamCancellation",
]
