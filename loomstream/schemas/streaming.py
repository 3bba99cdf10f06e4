"""Streaming schemas for the client-facing event stream.

Defines the StreamEvent model produced by the orchestrator and its
server-sent event encoding.
"""

from __future__ import annotations

import json
from enum import StrEnum

from pydantic import BaseModel, Field


class EventKind(StrEnum):
    """Kinds of events written to the client stream."""

    CONTENT = "content"
    DONE = "done"
    ERROR = "error"


class StreamEvent(BaseModel):
    """A single client-visible event.

    Concatenating ``content`` of every CONTENT event in order reproduces the
    boundary-cut text exactly.
    """

    kind: EventKind = Field(description="Event kind")
    content: str = Field(default="", description="Text fragment (CONTENT events)")
    error: str = Field(default="", description="Error message (ERROR events)")

    @classmethod
    def fragment(cls, text: str) -> StreamEvent:
        return cls(kind=EventKind.CONTENT, content=text)

    @classmethod
    def done(cls) -> StreamEvent:
        return cls(kind=EventKind.DONE)

    @classmethod
    def failure(cls, message: str) -> StreamEvent:
        return cls(kind=EventKind.ERROR, error=message)

    def to_sse(self) -> str:
        """Encode as one ``data:`` frame terminated by a blank line."""
        if self.kind == EventKind.DONE:
            return "data: [DONE]\n\n"
        if self.kind == EventKind.ERROR:
            payload = {"error": self.error}
        else:
            payload = {"content": self.content}
        return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"
