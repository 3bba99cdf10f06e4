"""loomstream schema definitions.

All Pydantic v2 models used by the server, provider layer and orchestrator.
"""

from loomstream.schemas.generation import GenerateRequest, ModelConfig, ServerConfig
from loomstream.schemas.streaming import EventKind, StreamEvent

__all__ = [
    "EventKind",
    "GenerateRequest",
    "ModelConfig",
    "ServerConfig",
    "StreamEvent",
]
