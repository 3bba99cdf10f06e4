"""loomstream provider layer.

All upstream model calls go through LiteLLMProvider via the
CompletionProvider interface.
"""

from loomstream.providers.base import CompletionProvider, CompletionStream, UpstreamError
from loomstream.providers.litellm_provider import LiteLLMProvider
from loomstream.providers.registry import get_model, load_models, load_server_config

__all__ = [
    "CompletionProvider",
    "CompletionStream",
    "LiteLLMProvider",
    "UpstreamError",
    "get_model",
    "load_models",
    "load_server_config",
]
