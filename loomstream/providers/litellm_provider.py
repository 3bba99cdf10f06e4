"""Universal LiteLLM adapter implementing the CompletionProvider interface.

Opens streaming chat completions through LiteLLM's unified API (OpenRouter by
default) and exposes them as CompletionStream handles. No retries happen at
this layer: a failed call surfaces as UpstreamError immediately.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncGenerator
from typing import Any

import litellm

# Suppress LiteLLM's "Give Feedback / Get Help" and "Provider List" banners
litellm.suppress_debug_info = True

from loomstream.providers.base import CompletionProvider, CompletionStream, UpstreamError
from loomstream.schemas.generation import ModelConfig, ServerConfig

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (
    litellm.RateLimitError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
    litellm.APIConnectionError,
    litellm.Timeout,
    TimeoutError,
)

# Errors the SDK may raise while a stream is being read
_STREAM_ERRORS = (*_TRANSIENT_ERRORS, litellm.BadRequestError, litellm.APIError)


def _short_error_reason(error: Exception) -> str:
    """Extract a short, user-friendly reason from a LiteLLM error.

    Maps error types and status codes to concise descriptions instead
    of dumping full JSON error payloads.
    """
    error_str = str(error).lower()
    if "rate" in error_str or "429" in error_str:
        return "rate limit"
    if "overloaded" in error_str or "529" in error_str:
        return "overloaded"
    if "timeout" in error_str or isinstance(error, TimeoutError):
        return "timeout"
    if "503" in error_str or "unavailable" in error_str:
        return "service unavailable"
    if "500" in error_str or "internal" in error_str:
        return "server error"
    if "connection" in error_str:
        return "connection error"
    # Fallback: first 80 chars of the error
    return str(error)[:80]


def _delta_text(chunk: Any) -> str:
    """Text content of one streamed chunk ("" for role/usage-only chunks)."""
    if chunk.choices and chunk.choices[0].delta:
        return chunk.choices[0].delta.content or ""
    return ""


class LiteLLMStream(CompletionStream):
    """CompletionStream over a LiteLLM streaming response."""

    def __init__(self, response: Any, model: str) -> None:
        self._response = response
        self._model = model
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aiter__(self) -> AsyncGenerator[str, None]:
        try:
            async for chunk in self._response:
                if self._closed:
                    return
                delta = _delta_text(chunk)
                if delta:
                    yield delta
        except _STREAM_ERRORS as e:
            raise UpstreamError(
                f"Stream from {self._model} failed ({_short_error_reason(e)})"
            ) from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        close = getattr(self._response, "aclose", None)
        if close is None:
            return
        try:
            await close()
        except Exception:
            logger.debug("Error closing upstream stream for %s", self._model, exc_info=True)


class LiteLLMProvider(CompletionProvider):
    """Streaming LLM adapter powered by LiteLLM.

    Routes calls through litellm.acompletion(). This is the ONLY place the
    upstream SDK is called.
    """

    def __init__(
        self,
        config: ModelConfig,
        server: ServerConfig | None = None,
    ) -> None:
        super().__init__(config)
        self._server = server or ServerConfig()
        # Resolve API key from environment (model override, then server default)
        self._api_key = os.environ.get(config.api_key_env, "") or os.environ.get(
            self._server.api_key_env, ""
        )

    async def open_stream(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float | None = None,
    ) -> LiteLLMStream:
        """Open a streaming chat completion via LiteLLM.

        Raises:
            UpstreamError: On authentication, request, or transport failure.
        """
        kwargs = self._build_completion_kwargs(prompt, max_tokens, temperature)
        logger.debug(
            "Opening stream: model=%s max_tokens=%d temperature=%.2f",
            self._config.model, max_tokens, kwargs["temperature"],
        )

        try:
            response = await litellm.acompletion(**kwargs)
        except litellm.AuthenticationError:
            raise UpstreamError(
                f"Authentication failed for {self._config.model}. "
                f"Check that {self._config.api_key_env} is set correctly."
            ) from None
        except litellm.BadRequestError as e:
            raise UpstreamError(f"Bad request to {self._config.model}: {e}") from e
        except (*_TRANSIENT_ERRORS, litellm.APIError) as e:
            raise UpstreamError(
                f"Streaming call to {self._config.model} failed "
                f"({_short_error_reason(e)})"
            ) from e

        return LiteLLMStream(response, self._config.model)

    def _build_completion_kwargs(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float | None,
    ) -> dict:
        """Build the kwargs dict for litellm.acompletion."""
        kwargs: dict = {
            "model": self._config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": (
                temperature if temperature is not None else self._config.default_temperature
            ),
            "max_tokens": max_tokens,
            "stream": True,
        }

        if self._api_key:
            kwargs["api_key"] = self._api_key

        api_base = self._config.api_base or self._server.api_base
        if api_base:
            kwargs["api_base"] = api_base

        headers = {}
        if self._server.referer:
            headers["HTTP-Referer"] = self._server.referer
        if self._server.title:
            headers["X-Title"] = self._server.title
        if headers:
            kwargs["extra_headers"] = headers

        return kwargs
