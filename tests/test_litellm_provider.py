"""Tests for loomstream.providers.litellm_provider — LiteLLM streaming adapter."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from loomstream.providers.base import UpstreamError
from loomstream.providers.litellm_provider import (
    LiteLLMProvider,
    LiteLLMStream,
    _short_error_reason,
)
from loomstream.schemas.generation import ModelConfig, ServerConfig

# Shorthand for the mock target
_ACOMP = "loomstream.providers.litellm_provider.litellm.acompletion"


# ── Helpers ───────────────────────────────────────────────────


def _make_config(**overrides) -> ModelConfig:
    """Create a ModelConfig with sensible defaults."""
    defaults = {
        "model": "openrouter/moonshotai/kimi-k2",
        "display_name": "Kimi K2",
        "max_tokens": 1024,
        "default_temperature": 0.7,
    }
    defaults.update(overrides)
    return ModelConfig(**defaults)


def _chunk(content: str | None) -> SimpleNamespace:
    """Build a LiteLLM streaming chunk-like object."""
    delta = SimpleNamespace(content=content, role="assistant")
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, index=0)])


class _FakeResponse:
    """Async-iterable streaming response with an aclose() hook."""

    def __init__(self, chunks, error: Exception | None = None) -> None:
        self._chunks = chunks
        self._error = error
        self.closed = False

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture()
def provider():
    with patch.dict("os.environ", {"OPENROUTER_API_KEY": "sk-or-test"}):
        return LiteLLMProvider(
            _make_config(),
            ServerConfig(referer="https://loompad.dev", title="LoomPad"),
        )


# ── Request building ─────────────────────────────────────────


class TestOpenStream:
    @pytest.mark.asyncio
    async def test_builds_streaming_request(self, provider):
        mock_acomp = AsyncMock(return_value=_FakeResponse([]))
        with patch(_ACOMP, mock_acomp):
            await provider.open_stream("Once upon a time", max_tokens=120)

        kwargs = mock_acomp.call_args.kwargs
        assert kwargs["model"] == "openrouter/moonshotai/kimi-k2"
        assert kwargs["messages"] == [{"role": "user", "content": "Once upon a time"}]
        assert kwargs["stream"] is True
        assert kwargs["max_tokens"] == 120
        assert kwargs["temperature"] == 0.7
        assert kwargs["api_key"] == "sk-or-test"
        assert kwargs["api_base"] == "https://openrouter.ai/api/v1"
        assert kwargs["extra_headers"] == {
            "HTTP-Referer": "https://loompad.dev",
            "X-Title": "LoomPad",
        }

    @pytest.mark.asyncio
    async def test_no_stop_sequences_sent(self, provider):
        mock_acomp = AsyncMock(return_value=_FakeResponse([]))
        with patch(_ACOMP, mock_acomp):
            await provider.open_stream("Hi", max_tokens=12)
        assert "stop" not in mock_acomp.call_args.kwargs

    @pytest.mark.asyncio
    async def test_explicit_temperature_and_model_api_base(self):
        config = _make_config(api_base="http://localhost:8000/v1")
        provider = LiteLLMProvider(config, ServerConfig())
        mock_acomp = AsyncMock(return_value=_FakeResponse([]))
        with patch(_ACOMP, mock_acomp):
            await provider.open_stream("Hi", max_tokens=12, temperature=0.0)

        kwargs = mock_acomp.call_args.kwargs
        assert kwargs["temperature"] == 0.0
        assert kwargs["api_base"] == "http://localhost:8000/v1"
        assert "extra_headers" not in kwargs


# ── Error mapping ────────────────────────────────────────────


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_auth_error(self, provider):
        import litellm as litellm_mod

        mock_acomp = AsyncMock(
            side_effect=litellm_mod.AuthenticationError(
                message="bad key", model="test", llm_provider="test",
            ),
        )
        with patch(_ACOMP, mock_acomp), pytest.raises(
            UpstreamError, match="Authentication failed",
        ):
            await provider.open_stream("Hi", max_tokens=12)

    @pytest.mark.asyncio
    async def test_bad_request(self, provider):
        import litellm as litellm_mod

        mock_acomp = AsyncMock(
            side_effect=litellm_mod.BadRequestError(
                message="invalid params", model="test", llm_provider="test",
            ),
        )
        with patch(_ACOMP, mock_acomp), pytest.raises(UpstreamError, match="Bad request"):
            await provider.open_stream("Hi", max_tokens=12)

    @pytest.mark.asyncio
    async def test_rate_limit_is_not_retried(self, provider):
        import litellm as litellm_mod

        mock_acomp = AsyncMock(
            side_effect=litellm_mod.RateLimitError(
                message="rate limited", model="test", llm_provider="test",
            ),
        )
        with patch(_ACOMP, mock_acomp), pytest.raises(UpstreamError, match="rate limit"):
            await provider.open_stream("Hi", max_tokens=12)

        assert mock_acomp.call_count == 1

    @pytest.mark.asyncio
    async def test_generic_api_error_on_open(self, provider):
        import litellm as litellm_mod

        mock_acomp = AsyncMock(
            side_effect=litellm_mod.APIError(
                status_code=502, message="x" * 500, llm_provider="test", model="test",
            ),
        )
        with patch(_ACOMP, mock_acomp), pytest.raises(
            UpstreamError, match="Streaming call to .* failed",
        ) as exc_info:
            await provider.open_stream("Hi", max_tokens=12)
        assert len(str(exc_info.value)) < 150

    def test_short_error_reason(self):
        assert _short_error_reason(RuntimeError("HTTP 429 Too Many")) == "rate limit"
        assert _short_error_reason(TimeoutError()) == "timeout"
        assert _short_error_reason(RuntimeError("503 backend")) == "service unavailable"
        assert _short_error_reason(RuntimeError("x" * 200)) == "x" * 80


# ── Stream handle ────────────────────────────────────────────


class TestLiteLLMStream:
    @pytest.mark.asyncio
    async def test_yields_non_empty_deltas(self):
        response = _FakeResponse([_chunk(None), _chunk("Hello"), _chunk(""), _chunk(" world")])
        stream = LiteLLMStream(response, "test")

        deltas = [d async for d in stream]
        assert deltas == ["Hello", " world"]

    @pytest.mark.asyncio
    async def test_skips_chunks_without_choices(self):
        empty = SimpleNamespace(choices=[])
        stream = LiteLLMStream(_FakeResponse([empty, _chunk("ok")]), "test")
        assert [d async for d in stream] == ["ok"]

    @pytest.mark.asyncio
    async def test_aclose_is_idempotent(self):
        response = _FakeResponse([_chunk("a")])
        stream = LiteLLMStream(response, "test")

        await stream.aclose()
        await stream.aclose()

        assert stream.closed
        assert response.closed

    @pytest.mark.asyncio
    async def test_aclose_tolerates_response_without_hook(self):
        stream = LiteLLMStream(iter([]), "test")
        await stream.aclose()
        assert stream.closed

    @pytest.mark.asyncio
    async def test_mid_stream_transport_error(self):
        import litellm as litellm_mod

        error = litellm_mod.APIConnectionError(
            message="connection reset", model="test", llm_provider="test",
        )
        stream = LiteLLMStream(_FakeResponse([_chunk("Hi")], error), "test")

        received = []
        with pytest.raises(UpstreamError, match="Stream from test failed"):
            async for delta in stream:
                received.append(delta)
        assert received == ["Hi"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error_type", ["APIError", "BadRequestError"])
    async def test_mid_stream_provider_error_is_summarised(self, error_type):
        import litellm as litellm_mod

        payload = '{"error": {"metadata": {"raw": "' + "x" * 500 + '"}}}'
        if error_type == "APIError":
            error = litellm_mod.APIError(
                status_code=502, message=payload, llm_provider="test", model="test",
            )
        else:
            error = litellm_mod.BadRequestError(
                message=payload, model="test", llm_provider="test",
            )
        stream = LiteLLMStream(_FakeResponse([_chunk("Hi")], error), "test")

        with pytest.raises(UpstreamError, match="Stream from test failed") as exc_info:
            async for _ in stream:
                pass
        assert len(str(exc_info.value)) < 150
