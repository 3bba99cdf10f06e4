"""FastAPI server exposing boundary-bounded generation over SSE.

Routes:
    POST /api/generate   stream a completion cut at the requested boundary
    GET  /api/models     list the models clients may request

Request validation happens before the upstream call is opened, and the
upstream call is opened before the response starts, so both validation and
connection failures are reported as plain JSON with a status code. Failures
after the first byte become an in-stream error event.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import ValidationError

from loomstream import __version__
from loomstream.presets import resolve_policy
from loomstream.providers.base import CompletionProvider
from loomstream.providers.litellm_provider import LiteLLMProvider
from loomstream.providers.registry import get_model, load_models, load_server_config
from loomstream.schemas.generation import GenerateRequest, ModelConfig, ServerConfig
from loomstream.streaming.orchestrator import BoundedStream

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[ModelConfig], CompletionProvider]

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "body"
    return f"Invalid parameter '{field}': {first.get('msg', 'invalid value')}"


def create_app(
    registry: dict[str, ModelConfig] | None = None,
    server_config: ServerConfig | None = None,
    provider_factory: ProviderFactory | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        registry: Model registry (default: loaded from models.toml).
        server_config: Server settings (default: loaded from defaults.toml).
        provider_factory: Builds a CompletionProvider for a model entry
            (default: LiteLLMProvider).

    Returns:
        The configured FastAPI app.
    """
    server_config = server_config or load_server_config()
    models = registry if registry is not None else load_models()
    if provider_factory is None:
        def provider_factory(cfg: ModelConfig) -> CompletionProvider:
            return LiteLLMProvider(cfg, server_config)

    app = FastAPI(
        title="loomstream",
        description="Boundary-bounded text generation over server-sent events",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=server_config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Generation ───────────────────────────────────────────────

    @app.post("/api/generate")
    async def generate(request: Request) -> Response:
        """Stream a completion that stops at the first length-mode boundary."""
        try:
            body = await request.json()
        except ValueError:
            return _error("Request body must be valid JSON", 400)
        if not isinstance(body, dict):
            return _error("Request body must be a JSON object", 400)

        try:
            params = GenerateRequest.model_validate(body)
        except ValidationError as exc:
            return _error(_validation_message(exc), 400)

        if not params.prompt or not params.model:
            return _error("Missing required parameters", 400)

        model_cfg = get_model(models, params.model)
        if model_cfg is None:
            return _error("Invalid model specified", 400)

        provider = provider_factory(model_cfg)
        policy = resolve_policy(params.length_mode, provider.max_tokens, params.max_tokens)

        try:
            upstream = await provider.open_stream(
                params.prompt,
                max_tokens=policy.max_tokens,
                temperature=params.temperature,
            )
        except Exception as exc:
            logger.exception("Generation error for %s", params.model)
            return _error(str(exc) or "An error occurred during text generation", 500)

        logger.info(
            "Generating: model=%s mode=%s max_tokens=%d",
            params.model, policy.mode, policy.max_tokens,
        )
        stream = BoundedStream(upstream, policy, is_disconnected=request.is_disconnected)

        async def event_source() -> AsyncGenerator[str, None]:
            async for event in stream.events():
                yield event.to_sse()

        return StreamingResponse(
            event_source(),
            media_type="text/event-stream",
            headers=_SSE_HEADERS,
        )

    # ── Models ───────────────────────────────────────────────────

    @app.get("/api/models")
    async def list_models() -> dict[str, dict]:
        """List the models clients may request."""
        return {
            key: {
                "name": cfg.display_name,
                "maxTokens": cfg.max_tokens,
                "defaultTemp": cfg.default_temperature,
            }
            for key, cfg in models.items()
        }

    return app
