"""Generation request, model registry and server configuration schemas.

Defines the JSON body accepted by ``POST /api/generate``, the per-model
entries loaded from models.toml, and the server/upstream settings loaded
from defaults.toml.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GenerateRequest(BaseModel):
    """Body of a generation request.

    ``prompt`` and ``model`` are optional at the schema level so that a
    missing value is reported with the dedicated "Missing required
    parameters" message instead of a generic validation error.
    """

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    prompt: str | None = Field(default=None, description="Text to continue")
    model: str | None = Field(default=None, description="Registry key of the model")
    temperature: float | None = Field(
        default=None, ge=0.0, description="Sampling temperature (default: model's default)"
    )
    max_tokens: int | None = Field(
        default=None,
        gt=0,
        alias="maxTokens",
        description="Caller-requested token cap (capped by mode preset and model ceiling)",
    )
    length_mode: str | None = Field(
        default=None,
        alias="lengthMode",
        description="Stopping granularity: word, sentence, paragraph or page",
    )


class ModelConfig(BaseModel):
    """Configuration for a single upstream model in the registry.

    Loaded from models.toml. The registry key is the identifier clients send
    in ``model``; ``model`` here is the LiteLLM routing identifier.
    """

    model_config = ConfigDict(protected_namespaces=())

    model: str = Field(description="LiteLLM model identifier (e.g. 'openrouter/moonshotai/kimi-k2')")
    display_name: str = Field(description="Human-friendly model name")
    max_tokens: int = Field(gt=0, description="Maximum completion tokens this model may be asked for")
    default_temperature: float = Field(
        default=0.7, ge=0.0, description="Temperature used when the request omits one"
    )
    api_key_env: str = Field(
        default="OPENROUTER_API_KEY",
        description="Environment variable name holding the API key",
    )
    api_base: str = Field(default="", description="Custom API base URL (empty = server default)")


class ServerConfig(BaseModel):
    """HTTP server and upstream gateway settings from defaults.toml."""

    host: str = Field(default="0.0.0.0", description="Interface the server binds to")
    port: int = Field(default=5000, gt=0, lt=65536, description="Server port")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"], description="Origins allowed on /api routes"
    )
    api_base: str = Field(
        default="https://openrouter.ai/api/v1",
        description="Default upstream API base URL",
    )
    api_key_env: str = Field(
        default="OPENROUTER_API_KEY",
        description="Environment variable holding the default upstream API key",
    )
    referer: str = Field(default="", description="HTTP-Referer header sent upstream")
    title: str = Field(default="", description="X-Title header sent upstream")
