"""Model registry and TOML configuration loader.

Loads model definitions from models.toml and server defaults from
defaults.toml. The registry is read-only at runtime.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import ValidationError

from loomstream.schemas.generation import ModelConfig, ServerConfig

# Default config directory relative to the loomstream package
_CONFIG_DIR = Path(__file__).parent.parent / "config"


def load_models(config_path: Path | None = None) -> dict[str, ModelConfig]:
    """Load the model registry from a TOML file.

    Args:
        config_path: Path to models.toml. Defaults to loomstream/config/models.toml.

    Returns:
        Dictionary mapping client-facing model identifiers to ModelConfig.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML structure is invalid.
    """
    path = config_path or _CONFIG_DIR / "models.toml"
    if not path.exists():
        raise FileNotFoundError(f"Model registry not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    models_section = raw.get("models")
    if not models_section or not isinstance(models_section, dict):
        raise ValueError(f"No [models] section found in {path}")

    registry: dict[str, ModelConfig] = {}
    for key, entry in models_section.items():
        if not isinstance(entry, dict):
            continue
        try:
            registry[key] = ModelConfig(**entry)
        except ValidationError as e:
            raise ValueError(f"Invalid model entry '{key}' in {path}: {e}") from e

    return registry


def load_server_config(config_path: Path | None = None) -> ServerConfig:
    """Load server and upstream defaults from a TOML file.

    Args:
        config_path: Path to defaults.toml. Defaults to loomstream/config/defaults.toml.

    Returns:
        ServerConfig with values from the ``[server]`` and ``[upstream]`` tables.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If a value has the wrong type.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Server config not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    values = {**raw.get("server", {}), **raw.get("upstream", {})}
    try:
        return ServerConfig(**values)
    except ValidationError as e:
        raise ValueError(f"Invalid server config in {path}: {e}") from e


def get_model(registry: dict[str, ModelConfig], model_id: str | None) -> ModelConfig | None:
    """Look up a model by its client-facing identifier."""
    if not model_id:
        return None
    return registry.get(model_id)
