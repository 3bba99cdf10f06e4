"""API key management for loomstream.

Keys are loaded with this priority:
  1. Environment variables (highest — already set in shell)
  2. ~/.loomstream/keys.env
  3. .env in current directory (project-level)

Outside production a missing upstream key is replaced by a placeholder so
the server can start for local development.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

# Directory for user-level loomstream configuration
LOOMSTREAM_HOME = Path.home() / ".loomstream"
KEYS_FILE = LOOMSTREAM_HOME / "keys.env"

# Selects production behaviour for missing keys
ENVIRONMENT_VAR = "LOOMSTREAM_ENV"

PLACEHOLDER_KEY = "sk-or-placeholder-key"


def load_keys_env() -> None:
    """Load API keys from ~/.loomstream/keys.env and .env into os.environ.

    Respects priority: existing env vars are NOT overwritten.
    """
    files = [KEYS_FILE, Path.cwd() / ".env"]
    for env_file in files:
        if env_file.is_file():
            _load_env_file(env_file)


def _load_env_file(path: Path) -> None:
    """Parse a simple KEY=VALUE .env file and set vars that aren't already set."""
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            # Don't overwrite existing env vars
            if key and not os.environ.get(key):
                os.environ[key] = value
                logger.debug("Loaded %s from %s", key, path)
    except OSError:
        logger.debug("Could not read %s", path)


def is_production() -> bool:
    return os.environ.get(ENVIRONMENT_VAR, "development").lower() == "production"


def ensure_api_key(env_var: str) -> bool:
    """Make sure ``env_var`` holds an upstream API key.

    Args:
        env_var: Environment variable name (e.g. OPENROUTER_API_KEY).

    Returns:
        True if a real key is configured, False if a development
        placeholder was installed.

    Raises:
        RuntimeError: If the key is missing and LOOMSTREAM_ENV=production.
    """
    load_keys_env()
    if os.environ.get(env_var):
        return True
    if is_production():
        raise RuntimeError(f"{env_var} environment variable is required")
    logger.warning("Using placeholder %s for development", env_var)
    os.environ[env_var] = PLACEHOLDER_KEY
    return False
