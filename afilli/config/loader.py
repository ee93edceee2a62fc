"""
Configuration loader for Afilli.

Reads afilli.yaml (or the file named by AFILLI_CONFIG), validates it
against `AfilliConfig` and caches the result for the life of the process.
A missing file is not an error: every section has working defaults.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from afilli.config.schema import AfilliConfig
from afilli.exceptions import AgentConfigurationError

DEFAULT_CONFIG_NAME = "afilli.yaml"

# Module-level cache: resolved path -> AfilliConfig
_loaded_configs: dict[str, AfilliConfig] = {}


def find_config_file() -> Optional[Path]:
    """Locate afilli.yaml: AFILLI_CONFIG, then cwd, then the project root."""
    explicit = os.environ.get("AFILLI_CONFIG")
    if explicit:
        return Path(explicit)

    candidate = Path.cwd() / DEFAULT_CONFIG_NAME
    if candidate.exists():
        return candidate

    current = Path(__file__).resolve()
    for parent in current.parents:
        candidate = parent / DEFAULT_CONFIG_NAME
        if candidate.exists():
            return candidate
    return None


def load_config(config_path: Optional[str | Path] = None) -> AfilliConfig:
    """
    Load and validate the deployment configuration.

    Also loads a .env file (if present) so credential lookups via
    `resolve_secret()` see it.

    Raises:
        FileNotFoundError: If an explicit config_path does not exist.
        AgentConfigurationError: If the YAML does not validate.
    """
    load_dotenv()

    path = Path(config_path) if config_path else find_config_file()
    cache_key = str(path) if path else "<defaults>"
    if cache_key in _loaded_configs:
        return _loaded_configs[cache_key]

    if path is None:
        config = AfilliConfig()
        _loaded_configs[cache_key] = config
        return config

    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    with open(path, "r") as f:
        raw = yaml.safe_load(f) or {}

    try:
        config = AfilliConfig(**raw)
    except ValidationError as e:
        raise AgentConfigurationError(
            f"Invalid config in {path}:\n{e}", config_path=str(path)
        ) from e

    _loaded_configs[cache_key] = config
    return config


def resolve_secret(env_var: str) -> Optional[str]:
    """Return the value of a credential environment variable, or None."""
    value = os.environ.get(env_var, "").strip()
    return value or None


def clear_cache() -> None:
    """Clear the config cache. Useful for testing."""
    _loaded_configs.clear()
