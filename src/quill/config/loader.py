"""Configuration loading: TOML layers merged over the schema defaults.

Layers, lowest priority first:
    1. Schema defaults
    2. User file: ``$XDG_CONFIG_HOME/quill/config.toml``
       (``~/.config/quill/config.toml`` when unset)
    3. Project file: ``./quill.toml``
    4. ``$QUILL_CONFIG``
    5. The ``path`` argument (``--config`` on the command line)
    6. ``overrides`` passed by the caller

Optional layers (2, 3) are skipped when absent; a named file (4, 5) that
does not exist is an error. ``model.api_key`` falls back to the
environment variable named by ``model.api_key_env``.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from quill.core.errors import ConfigError

from .schema import QuillConfig

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

ENV_CONFIG_PATH = "QUILL_CONFIG"


def user_config_path() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "quill" / "config.toml"


def _layers(explicit: str | Path | None) -> Iterator[Path]:
    """Yield existing config files in merge order."""
    for optional in (user_config_path(), Path.cwd() / "quill.toml"):
        if optional.is_file():
            yield optional

    env_path = os.environ.get(ENV_CONFIG_PATH)
    if env_path:
        p = Path(env_path).expanduser()
        if not p.is_file():
            msg = f"{ENV_CONFIG_PATH} points to non-existent file: {env_path}"
            raise ConfigError(msg)
        yield p

    if explicit is not None:
        p = Path(explicit).expanduser()
        if not p.is_file():
            msg = f"Config file not found: {explicit}"
            raise ConfigError(msg)
        yield p


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {path}: {e}"
        raise ConfigError(msg) from e
    except OSError as e:
        msg = f"Cannot read config file {path}: {e}"
        raise ConfigError(msg) from e


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge tables recursively; scalars and arrays in override replace."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_config(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> QuillConfig:
    """Load, merge and validate configuration.

    Raises:
        ConfigError: A named file is missing, a file is not valid TOML,
            or the merged result fails validation.
    """
    merged: dict[str, Any] = {}
    for layer in _layers(path):
        logger.debug("Loading config layer %s", layer)
        merged = _deep_merge(merged, _read_toml(layer))
    if overrides:
        merged = _deep_merge(merged, overrides)

    try:
        config = QuillConfig.model_validate(merged)
    except ValidationError as e:
        msg = f"Configuration validation failed: {e}"
        raise ConfigError(msg) from e

    model = config.model
    if model.api_key is None and model.api_key_env:
        model.api_key = os.environ.get(model.api_key_env)
    return config
