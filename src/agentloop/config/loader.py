"""Configuration loading: TOML files, environment overrides, merge logic.

Sources, lowest priority first:
    1. Pydantic model defaults
    2. User config: ``$XDG_CONFIG_HOME/agentloop/config.toml``
       (``~/.config/agentloop/config.toml`` when unset)
    3. Project config: ``./agentloop.toml``
    4. The file named by ``$AGENTLOOP_CONFIG``
    5. The explicit ``path`` argument
    6. Individual ``AGENTLOOP_*`` setting variables (see ``ENV_SETTINGS``)
    7. Programmatic ``overrides``
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from agentloop.core.errors import ConfigError

from .schema import AgentLoopConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "AGENTLOOP_CONFIG"

# Environment variable -> config key path. Values are strings; pydantic
# coerces them to the field type.
ENV_SETTINGS: dict[str, tuple[str, ...]] = {
    "AGENTLOOP_MAX_TURNS": ("agent", "max_turns"),
    "AGENTLOOP_SYSTEM_PROMPT": ("agent", "system_prompt"),
    "AGENTLOOP_LLM_TIMEOUT": ("llm", "timeout"),
    "AGENTLOOP_MAX_RETRIES": ("llm", "retry", "max_retries"),
    "AGENTLOOP_TOOL_TIMEOUT": ("tools", "timeout"),
    "AGENTLOOP_LOG_LEVEL": ("logging", "level"),
}


def _user_config_path() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "agentloop" / "config.toml"


def config_sources(path: str | Path | None = None) -> list[Path]:
    """Return the config files that would be merged, lowest priority first.

    Raises:
        ConfigError: If ``$AGENTLOOP_CONFIG`` or ``path`` names a missing file.
    """
    sources = [p for p in (_user_config_path(), Path.cwd() / "agentloop.toml") if p.is_file()]

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        if not Path(env_path).is_file():
            msg = f"{CONFIG_ENV_VAR} points to non-existent file: {env_path}"
            raise ConfigError(msg)
        sources.append(Path(env_path))

    if path is not None:
        if not Path(path).is_file():
            msg = f"Config file not found: {path}"
            raise ConfigError(msg)
        sources.append(Path(path))

    return sources


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


def _env_settings() -> dict[str, Any]:
    """Collect ``AGENTLOOP_*`` setting variables into a nested dict."""
    data: dict[str, Any] = {}
    for var, keys in ENV_SETTINGS.items():
        value = os.environ.get(var)
        if value is None or value == "":
            continue
        node = data
        for key in keys[:-1]:
            node = node.setdefault(key, {})
        node[keys[-1]] = value
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override wins on conflicts."""
    merged = base.copy()
    for key, value in override.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> AgentLoopConfig:
    """Load and validate configuration.

    Args:
        path: Explicit config file, merged after every discovered file.
        overrides: Nested dict merged last.

    Raises:
        ConfigError: On a missing explicit file, invalid TOML, or a
            value that fails validation.
    """
    merged: dict[str, Any] = {}
    for source in config_sources(path):
        logger.debug("Loading config from %s", source)
        merged = _deep_merge(merged, _read_toml(source))

    merged = _deep_merge(merged, _env_settings())
    if overrides:
        merged = _deep_merge(merged, overrides)

    try:
        return AgentLoopConfig.model_validate(merged)
    except ValidationError as e:
        msg = f"Configuration validation failed: {e}"
        raise ConfigError(msg) from e
