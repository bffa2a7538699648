"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < env vars
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from .models import SyncLoopConfig

logger = logging.getLogger(__name__)

# Global cache to avoid reloading config multiple times per process
_config_cache: SyncLoopConfig | None = None

# Env var name -> (section, key, type). None section means top-level key.
_ENV_OVERRIDES: dict[str, tuple[str | None, str, type]] = {
    "SYNCLOOP_MAX_SYNC_FAILURE_COUNT": ("system", "max_sync_failure_count", int),
    "SYNCLOOP_DEFAULT_SCHEDULE_MINS": ("system", "default_schedule_mins", int),
    "SYNCLOOP_SYNC_INTERVAL_SECS": ("system", "sync_interval_secs", int),
    "SYNCLOOP_GIT_TIMEOUT_SECS": ("git", "timeout_secs", int),
    "SYNCLOOP_DEFAULT_GIT_AUTH": ("security", "default_git_auth", str),
    "SYNCLOOP_DB_PATH": ("metadata", "db_path", str),
    "SYNCLOOP_ENGINE": (None, "engine", str),
}


def get_xdg_config_home() -> Path:
    """
    Get XDG config home directory.

    Returns:
        Path to config directory (defaults to ~/.config)
    """
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_user_config_path() -> Path:
    """
    Get path to user configuration file.

    Returns:
        Path to ~/.config/syncloop/config.json (or XDG equivalent)
    """
    return get_xdg_config_home() / "syncloop" / "config.json"


def get_project_config_path(cwd: Path | None = None) -> Path:
    """
    Get path to project configuration file.

    Args:
        cwd: Working directory to search from (defaults to current directory)

    Returns:
        Path to syncloop.json in the working directory
    """
    if cwd is None:
        cwd = Path.cwd()
    return cwd / "syncloop.json"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence over values in `base`.
    This is a recursive merge - nested dicts are merged, not replaced.

    Args:
        base: Base dictionary (lower priority)
        override: Override dictionary (higher priority)

    Returns:
        Merged dictionary with override values taking precedence

    Example:
        >>> base = {"a": 1, "b": {"x": 10, "y": 20}}
        >>> override = {"b": {"y": 30, "z": 40}, "c": 3}
        >>> deep_merge(base, override)
        {"a": 1, "b": {"x": 10, "y": 30, "z": 40}, "c": 3}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Load a JSON file, returning None if it doesn't exist or is invalid.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON as dict, or None if file doesn't exist or can't be parsed
    """
    if not path.exists():
        return None

    try:
        with path.open() as f:
            data = json.load(f)
            if isinstance(data, dict):
                return data
            return None
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Env vars have the highest precedence and override all config files.

    Supported env vars:
        SYNCLOOP_MAX_SYNC_FAILURE_COUNT - overrides system.max_sync_failure_count
        SYNCLOOP_DEFAULT_SCHEDULE_MINS - overrides system.default_schedule_mins
        SYNCLOOP_SYNC_INTERVAL_SECS - overrides system.sync_interval_secs
        SYNCLOOP_GIT_TIMEOUT_SECS - overrides git.timeout_secs
        SYNCLOOP_DEFAULT_GIT_AUTH - overrides security.default_git_auth
        SYNCLOOP_DB_PATH - overrides metadata.db_path
        SYNCLOOP_ENGINE - overrides engine

    Args:
        config_dict: Configuration dictionary to override

    Returns:
        Configuration dictionary with env var overrides applied
    """
    result = config_dict.copy()

    for env_name, (section, key, value_type) in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if not raw:
            continue

        value: Any = raw
        if value_type is int:
            try:
                value = int(raw)
            except ValueError:
                logger.warning("Invalid %s value '%s', ignoring", env_name, raw)
                continue
            if value < 1:
                logger.warning("%s must be >= 1, got %d, ignoring", env_name, value)
                continue

        if section is None:
            result[key] = value
        else:
            result[section] = {**result.get(section, {}), key: value}

    return result


def get_default_config() -> dict[str, Any]:
    """
    Get hardcoded default configuration.

    Returns:
        Dictionary with default configuration values
    """
    return {
        "system": {
            "default_schedule_mins": 15,
            "max_sync_failure_count": 5,
            "sync_interval_secs": 60,
        },
        "security": {"default_git_auth": ""},
    }


def load_config(project_dir: Path | None = None, use_cache: bool = True) -> SyncLoopConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Environment variables (SYNCLOOP_*)
        2. Project config (syncloop.json)
        3. User config (~/.config/syncloop/config.json)
        4. Hardcoded defaults

    Args:
        project_dir: Project directory to load syncloop.json from (defaults to cwd)
        use_cache: If True, return cached config from previous load

    Returns:
        Validated SyncLoopConfig instance

    Raises:
        ValidationError: If the merged config fails Pydantic validation
    """
    global _config_cache

    if use_cache and _config_cache is not None:
        return _config_cache

    merged = get_default_config()

    if user_config := load_json_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)

    if project_config := load_json_file(get_project_config_path(project_dir)):
        merged = deep_merge(merged, project_config)

    merged = apply_env_overrides(merged)

    config = SyncLoopConfig(**merged)
    _config_cache = config
    return config


def clear_cache() -> None:
    """
    Clear the cached configuration.

    Useful for testing or when config files change during execution.
    """
    global _config_cache
    _config_cache = None
