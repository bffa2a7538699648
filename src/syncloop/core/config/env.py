"""
Layered .env loading.

Secrets referenced by auth profiles (tokens, key passphrases) are usually
kept out of config.json and supplied through the environment. Three .env
files can supply them, lowest precedence first:

- ``$SYNCLOOP_HOME/.env`` (the server's home, next to metadata.db)
- ``$XDG_CONFIG_HOME/syncloop/.env`` (per-user)
- ``./.env`` (project)

A later file overrides an earlier one, and none of them override a variable
that was already present in the process environment.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

from dotenv import dotenv_values

from .loader import get_xdg_config_home
from .models import get_syncloop_home

logger = logging.getLogger(__name__)


def read_env_file(path: Path) -> dict[str, str]:
    """
    Read one .env file, skipping keys declared without a value.

    Returns an empty dict when the file does not exist.
    """
    if not path.is_file():
        return {}
    return {key: value for key, value in dotenv_values(path).items() if value is not None}


def default_env_layers(project_dir: Path | None = None) -> list[Path]:
    """The .env files consulted by default, lowest precedence first."""
    return [
        get_syncloop_home() / ".env",
        get_xdg_config_home() / "syncloop" / ".env",
        (project_dir or Path.cwd()) / ".env",
    ]


def load_layered_env(
    *,
    project_dir: Path | None = None,
    home_env_paths: Iterable[Path] | None = None,
    user_env_paths: Iterable[Path] | None = None,
    project_env_paths: Iterable[Path] | None = None,
) -> list[str]:
    """
    Merge the .env layers into os.environ.

    Args:
        project_dir: Base directory for the project layer (defaults to cwd)
        home_env_paths: Override the SYNCLOOP_HOME layer
        user_env_paths: Override the user layer
        project_env_paths: Override the project layer

    Returns:
        Sorted names of the variables that were set
    """
    home_layer, user_layer, project_layer = default_env_layers(project_dir)
    layers = [
        *(home_env_paths if home_env_paths is not None else [home_layer]),
        *(user_env_paths if user_env_paths is not None else [user_layer]),
        *(project_env_paths if project_env_paths is not None else [project_layer]),
    ]

    merged: dict[str, str] = {}
    for path in layers:
        values = read_env_file(Path(path))
        if values:
            logger.debug("Read %d variables from %s", len(values), path)
        merged.update(values)

    # Snapshot before applying so one layer never shadows the shell
    preset = set(os.environ)
    applied = sorted(key for key in merged if key not in preset)
    for key in applied:
        os.environ[key] = merged[key]

    if applied:
        logger.debug("Loaded from .env files: %s", ", ".join(applied))
    return applied
