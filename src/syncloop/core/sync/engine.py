"""
Loading the apply/reload engine named in configuration.

The ``engine`` setting is an import path of the form ``module:attribute``.
The attribute is either an engine object or a factory that takes the
configuration and returns one. The engine must implement both apply() and
reload_app(); if it also implements complete_transaction() it is used as the
transaction completer.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any

from syncloop.core.apps.engines import ApplyEngine, ReloadEngine, TransactionCompleter
from syncloop.core.config.models import SyncLoopConfig
from syncloop.core.store import MetadataStore
from syncloop.core.sync.service import SyncError, SyncService

logger = logging.getLogger(__name__)


class EngineLoadError(SyncError):
    """Raised when the configured engine cannot be imported or is unusable."""

    pass


def load_engine(import_path: str, config: SyncLoopConfig) -> Any:
    """
    Import and build the engine named by ``module:attribute``.

    Raises:
        EngineLoadError: If the path is malformed, the import fails, or the
            result does not implement apply() and reload_app()
    """
    module_name, sep, attr = import_path.partition(":")
    if not sep or not module_name or not attr:
        raise EngineLoadError(
            f"invalid engine path {import_path!r}, expected module:attribute"
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise EngineLoadError(f"cannot import engine module {module_name!r}: {e}") from e

    try:
        target = getattr(module, attr)
    except AttributeError as e:
        raise EngineLoadError(f"module {module_name!r} has no attribute {attr!r}") from e

    engine = target
    # Classes satisfy the protocol checks through their methods, so call them too
    if isinstance(target, type) or (
        callable(target) and not isinstance(target, (ApplyEngine, ReloadEngine))
    ):
        engine = target(config)

    if not isinstance(engine, ApplyEngine) or not isinstance(engine, ReloadEngine):
        raise EngineLoadError(
            f"engine {import_path!r} must implement apply() and reload_app()"
        )

    logger.debug("Loaded engine %s", import_path)
    return engine


def build_sync_service(
    config: SyncLoopConfig,
    store: MetadataStore | None = None,
    require_engine: bool = True,
) -> SyncService:
    """
    Build a SyncService from configuration.

    Args:
        config: Loaded configuration
        store: Metadata store (opened from config when None)
        require_engine: Fail when no engine is configured; otherwise the
            service can only list, show and delete entries

    Raises:
        EngineLoadError: If the engine is required but not configured, or
            cannot be loaded
    """
    engine: Any = None
    if config.engine:
        engine = load_engine(config.engine, config)
    elif require_engine:
        raise EngineLoadError("no engine configured")

    completer = engine if isinstance(engine, TransactionCompleter) else None
    return SyncService(
        store or MetadataStore.from_config(config),
        engine,
        engine,
        config=config,
        completer=completer,
    )
