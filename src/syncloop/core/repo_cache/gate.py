"""
Clone admission gate.

Clones are the most expensive thing the repository cache does, so the number
running at once is bounded process-wide. A clone that cannot get a slot within
the configured wait fails instead of queueing forever.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from syncloop.core.repo_cache.errors import CloneSlotTimeoutError

logger = logging.getLogger(__name__)

_shared_gate: CloneGate | None = None
_shared_gate_lock = threading.Lock()


class CloneGate:
    """
    Fixed-capacity semaphore with a maximum wait.

    Example:
        >>> gate = CloneGate(max_concurrent=2, wait_secs=30)
        >>> with gate.slot("https://github.com/acme/apps"):
        ...     pass  # clone here
    """

    def __init__(self, max_concurrent: int, wait_secs: float) -> None:
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        self.max_concurrent = max_concurrent
        self.wait_secs = wait_secs
        self._semaphore = threading.BoundedSemaphore(max_concurrent)

    @contextmanager
    def slot(self, repo_url: str = "") -> Iterator[None]:
        """
        Hold one clone slot for the duration of the block.

        Raises:
            CloneSlotTimeoutError: If no slot frees up within wait_secs
        """
        if not self._semaphore.acquire(timeout=self.wait_secs):
            raise CloneSlotTimeoutError(
                f"timed out after {self.wait_secs}s waiting for a clone slot "
                f"({self.max_concurrent} clones already running)",
                repo_url=repo_url,
            )
        try:
            yield
        finally:
            self._semaphore.release()


def get_shared_gate(max_concurrent: int, wait_secs: float) -> CloneGate:
    """
    Get the process-wide clone gate, creating it on first use.

    The capacity of the first caller wins; later callers share that gate.
    """
    global _shared_gate
    with _shared_gate_lock:
        if _shared_gate is None:
            logger.debug("Creating clone gate with %d slots", max_concurrent)
            _shared_gate = CloneGate(max_concurrent, wait_secs)
        return _shared_gate


def reset_shared_gate() -> None:
    """Drop the process-wide gate (tests)."""
    global _shared_gate
    with _shared_gate_lock:
        _shared_gate = None
