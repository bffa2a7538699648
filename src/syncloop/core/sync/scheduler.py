"""
Scheduler loop for scheduled sync entries.

Every tick loads all entries and runs the ones that are due, one after the
other, sharing a single repository cache for the tick. A failing entry never
stops the tick; failing to list entries stops the loop for good.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta

from syncloop.core.store import SyncEntry
from syncloop.core.sync.service import SyncService

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Periodic driver for scheduled sync entries.

    Example:
        >>> scheduler = SyncScheduler(service)
        >>> scheduler.start()
        >>> ...
        >>> scheduler.stop()
    """

    def __init__(self, service: SyncService, interval_secs: float | None = None) -> None:
        self.service = service
        self.interval_secs = (
            interval_secs
            if interval_secs is not None
            else service.config.system.sync_interval_secs
        )
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def should_run(self, entry: SyncEntry, now: datetime) -> bool:
        """
        Check whether an entry is due in this tick.

        Only the failure count gates scheduling; the state field is advisory.
        """
        frequency = entry.metadata.schedule_frequency
        if not entry.is_scheduled or frequency <= 0:
            return False

        last_run = entry.status.last_execution_time
        if last_run is not None and last_run + timedelta(minutes=frequency) > now:
            logger.debug("Sync job %s not ready to run", entry.id)
            return False

        if entry.status.failure_count >= self.service.max_failure_count:
            logger.debug("Sync job %s has failed too many times, skipping", entry.id)
            return False

        return True

    def run_tick(self) -> list[str]:
        """
        Run all due entries once.

        Returns:
            Ids of the entries that were run

        Raises:
            StoreError: If the entries cannot be listed
        """
        ran: list[str] = []
        store = self.service.store
        with store.transaction() as tx:
            repo_cache = self.service.new_repo_cache()
            try:
                entries = store.get_sync_entries(tx)
                now = self.service.clock()
                for entry in entries:
                    if not self.should_run(entry, now):
                        continue
                    ran.append(entry.id)
                    try:
                        # No caller transaction: each entry commits or rolls back on its own
                        self.service.run_sync_job(
                            entry,
                            dry_run=False,
                            check_commit_hash=True,
                            repo_cache=repo_cache,
                        )
                    except Exception as e:
                        logger.error("Error running sync job %s: %s", entry.id, e)
            finally:
                repo_cache.cleanup()
        return ran

    def run_forever(self) -> None:
        """Tick every interval until stopped or until a tick fails."""
        logger.info("Starting sync runner loop, interval %ss", self.interval_secs)
        while not self._stop_event.wait(self.interval_secs):
            try:
                self.run_tick()
            except Exception:
                logger.exception("Error running sync, stopping sync runner")
                break
        logger.warning("Sync runner stopped")

    def start(self) -> None:
        """Run the loop in a background daemon thread."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run_forever, name="syncloop-scheduler", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Signal the loop to stop and wait for the current tick to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
