"""
Tests for the clone admission gate.
"""

import threading

import pytest

from syncloop.core.repo_cache import CloneGate, CloneSlotTimeoutError, get_shared_gate
from syncloop.core.repo_cache.gate import reset_shared_gate


class TestCloneGate:
    """Test slot acquisition and timeouts."""

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            CloneGate(max_concurrent=0, wait_secs=1)

    def test_slot_released_after_block(self):
        gate = CloneGate(max_concurrent=1, wait_secs=0.1)
        with gate.slot("a"):
            pass
        with gate.slot("b"):
            pass

    def test_slot_released_on_error(self):
        gate = CloneGate(max_concurrent=1, wait_secs=0.1)
        with pytest.raises(RuntimeError):
            with gate.slot("a"):
                raise RuntimeError("clone failed")
        with gate.slot("b"):
            pass

    def test_times_out_when_full(self):
        gate = CloneGate(max_concurrent=1, wait_secs=0.05)
        with gate.slot("a"):
            with pytest.raises(CloneSlotTimeoutError) as exc_info:
                with gate.slot("https://github.com/acme/apps"):
                    pass
        assert exc_info.value.repo_url == "https://github.com/acme/apps"

    def test_bounds_concurrency(self):
        gate = CloneGate(max_concurrent=2, wait_secs=5)
        lock = threading.Lock()
        running = 0
        peak = 0
        release = threading.Event()

        def worker():
            nonlocal running, peak
            with gate.slot():
                with lock:
                    running += 1
                    peak = max(peak, running)
                release.wait(0.2)
                with lock:
                    running -= 1

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert peak <= 2


class TestSharedGate:
    """Test the process-wide gate."""

    def test_first_caller_wins(self):
        reset_shared_gate()
        first = get_shared_gate(3, 10)
        second = get_shared_gate(8, 1)

        assert first is second
        assert second.max_concurrent == 3
