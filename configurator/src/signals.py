from __future__ import annotations

import threading
import time


class ReadinessSignal:
    """One-shot "caches are warm" indicator.

    Closing is idempotent and guarded by a lock, so ``close()`` reports a
    transition to exactly one caller even when several race. Once closed the
    signal stays closed for the lifetime of the process.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._closed = False

    def close(self) -> bool:
        """Close the signal; return True only for the call that performed the transition."""
        with self._lock:
            if self._closed:
                return False
            self._closed = True
            self._event.set()
            return True

    def is_closed(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout=timeout)

    def wait_or_stop(
        self,
        stop: threading.Event,
        timeout: float | None = None,
        poll_interval: float = 0.1,
    ) -> bool:
        """Block until the signal closes, *stop* is set, or *timeout* elapses.

        Returns True only when the signal closed. Callers waiting on readiness
        should prefer this over :meth:`wait` because a failed initial sync
        never closes the signal.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if stop.is_set():
                return self._event.is_set()
            wait_for = poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return self._event.is_set()
                wait_for = min(poll_interval, remaining)
            if self._event.wait(timeout=wait_for):
                return True
