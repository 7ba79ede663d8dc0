"""Background eviction of stale counter store entries.

The sweeper runs on its own daemon thread, driven by a timer rather than by
requests, so memory stays bounded by the identifiers seen within roughly one
window plus the grace period.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from gatekeeper.adapters.rate_limit.base import AbstractCounterStore

logger = logging.getLogger(__name__)


class EvictionSweeper:
    """Periodically calls ``store.sweep`` until stopped.

    Args:
        store: Store to sweep.
        store_provider: Called before each sweep to fetch the current store,
            for stores that may be replaced while the sweeper runs. Pass
            either this or ``store``.
        interval_seconds: Delay between sweeps.
        stale_after_ms: Grace period after a window ends before eviction.
        clock: Time source returning UNIX time in seconds.
    """

    def __init__(
        self,
        store: AbstractCounterStore | None = None,
        *,
        store_provider: Callable[[], AbstractCounterStore] | None = None,
        interval_seconds: float = 60.0,
        stale_after_ms: int = 60_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if (store is None) == (store_provider is None):
            raise ValueError("pass exactly one of store or store_provider")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        if stale_after_ms < 0:
            raise ValueError("stale_after_ms must be >= 0")

        self._store_provider = store_provider or (lambda: store)
        self._interval = interval_seconds
        self._stale_after_ms = stale_after_ms
        self._clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> int:
        """Run a single sweep and return the number of evicted entries."""

        now = int(self._clock() * 1000)
        evicted = self._store_provider().sweep(now, self._stale_after_ms)
        if evicted:
            logger.info(
                "eviction_sweeper.swept",
                extra={"evicted": evicted, "stale_after_ms": self._stale_after_ms},
            )
        return evicted

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self.run_once()
            except Exception as exc:  # keep the thread alive across store failures
                logger.warning(
                    "eviction_sweeper.failed",
                    extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
                )

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="eviction-sweeper", daemon=True)
        self._thread.start()
        logger.info(
            "eviction_sweeper.started",
            extra={"interval_s": self._interval, "stale_after_ms": self._stale_after_ms},
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("eviction_sweeper.stopped")
