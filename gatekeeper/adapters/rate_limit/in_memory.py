"""In-memory fixed-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: a single lock guards the state map; every operation under it
  is O(1) except the sweep snapshot copy.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Any

from gatekeeper.adapters.rate_limit.base import (
    AbstractCounterStore,
    IncrementResult,
    WindowState,
)

logger = logging.getLogger(__name__)


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store keeping window state in a process-local dict.

    Important:
        This store is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits. Use the Redis store for shared limits.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state_by_key: dict[str, WindowState] = {}
        self._evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._state_by_key)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryCounterStore(entries={len(self._state_by_key)}, evictions={self._evictions})"

    def _start_window_locked(self, key: str, now: int, window_ms: int, count: int) -> WindowState:
        state = WindowState(count=count, window_start=now, window_ms=window_ms)
        self._state_by_key[key] = state
        return state

    def get_or_init(self, key: str, now: int, window_ms: int) -> WindowState:
        with self._lock:
            state = self._state_by_key.get(key)
            if state is None:
                state = self._start_window_locked(key, now, window_ms, count=0)
            return replace(state)

    def try_increment(
        self,
        key: str,
        now: int,
        max_requests: int,
        window_ms: int,
    ) -> IncrementResult:
        with self._lock:
            state = self._state_by_key.get(key)

            # Window length is taken from the caller, not the stored state,
            # so a policy change applies from the next check.
            if state is None or now >= state.window_start + window_ms:
                state = self._start_window_locked(key, now, window_ms, count=1)
                return IncrementResult(admitted=True, state=replace(state))

            # Keep the stored length in step so sweep sees the same window end.
            state.window_ms = window_ms

            if state.count < max_requests:
                state.count += 1
                return IncrementResult(admitted=True, state=replace(state))

            return IncrementResult(admitted=False, state=replace(state))

    def delete(self, key: str) -> None:
        with self._lock:
            self._state_by_key.pop(key, None)

    def sweep(self, now: int, stale_after_ms: int) -> int:
        """Evict stale entries without holding the lock for the whole scan.

        The map is snapshotted under the lock, then each candidate is
        re-checked and removed under the lock individually, so concurrent
        increments interleave with the sweep. A key that started a new
        window after the snapshot is no longer stale and is kept.
        """

        with self._lock:
            snapshot = list(self._state_by_key.items())

        evicted = 0
        for key, candidate in snapshot:
            if now - candidate.window_end <= stale_after_ms:
                continue
            with self._lock:
                current = self._state_by_key.get(key)
                if current is None or now - current.window_end <= stale_after_ms:
                    continue
                del self._state_by_key[key]
                self._evictions += 1
                evicted += 1

        logger.debug(
            "counter_store.sweep",
            extra={
                "evicted": evicted,
                "scanned": len(snapshot),
                "stale_after_ms": stale_after_ms,
            },
        )
        return evicted

    def clear(self) -> None:
        """Remove all entries and reset counters."""

        with self._lock:
            self._state_by_key.clear()
            self._evictions = 0

    def close(self) -> None:
        self.clear()

    def stats(self) -> dict[str, Any]:
        """Return lightweight store metrics without exposing keys."""

        with self._lock:
            return {
                "backend": "memory",
                "entries": len(self._state_by_key),
                "evictions": self._evictions,
            }
