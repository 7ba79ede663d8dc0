"""Counter store interfaces.

The engine depends on this abstraction (not the concrete implementation)
so the storage backend can be swapped (in-memory, Redis) without touching
the decision algorithm.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class WindowState:
    """Per-key fixed window state.

    Attributes:
        count: Requests admitted in the current window.
        window_start: UNIX epoch milliseconds when the window began.
        window_ms: Window length the state was created with.
    """

    count: int
    window_start: int
    window_ms: int

    @property
    def window_end(self) -> int:
        return self.window_start + self.window_ms

    def is_expired(self, now: int) -> bool:
        return now >= self.window_end


@dataclass(frozen=True)
class IncrementResult:
    """Outcome of an atomic try-increment.

    Attributes:
        admitted: Whether a slot was consumed.
        state: Snapshot of the state after the operation.
    """

    admitted: bool
    state: WindowState


class AbstractCounterStore(ABC):
    """Interface for counter stores.

    Implementations must make ``try_increment`` linearizable per key:
    concurrent callers racing on the last slot must never both be admitted
    and no increment may be lost. Returned states are snapshots; mutating
    them never affects the store.

    Raises:
        StoreUnavailableError: From any operation when a remote backend
            cannot be reached.
    """

    @abstractmethod
    def get_or_init(self, key: str, now: int, window_ms: int) -> WindowState:
        """Return the state for ``key``, creating an empty window if absent."""
        raise NotImplementedError

    @abstractmethod
    def try_increment(
        self,
        key: str,
        now: int,
        max_requests: int,
        window_ms: int,
    ) -> IncrementResult:
        """Atomically start/continue a window and consume one slot if available.

        Args:
            key: Store key.
            now: Current UNIX epoch milliseconds.
            max_requests: Slots per window.
            window_ms: Window length in milliseconds.

        Returns:
            IncrementResult with the admission flag and resulting state.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove all state for ``key`` unconditionally."""
        raise NotImplementedError

    @abstractmethod
    def sweep(self, now: int, stale_after_ms: int) -> int:
        """Evict entries whose window ended more than ``stale_after_ms`` ago.

        Returns:
            Number of evicted entries.
        """
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry owned by this store."""
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources. Safe to call more than once."""

    def stats(self) -> dict[str, Any]:
        return {"backend": type(self).__name__}
