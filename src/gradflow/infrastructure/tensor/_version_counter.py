"""
Shared version counter for in-place mutation tracking.

Every `TensorImpl` holds a `VersionCounter`. Views created from the same
data (detach, transpose, saved tensors) share one counter, so an in-place
write through any of them is visible to all. Tensors saved for backward
record the counter's value at save time and compare it when unpacked.

Holders are tracked through a weak set, which makes `unique()` an explicit
liveness query ("is exactly one live implementation holding me?") rather
than a reference-count heuristic.
"""

from __future__ import annotations

from typing import Any
import threading
import weakref


class VersionCounter:
    """
    Monotonic counter shared by all views of the same data.

    Parameters
    ----------
    version : int, optional
        Initial value. Defaults to 0.
    """

    __slots__ = ("_version", "_holders", "_lock", "__weakref__")

    def __init__(self, version: int = 0) -> None:
        self._version = int(version)
        self._holders: "weakref.WeakSet[Any]" = weakref.WeakSet()
        self._lock = threading.Lock()

    @property
    def current_version(self) -> int:
        return self._version

    def bump(self) -> int:
        """
        Increment the counter and return the new value.
        """
        with self._lock:
            self._version += 1
            return self._version

    def attach(self, holder: Any) -> None:
        """Register `holder` as a live user of this counter."""
        self._holders.add(holder)

    def detach(self, holder: Any) -> None:
        """Forget `holder`; a no-op if it was never attached."""
        self._holders.discard(holder)

    def use_count(self) -> int:
        return len(self._holders)

    def unique(self) -> bool:
        """
        Return True iff exactly one live implementation holds this counter.
        """
        return len(self._holders) == 1

    def __repr__(self) -> str:
        return f"VersionCounter(version={self._version}, holders={len(self._holders)})"
