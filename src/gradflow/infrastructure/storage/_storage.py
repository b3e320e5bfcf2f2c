"""
Reference-counted raw byte storage.

This module defines `Storage`, the byte buffer shared by every `TensorImpl`
that views the same data, and `resize_bytes`, the only path through which a
storage's buffer is replaced.

Core Concepts
-------------
- **Shared ownership**:
    A storage is shared by reference between tensor views. `incref()` /
    `decref()` track how many `TensorImpl` objects currently hold it; the
    Python object itself lives as long as the longest-surviving holder.

- **Resizing**:
    `resize_bytes` allocates a new buffer through the storage's allocator,
    forward-copies `min(old_nbytes, new_nbytes)` bytes, and leaves newly
    exposed bytes uninitialized. Resizing a storage created with
    `resizable=False` raises `NonResizableStorageError`.

- **Invariant**:
    `nbytes` always equals the size of the last successful allocation.

Thread Safety
-------------
Reference count updates and buffer replacement are protected by an internal
lock. Concurrent in-place mutation of the same bytes is not supported; the
owning tensor's exclusive-mutation discipline guards that.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional
import logging
import threading

import numpy as np

from ...domain.device._device import Device
from ...domain._errors import NonResizableStorageError
from ._allocator import Allocator, get_allocator

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Storage:
    """
    Reference-counted wrapper around one raw byte buffer.

    Attributes
    ----------
    nbytes : int
        Size of the current allocation in bytes.
    allocator : Allocator
        Allocator used for the initial allocation and for every resize.
    device : Device
        Device tag of the buffer.
    resizable : bool
        Whether `resize_bytes` may replace the buffer.
    data : np.ndarray
        Flat `uint8` buffer of length `nbytes`.

    Notes
    -----
    Equality is identity: two storages are "the same" only if they are the
    same object, which is what aliasing checks need.
    """

    nbytes: int
    allocator: Optional[Allocator] = None
    device: Device = field(default_factory=lambda: Device("cpu"))
    resizable: bool = True
    data: Optional[np.ndarray] = None

    _refcnt: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        self.nbytes = int(self.nbytes)
        if self.allocator is None:
            self.allocator = get_allocator(self.device)
        if self.data is None:
            self.data = self.allocator.allocate(self.nbytes)
        elif int(self.data.nbytes) != self.nbytes:
            raise ValueError(
                f"buffer size {self.data.nbytes} does not match nbytes={self.nbytes}"
            )

    @classmethod
    def from_buffer(
        cls, buffer: np.ndarray, *, resizable: bool = True, device: Optional[Device] = None
    ) -> "Storage":
        """
        Wrap an existing NumPy array's bytes as a storage (copying them).
        """
        raw = np.ascontiguousarray(buffer).reshape(-1).view(np.uint8).copy()
        return cls(
            nbytes=int(raw.nbytes),
            device=device or Device("cpu"),
            resizable=resizable,
            data=raw,
        )

    @property
    def use_count(self) -> int:
        """Number of tensor implementations currently holding this storage."""
        return self._refcnt

    def incref(self) -> None:
        """
        Record one more holder of this storage.
        """
        with self._lock:
            self._refcnt += 1

    def decref(self) -> None:
        """
        Record that one holder released this storage.

        When the count reaches zero the buffer is dropped; the storage object
        must not be reused after that.
        """
        with self._lock:
            self._refcnt -= 1
            if self._refcnt == 0:
                self.data = self.allocator.allocate(0)
                self.nbytes = 0

    def set_data(self, data: np.ndarray, nbytes: int) -> np.ndarray:
        """
        Replace the buffer and return the previous one.
        """
        with self._lock:
            old = self.data
            self.data = data
            self.nbytes = int(nbytes)
            return old

    def __repr__(self) -> str:
        return (
            f"Storage(nbytes={self.nbytes}, device={self.device}, "
            f"resizable={self.resizable}, use_count={self._refcnt})"
        )


def resize_bytes(storage: Storage, size_bytes: int) -> None:
    """
    Reallocate `storage` to exactly `size_bytes` bytes.

    The first `min(old_nbytes, size_bytes)` bytes are preserved through a
    forward copy; any newly exposed bytes are left uninitialized.

    Parameters
    ----------
    storage : Storage
        Storage to resize.
    size_bytes : int
        Requested size in bytes.

    Raises
    ------
    NonResizableStorageError
        If `storage.resizable` is False.
    """
    size_bytes = int(size_bytes)
    if not storage.resizable:
        raise NonResizableStorageError(nbytes=storage.nbytes, requested=size_bytes)

    new_data = storage.allocator.allocate(size_bytes)
    old_capacity = storage.nbytes
    old_data = storage.set_data(new_data, size_bytes)

    copy_capacity = min(old_capacity, size_bytes)
    if old_data is not None and copy_capacity > 0:
        storage.allocator.copy_bytes(new_data, old_data, copy_capacity)

    logger.debug(
        "resized storage %#x from %d to %d bytes (copied %d)",
        id(storage),
        old_capacity,
        size_bytes,
        copy_capacity,
    )
