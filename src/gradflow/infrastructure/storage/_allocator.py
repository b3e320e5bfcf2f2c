"""
Host memory allocator.

This module defines the allocator contract consumed by `Storage` and the
CPU implementation backing every tensor buffer. Buffers are flat
`numpy.uint8` arrays, so a storage is literally "N raw bytes" and typed
views are produced on demand by reinterpreting those bytes.

Contract
--------
- `allocate(nbytes)` returns a fresh, uninitialized buffer of exactly
  `nbytes` bytes (an empty buffer when `nbytes == 0`).
- `copy_bytes(dst, src, n)` forward-copies the first `n` bytes of `src`
  into `dst`.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np

from ...domain.device._device import Device
from ...domain._errors import DeviceNotSupportedError


@runtime_checkable
class Allocator(Protocol):
    """
    Duck-typed allocator contract.
    """

    @property
    def device(self) -> Device: ...

    def allocate(self, nbytes: int) -> np.ndarray: ...

    def copy_bytes(self, dst: np.ndarray, src: np.ndarray, nbytes: int) -> None: ...


class CPUAllocator:
    """
    Allocator for host memory backed by NumPy byte arrays.

    Notes
    -----
    `np.empty` leaves contents uninitialized, matching the storage contract
    that newly exposed bytes after a resize carry no defined value.
    """

    _device = Device("cpu")

    @property
    def device(self) -> Device:
        return self._device

    def allocate(self, nbytes: int) -> np.ndarray:
        """
        Allocate `nbytes` uninitialized bytes.

        Raises
        ------
        ValueError
            If `nbytes` is negative.
        """
        nbytes = int(nbytes)
        if nbytes < 0:
            raise ValueError(f"cannot allocate a negative number of bytes: {nbytes}")
        return np.empty(nbytes, dtype=np.uint8)

    def copy_bytes(self, dst: np.ndarray, src: np.ndarray, nbytes: int) -> None:
        """
        Copy the first `nbytes` bytes of `src` into `dst`.
        """
        if nbytes <= 0:
            return
        dst[:nbytes] = src[:nbytes]


_CPU_ALLOCATOR = CPUAllocator()


def get_allocator(device: Device) -> Allocator:
    """
    Return the allocator registered for `device`.

    Raises
    ------
    DeviceNotSupportedError
        If `device` is not the CPU.
    """
    if device.is_cpu():
        return _CPU_ALLOCATOR
    raise DeviceNotSupportedError(op="allocate", device=str(device))
