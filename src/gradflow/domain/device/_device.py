"""
Device descriptors.

This module defines the device tag carried by every `Storage` and
`TensorImpl`:

- `DeviceType`: an enumeration of device categories
- `Device`: a validated, hashable descriptor built from strings such as
  "cpu" or "cuda:0"

Only CPU storage can actually be allocated. CUDA descriptors exist so that
device tags round-trip and so that non-CPU requests fail with a precise
`DeviceNotSupportedError` instead of a parse error.
"""

from __future__ import annotations

from enum import Enum
from typing import Union
import re


class DeviceType(Enum):
    """
    Enumeration of device categories.

    Attributes
    ----------
    CPU : DeviceType
        Central Processing Unit.
    CUDA : DeviceType
        CUDA-enabled GPU.
    """

    CPU = "cpu"
    CUDA = "cuda"


class Device:
    """
    Computation device descriptor.

    Parameters
    ----------
    device : str
        Device identifier string. Must be either:
        - "cpu"
        - "cuda:<index>", where <index> is a non-negative integer

    Raises
    ------
    ValueError
        If the provided device string does not match the supported formats.
    """

    __slots__ = ("type", "index")

    _CUDA_PATTERN = re.compile(r"^cuda:(\d+)$")

    def __init__(self, device: str = "cpu"):
        if device == "cpu":
            self.type = DeviceType.CPU
            self.index = None
        else:
            m = self._CUDA_PATTERN.match(device)
            if not m:
                raise ValueError(
                    f"Invalid device '{device}'. Expected 'cpu' or 'cuda:<index>'"
                )
            self.type = DeviceType.CUDA
            self.index = int(m.group(1))

    @classmethod
    def parse(cls, device: Union["Device", str, None]) -> "Device":
        """
        Normalize a device-like argument into a `Device`.

        Parameters
        ----------
        device : Device | str | None
            An existing descriptor (returned unchanged), a device string, or
            None (meaning CPU).
        """
        if device is None:
            return cls("cpu")
        if isinstance(device, Device):
            return device
        if isinstance(device, str):
            return cls(device)
        raise TypeError(f"device must be a Device or str, got {type(device)!r}")

    def __str__(self) -> str:
        return "cpu" if self.type is DeviceType.CPU else f"cuda:{self.index}"

    def __repr__(self) -> str:
        return f"Device('{self}')"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Device):
            return NotImplemented
        return (self.type, self.index) == (other.type, other.index)

    def __hash__(self) -> int:
        return hash((self.type, self.index))

    def is_cpu(self) -> bool:
        """
        Return True if this descriptor names the CPU.
        """
        return self.type is DeviceType.CPU

    def is_cuda(self) -> bool:
        """
        Return True if this descriptor names a CUDA GPU.
        """
        return self.type is DeviceType.CUDA
