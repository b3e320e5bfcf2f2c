"""
Element type, layout, and memory-format descriptors.

This module defines the backend-agnostic vocabulary used by tensor metadata:

- `ScalarType`: the closed set of supported element types
- `TypeMeta`: an element descriptor (size in bytes + type tag) carried by
  every `TensorImpl`
- `Layout`: the tensor layout family (only strided tensors exist)
- `MemoryFormat`: the stride layout requested from `resize_` / restride

No NumPy import happens here; the infrastructure layer maps `ScalarType`
to concrete `numpy.dtype` objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class ScalarType(Enum):
    """
    Supported element types, keyed by a canonical name.

    Each member's value is ``(name, itemsize, is_floating_point)``.
    """

    FLOAT32 = ("float32", 4, True)
    FLOAT64 = ("float64", 8, True)
    INT32 = ("int32", 4, False)
    INT64 = ("int64", 8, False)
    BOOL = ("bool", 1, False)

    @property
    def type_name(self) -> str:
        return self.value[0]

    @property
    def itemsize(self) -> int:
        return self.value[1]

    @property
    def is_floating_point(self) -> bool:
        return self.value[2]

    @classmethod
    def from_name(cls, name: str) -> "ScalarType":
        """
        Look up a scalar type by its canonical name (e.g. "float32").

        Raises
        ------
        ValueError
            If `name` does not name a supported scalar type.
        """
        for member in cls:
            if member.type_name == name:
                return member
        raise ValueError(f"Unsupported scalar type name: {name!r}")


@dataclass(frozen=True)
class TypeMeta:
    """
    Element type descriptor.

    Attributes
    ----------
    scalar_type : ScalarType
        Type tag of the element.
    """

    scalar_type: ScalarType

    @classmethod
    def make(cls, dtype: Union["TypeMeta", ScalarType, str]) -> "TypeMeta":
        """
        Normalize a dtype-like argument into a `TypeMeta`.
        """
        if isinstance(dtype, TypeMeta):
            return dtype
        if isinstance(dtype, ScalarType):
            return cls(dtype)
        if isinstance(dtype, str):
            return cls(ScalarType.from_name(dtype))
        raise TypeError(f"Unsupported dtype descriptor: {dtype!r}")

    @property
    def itemsize(self) -> int:
        """Size of one element in bytes."""
        return self.scalar_type.itemsize

    @property
    def name(self) -> str:
        return self.scalar_type.type_name

    @property
    def is_floating_point(self) -> bool:
        return self.scalar_type.is_floating_point

    def __str__(self) -> str:
        return self.name


class Layout(Enum):
    """Tensor layout family. Sparse layouts are not modelled."""

    STRIDED = "strided"


class MemoryFormat(Enum):
    """
    Stride layouts understood by restride/resize.

    Only `CONTIGUOUS` (row-major) is fully specified. The channels-last
    formats and `PRESERVE` keep the current strides and only refresh the
    cached contiguity flags.
    """

    CONTIGUOUS = "contiguous"
    PRESERVE = "preserve"
    CHANNELS_LAST = "channels_last"
    CHANNELS_LAST_3D = "channels_last_3d"


_DEFAULT_DTYPE = TypeMeta(ScalarType.FLOAT32)


def get_default_dtype() -> TypeMeta:
    """
    Return the process default element type used by tensor factories.
    """
    return _DEFAULT_DTYPE


def set_default_dtype(dtype: Union[TypeMeta, ScalarType, str]) -> None:
    """
    Set the process default element type.

    Raises
    ------
    TypeError
        If `dtype` is not a floating-point type.
    """
    global _DEFAULT_DTYPE
    meta = TypeMeta.make(dtype)
    if not meta.is_floating_point:
        raise TypeError(f"default dtype must be floating point, got {meta}")
    _DEFAULT_DTYPE = meta
