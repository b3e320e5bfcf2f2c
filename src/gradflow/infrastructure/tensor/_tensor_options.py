"""
Tensor construction options.

`TensorOptions` bundles the optional construction parameters accepted by
every tensor factory. Each field may be left unset; unset fields fall back
to the process defaults (default dtype, CPU, strided layout, contiguous
memory format, no grad).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Union
from typing_extensions import Self

from ...domain.device._device import Device
from ...domain._dtype import (
    Layout,
    MemoryFormat,
    ScalarType,
    TypeMeta,
    get_default_dtype,
)


@dataclass(frozen=True)
class TensorOptions:
    """
    Immutable set of optional tensor construction parameters.

    Attributes
    ----------
    dtype : Optional[TypeMeta]
        Element type, or None for the process default.
    device : Optional[Device]
        Target device, or None for CPU.
    layout : Optional[Layout]
        Tensor layout, or None for strided.
    memory_format : Optional[MemoryFormat]
        Stride layout, or None for contiguous.
    requires_grad : Optional[bool]
        Whether the created tensor is a differentiable leaf, or None for False.
    """

    dtype: Optional[TypeMeta] = None
    device: Optional[Device] = None
    layout: Optional[Layout] = None
    memory_format: Optional[MemoryFormat] = None
    requires_grad: Optional[bool] = None

    def __post_init__(self) -> None:
        if self.dtype is not None and not isinstance(self.dtype, TypeMeta):
            object.__setattr__(self, "dtype", TypeMeta.make(self.dtype))
        if self.device is not None and not isinstance(self.device, Device):
            object.__setattr__(self, "device", Device.parse(self.device))

    @property
    def has_dtype(self) -> bool:
        return self.dtype is not None

    @property
    def has_device(self) -> bool:
        return self.device is not None

    @property
    def has_layout(self) -> bool:
        return self.layout is not None

    @property
    def has_memory_format(self) -> bool:
        return self.memory_format is not None

    @property
    def has_requires_grad(self) -> bool:
        return self.requires_grad is not None

    def dtype_or_default(self) -> TypeMeta:
        return self.dtype if self.dtype is not None else get_default_dtype()

    def device_or_default(self) -> Device:
        return self.device if self.device is not None else Device("cpu")

    def layout_or_default(self) -> Layout:
        return self.layout if self.layout is not None else Layout.STRIDED

    def memory_format_or_default(self) -> MemoryFormat:
        return (
            self.memory_format
            if self.memory_format is not None
            else MemoryFormat.CONTIGUOUS
        )

    def requires_grad_or_default(self) -> bool:
        return bool(self.requires_grad) if self.requires_grad is not None else False

    def with_dtype(self, dtype: Union[TypeMeta, ScalarType, str]) -> Self:
        return replace(self, dtype=TypeMeta.make(dtype))

    def with_device(self, device: Union[Device, str]) -> Self:
        return replace(self, device=Device.parse(device))

    def with_layout(self, layout: Layout) -> Self:
        return replace(self, layout=layout)

    def with_memory_format(self, memory_format: MemoryFormat) -> Self:
        return replace(self, memory_format=memory_format)

    def with_requires_grad(self, requires_grad: bool) -> Self:
        return replace(self, requires_grad=bool(requires_grad))

    def merge_in(self, other: "TensorOptions") -> Self:
        """
        Return a copy where every field set in `other` overrides this one.
        """
        merged = self
        if other.has_dtype:
            merged = replace(merged, dtype=other.dtype)
        if other.has_device:
            merged = replace(merged, device=other.device)
        if other.has_layout:
            merged = replace(merged, layout=other.layout)
        if other.has_memory_format:
            merged = replace(merged, memory_format=other.memory_format)
        if other.has_requires_grad:
            merged = replace(merged, requires_grad=other.requires_grad)
        return merged

    @classmethod
    def resolve(
        cls, options: Optional["TensorOptions"] = None, **kwargs
    ) -> Self:
        """
        Combine an optional options object with keyword overrides.

        Keyword arguments whose value is None are ignored.
        """
        base = options if options is not None else cls()
        overrides = {k: v for k, v in kwargs.items() if v is not None}
        if not overrides:
            return base
        return base.merge_in(cls(**overrides))
