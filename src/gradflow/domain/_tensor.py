"""
Tensor interface definitions.

This module defines the domain-level interface for tensor-like objects using
structural typing. The interface captures the backend-agnostic properties a
tensor must expose to participate in computation graphs, modules, and
optimization workflows: shape/stride metadata, placement, autograd flags,
and the backward entry point.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence, Union, runtime_checkable

from .device._device import Device
from ._dtype import TypeMeta

Number = Union[int, float]


@runtime_checkable
class ITensor(Protocol):
    """
    Tensor interface.

    An `ITensor` is a strided view over shared storage that may participate
    in automatic differentiation.

    Notes
    -----
    - A tensor is either a leaf (`grad_fn is None`) or the output of a
      recorded operation; only leaves accumulate `grad`.
    - `version` increases on every in-place mutation of the underlying data.
    """

    @property
    def shape(self) -> tuple[int, ...]:
        """Sizes of each dimension."""
        ...

    def strides(self) -> tuple[int, ...]:
        """Strides of each dimension, in elements."""
        ...

    @property
    def dtype(self) -> TypeMeta:
        """Element type descriptor."""
        ...

    @property
    def device(self) -> Device:
        """Device the tensor's storage lives on."""
        ...

    def numel(self) -> int:
        """Total number of elements."""
        ...

    def dim(self) -> int:
        """Number of dimensions."""
        ...

    def is_contiguous(self) -> bool:
        """True if the tensor is laid out in row-major order without gaps."""
        ...

    @property
    def requires_grad(self) -> bool:
        """True if gradients should be tracked for this tensor."""
        ...

    @requires_grad.setter
    def requires_grad(self, value: bool) -> None: ...

    @property
    def grad(self) -> Optional["ITensor"]:
        """Accumulated gradient of a leaf tensor, or None."""
        ...

    @property
    def grad_fn(self) -> Optional[Any]:
        """Backward node that produced this tensor, or None for leaves."""
        ...

    @property
    def is_leaf(self) -> bool:
        """True if this tensor was not produced by a recorded operation."""
        ...

    @property
    def version(self) -> int:
        """Current value of the tensor's version counter."""
        ...

    def zero_grad(self) -> None:
        """Clear the accumulated gradient."""
        ...

    def backward(
        self,
        gradient: Optional["ITensor"] = None,
        keep_graph: Optional[bool] = None,
        create_graph: bool = False,
    ) -> None:
        """Run the backward engine from this tensor."""
        ...

    def to_numpy(self) -> Any:
        """Return a host array copy of the tensor's data."""
        ...

    def detach(self) -> "ITensor":
        """Return a view sharing storage but without autograd history."""
        ...


TensorSequence = Sequence[ITensor]
