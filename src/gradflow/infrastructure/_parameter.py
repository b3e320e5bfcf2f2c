"""
Trainable parameter tensor.

A `Parameter` is a leaf `Tensor` that requires grad by default and is
discovered automatically by `Module.parameters()`. Its gradient is stored
on the tensor's autograd metadata by the `AccumulateGrad` node that the
engine delivers to; optimizers read it through `grad` and update the
values in place under `no_grad`.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..domain._parameter import IParameter
from .tensor._numpy_types import from_numpy_dtype
from .tensor._tensor import Tensor
from .tensor._tensor_options import TensorOptions


class Parameter(Tensor, IParameter):
    """
    Trainable leaf tensor.

    Parameters
    ----------
    shape : int | Sequence[int]
        Sizes of the (uninitialized) parameter.
    requires_grad : bool, optional
        Whether gradients are accumulated. Defaults to True.
    dtype, device, options
        Forwarded to `Tensor`.

    Notes
    -----
    Values are uninitialized after construction; layers fill them through
    the initializers in `gradflow.init`.
    """

    def __init__(
        self,
        shape=None,
        *,
        requires_grad: bool = True,
        dtype=None,
        device=None,
        options: Optional[TensorOptions] = None,
    ) -> None:
        super().__init__(
            shape,
            dtype=dtype,
            device=device,
            options=options,
            requires_grad=requires_grad,
        )

    @classmethod
    def from_numpy(cls, arr: np.ndarray, *, requires_grad: bool = True) -> "Parameter":
        """
        Create a parameter holding a copy of `arr`.
        """
        arr = np.asarray(arr)
        p = cls(arr.shape, dtype=from_numpy_dtype(arr.dtype), requires_grad=False)
        p.copy_from_numpy(arr)
        p.requires_grad = requires_grad
        return p

    def __repr__(self) -> str:
        return (
            f"Parameter(shape={self.shape}, dtype={self.dtype}, "
            f"device={self.device}, requires_grad={self.requires_grad})"
        )
