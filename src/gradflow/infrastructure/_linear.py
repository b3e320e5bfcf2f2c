"""
Linear (fully-connected) layer.

Performs an affine projection of 2-D, batch-major inputs:

    y = x @ W^T + b

Shape conventions
-----------------
- x : (batch, in_features)
- W : (out_features, in_features)
- b : (out_features,)  (omitted if bias=False)
- y : (batch, out_features)

Initialization
--------------
`W` is drawn with Kaiming-uniform using `a = sqrt(5)` (i.e. a bound of
`1/sqrt(fan_in)`), and `b` from `U(-1/sqrt(fan_in), 1/sqrt(fan_in))`. Both
draw from the process generator, so `manual_seed` makes them reproducible.
"""

from __future__ import annotations

from typing import Optional
import math

from . import _functional as F
from ._module import Module
from ._parameter import Parameter
from .init import _init as init
from .tensor._tensor import Tensor


class Linear(Module):
    """
    Fully-connected layer.

    Parameters
    ----------
    in_features : int
        Size of each input sample. Must be positive.
    out_features : int
        Size of each output sample. Must be positive.
    bias : bool, optional
        Whether to learn an additive bias. Defaults to True.
    dtype, device
        Placement of the parameters.

    Raises
    ------
    ValueError
        If either feature size is not positive.
    """

    def __init__(
        self,
        in_features: int,
        out_features: int,
        bias: bool = True,
        *,
        dtype=None,
        device=None,
    ) -> None:
        super().__init__()
        if in_features <= 0 or out_features <= 0:
            raise ValueError(
                f"in_features and out_features must be positive, got "
                f"{in_features} and {out_features}"
            )
        self.in_features = int(in_features)
        self.out_features = int(out_features)
        self.weight = Parameter(
            (self.out_features, self.in_features), dtype=dtype, device=device
        )
        if bias:
            self.bias = Parameter((self.out_features,), dtype=dtype, device=device)
        else:
            self.bias = None
        self.reset_parameters()

    def reset_parameters(self) -> None:
        init.kaiming_uniform_(self.weight, a=math.sqrt(5))
        if self.bias is not None:
            fan_in, _ = init.calculate_fan_in_and_fan_out(self.weight)
            bound = 1.0 / math.sqrt(fan_in) if fan_in > 0 else 0.0
            init.uniform_(self.bias, -bound, bound)

    def forward(self, x: Tensor) -> Tensor:
        return F.linear(x, self.weight, self.bias)

    def __repr__(self) -> str:
        return (
            f"Linear(in_features={self.in_features}, out_features={self.out_features}, "
            f"bias={self.bias is not None})"
        )

