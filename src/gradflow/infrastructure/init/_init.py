"""
Weight initializers.

All initializers mutate the given tensor in place under `no_grad` (so they
may be applied to parameters that require grad) and return it. Random
draws come from the process generator unless a `numpy.random.Generator`
is passed explicitly.

Fan computation
---------------
For a weight of shape `(out, in, *kernel)`:

- `fan_in  = in  * prod(kernel)`
- `fan_out = out * prod(kernel)`
"""

from __future__ import annotations

from typing import Optional
import math

import numpy as np

from ..autograd._grad_mode import no_grad
from ..tensor._tensor import Tensor

_LINEAR_FNS = (
    "linear",
    "conv1d",
    "conv2d",
    "conv3d",
    "conv_transpose1d",
    "conv_transpose2d",
    "conv_transpose3d",
    "sigmoid",
)


def calculate_fan_in_and_fan_out(tensor: Tensor) -> tuple[int, int]:
    """
    Return `(fan_in, fan_out)` of a weight tensor.

    Raises
    ------
    ValueError
        If the tensor has fewer than 2 dimensions.
    """
    shape = tuple(tensor.shape)
    if len(shape) < 2:
        raise ValueError(
            "Fan in and fan out can not be computed for tensor with fewer than 2 dimensions"
        )
    receptive = 1
    for d in shape[2:]:
        receptive *= int(d)
    return int(shape[1]) * receptive, int(shape[0]) * receptive


def calculate_gain(nonlinearity: str, param: Optional[float] = None) -> float:
    """
    Recommended gain for a nonlinearity.

    Raises
    ------
    ValueError
        For an unknown nonlinearity or an invalid `param`.
    """
    if nonlinearity in _LINEAR_FNS:
        return 1.0
    if nonlinearity == "tanh":
        return 5.0 / 3
    if nonlinearity == "relu":
        return math.sqrt(2.0)
    if nonlinearity == "leaky_relu":
        if param is None:
            slope = 0.01
        elif isinstance(param, (int, float)) and not isinstance(param, bool):
            slope = float(param)
        else:
            raise ValueError(f"negative_slope {param} not a valid number")
        return math.sqrt(2.0 / (1 + slope**2))
    if nonlinearity == "selu":
        return 3.0 / 4
    raise ValueError(f"Unsupported nonlinearity {nonlinearity}")


def uniform_(
    tensor: Tensor,
    a: float = 0.0,
    b: float = 1.0,
    generator: Optional[np.random.Generator] = None,
) -> Tensor:
    """Fill `tensor` with samples from U(a, b)."""
    with no_grad():
        return tensor.uniform_(a, b, generator=generator)


def zeros_(tensor: Tensor) -> Tensor:
    with no_grad():
        return tensor.zero_()


def kaiming_uniform_(
    tensor: Tensor,
    a: float = 0.0,
    mode: str = "fan_in",
    nonlinearity: str = "leaky_relu",
    generator: Optional[np.random.Generator] = None,
) -> Tensor:
    """
    Kaiming (He) uniform initialization.

    Samples from `U(-bound, bound)` with
    `bound = gain * sqrt(3 / fan)`, where `gain = calculate_gain(nonlinearity, a)`
    and `fan` is selected by `mode` ("fan_in" or "fan_out").

    A tensor with no elements is returned unchanged.
    """
    if tensor.numel() == 0:
        return tensor
    if mode not in ("fan_in", "fan_out"):
        raise ValueError(f"Mode {mode} not supported, please use one of fan_in, fan_out")
    fan_in, fan_out = calculate_fan_in_and_fan_out(tensor)
    fan = fan_in if mode == "fan_in" else fan_out
    gain = calculate_gain(nonlinearity, a)
    bound = math.sqrt(3.0) * gain / math.sqrt(fan)
    return uniform_(tensor, -bound, bound, generator=generator)
