"""
Activation modules.

Stateless `Module` wrappers around the differentiable activation
functions, so activations can be composed with layers.
"""

from __future__ import annotations

from . import _functional as F
from ._module import Module
from .tensor._tensor import Tensor


class Sigmoid(Module):
    """
    Elementwise logistic activation `1 / (1 + exp(-x))`.

    The backward node saves the output, so the derivative is computed as
    `y * (1 - y)` without re-evaluating the exponential.
    """

    def forward(self, x: Tensor) -> Tensor:
        return F.sigmoid(x)

    def __repr__(self) -> str:
        return "Sigmoid()"


class LogSoftmax(Module):
    """
    Log-softmax along a fixed dimension.

    Parameters
    ----------
    dim : int, optional
        Dimension to normalize over. Defaults to -1.
    """

    def __init__(self, dim: int = -1) -> None:
        super().__init__()
        self.dim = int(dim)

    def forward(self, x: Tensor) -> Tensor:
        return F.log_softmax(x, self.dim)

    def __repr__(self) -> str:
        return f"LogSoftmax(dim={self.dim})"
