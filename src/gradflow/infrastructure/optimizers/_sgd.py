"""
Stochastic Gradient Descent (SGD) optimizer.

The optimizer updates parameters in place from their accumulated
gradients, optionally applying classical (coupled) L2 weight decay.

Design notes
------------
- Parameters with `grad is None` are skipped, which supports frozen weights
  and partial graphs.
- Updates run under `no_grad` and go through `Tensor.add_`, so every step
  bumps each updated parameter's version counter. A graph recorded before
  the step that saved a parameter therefore refuses to run backward after
  it.
- Momentum and Nesterov variants are not implemented.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from ...domain._optimizers import IOptimizer
from ..autograd._grad_mode import no_grad
from .._parameter import Parameter


@dataclass
class SGD(IOptimizer):
    """
    Stochastic Gradient Descent.

    Update rule
    -----------
    For each parameter ``p`` with gradient ``g``:

    - if ``weight_decay > 0``: ``g <- g + weight_decay * p``
    - ``p <- p - lr * g``

    Parameters
    ----------
    params : Iterable[Parameter]
        Parameters to optimize. The iterable is consumed.
    lr : float, optional
        Learning rate. Must be > 0. Defaults to 1e-3.
    weight_decay : float, optional
        L2 coefficient. Must be >= 0. Defaults to 0.0.

    Raises
    ------
    ValueError
        If ``lr <= 0`` or ``weight_decay < 0``, or `params` is empty.
    """

    params: List[Parameter]
    lr: float = 1e-3
    weight_decay: float = 0.0

    def __init__(
        self,
        params: Iterable[Parameter],
        *,
        lr: float = 1e-3,
        weight_decay: float = 0.0,
    ) -> None:
        self.params = list(params)
        self.lr = float(lr)
        self.weight_decay = float(weight_decay)

        if not self.params:
            raise ValueError("optimizer got an empty parameter list")
        if self.lr <= 0.0:
            raise ValueError(f"lr must be > 0, got {self.lr}")
        if self.weight_decay < 0.0:
            raise ValueError(f"weight_decay must be >= 0, got {self.weight_decay}")

    def zero_grad(self, set_to_none: bool = True) -> None:
        """
        Clear the gradients of all managed parameters.

        With `set_to_none=False` existing gradients are detached and zeroed
        in place instead of dropped.
        """
        for p in self.params:
            p.zero_grad(set_to_none=set_to_none)

    @no_grad()
    def step(self) -> None:
        """
        Apply one update to every parameter that has a gradient.
        """
        for p in self.params:
            g = p.grad
            if g is None:
                continue
            if self.weight_decay != 0.0:
                g = g + p.detach() * self.weight_decay
            p.add_(g, alpha=-self.lr)
