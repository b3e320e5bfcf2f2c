"""
Optimizer contract.

An optimizer owns a list of leaf parameters and turns the gradients that
the backward engine accumulated on them into in-place updates.

Notes
-----
- Updates happen with gradient recording disabled and go through the
  tensor's in-place API, so each update bumps the parameter's version
  counter. Graphs recorded before a step that saved a parameter then refuse
  to run backward.
- Parameters whose `grad` is None are left untouched.
"""

from __future__ import annotations

from typing import Any, List, Protocol, runtime_checkable


@runtime_checkable
class IOptimizer(Protocol):
    """
    Structural type of a first-order optimizer.

    Attributes
    ----------
    params : List[Any]
        Leaf tensors updated by `step`.
    lr : float
        Step size.
    """

    params: List[Any]
    lr: float

    def step(self) -> None:
        """Apply one update to every parameter that has a gradient."""
        ...

    def zero_grad(self, set_to_none: bool = True) -> None:
        """Drop, or zero in place, the gradients of all parameters."""
        ...
