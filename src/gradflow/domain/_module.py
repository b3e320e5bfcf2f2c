"""
Module (layer) interface definitions.

This module defines the domain-level interface for neural network modules
(layers) using structural subtyping via `typing.Protocol`.

Modules are the "parameter registry" side of the autograd core: they own
leaf tensors that require gradients and produce the graph roots that a
training loop hands to `backward`.
"""

from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable

from ._tensor import ITensor
from ._parameter import IParameter


@runtime_checkable
class IModule(Protocol):
    """
    Domain-level module (layer) interface.

    Notes
    -----
    - Any object implementing both `forward` and `parameters` is considered
      a valid module.
    - This interface is safe to use with `isinstance` checks due to the
      `@runtime_checkable` decorator.
    """

    def forward(self, x: ITensor) -> ITensor:
        """
        Execute the forward computation of the module.
        """
        ...

    def parameters(self) -> Iterable[IParameter]:
        """
        Return the trainable parameters of the module (recursive).
        """
        ...
