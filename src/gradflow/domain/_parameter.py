"""
Trainable parameter interface definitions.

This module defines the domain-level interface for trainable parameters used
by optimization algorithms. The interface abstracts over concrete tensor
implementations and backend details, providing a minimal, structural contract
for parameter management during training.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable, Optional

from ._tensor import ITensor


@runtime_checkable
class IParameter(Protocol):
    """
    Domain-level interface for trainable parameters.

    An `IParameter` is a leaf tensor-like object that participates in
    optimization. It exposes control over gradient accumulation and provides
    access to the gradient accumulated by the backward engine.

    Notes
    -----
    - Parameters may be frozen or unfrozen via the `requires_grad` flag.
    - Optimizers rely on this interface to discover and update parameters.
    - In-place updates must go through paths that bump the version counter.
    """

    @property
    def requires_grad(self) -> bool:
        """
        Indicate whether this parameter should accumulate gradients.
        """
        ...

    @requires_grad.setter
    def requires_grad(self, value: bool) -> None: ...

    @property
    def grad(self) -> Optional["ITensor"]:
        """
        Return the gradient accumulated during backpropagation, or None.
        """
        ...

    @property
    def version(self) -> int:
        """
        Return the current version of the parameter's data.
        """
        ...

    def zero_grad(self) -> None:
        """
        Clear the stored gradient for this parameter.

        This method is typically called at the start of an optimization step
        to prevent unintended gradient accumulation across iterations.
        """
        ...
