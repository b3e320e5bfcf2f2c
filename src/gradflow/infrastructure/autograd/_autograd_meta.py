"""
Per-tensor autograd metadata.

A `TensorImpl` carries an `AutogradMeta` once it takes part in automatic
differentiation. The metadata records how gradients reach the tensor:

- a *leaf* has no `grad_fn`; if it requires grad, gradients are delivered
  to it by an `AccumulateGrad` sink and summed into `grad`
- a *non-leaf* was produced by a recorded operation; `grad_fn` is that
  operation's backward node and `output_nr` is the tensor's slot in it

The accumulator is referenced weakly: while any graph holds it, every
request for the tensor's accumulator returns the same node; once all graphs
are gone it is recreated on demand.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional
import threading
import weakref

from ...domain._dtype import TypeMeta


@dataclass(eq=False)
class AutogradMeta:
    """
    Autograd state attached to one tensor implementation.

    Attributes
    ----------
    requires_grad : bool
        Leaf flag. Non-leaves require grad by virtue of having a `grad_fn`.
    grad : Optional[Tensor]
        Accumulated gradient (leaves only).
    grad_fn : Optional[Node]
        Backward node that produced the tensor, or None for leaves.
    output_nr : int
        Index of the tensor among `grad_fn`'s outputs.
    """

    requires_grad: bool = False
    grad: Optional[Any] = None
    grad_fn: Optional[Any] = None
    output_nr: int = 0
    _grad_accumulator: Optional["weakref.ref[Any]"] = field(default=None, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def set_requires_grad(self, requires_grad: bool, dtype: TypeMeta) -> None:
        """
        Set the leaf `requires_grad` flag.

        Raises
        ------
        RuntimeError
            If enabling grad on a non floating-point element type.
        """
        if requires_grad and not dtype.is_floating_point:
            raise RuntimeError(
                "only tensors of floating point dtype can require gradients "
                f"(got {dtype})"
            )
        self.requires_grad = bool(requires_grad)

    def is_leaf(self) -> bool:
        return self.grad_fn is None

    def grad_accumulator(self) -> Optional[Any]:
        """
        Return the live accumulator node, or None if it was collected.
        """
        ref = self._grad_accumulator
        return ref() if ref is not None else None

    def set_grad_accumulator(self, node: Optional[Any]) -> None:
        self._grad_accumulator = weakref.ref(node) if node is not None else None

    @property
    def lock(self) -> threading.Lock:
        return self._lock
