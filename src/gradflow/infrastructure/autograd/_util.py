"""
Graph-construction protocol shared by all differentiable operations.

A differentiable forward operation:

1. decides whether its result needs history (`compute_requires_grad`);
2. builds its backward node, saving forward state and wiring the node's
   outgoing edges to its inputs (`collect_next_edges`);
3. runs the numeric kernel;
4. attaches the node to each differentiable output exactly once
   (`set_history`).

Leaves that require grad are connected to the graph through their
`AccumulateGrad` sink, obtained with `grad_accumulator`.
"""

from __future__ import annotations

from typing import Any, List, Optional
import threading

from ...domain._errors import (
    GradientOnNonDifferentiableInputError,
    InPlaceOnLeafError,
)
from ._grad_mode import GradMode
from ._node import AccumulateGrad, Edge, Node

_accumulator_lock = threading.Lock()


def _requires_grad(value: Any) -> bool:
    return bool(getattr(value, "requires_grad", False))


def compute_requires_grad(*tensors: Any) -> bool:
    """
    True iff grad mode is enabled and any tensor argument requires grad.

    Non-tensor arguments (scalars, None) are ignored.
    """
    if not GradMode.is_enabled():
        return False
    return any(_requires_grad(t) for t in tensors)


def grad_accumulator(tensor: Any) -> Optional[AccumulateGrad]:
    """
    Return the `AccumulateGrad` node of a leaf, creating it if needed.

    The node is memoized weakly on the tensor's autograd metadata, so the
    same node is returned for as long as any graph keeps it alive.

    Returns
    -------
    Optional[AccumulateGrad]
        None if the tensor does not require grad.

    Raises
    ------
    RuntimeError
        If `tensor` is not a leaf.
    """
    meta = tensor.impl.autograd_meta
    if meta is None:
        return None
    if meta.grad_fn is not None:
        raise RuntimeError("grad_accumulator() should be only called on leaf tensors")
    if not meta.requires_grad:
        return None
    with _accumulator_lock:
        acc = meta.grad_accumulator()
        if acc is None:
            acc = AccumulateGrad(tensor)
            meta.set_grad_accumulator(acc)
        return acc


def gradient_edge(tensor: Any) -> Edge:
    """
    Return the edge through which gradients for `tensor` flow.

    `(grad_fn, output_nr)` for a non-leaf, `(accumulator, 0)` for a leaf that
    requires grad, and an invalid edge otherwise.
    """
    grad_fn = tensor.grad_fn
    if grad_fn is not None:
        return Edge(grad_fn, tensor.output_nr)
    return Edge(grad_accumulator(tensor), 0)


def collect_next_edges(*tensors: Any) -> List[Edge]:
    """
    Gradient edges of the given forward inputs, in order.

    None entries produce invalid edges.
    """
    return [gradient_edge(t) if t is not None else Edge() for t in tensors]


def set_history(tensor: Any, grad_fn: Node) -> None:
    """
    Make `tensor` an output of `grad_fn`.

    Registers the tensor's metadata with the node (which allocates its
    output slot) and records `grad_fn`/`output_nr` on the tensor.
    """
    output_nr = grad_fn.add_input_metadata(tensor)
    meta = tensor._autograd_meta()
    meta.grad_fn = grad_fn
    meta.output_nr = output_nr


def check_no_requires_grad(tensor: Optional[Any], name: str, op: str) -> None:
    """
    Reject a differentiable operand whose derivative is not implemented.

    Raises
    ------
    GradientOnNonDifferentiableInputError
        If `tensor` requires grad.
    """
    if tensor is not None and _requires_grad(tensor):
        raise GradientOnNonDifferentiableInputError(op=op, role=name)


def tensor_data(tensor: Any) -> Any:
    """
    Return a view of `tensor` without history that shares its storage and
    version counter.
    """
    return tensor.detach()


def check_inplace(tensor: Any, *others: Any, op: str = "in-place operation") -> None:
    """
    Validate an in-place write under the current grad mode.

    In-place operations never record history, so with grad mode enabled
    they are rejected whenever a gradient would be silently lost.

    Raises
    ------
    InPlaceOnLeafError
        If `tensor` is a leaf that requires grad.
    RuntimeError
        If `tensor` has autograd history, or another operand requires grad.
    """
    if not GradMode.is_enabled():
        return
    if _requires_grad(tensor):
        if tensor.grad_fn is None:
            raise InPlaceOnLeafError(op)
        raise RuntimeError(
            f"'{op}' on a tensor with autograd history is not supported; "
            "call detach() first"
        )
    for other in others:
        if _requires_grad(other):
            raise RuntimeError(
                f"'{op}' would need to record history for an operand that "
                "requires grad; wrap the update in no_grad()"
            )
