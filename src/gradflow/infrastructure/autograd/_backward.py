"""
User entry point of the backward pass.
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

import numpy as np

from ...domain._errors import ShapeOrDimensionError
from ..tensor._tensor import Tensor
from ._engine import GraphTask, get_default_engine
from ._util import gradient_edge

TensorOrTensors = Union[Tensor, Sequence[Tensor]]


def _as_tuple(value) -> tuple:
    if value is None:
        return ()
    if isinstance(value, Tensor):
        return (value,)
    return tuple(value)


def _make_seeds(
    tensors: Sequence[Tensor], grad_tensors: Sequence[Optional[Tensor]]
) -> list[Tensor]:
    seeds = []
    for i, (out, grad) in enumerate(zip(tensors, grad_tensors)):
        if grad is None:
            if out.numel() != 1:
                raise RuntimeError(
                    "grad can be implicitly created only for single-element outputs "
                    f"(tensor {i} has shape {tuple(out.shape)})"
                )
            grad = Tensor._from_array(
                np.ones(out.shape), dtype=out.dtype, device=out.device
            )
        elif tuple(grad.shape) != tuple(out.shape):
            raise ShapeOrDimensionError(
                f"mismatch in shape: grad_output[{i}] has shape {tuple(grad.shape)} "
                f"and output[{i}] has shape {tuple(out.shape)}"
            )
        seeds.append(grad)
    return seeds


def backward(
    tensors: TensorOrTensors,
    grad_tensors: Optional[Union[Tensor, Sequence[Optional[Tensor]]]] = None,
    keep_graph: Optional[bool] = None,
    create_graph: bool = False,
) -> GraphTask:
    """
    Accumulate gradients of `tensors` into the leaves of their graphs.

    Parameters
    ----------
    tensors : Tensor | Sequence[Tensor]
        Outputs to differentiate.
    grad_tensors : Tensor | Sequence[Optional[Tensor]], optional
        Seed gradient per output. A missing seed defaults to ones, which is
        only allowed for single-element outputs.
    keep_graph : bool, optional
        Keep saved tensors so the graph can be traversed again. Defaults to
        `create_graph`.
    create_graph : bool, optional
        Apply backward nodes with grad mode enabled.

    Returns
    -------
    GraphTask
        The finished graph task of the pass.

    Raises
    ------
    RuntimeError
        If an output neither requires grad nor has a `grad_fn`, or a seed
        is missing for a multi-element output.
    ShapeOrDimensionError
        If a seed's shape differs from its output's shape.
    """
    outputs = _as_tuple(tensors)
    if not outputs:
        raise RuntimeError("backward() received no tensors")
    seeds_in = _as_tuple(grad_tensors) if grad_tensors is not None else (None,) * len(outputs)
    if len(seeds_in) != len(outputs):
        raise RuntimeError(
            f"got {len(outputs)} tensor(s) but {len(seeds_in)} gradient(s)"
        )

    for i, out in enumerate(outputs):
        if not out.requires_grad:
            raise RuntimeError(
                f"element {i} of tensors does not require grad and does not have a grad_fn"
            )

    seeds = _make_seeds(outputs, seeds_in)
    roots = [gradient_edge(out) for out in outputs]
    if keep_graph is None:
        keep_graph = create_graph
    return get_default_engine().execute(roots, seeds, keep_graph, create_graph)
