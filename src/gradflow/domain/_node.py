"""
Backward-node interface definitions.

This module defines the domain contract for nodes of the backward graph.
Each differentiable forward operation records one node that knows how to
map gradients with respect to its outputs into gradients with respect to
its inputs, together with the edges leading to the nodes that consume those
input gradients.

The design follows function-level autograd systems (e.g., PyTorch's C++
`Node`): the graph is built eagerly during the forward pass and replayed
in reverse by the engine.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence, runtime_checkable


@runtime_checkable
class IEdge(Protocol):
    """
    Edge contract: "the `input_nr`-th input slot of `function`".

    An edge whose `function` is None denotes "no gradient consumer".
    """

    function: Optional["INode"]
    input_nr: int

    def is_valid(self) -> bool: ...


@runtime_checkable
class INode(Protocol):
    """
    Backward node contract.

    Required members
    ----------------
    - `apply(grads)`: compute input gradients from output gradients
    - `num_inputs()`: number of gradient slots this node consumes, i.e. the
      number of forward outputs registered with `add_input_metadata`
    - `num_outputs()`: number of outgoing edges, i.e. forward inputs
    - `add_input_metadata(tensor)`: register a forward output, returning
      its slot index
    - `next_edge(i)`: the edge that receives the i-th produced gradient
    """

    @property
    def sequence_nr(self) -> int: ...

    def apply(self, grads: Sequence[Optional[Any]]) -> Sequence[Optional[Any]]: ...

    def num_inputs(self) -> int: ...

    def num_outputs(self) -> int: ...

    def add_input_metadata(self, tensor: Any) -> int: ...

    def next_edge(self, i: int) -> Optional[IEdge]: ...

    def name(self) -> str: ...
