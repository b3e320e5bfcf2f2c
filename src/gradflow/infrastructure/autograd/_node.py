"""
Backward graph nodes.

This module defines the building blocks of the backward graph:

- `Edge`: "the `input_nr`-th gradient slot of `function`"
- `InputMetadata`: shape/dtype/device of each gradient a node consumes
- `Node`: abstract backward function with outgoing edges and a sequence
  number used by the engine to prioritize recently created nodes
- `SavedTensor`: forward state captured for backward, guarded by the
  tensor's version counter
- `GraphRoot`: synthetic node that seeds a backward pass
- `AccumulateGrad`: sink that sums incoming gradients into a leaf's `grad`

Terminology follows the engine's point of view: a node's *inputs* are the
gradients it receives (one per forward output) and its *outputs* are the
gradients it produces (one per forward input, i.e. per outgoing edge).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence
import itertools
import threading

from ...domain.device._device import Device
from ...domain._dtype import TypeMeta
from ...domain._errors import GraphFreedError, StaleVersionError
from ...domain._node import INode
from ._grad_mode import no_grad

Grads = List[Optional[Any]]

_sequence_lock = threading.Lock()
_sequence_counter = itertools.count()


def _next_sequence_nr() -> int:
    with _sequence_lock:
        return next(_sequence_counter)


@dataclass(frozen=True)
class Edge:
    """
    Reference to one gradient slot of a backward node.

    Attributes
    ----------
    function : Optional[Node]
        Node consuming the gradient, or None if nothing consumes it.
    input_nr : int
        Slot index within `function`'s inputs.
    """

    function: Optional["Node"] = None
    input_nr: int = 0

    def is_valid(self) -> bool:
        return self.function is not None


@dataclass(frozen=True)
class InputMetadata:
    """
    Expected properties of a gradient delivered to a node slot.
    """

    shape: tuple[int, ...]
    dtype: TypeMeta
    device: Device

    @classmethod
    def from_tensor(cls, tensor: Any) -> "InputMetadata":
        return cls(tuple(tensor.shape), tensor.dtype, tensor.device)


class Node(ABC, INode):
    """
    Abstract backward function.

    Parameters
    ----------
    next_edges : Sequence[Edge], optional
        Outgoing edges, one per forward input. May be set later through
        `set_next_edges`.

    Notes
    -----
    Node identity is object identity; nodes hash by `id` and serve directly
    as keys of the engine's dependency table.
    """

    def __init__(self, next_edges: Optional[Sequence[Edge]] = None) -> None:
        self._sequence_nr = _next_sequence_nr()
        self.next_edges: List[Edge] = list(next_edges or [])
        self.input_metadata: List[InputMetadata] = []

    @property
    def sequence_nr(self) -> int:
        return self._sequence_nr

    @abstractmethod
    def apply(self, grads: Grads) -> Grads:
        """
        Map gradients w.r.t. this node's inputs to gradients w.r.t. its
        outputs, in `next_edges` order.
        """

    def __call__(self, grads: Sequence[Optional[Any]]) -> Grads:
        return list(self.apply(list(grads)))

    def num_inputs(self) -> int:
        return len(self.input_metadata)

    def num_outputs(self) -> int:
        return len(self.next_edges)

    def next_edge(self, i: int) -> Edge:
        return self.next_edges[i]

    def set_next_edges(self, edges: Sequence[Edge]) -> None:
        self.next_edges = list(edges)

    def add_next_edge(self, edge: Edge) -> None:
        self.next_edges.append(edge)

    def add_input_metadata(self, tensor: Any) -> int:
        """
        Register a forward output of this node and return its slot index.
        """
        self.input_metadata.append(InputMetadata.from_tensor(tensor))
        return len(self.input_metadata) - 1

    def should_compute_output(self, i: int) -> bool:
        """True if the `i`-th produced gradient has a consumer."""
        return i < len(self.next_edges) and self.next_edges[i].is_valid()

    def release_variables(self) -> None:
        """
        Drop every `SavedTensor` held by this node.

        Later unpacking of a released tensor raises `GraphFreedError`.
        """
        for value in vars(self).values():
            if isinstance(value, SavedTensor):
                value.reset()

    def name(self) -> str:
        return type(self).__name__

    def __repr__(self) -> str:
        return f"<{self.name()} seq={self._sequence_nr} outputs={self.num_outputs()}>"


class SavedTensor:
    """
    Forward tensor captured for use in backward.

    The captured value is a detached view that shares storage and the
    version counter with the original, together with the version observed
    at save time. Unpacking after any in-place write to the data raises.

    Parameters
    ----------
    tensor : Optional[Tensor]
        Tensor to save. None is allowed and unpacks to None.
    is_output : bool, optional
        True if `tensor` is an output of the node that saves it.
    """

    __slots__ = ("_data", "_saved_version", "_is_output", "_was_reset", "_was_none")

    def __init__(self, tensor: Optional[Any], is_output: bool = False) -> None:
        self._is_output = bool(is_output)
        self._was_reset = False
        self._was_none = tensor is None
        if tensor is None:
            self._data = None
            self._saved_version = 0
        else:
            self._data = tensor.detach()
            self._saved_version = tensor.version

    @property
    def saved_version(self) -> int:
        return self._saved_version

    @property
    def is_output(self) -> bool:
        return self._is_output

    def unpack(self, saved_for: Optional[Node] = None) -> Optional[Any]:
        """
        Return the saved tensor.

        Raises
        ------
        GraphFreedError
            If the saved state was released by a previous backward.
        StaleVersionError
            If the data was modified in place after being saved.
        """
        node_name = saved_for.name() if saved_for is not None else "SavedTensor"
        if self._was_reset:
            raise GraphFreedError(node_name)
        if self._was_none:
            return None
        current = self._data.version
        if current != self._saved_version:
            raise StaleVersionError(node_name, self._saved_version, current)
        return self._data

    def reset(self) -> None:
        self._data = None
        self._was_reset = True


class GraphRoot(Node):
    """
    Synthetic entry node of a backward pass.

    `apply` ignores its (empty) inputs and emits the seed gradients along
    the root edges.
    """

    def __init__(self, roots: Sequence[Edge], seeds: Sequence[Optional[Any]]) -> None:
        super().__init__(roots)
        self.seeds: Grads = list(seeds)

    def apply(self, grads: Grads) -> Grads:
        return list(self.seeds)


class AccumulateGrad(Node):
    """
    Gradient sink of a leaf tensor.

    The first delivered gradient is stored as a detached copy; later ones
    are added into the existing `grad` in place. The node has one input slot
    and no outgoing edges.

    Parameters
    ----------
    variable : Tensor
        Leaf whose `grad` receives the gradients.
    """

    def __init__(self, variable: Any) -> None:
        super().__init__()
        self.variable = variable
        self.add_input_metadata(variable)

    def apply(self, grads: Grads) -> Grads:
        grad = grads[0] if grads else None
        if grad is None:
            return []
        meta = self.variable._autograd_meta()
        with meta.lock, no_grad():
            if meta.grad is None:
                meta.grad = grad.detach().clone()
            else:
                meta.grad.add_(grad)
        return []

    def name(self) -> str:
        return "AccumulateGrad"
