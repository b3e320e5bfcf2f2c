"""
Backward nodes of the differentiable operations.

Each class implements the derivative of one forward operation. Nodes are
constructed by `gradflow.infrastructure._functional` with their outgoing
edges already collected, so they only save the forward state whose
gradient is actually consumed (`should_compute_output`).

Gradients are computed with the NumPy kernels and returned as fresh
tensors without history. Broadcasting in binary operations is undone with
`sum_to_shape` so every produced gradient has its input's shape.

All classes are registered in `NODE_REGISTRY` under their node name.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional, Sequence, Type, TypeVar

import numpy as np

from ...domain._reduction import Reduction
from ..ops import _cpu_kernels as K
from ..tensor._tensor import Tensor
from ._node import Edge, Grads, Node, SavedTensor

NODE_REGISTRY: Dict[str, Type[Node]] = {}

_N = TypeVar("_N", bound=Type[Node])


def register_node(cls: _N) -> _N:
    """
    Class decorator adding a backward node class to `NODE_REGISTRY`.

    Raises
    ------
    ValueError
        If another class is already registered under the same name.
    """
    name = cls.__name__
    if name in NODE_REGISTRY and NODE_REGISTRY[name] is not cls:
        raise ValueError(f"Backward node '{name}' is already registered")
    NODE_REGISTRY[name] = cls
    return cls


def _arr(t: Tensor) -> np.ndarray:
    return t.impl.data_view()


def _grad(arr: np.ndarray, like: Tensor) -> Tensor:
    return Tensor._from_array(np.asarray(arr), dtype=like.dtype, device=like.device)


def _save_if(tensor: Optional[Tensor], needed: bool, is_output: bool = False) -> SavedTensor:
    return SavedTensor(tensor if needed else None, is_output=is_output)


def _unary(node: Node, grads: Grads, fn: Callable[[np.ndarray], np.ndarray]) -> Grads:
    g = grads[0]
    if not node.should_compute_output(0):
        return [None]
    return [_grad(fn(_arr(g)), g)]


# ----------------------------------------------------------------------
# Arithmetic
# ----------------------------------------------------------------------
@register_node
class AddBackward0(Node):
    """Gradient of `self + alpha * other` for two tensors."""

    def __init__(
        self,
        next_edges: Sequence[Edge],
        self_shape: Sequence[int],
        other_shape: Sequence[int],
        alpha: float = 1.0,
    ) -> None:
        super().__init__(next_edges)
        self.self_shape = tuple(self_shape)
        self.other_shape = tuple(other_shape)
        self.alpha = alpha

    def apply(self, grads: Grads) -> Grads:
        g = grads[0]
        ga = _arr(g)
        out: Grads = [None, None]
        if self.should_compute_output(0):
            out[0] = _grad(K.sum_to_shape(ga, self.self_shape), g)
        if self.should_compute_output(1):
            other = ga * self.alpha if self.alpha != 1 else ga
            out[1] = _grad(K.sum_to_shape(other, self.other_shape), g)
        return out


@register_node
class AddBackward1(Node):
    """Gradient of `self + scalar`."""

    def apply(self, grads: Grads) -> Grads:
        return _unary(self, grads, lambda g: g)


@register_node
class SubBackward0(Node):
    """Gradient of `self - alpha * other` for two tensors."""

    def __init__(
        self,
        next_edges: Sequence[Edge],
        self_shape: Sequence[int],
        other_shape: Sequence[int],
        alpha: float = 1.0,
    ) -> None:
        super().__init__(next_edges)
        self.self_shape = tuple(self_shape)
        self.other_shape = tuple(other_shape)
        self.alpha = alpha

    def apply(self, grads: Grads) -> Grads:
        g = grads[0]
        ga = _arr(g)
        out: Grads = [None, None]
        if self.should_compute_output(0):
            out[0] = _grad(K.sum_to_shape(ga, self.self_shape), g)
        if self.should_compute_output(1):
            out[1] = _grad(K.sum_to_shape(-self.alpha * ga, self.other_shape), g)
        return out


@register_node
class SubBackward1(Node):
    """Gradient of `self - scalar`."""

    def apply(self, grads: Grads) -> Grads:
        return _unary(self, grads, lambda g: g)


@register_node
class MulBackward0(Node):
    """Gradient of `self * other` for two tensors."""

    def __init__(self, next_edges: Sequence[Edge], self_: Tensor, other: Tensor) -> None:
        super().__init__(next_edges)
        self.self_shape = tuple(self_.shape)
        self.other_shape = tuple(other.shape)
        self.self_ = _save_if(self_, self.should_compute_output(1))
        self.other = _save_if(other, self.should_compute_output(0))

    def apply(self, grads: Grads) -> Grads:
        g = grads[0]
        ga = _arr(g)
        out: Grads = [None, None]
        if self.should_compute_output(0):
            other = _arr(self.other.unpack(self))
            out[0] = _grad(K.sum_to_shape(ga * other, self.self_shape), g)
        if self.should_compute_output(1):
            self_ = _arr(self.self_.unpack(self))
            out[1] = _grad(K.sum_to_shape(ga * self_, self.other_shape), g)
        return out


@register_node
class MulBackward1(Node):
    """Gradient of `self * scalar`."""

    def __init__(self, next_edges: Sequence[Edge], other: float) -> None:
        super().__init__(next_edges)
        self.other = other

    def apply(self, grads: Grads) -> Grads:
        return _unary(self, grads, lambda g: g * self.other)


@register_node
class DivBackward0(Node):
    """Gradient of `self / other` for two tensors."""

    def __init__(self, next_edges: Sequence[Edge], self_: Tensor, other: Tensor) -> None:
        super().__init__(next_edges)
        self.self_shape = tuple(self_.shape)
        self.other_shape = tuple(other.shape)
        need_self, need_other = self.should_compute_output(0), self.should_compute_output(1)
        self.self_ = _save_if(self_, need_other)
        self.other = _save_if(other, need_self or need_other)

    def apply(self, grads: Grads) -> Grads:
        g = grads[0]
        ga = _arr(g)
        out: Grads = [None, None]
        if not (self.should_compute_output(0) or self.should_compute_output(1)):
            return out
        other = _arr(self.other.unpack(self))
        if self.should_compute_output(0):
            out[0] = _grad(K.sum_to_shape(ga / other, self.self_shape), g)
        if self.should_compute_output(1):
            self_ = _arr(self.self_.unpack(self))
            grad_other = -ga * self_ / (other * other)
            out[1] = _grad(K.sum_to_shape(grad_other, self.other_shape), g)
        return out


@register_node
class DivBackward1(Node):
    """Gradient of `self / scalar`."""

    def __init__(self, next_edges: Sequence[Edge], other: float) -> None:
        super().__init__(next_edges)
        self.other = other

    def apply(self, grads: Grads) -> Grads:
        return _unary(self, grads, lambda g: g / self.other)


@register_node
class NegBackward(Node):
    def apply(self, grads: Grads) -> Grads:
        return _unary(self, grads, np.negative)


# ----------------------------------------------------------------------
# Shape and matrix operations
# ----------------------------------------------------------------------
@register_node
class TBackward(Node):
    def apply(self, grads: Grads) -> Grads:
        return _unary(self, grads, lambda g: g.T if g.ndim == 2 else g)


@register_node
class TransposeBackward(Node):
    """Gradient of `transpose(dim0, dim1)`: transpose back."""

    def __init__(self, next_edges: Sequence[Edge], dim0: int, dim1: int) -> None:
        super().__init__(next_edges)
        self.dim0 = dim0
        self.dim1 = dim1

    def apply(self, grads: Grads) -> Grads:
        return _unary(self, grads, lambda g: np.swapaxes(g, self.dim0, self.dim1))


@register_node
class MmBackward(Node):
    """
    Gradient of `self @ mat2`.

    `grad_self = grad @ mat2.T` and `grad_mat2 = self.T @ grad`.
    """

    def __init__(self, next_edges: Sequence[Edge], self_: Tensor, mat2: Tensor) -> None:
        super().__init__(next_edges)
        self.self_ = _save_if(self_, self.should_compute_output(1))
        self.mat2 = _save_if(mat2, self.should_compute_output(0))

    def apply(self, grads: Grads) -> Grads:
        g = grads[0]
        ga = _arr(g)
        out: Grads = [None, None]
        if self.should_compute_output(0):
            out[0] = _grad(ga @ _arr(self.mat2.unpack(self)).T, g)
        if self.should_compute_output(1):
            out[1] = _grad(_arr(self.self_.unpack(self)).T @ ga, g)
        return out


@register_node
class AddmmBackward(Node):
    """Gradient of `beta * self + alpha * (mat1 @ mat2)`."""

    def __init__(
        self,
        next_edges: Sequence[Edge],
        self_shape: Sequence[int],
        mat1: Tensor,
        mat2: Tensor,
        beta: float = 1.0,
        alpha: float = 1.0,
    ) -> None:
        super().__init__(next_edges)
        self.self_shape = tuple(self_shape)
        self.beta = beta
        self.alpha = alpha
        self.mat1 = _save_if(mat1, self.should_compute_output(2))
        self.mat2 = _save_if(mat2, self.should_compute_output(1))

    def apply(self, grads: Grads) -> Grads:
        g = grads[0]
        ga = _arr(g)
        out: Grads = [None, None, None]
        if self.should_compute_output(0):
            out[0] = _grad(K.sum_to_shape(ga * self.beta, self.self_shape), g)
        if self.should_compute_output(1):
            out[1] = _grad(self.alpha * (ga @ _arr(self.mat2.unpack(self)).T), g)
        if self.should_compute_output(2):
            out[2] = _grad(self.alpha * (_arr(self.mat1.unpack(self)).T @ ga), g)
        return out


# ----------------------------------------------------------------------
# Reductions
# ----------------------------------------------------------------------
@register_node
class MeanBackward(Node):
    def __init__(self, next_edges: Sequence[Edge], self_shape: Sequence[int]) -> None:
        super().__init__(next_edges)
        self.self_shape = tuple(self_shape)
        self.numel = int(np.prod(self.self_shape, dtype=np.int64))

    def apply(self, grads: Grads) -> Grads:
        return _unary(
            self, grads, lambda g: K.expand_reduced(g / self.numel, self.self_shape)
        )


@register_node
class SumBackward0(Node):
    """Gradient of a full sum."""

    def __init__(self, next_edges: Sequence[Edge], self_shape: Sequence[int]) -> None:
        super().__init__(next_edges)
        self.self_shape = tuple(self_shape)

    def apply(self, grads: Grads) -> Grads:
        return _unary(self, grads, lambda g: K.expand_reduced(g, self.self_shape))


@register_node
class SumBackward1(Node):
    """Gradient of a sum over a list of dimensions."""

    def __init__(
        self,
        next_edges: Sequence[Edge],
        self_shape: Sequence[int],
        dims: Sequence[int],
        keepdim: bool,
    ) -> None:
        super().__init__(next_edges)
        self.self_shape = tuple(self_shape)
        self.dims = tuple(dims)
        self.keepdim = bool(keepdim)

    def apply(self, grads: Grads) -> Grads:
        return _unary(
            self,
            grads,
            lambda g: K.expand_reduced(g, self.self_shape, self.dims, self.keepdim),
        )


# ----------------------------------------------------------------------
# Activations and losses
# ----------------------------------------------------------------------
@register_node
class SigmoidBackward(Node):
    """Gradient of `sigmoid`, computed from the saved result."""

    def __init__(self, next_edges: Sequence[Edge]) -> None:
        super().__init__(next_edges)
        self.result = SavedTensor(None)

    def save_result(self, result: Tensor) -> None:
        self.result = SavedTensor(result, is_output=True)

    def apply(self, grads: Grads) -> Grads:
        return _unary(
            self,
            grads,
            lambda g: K.sigmoid_backward(g, _arr(self.result.unpack(self))),
        )


@register_node
class LogSoftmaxBackward(Node):
    """Gradient of `log_softmax(self, dim)`, computed from the saved result."""

    def __init__(self, next_edges: Sequence[Edge], dim: int) -> None:
        super().__init__(next_edges)
        self.dim = dim
        self.result = SavedTensor(None)

    def save_result(self, result: Tensor) -> None:
        self.result = SavedTensor(result, is_output=True)

    def apply(self, grads: Grads) -> Grads:
        return _unary(
            self,
            grads,
            lambda g: K.log_softmax_backward(g, _arr(self.result.unpack(self)), self.dim),
        )


@register_node
class BinaryCrossEntropyBackward(Node):
    """Gradient of `binary_cross_entropy` with respect to the input only."""

    def __init__(
        self,
        next_edges: Sequence[Edge],
        self_: Tensor,
        target: Tensor,
        weight: Optional[Tensor],
        reduction: Reduction,
    ) -> None:
        super().__init__(next_edges)
        self.self_ = SavedTensor(self_)
        self.target = SavedTensor(target)
        self.weight = SavedTensor(weight)
        self.reduction = reduction

    def apply(self, grads: Grads) -> Grads:
        def backward(g: np.ndarray) -> np.ndarray:
            weight = self.weight.unpack(self)
            return K.binary_cross_entropy_backward(
                g,
                _arr(self.self_.unpack(self)),
                _arr(self.target.unpack(self)),
                _arr(weight) if weight is not None else None,
                self.reduction,
            )

        return _unary(self, grads, backward)


@register_node
class NllLossBackward(Node):
    """Gradient of `nll_loss` with respect to the log-probabilities."""

    def __init__(
        self,
        next_edges: Sequence[Edge],
        self_: Tensor,
        target: Tensor,
        weight: Optional[Tensor],
        reduction: Reduction,
        ignore_index: int,
    ) -> None:
        super().__init__(next_edges)
        self.self_ = SavedTensor(self_)
        self.target = SavedTensor(target)
        self.weight = SavedTensor(weight)
        self.reduction = reduction
        self.ignore_index = int(ignore_index)
        self.total_weight: Optional[np.ndarray] = None

    def apply(self, grads: Grads) -> Grads:
        def backward(g: np.ndarray) -> np.ndarray:
            weight = self.weight.unpack(self)
            return K.nll_loss_backward(
                g,
                _arr(self.self_.unpack(self)),
                _arr(self.target.unpack(self)),
                _arr(weight) if weight is not None else None,
                self.reduction,
                self.ignore_index,
                self.total_weight,
            )

        return _unary(self, grads, backward)
