"""
CPU numeric kernels.

Pure NumPy implementations of the forward and backward arithmetic used by
the differentiable operations. Kernels take and return `numpy.ndarray`
objects (usually obtained from `TensorImpl.data_view()`), and know nothing
about tensors, graphs, or grad mode.

Conventions
-----------
- Inputs are never modified; every kernel returns a new array.
- Shape errors are reported as `ShapeOrDimensionError`.
- Logs are clamped at -100 in the binary cross entropy forward, and the
  backward denominator is clamped at 1e-12, so saturated probabilities give
  finite losses and gradients.
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

import numpy as np

from ...domain._errors import ShapeOrDimensionError
from ...domain._reduction import Reduction
from ..tensor._shape_utils import sum_to_shape_axes

_BCE_LOG_CLAMP = -100.0
_BCE_EPS = 1e-12

Axes = Optional[Union[int, Sequence[int]]]


# ----------------------------------------------------------------------
# Elementwise arithmetic
# ----------------------------------------------------------------------
def add(a: np.ndarray, b, alpha: float = 1.0) -> np.ndarray:
    if alpha == 1:
        return np.add(a, b)
    return np.add(a, np.multiply(b, alpha))


def sub(a: np.ndarray, b, alpha: float = 1.0) -> np.ndarray:
    if alpha == 1:
        return np.subtract(a, b)
    return np.subtract(a, np.multiply(b, alpha))


def mul(a: np.ndarray, b) -> np.ndarray:
    return np.multiply(a, b)


def div(a: np.ndarray, b) -> np.ndarray:
    return np.true_divide(a, b)


def neg(a: np.ndarray) -> np.ndarray:
    return np.negative(a)


def sigmoid(x: np.ndarray) -> np.ndarray:
    """
    Numerically stable logistic function.
    """
    out = np.empty_like(x)
    pos = x >= 0
    out[pos] = 1.0 / (1.0 + np.exp(-x[pos]))
    e = np.exp(x[~pos])
    out[~pos] = e / (1.0 + e)
    return out


def sigmoid_backward(grad: np.ndarray, result: np.ndarray) -> np.ndarray:
    return grad * result * (1.0 - result)


# ----------------------------------------------------------------------
# Matrix products
# ----------------------------------------------------------------------
def _check_mm(a: np.ndarray, b: np.ndarray, op: str) -> None:
    if a.ndim != 2 or b.ndim != 2:
        raise ShapeOrDimensionError(
            f"{op}: expected 2-D operands, got shapes {a.shape} and {b.shape}"
        )
    if a.shape[1] != b.shape[0]:
        raise ShapeOrDimensionError(
            f"{op}: shapes {a.shape} and {b.shape} cannot be multiplied "
            f"({a.shape[0]}x{a.shape[1]} and {b.shape[0]}x{b.shape[1]})"
        )


def mm(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    _check_mm(a, b, "mm")
    return np.matmul(a, b)


def addmm(
    bias: np.ndarray,
    mat1: np.ndarray,
    mat2: np.ndarray,
    beta: float = 1.0,
    alpha: float = 1.0,
) -> np.ndarray:
    """
    Compute `beta * bias + alpha * (mat1 @ mat2)` with `bias` broadcast to
    the product's shape.
    """
    _check_mm(mat1, mat2, "addmm")
    out_shape = (mat1.shape[0], mat2.shape[1])
    try:
        np.broadcast_shapes(bias.shape, out_shape)
    except ValueError as exc:
        raise ShapeOrDimensionError(
            f"addmm: bias of shape {bias.shape} is not broadcastable to {out_shape}"
        ) from exc
    prod = np.matmul(mat1, mat2)
    if alpha != 1:
        prod = prod * alpha
    if beta == 0:
        return prod
    return (bias * beta if beta != 1 else bias) + prod


# ----------------------------------------------------------------------
# Reductions and broadcasting
# ----------------------------------------------------------------------
def sum_to_shape(x: np.ndarray, shape: Sequence[int]) -> np.ndarray:
    """
    Sum `x` down to `shape`, undoing NumPy broadcasting.
    """
    shape = tuple(int(d) for d in shape)
    if tuple(x.shape) == shape:
        return x
    reduce_axes, _ = sum_to_shape_axes(x.shape, shape)
    out = np.sum(x, axis=reduce_axes, keepdims=True) if reduce_axes else x
    return np.reshape(out, shape)


def reduce_sum(x: np.ndarray, axes: Axes = None, keepdim: bool = False) -> np.ndarray:
    return np.asarray(np.sum(x, axis=axes, keepdims=keepdim))


def reduce_mean(x: np.ndarray) -> np.ndarray:
    return np.asarray(np.mean(x))


def argmax(x: np.ndarray, axis: Optional[int] = None, keepdim: bool = False) -> np.ndarray:
    """
    Index of the largest element, over the flattened array or along `axis`.

    Ties resolve to the first occurrence.
    """
    if axis is None:
        out = np.asarray(np.argmax(x))
        if keepdim:
            out = np.reshape(out, (1,) * x.ndim)
        return out.astype(np.int64)
    return np.asarray(np.argmax(x, axis=axis, keepdims=keepdim)).astype(np.int64)


def expand_reduced(
    grad: np.ndarray,
    shape: Sequence[int],
    axes: Optional[Sequence[int]] = None,
    keepdim: bool = False,
) -> np.ndarray:
    """
    Broadcast the gradient of a sum over `axes` back to `shape`.

    `axes=None` means every axis was reduced.
    """
    shape = tuple(int(d) for d in shape)
    if axes is not None and not keepdim:
        for ax in sorted(axes):
            grad = np.expand_dims(grad, ax)
    return np.broadcast_to(grad, shape).copy()


# ----------------------------------------------------------------------
# Softmax and losses
# ----------------------------------------------------------------------
def log_softmax(x: np.ndarray, axis: int) -> np.ndarray:
    shifted = x - np.max(x, axis=axis, keepdims=True)
    return shifted - np.log(np.sum(np.exp(shifted), axis=axis, keepdims=True))


def log_softmax_backward(grad: np.ndarray, result: np.ndarray, axis: int) -> np.ndarray:
    return grad - np.exp(result) * np.sum(grad, axis=axis, keepdims=True)


def apply_reduction(loss: np.ndarray, reduction: Reduction) -> np.ndarray:
    if reduction is Reduction.MEAN:
        return np.asarray(np.mean(loss))
    if reduction is Reduction.SUM:
        return np.asarray(np.sum(loss))
    return loss


def binary_cross_entropy(
    x: np.ndarray,
    target: np.ndarray,
    weight: Optional[np.ndarray],
    reduction: Reduction,
) -> np.ndarray:
    with np.errstate(divide="ignore"):
        log_x = np.maximum(np.log(x), _BCE_LOG_CLAMP)
        log_1mx = np.maximum(np.log1p(-x), _BCE_LOG_CLAMP)
    loss = -(target * log_x + (1.0 - target) * log_1mx)
    if weight is not None:
        loss = loss * weight
    return apply_reduction(loss, reduction)


def binary_cross_entropy_backward(
    grad: np.ndarray,
    x: np.ndarray,
    target: np.ndarray,
    weight: Optional[np.ndarray],
    reduction: Reduction,
) -> np.ndarray:
    denom = np.maximum((1.0 - x) * x, _BCE_EPS)
    grad_input = (x - target) / denom * grad
    if weight is not None:
        grad_input = grad_input * weight
    if reduction is Reduction.MEAN and x.size > 0:
        grad_input = grad_input / x.size
    return grad_input


def _nll_check(x: np.ndarray, target: np.ndarray, weight: Optional[np.ndarray]) -> None:
    if x.ndim not in (1, 2):
        raise ShapeOrDimensionError(f"nll_loss: expected 1-D or 2-D input, got {x.ndim}-D")
    expected = () if x.ndim == 1 else (x.shape[0],)
    if tuple(target.shape) != expected:
        raise ShapeOrDimensionError(
            f"nll_loss: expected target of shape {expected}, got {tuple(target.shape)}"
        )
    n_classes = x.shape[-1]
    if weight is not None and tuple(weight.shape) != (n_classes,):
        raise ShapeOrDimensionError(
            f"nll_loss: weight must have shape ({n_classes},), got {tuple(weight.shape)}"
        )


def nll_loss(
    x: np.ndarray,
    target: np.ndarray,
    weight: Optional[np.ndarray],
    reduction: Reduction,
    ignore_index: int,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Negative log likelihood over class log-probabilities.

    Returns
    -------
    output : np.ndarray
        Reduced (or per-sample) loss.
    total_weight : np.ndarray
        0-d sum of the weights of non-ignored targets.
    """
    _nll_check(x, target, weight)
    x2 = x.reshape(-1, x.shape[-1])
    t = target.reshape(-1).astype(np.int64)
    n_classes = x2.shape[1]

    valid = t != ignore_index
    if np.any((t[valid] < 0) | (t[valid] >= n_classes)):
        raise IndexError(f"nll_loss: target out of bounds for {n_classes} classes")

    safe_t = np.where(valid, t, 0)
    w = weight[safe_t] if weight is not None else np.ones(t.shape, dtype=x.dtype)
    w = np.where(valid, w, 0).astype(x.dtype)
    picked = x2[np.arange(x2.shape[0]), safe_t]
    losses = -picked * w
    total_weight = np.asarray(np.sum(w), dtype=x.dtype)

    if reduction is Reduction.NONE:
        out = losses if x.ndim == 2 else losses.reshape(())
    elif reduction is Reduction.SUM:
        out = np.asarray(np.sum(losses), dtype=x.dtype)
    else:
        out = np.asarray(np.sum(losses) / total_weight, dtype=x.dtype)
    return out, total_weight


def nll_loss_backward(
    grad: np.ndarray,
    x: np.ndarray,
    target: np.ndarray,
    weight: Optional[np.ndarray],
    reduction: Reduction,
    ignore_index: int,
    total_weight: np.ndarray,
) -> np.ndarray:
    x2 = x.reshape(-1, x.shape[-1])
    t = target.reshape(-1).astype(np.int64)
    valid = t != ignore_index
    safe_t = np.where(valid, t, 0)
    w = weight[safe_t] if weight is not None else np.ones(t.shape, dtype=x.dtype)
    w = np.where(valid, w, 0)

    if reduction is Reduction.NONE:
        g = np.reshape(grad, (-1,))
    elif reduction is Reduction.MEAN:
        g = np.full(t.shape, np.asarray(grad).reshape(()) / total_weight)
    else:
        g = np.full(t.shape, np.asarray(grad).reshape(()))

    grad_input = np.zeros_like(x2)
    grad_input[np.arange(x2.shape[0]), safe_t] = -(w * g)
    return grad_input.reshape(x.shape)
