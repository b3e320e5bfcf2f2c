"""
Differentiable tensor operations.

Every operation here follows the same recording protocol:

1. decide whether the result needs history (`compute_requires_grad`);
2. if so, collect the inputs' gradient edges and build the backward node,
   saving the forward state the derivative needs;
3. run the NumPy kernel on the inputs' storage views;
4. attach the node to the differentiable output with `set_history`.

Steps 2 and 4 are skipped entirely when no input requires grad or grad mode
is disabled, so recording has no cost outside training.

Scalar operands are accepted on either side of the arithmetic operators.
Python scalars never require grad and keep the tensor operand's dtype.
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

import numpy as np

from ..domain._dtype import ScalarType, TypeMeta, get_default_dtype
from ..domain._errors import DeviceMismatchError, ShapeOrDimensionError
from ..domain._reduction import Reduction
from .autograd import _functions as B
from .autograd._node import Node
from .autograd._util import (
    check_no_requires_grad,
    collect_next_edges,
    compute_requires_grad,
    set_history,
)
from .ops import _cpu_kernels as K
from .tensor._numpy_types import from_numpy_dtype, to_numpy_dtype
from .tensor._shape_utils import maybe_wrap_dim
from .tensor._tensor import Tensor

Number = Union[int, float]
TensorOrNumber = Union[Tensor, Number]


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def _arr(t: Tensor) -> np.ndarray:
    return t.impl.data_view()


def _is_number(x) -> bool:
    return isinstance(x, (int, float, np.integer, np.floating)) and not isinstance(x, bool)


def _check_device(a: Tensor, b: Tensor) -> None:
    if a.device != b.device:
        raise DeviceMismatchError(str(a.device), str(b.device))


def _binary_dtype(a: Tensor, b: Tensor):
    if a.impl.is_wrapped_number:
        return b.dtype
    if b.impl.is_wrapped_number:
        return a.dtype
    return from_numpy_dtype(np.result_type(_arr(a).dtype, _arr(b).dtype))


def _scalar_dtype(a: Tensor, scalar: Number, true_div: bool = False):
    if a.dtype.is_floating_point:
        return a.dtype
    if true_div or isinstance(scalar, (float, np.floating)):
        return get_default_dtype()
    return a.dtype


def _check_broadcast(op: str, a: Tensor, b: Tensor) -> None:
    try:
        np.broadcast_shapes(a.shape, b.shape)
    except ValueError as exc:
        raise ShapeOrDimensionError(
            f"{op}: shapes {a.shape} and {b.shape} are not broadcast-compatible"
        ) from exc


def _record(out: Tensor, grad_fn: Optional[Node]) -> Tensor:
    if grad_fn is not None:
        set_history(out, grad_fn)
    return out


def _result(arr, like: Tensor, dtype=None) -> Tensor:
    return Tensor._from_array(arr, dtype=dtype or like.dtype, device=like.device)


def wrapped_scalar(value: Number, like: Tensor) -> Tensor:
    """
    Wrap a Python scalar as a 0-d tensor with `like`'s dtype and device.

    The result is flagged `is_wrapped_number`, so it never drives dtype
    promotion in binary operations.
    """
    t = Tensor._from_array(np.asarray(value), dtype=like.dtype, device=like.device)
    t.impl.is_wrapped_number = True
    return t


# ----------------------------------------------------------------------
# Arithmetic
# ----------------------------------------------------------------------
def add(a: Tensor, b: TensorOrNumber, alpha: Number = 1) -> Tensor:
    """
    Differentiable `a + alpha * b` with broadcasting.
    """
    if _is_number(b):
        grad_fn = None
        if compute_requires_grad(a):
            grad_fn = B.AddBackward1(collect_next_edges(a))
        out = _result(K.add(_arr(a), b, alpha), a, _scalar_dtype(a, b))
        return _record(out, grad_fn)

    _check_device(a, b)
    _check_broadcast("add", a, b)
    grad_fn = None
    if compute_requires_grad(a, b):
        grad_fn = B.AddBackward0(collect_next_edges(a, b), a.shape, b.shape, alpha)
    out = _result(K.add(_arr(a), _arr(b), alpha), a, _binary_dtype(a, b))
    return _record(out, grad_fn)


def sub(a: Tensor, b: TensorOrNumber, alpha: Number = 1) -> Tensor:
    """
    Differentiable `a - alpha * b` with broadcasting.
    """
    if _is_number(b):
        grad_fn = None
        if compute_requires_grad(a):
            grad_fn = B.SubBackward1(collect_next_edges(a))
        out = _result(K.sub(_arr(a), b, alpha), a, _scalar_dtype(a, b))
        return _record(out, grad_fn)

    _check_device(a, b)
    _check_broadcast("sub", a, b)
    grad_fn = None
    if compute_requires_grad(a, b):
        grad_fn = B.SubBackward0(collect_next_edges(a, b), a.shape, b.shape, alpha)
    out = _result(K.sub(_arr(a), _arr(b), alpha), a, _binary_dtype(a, b))
    return _record(out, grad_fn)


def rsub(a: Tensor, b: Number) -> Tensor:
    """`b - a` for a scalar `b`."""
    return sub(wrapped_scalar(b, a), a)


def mul(a: Tensor, b: TensorOrNumber) -> Tensor:
    """
    Differentiable elementwise product with broadcasting.
    """
    if _is_number(b):
        grad_fn = None
        if compute_requires_grad(a):
            grad_fn = B.MulBackward1(collect_next_edges(a), b)
        out = _result(K.mul(_arr(a), b), a, _scalar_dtype(a, b))
        return _record(out, grad_fn)

    _check_device(a, b)
    _check_broadcast("mul", a, b)
    grad_fn = None
    if compute_requires_grad(a, b):
        grad_fn = B.MulBackward0(collect_next_edges(a, b), a, b)
    out = _result(K.mul(_arr(a), _arr(b)), a, _binary_dtype(a, b))
    return _record(out, grad_fn)


def div(a: Tensor, b: TensorOrNumber) -> Tensor:
    """
    Differentiable elementwise true division with broadcasting.
    """
    if _is_number(b):
        grad_fn = None
        if compute_requires_grad(a):
            grad_fn = B.DivBackward1(collect_next_edges(a), b)
        out = _result(K.div(_arr(a), b), a, _scalar_dtype(a, b, true_div=True))
        return _record(out, grad_fn)

    _check_device(a, b)
    _check_broadcast("div", a, b)
    grad_fn = None
    if compute_requires_grad(a, b):
        grad_fn = B.DivBackward0(collect_next_edges(a, b), a, b)
    dtype = _binary_dtype(a, b)
    if not dtype.is_floating_point:
        dtype = get_default_dtype()
    out = _result(K.div(_arr(a), _arr(b)), a, dtype)
    return _record(out, grad_fn)


def rdiv(a: Tensor, b: Number) -> Tensor:
    """`b / a` for a scalar `b`."""
    return div(wrapped_scalar(b, a), a)


def neg(a: Tensor) -> Tensor:
    grad_fn = None
    if compute_requires_grad(a):
        grad_fn = B.NegBackward(collect_next_edges(a))
    return _record(_result(K.neg(_arr(a)), a), grad_fn)


# ----------------------------------------------------------------------
# Views and matrix products
# ----------------------------------------------------------------------
def transpose(a: Tensor, dim0: int, dim1: int) -> Tensor:
    """
    Swap two dimensions.

    The result is a view: it shares storage and the version counter with
    `a`, and is generally not contiguous.
    """
    rank = a.dim()
    d0 = maybe_wrap_dim(dim0, rank)
    d1 = maybe_wrap_dim(dim1, rank)
    grad_fn = None
    if compute_requires_grad(a):
        grad_fn = B.TransposeBackward(collect_next_edges(a), d0, d1)
    if rank == 0:
        impl = a.impl.as_strided((), ())
    else:
        sizes = list(a.shape)
        strides = list(a.strides())
        sizes[d0], sizes[d1] = sizes[d1], sizes[d0]
        strides[d0], strides[d1] = strides[d1], strides[d0]
        impl = a.impl.as_strided(sizes, strides)
    return _record(Tensor._wrap(impl), grad_fn)


def t(a: Tensor) -> Tensor:
    """
    Transpose a tensor of rank at most 2.

    Raises
    ------
    ShapeOrDimensionError
        If `a` has more than two dimensions.
    """
    if a.dim() > 2:
        raise ShapeOrDimensionError(
            f"t() expects a tensor with <= 2 dimensions, but self is {a.dim()}D",
            rank=a.dim(),
        )
    grad_fn = None
    if compute_requires_grad(a):
        grad_fn = B.TBackward(collect_next_edges(a))
    if a.dim() < 2:
        impl = a.impl.as_strided(a.shape, a.strides())
    else:
        impl = a.impl.as_strided(a.shape[::-1], a.strides()[::-1])
    return _record(Tensor._wrap(impl), grad_fn)


def mm(a: Tensor, b: Tensor) -> Tensor:
    """
    Matrix product of two 2-D tensors.
    """
    _check_device(a, b)
    result = K.mm(_arr(a), _arr(b))
    grad_fn = None
    if compute_requires_grad(a, b):
        grad_fn = B.MmBackward(collect_next_edges(a, b), a, b)
    return _record(_result(result, a, _binary_dtype(a, b)), grad_fn)


def addmm(
    bias: Tensor,
    mat1: Tensor,
    mat2: Tensor,
    *,
    beta: Number = 1,
    alpha: Number = 1,
) -> Tensor:
    """
    `beta * bias + alpha * (mat1 @ mat2)`, with `bias` broadcast to the
    product's shape.
    """
    _check_device(mat1, mat2)
    _check_device(bias, mat1)
    result = K.addmm(_arr(bias), _arr(mat1), _arr(mat2), beta=beta, alpha=alpha)
    grad_fn = None
    if compute_requires_grad(bias, mat1, mat2):
        grad_fn = B.AddmmBackward(
            collect_next_edges(bias, mat1, mat2),
            bias.shape,
            mat1,
            mat2,
            beta=beta,
            alpha=alpha,
        )
    return _record(_result(result, mat1, _binary_dtype(mat1, mat2)), grad_fn)


def linear(x: Tensor, weight: Tensor, bias: Optional[Tensor] = None) -> Tensor:
    """
    Affine map `x @ weight.T + bias`.

    Parameters
    ----------
    x : Tensor
        Input of shape `(N, in_features)`.
    weight : Tensor
        Weight of shape `(out_features, in_features)`.
    bias : Tensor, optional
        Bias of shape `(out_features,)`.

    Raises
    ------
    ShapeOrDimensionError
        If `x` is not 2-D or feature sizes disagree.
    """
    if x.dim() != 2:
        raise ShapeOrDimensionError(
            f"linear expects a 2-D input (N, in_features), got shape {x.shape}",
            rank=x.dim(),
        )
    if bias is not None:
        return addmm(bias, x, t(weight))
    return mm(x, t(weight))


# ----------------------------------------------------------------------
# Reductions
# ----------------------------------------------------------------------
def mean(a: Tensor) -> Tensor:
    """
    Mean of all elements as a 0-d tensor.
    """
    grad_fn = None
    if compute_requires_grad(a):
        grad_fn = B.MeanBackward(collect_next_edges(a), a.shape)
    dtype = a.dtype
    if not dtype.is_floating_point:
        dtype = get_default_dtype()
    return _record(_result(K.reduce_mean(_arr(a)), a, dtype), grad_fn)


def sum(
    a: Tensor,
    dim: Optional[Union[int, Sequence[int]]] = None,
    keepdim: bool = False,
) -> Tensor:
    """
    Sum of all elements, or over `dim` (an int or a list of ints).
    """
    requires_grad = compute_requires_grad(a)
    if dim is None:
        grad_fn = B.SumBackward0(collect_next_edges(a), a.shape) if requires_grad else None
        return _record(_result(K.reduce_sum(_arr(a)), a), grad_fn)

    dims = (dim,) if isinstance(dim, int) else tuple(dim)
    rank = a.dim()
    wrapped = tuple(sorted({maybe_wrap_dim(d, rank) for d in dims}))
    if len(wrapped) != len(dims):
        raise ShapeOrDimensionError(f"sum: dim {list(dims)} appears multiple times")
    axes = wrapped if rank > 0 else None
    grad_fn = None
    if requires_grad:
        # a 0-d input has no axis to restore in backward
        grad_fn = B.SumBackward1(collect_next_edges(a), a.shape, axes or (), keepdim)
    return _record(_result(K.reduce_sum(_arr(a), axes, keepdim), a), grad_fn)


def argmax(a: Tensor, dim: Optional[int] = None, keepdim: bool = False) -> Tensor:
    """
    Indices of the maximum values as an int64 tensor.

    Without `dim` the input is flattened. The result never requires grad.

    Raises
    ------
    ShapeOrDimensionError
        If `dim` is out of range, or `a` has no elements.
    """
    if a.numel() == 0:
        raise ShapeOrDimensionError("argmax: expected a tensor with at least one element")
    axis = None
    if dim is not None:
        d = maybe_wrap_dim(dim, a.dim())
        axis = d if a.dim() > 0 else None
    out = K.argmax(_arr(a), axis, keepdim)
    return _result(out, a, TypeMeta.make(ScalarType.INT64))


# ----------------------------------------------------------------------
# Activations and losses
# ----------------------------------------------------------------------
def sigmoid(a: Tensor) -> Tensor:
    grad_fn = None
    if compute_requires_grad(a):
        grad_fn = B.SigmoidBackward(collect_next_edges(a))
    dtype = a.dtype
    x = _arr(a)
    if not dtype.is_floating_point:
        dtype = get_default_dtype()
        x = x.astype(to_numpy_dtype(dtype))
    out = _record(_result(K.sigmoid(x), a, dtype), grad_fn)
    if grad_fn is not None:
        grad_fn.save_result(out)
    return out


def log_softmax(a: Tensor, dim: int) -> Tensor:
    """
    Logarithm of softmax along `dim`.
    """
    d = maybe_wrap_dim(dim, a.dim())
    axis = d if a.dim() > 0 else None
    grad_fn = None
    if compute_requires_grad(a):
        grad_fn = B.LogSoftmaxBackward(collect_next_edges(a), axis)
    out = _record(_result(K.log_softmax(_arr(a), axis), a), grad_fn)
    if grad_fn is not None:
        grad_fn.save_result(out)
    return out


def binary_cross_entropy(
    x: Tensor,
    target: Tensor,
    weight: Optional[Tensor] = None,
    reduction: Union[Reduction, str] = Reduction.MEAN,
) -> Tensor:
    """
    Binary cross entropy between probabilities `x` and `target`.

    Raises
    ------
    GradientOnNonDifferentiableInputError
        If `target` or `weight` requires grad.
    ShapeOrDimensionError
        If `target` does not match `x`'s shape.
    ValueError
        If any element of `x` lies outside [0, 1].
    """
    op = "binary_cross_entropy"
    reduction = Reduction.parse(reduction)
    check_no_requires_grad(target, "target", op)
    check_no_requires_grad(weight, "weight", op)
    if tuple(target.shape) != tuple(x.shape):
        raise ShapeOrDimensionError(
            f"{op}: target size {target.shape} differs from input size {x.shape}"
        )
    xa = _arr(x)
    if np.any((xa < 0) | (xa > 1)):
        raise ValueError(f"{op}: all elements of input should be between 0 and 1")
    wa = _arr(weight) if weight is not None else None

    grad_fn = None
    if compute_requires_grad(x):
        grad_fn = B.BinaryCrossEntropyBackward(
            collect_next_edges(x), x, target, weight, reduction
        )
    out = K.binary_cross_entropy(xa, _arr(target), wa, reduction)
    return _record(_result(out, x), grad_fn)


def nll_loss(
    x: Tensor,
    target: Tensor,
    weight: Optional[Tensor] = None,
    reduction: Union[Reduction, str] = Reduction.MEAN,
    ignore_index: int = -100,
) -> Tensor:
    """
    Negative log likelihood of class indices `target` under log-probabilities
    `x` of shape `(N, C)` or `(C,)`.

    Raises
    ------
    GradientOnNonDifferentiableInputError
        If `weight` requires grad.
    """
    op = "nll_loss"
    reduction = Reduction.parse(reduction)
    check_no_requires_grad(target, "target", op)
    check_no_requires_grad(weight, "weight", op)
    if target.dtype.is_floating_point:
        raise TypeError(f"{op}: target must be an integer tensor, got {target.dtype}")
    wa = _arr(weight) if weight is not None else None

    grad_fn = None
    if compute_requires_grad(x):
        grad_fn = B.NllLossBackward(
            collect_next_edges(x), x, target, weight, reduction, ignore_index
        )
    out, total_weight = K.nll_loss(_arr(x), _arr(target), wa, reduction, ignore_index)
    if grad_fn is not None:
        grad_fn.total_weight = total_weight
    return _record(_result(out, x), grad_fn)
