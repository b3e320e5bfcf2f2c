"""
Shape and stride helpers shared by `TensorImpl`, views, and backward nodes.

All helpers operate on plain tuples of Python ints and never touch tensor
data.
"""

from __future__ import annotations

from typing import Iterable, Sequence, Union

from ...domain._errors import ShapeOrDimensionError

ShapeLike = Union[int, Sequence[int]]


def normalize_shape(shape: ShapeLike) -> tuple[int, ...]:
    """
    Normalize an int or a sequence of ints into a shape tuple.

    Raises
    ------
    ShapeOrDimensionError
        If any dimension is negative.
    """
    if isinstance(shape, int):
        dims = (int(shape),)
    else:
        dims = tuple(int(d) for d in shape)
    for d in dims:
        if d < 0:
            raise ShapeOrDimensionError(
                f"Trying to create tensor with negative dimension {d}: {list(dims)}"
            )
    return dims


def compute_numel(sizes: Iterable[int]) -> int:
    n = 1
    for s in sizes:
        n *= int(s)
    return n


def contiguous_strides(sizes: Sequence[int]) -> tuple[int, ...]:
    """
    Row-major strides for `sizes`.

    The last stride is 1 and `stride[i] = stride[i+1] * max(size[i+1], 1)`,
    so zero-sized dimensions never collapse the strides to 0.
    """
    ndim = len(sizes)
    if ndim == 0:
        return ()
    strides = [1] * ndim
    for i in range(ndim - 2, -1, -1):
        strides[i] = strides[i + 1] * max(int(sizes[i + 1]), 1)
    return tuple(strides)


def compute_contiguous(sizes: Sequence[int], strides: Sequence[int]) -> bool:
    """
    Return True if `(sizes, strides)` describes a row-major layout.

    Size-1 dimensions are skipped because their stride never affects
    addressing. An empty tensor is always contiguous.
    """
    if compute_numel(sizes) == 0:
        return True
    expected = 1
    for size, stride in zip(reversed(sizes), reversed(strides)):
        if size == 1:
            continue
        if stride != expected:
            return False
        expected *= size
    return True


def maybe_wrap_dim(dim: int, rank: int, wrap_scalar: bool = True) -> int:
    """
    Map a possibly-negative dimension index into `[0, rank)`.

    Parameters
    ----------
    dim : int
        Dimension index; negative values count from the end.
    rank : int
        Rank of the tensor the index applies to.
    wrap_scalar : bool, optional
        If True, a rank-0 tensor accepts indices as if it had rank 1.

    Raises
    ------
    ShapeOrDimensionError
        If `dim` is out of range. The error carries `dim` and `rank`.
    """
    dim = int(dim)
    effective = rank
    if rank <= 0:
        if not wrap_scalar:
            raise ShapeOrDimensionError.out_of_range(dim, rank)
        effective = 1
    if dim < -effective or dim > effective - 1:
        raise ShapeOrDimensionError.out_of_range(dim, rank)
    return dim + effective if dim < 0 else dim


def is_expandable_to(shape: Sequence[int], desired: Sequence[int]) -> bool:
    """
    Return True if `shape` broadcasts to `desired`.
    """
    if len(shape) > len(desired):
        return False
    for s, d in zip(reversed(shape), reversed(desired)):
        if s != d and s != 1:
            return False
    return True


def sum_to_shape_axes(
    src_shape: Sequence[int], target_shape: Sequence[int]
) -> tuple[tuple[int, ...], int]:
    """
    Compute the reduction plan that undoes broadcasting of `target_shape`
    into `src_shape`.

    Returns
    -------
    reduce_axes : tuple[int, ...]
        Axes of the source to sum with `keepdims=True`.
    lead : int
        Number of leading source axes that do not exist in the target and
        must be squeezed away afterwards.

    Raises
    ------
    ShapeOrDimensionError
        If `target_shape` could not have been broadcast to `src_shape`.
    """
    src = tuple(int(d) for d in src_shape)
    tgt = tuple(int(d) for d in target_shape)
    if not is_expandable_to(tgt, src):
        raise ShapeOrDimensionError(
            f"Cannot sum_to_shape from {src} to {tgt}: shapes are not broadcast-compatible"
        )
    lead = len(src) - len(tgt)
    padded = (1,) * lead + tgt
    reduce_axes = tuple(
        i for i, (sd, td) in enumerate(zip(src, padded)) if td == 1 and sd != 1
    )
    return reduce_axes, lead
