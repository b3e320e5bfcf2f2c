"""
Tensor factory functions.

Every factory accepts either a `TensorOptions` object, keyword options
(`dtype`, `device`, `requires_grad`), or both; keywords override the
options object. Unset options fall back to the process defaults.
"""

from __future__ import annotations

from typing import Any, Optional

import numpy as np

from ...domain._dtype import get_default_dtype
from .._random import resolve_generator
from ._numpy_types import from_numpy_dtype, to_numpy_dtype
from ._shape_utils import ShapeLike, normalize_shape
from ._tensor import Tensor
from ._tensor_options import TensorOptions


def _options(options: Optional[TensorOptions], **kwargs) -> TensorOptions:
    return TensorOptions.resolve(options, **kwargs)


def _finish(t: Tensor, opts: TensorOptions) -> Tensor:
    if opts.requires_grad_or_default():
        t.requires_grad = True
    return t


def empty(
    shape: ShapeLike,
    options: Optional[TensorOptions] = None,
    *,
    dtype=None,
    device=None,
    requires_grad: Optional[bool] = None,
) -> Tensor:
    """Uninitialized tensor of the given shape."""
    opts = _options(options, dtype=dtype, device=device, requires_grad=requires_grad)
    return Tensor(shape, options=opts)


def full(
    shape: ShapeLike,
    fill_value: Any,
    options: Optional[TensorOptions] = None,
    *,
    dtype=None,
    device=None,
    requires_grad: Optional[bool] = None,
) -> Tensor:
    """Tensor of the given shape filled with `fill_value`."""
    opts = _options(options, dtype=dtype, device=device)
    t = Tensor(shape, options=opts)
    t.impl.data_view()[...] = fill_value
    return _finish(t, _options(opts, requires_grad=requires_grad))


def zeros(shape: ShapeLike, options: Optional[TensorOptions] = None, **kwargs) -> Tensor:
    return full(shape, 0, options, **kwargs)


def ones(shape: ShapeLike, options: Optional[TensorOptions] = None, **kwargs) -> Tensor:
    return full(shape, 1, options, **kwargs)


def zeros_like(other: Tensor, options: Optional[TensorOptions] = None, **kwargs) -> Tensor:
    base = TensorOptions(dtype=other.dtype, device=other.device)
    return zeros(other.shape, base.merge_in(options or TensorOptions()), **kwargs)


def ones_like(other: Tensor, options: Optional[TensorOptions] = None, **kwargs) -> Tensor:
    base = TensorOptions(dtype=other.dtype, device=other.device)
    return ones(other.shape, base.merge_in(options or TensorOptions()), **kwargs)


def from_numpy(
    arr: np.ndarray,
    options: Optional[TensorOptions] = None,
    *,
    dtype=None,
    device=None,
    requires_grad: Optional[bool] = None,
) -> Tensor:
    """
    Tensor holding a copy of `arr`.

    The dtype follows `arr` unless overridden.
    """
    arr = np.asarray(arr)
    opts = _options(options, dtype=dtype, device=device, requires_grad=requires_grad)
    meta = opts.dtype if opts.has_dtype else from_numpy_dtype(arr.dtype)
    t = Tensor._from_array(arr, dtype=meta, device=opts.device_or_default())
    return _finish(t, opts)


def tensor(
    data: Any,
    options: Optional[TensorOptions] = None,
    *,
    dtype=None,
    device=None,
    requires_grad: Optional[bool] = None,
) -> Tensor:
    """
    Tensor from nested Python data, a NumPy array, or a scalar.

    Python floats become the default dtype; Python ints become int64.
    """
    opts = _options(options, dtype=dtype, device=device, requires_grad=requires_grad)
    if isinstance(data, Tensor):
        data = data.to_numpy()
    is_array = isinstance(data, np.ndarray)
    arr = np.asarray(data)
    if not opts.has_dtype and not is_array and arr.dtype == np.float64:
        opts = opts.with_dtype(get_default_dtype())
    return from_numpy(arr, opts)


def rand(
    shape: ShapeLike,
    options: Optional[TensorOptions] = None,
    *,
    generator: Optional[np.random.Generator] = None,
    **kwargs,
) -> Tensor:
    """Samples from U(0, 1)."""
    opts = _options(options, **kwargs)
    values = resolve_generator(generator).random(normalize_shape(shape))
    return from_numpy(values.astype(to_numpy_dtype(opts.dtype_or_default())), opts)


def randn(
    shape: ShapeLike,
    options: Optional[TensorOptions] = None,
    *,
    generator: Optional[np.random.Generator] = None,
    **kwargs,
) -> Tensor:
    """Samples from the standard normal distribution."""
    opts = _options(options, **kwargs)
    values = resolve_generator(generator).standard_normal(normalize_shape(shape))
    return from_numpy(values.astype(to_numpy_dtype(opts.dtype_or_default())), opts)
