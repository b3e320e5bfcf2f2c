"""
In-place resize of a tensor implementation.

`resize_` changes a tensor's sizes to a contiguous layout and grows the
underlying storage when the new extent does not fit. Shrinking never
reallocates: the storage keeps its bytes and the tensor simply views fewer
of them.
"""

from __future__ import annotations

from typing import Optional, Sequence

from ...domain._dtype import MemoryFormat
from ...domain._errors import AliasedMutationError
from ..storage._storage import resize_bytes
from ._shape_utils import normalize_shape
from ._tensor_impl import TensorImpl


def maybe_resize_storage(impl: TensorImpl) -> None:
    """
    Grow `impl`'s storage if its current extent needs more bytes.

    Storage is only touched when `numel > 0` and
    `(numel + storage_offset) * itemsize` exceeds the current `nbytes`.
    """
    new_numel = impl.numel()
    if new_numel == 0:
        return
    needed = (new_numel + impl.storage_offset) * impl.itemsize
    if needed > impl.storage.nbytes:
        resize_bytes(impl.storage, needed)


def resize_(
    impl: TensorImpl,
    sizes: Sequence[int],
    memory_format: Optional[MemoryFormat] = None,
) -> TensorImpl:
    """
    Resize `impl` in place to `sizes` with contiguous strides.

    Parameters
    ----------
    impl : TensorImpl
        Implementation to resize.
    sizes : Sequence[int]
        New sizes. Must be non-negative.
    memory_format : MemoryFormat, optional
        Layout to restride to after resizing. `None` and `PRESERVE` keep the
        contiguous strides computed from the new sizes.

    Returns
    -------
    TensorImpl
        `impl`, for chaining.

    Raises
    ------
    RuntimeError
        If the tensor requires grad.
    AliasedMutationError
        If another live view shares this implementation's version counter.
    ShapeOrDimensionError
        If `sizes` contains a negative dimension.
    NonResizableStorageError
        If growth is needed but the storage is not resizable.
    """
    meta = impl.autograd_meta
    if meta is not None and (meta.requires_grad or meta.grad_fn is not None):
        raise RuntimeError("cannot resize variables that require grad")
    if not impl.unique_version():
        raise AliasedMutationError("resize_")

    new_sizes = normalize_shape(sizes)
    impl.set_sizes_contiguous(new_sizes)
    maybe_resize_storage(impl)

    if memory_format is not None and memory_format is not MemoryFormat.PRESERVE:
        impl.empty_tensor_restride(memory_format)

    impl.bump_version()
    return impl
