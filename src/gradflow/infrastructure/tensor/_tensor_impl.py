"""
Strided tensor metadata over shared storage.

`TensorImpl` is the backend object behind every user-facing `Tensor`. It owns
no data itself: it describes how to read a `Storage`'s bytes as a typed,
strided array (sizes, strides, storage offset, element type) and carries
the bookkeeping the autograd layer relies on (version counter and the
optional autograd metadata slot).

Invariants
----------
- `len(strides) == len(sizes)` at all times.
- `numel == prod(sizes)` (1 for a 0-dim tensor).
- `is_contiguous` and `is_non_overlapping_and_dense` are recomputed on
  every size or stride change; an empty tensor is contiguous.
- The implementation is registered as a holder of its version counter for
  as long as it is alive, so `unique_version()` reflects live views only.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence
import weakref

import numpy as np

from ...domain.device._device import Device
from ...domain._dtype import MemoryFormat, TypeMeta
from ...domain._errors import ShapeOrDimensionError
from ..storage._storage import Storage
from ._numpy_types import to_numpy_dtype
from ._shape_utils import (
    compute_contiguous,
    compute_numel,
    contiguous_strides,
    maybe_wrap_dim,
)
from ._version_counter import VersionCounter


class TensorImpl:
    """
    Shape, stride, and placement metadata for one view of a `Storage`.

    Parameters
    ----------
    storage : Storage
        Storage whose bytes this implementation views. Shared by reference.
    dtype : TypeMeta
        Element type.
    sizes : Sequence[int], optional
        Initial sizes. Defaults to `(0,)`, i.e. an empty 1-d tensor.
    strides : Sequence[int], optional
        Initial strides in elements. Defaults to the contiguous strides of
        `sizes`.
    storage_offset : int, optional
        Offset of the first element, in elements. Defaults to 0.
    version_counter : VersionCounter, optional
        Counter to share. A fresh counter is created if omitted.

    Notes
    -----
    The storage's reference count is incremented on construction and
    decremented when the implementation is garbage collected.
    """

    def __init__(
        self,
        storage: Storage,
        dtype: TypeMeta,
        sizes: Optional[Sequence[int]] = None,
        strides: Optional[Sequence[int]] = None,
        storage_offset: int = 0,
        version_counter: Optional[VersionCounter] = None,
    ) -> None:
        self._storage = storage
        self._dtype = TypeMeta.make(dtype)
        self._sizes: tuple[int, ...] = (0,)
        self._strides: tuple[int, ...] = (1,)
        self._storage_offset = int(storage_offset)
        self._numel = 0
        self._is_contiguous = True
        self._is_non_overlapping_and_dense = True
        self.is_wrapped_number = False
        self.autograd_meta: Optional[Any] = None

        self._version_counter = (
            version_counter if version_counter is not None else VersionCounter()
        )
        self._version_counter.attach(self)

        storage.incref()
        weakref.finalize(self, storage.decref)

        if sizes is not None:
            if strides is None:
                self.set_sizes_contiguous(sizes)
            else:
                self.set_sizes_and_strides(sizes, strides)
        else:
            self._refresh_numel()
            self._refresh_contiguous()

    # ------------------------------------------------------------------
    # Basic metadata
    # ------------------------------------------------------------------
    @property
    def storage(self) -> Storage:
        return self._storage

    @property
    def dtype(self) -> TypeMeta:
        return self._dtype

    @property
    def device(self) -> Device:
        return self._storage.device

    @property
    def sizes(self) -> tuple[int, ...]:
        return self._sizes

    @property
    def strides(self) -> tuple[int, ...]:
        return self._strides

    @property
    def storage_offset(self) -> int:
        return self._storage_offset

    @property
    def itemsize(self) -> int:
        return self._dtype.itemsize

    @property
    def is_contiguous(self) -> bool:
        return self._is_contiguous

    @property
    def is_non_overlapping_and_dense(self) -> bool:
        return self._is_non_overlapping_and_dense

    def dim(self) -> int:
        return len(self._sizes)

    def numel(self) -> int:
        return self._numel

    def is_empty(self) -> bool:
        return self._numel == 0

    def size(self, d: int) -> int:
        """
        Return the size of dimension `d`; negative indices wrap.

        Raises
        ------
        ShapeOrDimensionError
            If `d` is out of range for this tensor's rank.
        """
        return self._sizes[maybe_wrap_dim(d, self.dim(), wrap_scalar=False)]

    def stride(self, d: int) -> int:
        """
        Return the stride of dimension `d`; negative indices wrap.

        Raises
        ------
        ShapeOrDimensionError
            If `d` is out of range for this tensor's rank.
        """
        return self._strides[maybe_wrap_dim(d, self.dim(), wrap_scalar=False)]

    # ------------------------------------------------------------------
    # Size / stride mutation
    # ------------------------------------------------------------------
    def set_sizes_contiguous(self, sizes: Sequence[int]) -> None:
        """
        Set sizes and recompute row-major strides and cached flags.
        """
        self._sizes = tuple(int(s) for s in sizes)
        self._refresh_numel()
        self.empty_tensor_restride(MemoryFormat.CONTIGUOUS)

    def set_sizes_and_strides(
        self, sizes: Sequence[int], strides: Sequence[int]
    ) -> None:
        """
        Set explicit sizes and strides.

        Raises
        ------
        ShapeOrDimensionError
            If the two sequences have different lengths.
        """
        sizes = tuple(int(s) for s in sizes)
        strides = tuple(int(s) for s in strides)
        if len(sizes) != len(strides):
            raise ShapeOrDimensionError(
                f"dimensionality of sizes ({len(sizes)}) must match "
                f"dimensionality of strides ({len(strides)})"
            )
        self._sizes = sizes
        self._strides = strides
        self._refresh_numel()
        self._refresh_contiguous()

    def set_storage_offset(self, storage_offset: int) -> None:
        self._storage_offset = int(storage_offset)

    def empty_tensor_restride(self, memory_format: MemoryFormat) -> None:
        """
        Recompute strides for `memory_format` from the current sizes.

        Only `MemoryFormat.CONTIGUOUS` rewrites strides. Every other format
        keeps the current strides and only refreshes the cached flags.
        """
        if memory_format is MemoryFormat.CONTIGUOUS:
            self._strides = contiguous_strides(self._sizes)
        self._refresh_contiguous()

    def _refresh_numel(self) -> None:
        self._numel = compute_numel(self._sizes)

    def _refresh_contiguous(self) -> None:
        self._is_contiguous = compute_contiguous(self._sizes, self._strides)
        self._is_non_overlapping_and_dense = self._is_contiguous

    # ------------------------------------------------------------------
    # Version counter
    # ------------------------------------------------------------------
    @property
    def version_counter(self) -> VersionCounter:
        return self._version_counter

    def set_version_counter(self, version_counter: VersionCounter) -> None:
        """
        Replace the version counter, moving this holder to the new counter.
        """
        self._version_counter.detach(self)
        self._version_counter = version_counter
        version_counter.attach(self)

    def bump_version(self) -> int:
        return self._version_counter.bump()

    def unique_version(self) -> bool:
        return self._version_counter.unique()

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def shallow_copy_and_detach(
        self, version_counter: Optional[VersionCounter] = None
    ) -> "TensorImpl":
        """
        Create a new implementation viewing the same storage.

        The copy has its own identity, copies sizes, strides, offset and
        flags, uses `version_counter` (a fresh counter if None), and carries
        no autograd metadata.
        """
        impl = TensorImpl(
            self._storage,
            self._dtype,
            sizes=self._sizes,
            strides=self._strides,
            storage_offset=self._storage_offset,
            version_counter=version_counter,
        )
        impl.is_wrapped_number = self.is_wrapped_number
        return impl

    def as_strided(
        self,
        sizes: Sequence[int],
        strides: Sequence[int],
        storage_offset: Optional[int] = None,
    ) -> "TensorImpl":
        """
        Create a view with new sizes/strides that shares storage and the
        version counter with this implementation.
        """
        return TensorImpl(
            self._storage,
            self._dtype,
            sizes=sizes,
            strides=strides,
            storage_offset=(
                self._storage_offset if storage_offset is None else storage_offset
            ),
            version_counter=self._version_counter,
        )

    def data_view(self) -> np.ndarray:
        """
        Return a NumPy array that aliases this view's bytes in the storage.

        Writes through the returned array modify the storage. The array is
        only valid until the storage is next resized.
        """
        np_dtype = to_numpy_dtype(self._dtype)
        if self._numel == 0:
            return np.empty(self._sizes, dtype=np_dtype)
        itemsize = self.itemsize
        return np.ndarray(
            shape=self._sizes,
            dtype=np_dtype,
            buffer=self._storage.data,
            offset=self._storage_offset * itemsize,
            strides=tuple(s * itemsize for s in self._strides),
        )

    def __repr__(self) -> str:
        return (
            f"TensorImpl(sizes={self._sizes}, strides={self._strides}, "
            f"offset={self._storage_offset}, dtype={self._dtype}, "
            f"device={self.device}, version={self._version_counter.current_version})"
        )
