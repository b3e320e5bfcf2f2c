"""
User-facing tensor handle.

`Tensor` is a thin handle around a `TensorImpl`: all shape, stride, storage
and version state lives on the implementation, and all autograd state lives
on the implementation's `AutogradMeta`. Several handles may therefore refer
to the same data (views, detached copies, saved tensors) while agreeing on
its version.

Arithmetic operators and reductions dispatch to the differentiable
operations in `gradflow.infrastructure._functional`, which record backward
nodes when grad mode is enabled and an operand requires grad. In-place
methods (`add_`, `mul_`, `fill_`, ...) write through the storage, bump the
version counter, and never record history.

Notes
-----
- CPU only. Constructing a tensor on any other device raises
  `DeviceNotSupportedError` from the allocator.
- Equality operators are not overloaded; tensors hash by identity so they
  can be used as dictionary keys.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Union
from typing_extensions import Self
import warnings

import numpy as np

from ...domain.device._device import Device
from ...domain._dtype import MemoryFormat, TypeMeta
from ...domain._errors import DeviceMismatchError, ShapeOrDimensionError
from ...domain._tensor import ITensor
from ..autograd._autograd_meta import AutogradMeta
from ..autograd._util import check_inplace
from .._random import resolve_generator
from ..storage._storage import Storage
from ._numpy_types import from_numpy_dtype, to_numpy_dtype
from ._resize import resize_ as _resize_impl
from ._shape_utils import ShapeLike, compute_numel, maybe_wrap_dim, normalize_shape
from ._tensor_impl import TensorImpl
from ._tensor_options import TensorOptions

Number = Union[int, float]


def _functional():
    from .. import _functional

    return _functional


class Tensor(ITensor):
    """
    Strided, optionally differentiable view over shared storage.

    Parameters
    ----------
    shape : int | Sequence[int], optional
        Sizes of the new (uninitialized) tensor. Defaults to `(0,)`.
    dtype : TypeMeta | ScalarType | str, optional
        Element type. Defaults to the process default dtype.
    device : Device | str, optional
        Placement. Defaults to CPU.
    requires_grad : bool, optional
        Whether the new leaf records gradients. Defaults to False.
    options : TensorOptions, optional
        Options object; explicit keyword arguments override its fields.

    Notes
    -----
    The constructor allocates uninitialized memory, like `empty`. Use the
    factories in `gradflow` (`zeros`, `ones`, `tensor`, ...) or
    `copy_from_numpy` to fill it.
    """

    def __init__(
        self,
        shape: Optional[ShapeLike] = None,
        *,
        dtype=None,
        device=None,
        requires_grad: bool = False,
        options: Optional[TensorOptions] = None,
        _impl: Optional[TensorImpl] = None,
    ) -> None:
        if _impl is None:
            opts = TensorOptions.resolve(options, dtype=dtype, device=device)
            sizes = normalize_shape(shape if shape is not None else (0,))
            meta = opts.dtype_or_default()
            storage = Storage(
                nbytes=compute_numel(sizes) * meta.itemsize,
                device=opts.device_or_default(),
            )
            _impl = TensorImpl(storage, meta, sizes=sizes)
            if opts.has_memory_format:
                _impl.empty_tensor_restride(opts.memory_format)
            requires_grad = requires_grad or opts.requires_grad_or_default()
        self._impl = _impl
        if requires_grad:
            self.requires_grad = True

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------
    @classmethod
    def _wrap(cls, impl: TensorImpl) -> "Tensor":
        return Tensor(_impl=impl)

    @classmethod
    def _from_array(
        cls,
        arr: Any,
        *,
        dtype: Optional[TypeMeta] = None,
        device: Optional[Device] = None,
    ) -> "Tensor":
        """
        Create a new leaf that owns a copy of `arr`'s values.
        """
        arr = np.asarray(arr)
        meta = TypeMeta.make(dtype) if dtype is not None else from_numpy_dtype(arr.dtype)
        arr = arr.astype(to_numpy_dtype(meta), copy=False)
        storage = Storage.from_buffer(arr, device=Device.parse(device))
        return Tensor(_impl=TensorImpl(storage, meta, sizes=arr.shape))

    @property
    def impl(self) -> TensorImpl:
        """Backing implementation."""
        return self._impl

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------
    @property
    def shape(self) -> tuple[int, ...]:
        return self._impl.sizes

    def sizes(self) -> tuple[int, ...]:
        return self._impl.sizes

    def strides(self) -> tuple[int, ...]:
        return self._impl.strides

    def size(self, dim: Optional[int] = None) -> Union[int, tuple[int, ...]]:
        if dim is None:
            return self._impl.sizes
        return self._impl.size(dim)

    def stride(self, dim: int) -> int:
        return self._impl.stride(dim)

    def storage_offset(self) -> int:
        return self._impl.storage_offset

    @property
    def dtype(self) -> TypeMeta:
        return self._impl.dtype

    @property
    def device(self) -> Device:
        return self._impl.device

    def numel(self) -> int:
        return self._impl.numel()

    def dim(self) -> int:
        return self._impl.dim()

    def is_contiguous(self) -> bool:
        return self._impl.is_contiguous

    def is_floating_point(self) -> bool:
        return self._impl.dtype.is_floating_point

    @property
    def version(self) -> int:
        return self._impl.version_counter.current_version

    def __len__(self) -> int:
        if self.dim() == 0:
            raise TypeError("len() of a 0-d tensor")
        return self._impl.sizes[0]

    # ------------------------------------------------------------------
    # Autograd state
    # ------------------------------------------------------------------
    def _autograd_meta(self) -> AutogradMeta:
        meta = self._impl.autograd_meta
        if meta is None:
            meta = AutogradMeta()
            self._impl.autograd_meta = meta
        return meta

    @property
    def requires_grad(self) -> bool:
        meta = self._impl.autograd_meta
        return meta is not None and (meta.requires_grad or meta.grad_fn is not None)

    @requires_grad.setter
    def requires_grad(self, value: bool) -> None:
        """
        Set the leaf `requires_grad` flag.

        Raises
        ------
        RuntimeError
            If called with False on a non-leaf, or with True on a tensor whose
            dtype is not floating point.
        """
        meta = self._impl.autograd_meta
        if meta is not None and meta.grad_fn is not None:
            if not value:
                raise RuntimeError(
                    "you can only change requires_grad flags of leaf variables. "
                    "Use detach() to get a tensor without history."
                )
            return
        if meta is None and not value:
            return
        self._autograd_meta().set_requires_grad(bool(value), self.dtype)

    @property
    def grad(self) -> Optional["Tensor"]:
        """
        Gradient accumulated into this leaf by backward, or None.

        Reading `.grad` of a non-leaf emits a `UserWarning`; non-leaves never
        accumulate gradients.
        """
        meta = self._impl.autograd_meta
        if meta is None:
            return None
        if meta.grad_fn is not None:
            warnings.warn(
                "The .grad attribute of a tensor that is not a leaf is being "
                "accessed. It is not populated during backward.",
                UserWarning,
                stacklevel=2,
            )
        return meta.grad

    @grad.setter
    def grad(self, value: Optional["Tensor"]) -> None:
        if value is not None and tuple(value.shape) != tuple(self.shape):
            raise ShapeOrDimensionError(
                f"assigned grad has shape {tuple(value.shape)}, "
                f"expected {tuple(self.shape)}"
            )
        self._autograd_meta().grad = value

    @property
    def grad_fn(self):
        meta = self._impl.autograd_meta
        return meta.grad_fn if meta is not None else None

    @property
    def output_nr(self) -> int:
        meta = self._impl.autograd_meta
        return meta.output_nr if meta is not None else 0

    @property
    def is_leaf(self) -> bool:
        return self.grad_fn is None

    def zero_grad(self, set_to_none: bool = True) -> None:
        """
        Clear the accumulated gradient.

        Parameters
        ----------
        set_to_none : bool, optional
            If True (default) drop the gradient tensor; otherwise zero it in
            place.
        """
        meta = self._impl.autograd_meta
        if meta is None or meta.grad is None:
            return
        if set_to_none:
            meta.grad = None
        else:
            meta.grad = meta.grad.detach()
            meta.grad.zero_()

    def detach(self) -> "Tensor":
        """
        Return a handle that shares storage and version counter but has no
        autograd history.
        """
        impl = self._impl.shallow_copy_and_detach(self._impl.version_counter)
        return Tensor._wrap(impl)

    def backward(
        self,
        gradient: Optional["Tensor"] = None,
        keep_graph: Optional[bool] = None,
        create_graph: bool = False,
    ) -> None:
        """
        Compute gradients of this tensor with respect to graph leaves.

        Parameters
        ----------
        gradient : Tensor, optional
            Seed gradient. May be omitted for single-element tensors.
        keep_graph : bool, optional
            Keep saved tensors so the graph can be traversed again.
            Defaults to `create_graph`.
        create_graph : bool, optional
            Run backward with grad mode enabled.
        """
        from ..autograd._backward import backward

        backward(self, gradient, keep_graph=keep_graph, create_graph=create_graph)

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------
    def to_numpy(self) -> np.ndarray:
        """
        Return a host copy of the tensor's values.
        """
        return np.array(self._impl.data_view(), copy=True)

    def item(self) -> Number:
        """
        Return the value of a single-element tensor as a Python scalar.

        Raises
        ------
        RuntimeError
            If the tensor does not have exactly one element.
        """
        if self.numel() != 1:
            raise RuntimeError(
                f"a Tensor with {self.numel()} elements cannot be converted to Scalar"
            )
        return self._impl.data_view().reshape(()).item()

    def copy_from_numpy(self, arr: Any) -> "Tensor":
        """
        Overwrite this tensor's values in place from a NumPy array.

        Raises
        ------
        ShapeOrDimensionError
            If `arr`'s shape differs from the tensor's shape.
        """
        arr = np.asarray(arr)
        if tuple(arr.shape) != tuple(self.shape):
            raise ShapeOrDimensionError(
                f"copy_from_numpy: shape mismatch {tuple(arr.shape)} vs {tuple(self.shape)}"
            )
        check_inplace(self, op="copy_from_numpy")
        self._impl.data_view()[...] = arr
        self._impl.bump_version()
        return self

    def clone(self) -> "Tensor":
        """
        Return a contiguous copy of the values as a new leaf without history.
        """
        return Tensor._from_array(
            self._impl.data_view(), dtype=self.dtype, device=self.device
        )

    # ------------------------------------------------------------------
    # In-place mutation
    # ------------------------------------------------------------------
    def _inplace_operand(self, other: Union["Tensor", Number], op: str):
        if isinstance(other, Tensor):
            if other.device != self.device:
                raise DeviceMismatchError(str(self.device), str(other.device))
            value = other._impl.data_view()
            if np.broadcast_shapes(value.shape, self.shape) != tuple(self.shape):
                raise ShapeOrDimensionError(
                    f"{op}: operand of shape {value.shape} cannot be broadcast "
                    f"to {tuple(self.shape)}"
                )
            return value
        return other

    def _write(self, values: Any) -> "Tensor":
        self._impl.data_view()[...] = values
        self._impl.bump_version()
        return self

    def add_(self, other: Union["Tensor", Number], alpha: Number = 1) -> Self:
        """In-place `self += alpha * other`."""
        check_inplace(self, other, op="add_")
        view = self._impl.data_view()
        return self._write(view + np.multiply(self._inplace_operand(other, "add_"), alpha))

    def sub_(self, other: Union["Tensor", Number], alpha: Number = 1) -> Self:
        """In-place `self -= alpha * other`."""
        check_inplace(self, other, op="sub_")
        view = self._impl.data_view()
        return self._write(view - np.multiply(self._inplace_operand(other, "sub_"), alpha))

    def mul_(self, other: Union["Tensor", Number]) -> Self:
        """In-place `self *= other`."""
        check_inplace(self, other, op="mul_")
        view = self._impl.data_view()
        return self._write(view * self._inplace_operand(other, "mul_"))

    def fill_(self, value: Number) -> Self:
        check_inplace(self, op="fill_")
        return self._write(value)

    def zero_(self) -> Self:
        check_inplace(self, op="zero_")
        return self._write(0)

    def fill(self, value: Number) -> None:
        self.fill_(value)

    def copy_(self, src: "Tensor") -> Self:
        """In-place copy of `src`'s values (broadcast to this tensor's shape)."""
        check_inplace(self, src, op="copy_")
        return self._write(self._inplace_operand(src, "copy_"))

    def uniform_(
        self, low: float = 0.0, high: float = 1.0, generator=None
    ) -> Self:
        """Fill in place with samples from U(low, high)."""
        check_inplace(self, op="uniform_")
        gen = resolve_generator(generator)
        return self._write(gen.uniform(low, high, size=self.shape))

    def normal_(
        self, mean: float = 0.0, std: float = 1.0, generator=None
    ) -> Self:
        """Fill in place with samples from N(mean, std**2)."""
        check_inplace(self, op="normal_")
        gen = resolve_generator(generator)
        return self._write(gen.normal(mean, std, size=self.shape))

    def resize_(
        self, *sizes, memory_format: Optional[MemoryFormat] = None
    ) -> Self:
        """
        Resize in place to `sizes` with contiguous strides.

        Accepts either `resize_(2, 3)` or `resize_((2, 3))`. Growth
        reallocates the storage; newly exposed elements are uninitialized.

        Raises
        ------
        RuntimeError
            If the tensor requires grad.
        AliasedMutationError
            If another live view shares this tensor's data.
        """
        if len(sizes) == 1 and not isinstance(sizes[0], int):
            sizes = tuple(sizes[0])
        _resize_impl(self._impl, sizes, memory_format)
        return self

    def transpose_(self, dim0: int, dim1: int) -> Self:
        """
        Swap two dimensions of this tensor in place.

        Only sizes and strides change. The data is untouched, so the version
        is not bumped.
        """
        check_inplace(self, op="transpose_")
        rank = self.dim()
        d0 = maybe_wrap_dim(dim0, rank)
        d1 = maybe_wrap_dim(dim1, rank)
        if rank == 0 or d0 == d1:
            return self
        sizes = list(self.shape)
        strides = list(self.strides())
        sizes[d0], sizes[d1] = sizes[d1], sizes[d0]
        strides[d0], strides[d1] = strides[d1], strides[d0]
        self._impl.set_sizes_and_strides(sizes, strides)
        return self

    # ------------------------------------------------------------------
    # Differentiable operations
    # ------------------------------------------------------------------
    def __add__(self, other):
        return _functional().add(self, other)

    def __radd__(self, other):
        return _functional().add(self, other)

    def __sub__(self, other):
        return _functional().sub(self, other)

    def __rsub__(self, other):
        return _functional().rsub(self, other)

    def __mul__(self, other):
        return _functional().mul(self, other)

    def __rmul__(self, other):
        return _functional().mul(self, other)

    def __truediv__(self, other):
        return _functional().div(self, other)

    def __rtruediv__(self, other):
        return _functional().rdiv(self, other)

    def __neg__(self):
        return _functional().neg(self)

    def __matmul__(self, other):
        return _functional().mm(self, other)

    def add(self, other, alpha: Number = 1) -> "Tensor":
        return _functional().add(self, other, alpha=alpha)

    def sub(self, other, alpha: Number = 1) -> "Tensor":
        return _functional().sub(self, other, alpha=alpha)

    def mul(self, other) -> "Tensor":
        return _functional().mul(self, other)

    def div(self, other) -> "Tensor":
        return _functional().div(self, other)

    def neg(self) -> "Tensor":
        return _functional().neg(self)

    def t(self) -> "Tensor":
        return _functional().t(self)

    @property
    def T(self) -> "Tensor":
        return _functional().t(self)

    def transpose(self, dim0: int, dim1: int) -> "Tensor":
        return _functional().transpose(self, dim0, dim1)

    def mm(self, other: "Tensor") -> "Tensor":
        return _functional().mm(self, other)

    def mean(self) -> "Tensor":
        return _functional().mean(self)

    def sum(
        self, dim: Optional[Union[int, Sequence[int]]] = None, keepdim: bool = False
    ) -> "Tensor":
        return _functional().sum(self, dim=dim, keepdim=keepdim)

    def sigmoid(self) -> "Tensor":
        return _functional().sigmoid(self)

    def log_softmax(self, dim: int) -> "Tensor":
        return _functional().log_softmax(self, dim)

    def argmax(self, dim: Optional[int] = None, keepdim: bool = False) -> "Tensor":
        return _functional().argmax(self, dim=dim, keepdim=keepdim)

    # ------------------------------------------------------------------
    # Representation
    # ------------------------------------------------------------------
    def __repr__(self) -> str:
        extra = ""
        if self.grad_fn is not None:
            extra = f", grad_fn=<{self.grad_fn.name()}>"
        elif self.requires_grad:
            extra = ", requires_grad=True"
        return (
            f"Tensor(shape={self.shape}, dtype={self.dtype}, "
            f"device={self.device}{extra})"
        )
