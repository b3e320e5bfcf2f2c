"""
Error taxonomy for gradflow.

This module defines the exceptions raised by the tensor metadata layer, the
graph-construction protocol, and the backward engine. Every error derives
from a builtin exception type (mostly `RuntimeError`) so that callers may
catch either the precise class or the broad builtin.

Categories
----------
- Programmer errors inside the autograd machinery (`GraphConsistencyError`)
  are fatal for the backward call that detected them.
- Storage errors (`NonResizableStorageError`, `AliasedMutationError`) are
  raised from exclusive-mutation paths.
- User errors (`GradientOnNonDifferentiableInputError`,
  `ShapeOrDimensionError`, `InPlaceOnLeafError`) are raised eagerly at the
  forward call that triggered them.
- Saved-state errors (`StaleVersionError`, `GraphFreedError`) surface during
  backward when a node unpacks state captured in the forward pass.
- Device errors (`DeviceNotSupportedError`, `DeviceMismatchError`) guard the
  CPU-only allocation and compute paths.
"""

from typing import Optional


class GraphConsistencyError(RuntimeError):
    """
    Raised when the engine's dependency bookkeeping is inconsistent.

    Typical causes are a node receiving a gradient without having an entry in
    the dependency table, a dependency count dropping below zero, or the ready
    queue draining while tasks are still outstanding. Any of these means the
    graph builder or the dependency pass has a bug; the backward call is
    aborted rather than returning partial gradients.
    """

    def __init__(self, message: str, node: Optional[str] = None) -> None:
        """
        Initialize the GraphConsistencyError.

        Parameters
        ----------
        message : str
            Description of the inconsistency.
        node : Optional[str]
            Name of the node involved, when known.
        """
        if node is not None:
            message = f"{message} (node: {node})"
        super().__init__(message)
        self.node = node


class NonResizableStorageError(RuntimeError):
    """
    Raised when attempting to resize a storage whose `resizable` flag is False.
    """

    def __init__(self, nbytes: int, requested: int) -> None:
        super().__init__(
            "Trying to resize storage that is not resizable "
            f"(nbytes={nbytes}, requested={requested})."
        )
        self.nbytes = nbytes
        self.requested = requested


class GradientOnNonDifferentiableInputError(RuntimeError):
    """
    Raised when an operand that must not require gradients does require them.

    Loss functions treat `target` and `weight` as constants. Their derivative
    is not implemented, so a differentiable `target` is rejected at forward
    time instead of silently producing a wrong graph.

    Attributes
    ----------
    op : str
        Name of the forward operation (e.g., "binary_cross_entropy").
    role : str
        Role of the offending operand (e.g., "target", "weight").
    """

    def __init__(self, op: str, role: str) -> None:
        super().__init__(
            f"the derivative for '{role}' is not implemented "
            f"(operation '{op}' received a {role} that requires grad)."
        )
        self.op = op
        self.role = role


class StaleVersionError(RuntimeError):
    """
    Raised when a tensor saved for backward was modified in place afterwards.

    Attributes
    ----------
    node : str
        Name of the backward node that attempted to use the saved tensor.
    saved_version : int
        Version recorded when the tensor was saved.
    current_version : int
        Version observed when the tensor was unpacked.
    """

    def __init__(self, node: str, saved_version: int, current_version: int) -> None:
        super().__init__(
            "one of the variables needed for gradient computation has been "
            f"modified by an inplace operation: {node} expected version "
            f"{saved_version} but found version {current_version}."
        )
        self.node = node
        self.saved_version = saved_version
        self.current_version = current_version


class ShapeOrDimensionError(IndexError):
    """
    Raised for invalid dimension indices or mismatched size lists.

    Attributes
    ----------
    dim : Optional[int]
        Offending dimension index, when the error is a dimension wrap failure.
    rank : Optional[int]
        Rank of the tensor the index was applied to.
    """

    def __init__(
        self,
        message: str,
        *,
        dim: Optional[int] = None,
        rank: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.dim = dim
        self.rank = rank

    @classmethod
    def out_of_range(cls, dim: int, rank: int) -> "ShapeOrDimensionError":
        """
        Build the error reported when wrapping `dim` against a tensor of `rank`.
        """
        lo, hi = (-rank, rank - 1) if rank > 0 else (-1, 0)
        return cls(
            f"Dimension out of range (expected to be in range of [{lo}, {hi}], "
            f"but got {dim}) for tensor of rank {rank}",
            dim=dim,
            rank=rank,
        )


class GraphFreedError(RuntimeError):
    """
    Raised when backward runs through a graph whose saved tensors were freed.

    Saved tensors are released after the first backward pass unless that pass
    was invoked with `keep_graph=True`.
    """

    def __init__(self, node: str) -> None:
        super().__init__(
            f"Trying to backward through the graph a second time ({node}); "
            "saved tensors were released after the previous backward. "
            "Pass keep_graph=True to the first backward call."
        )
        self.node = node


class InPlaceOnLeafError(RuntimeError):
    """
    Raised when a leaf tensor that requires grad is mutated in place while
    grad mode is enabled.
    """

    def __init__(self, op: str) -> None:
        super().__init__(
            f"a leaf tensor that requires grad is being used in an in-place "
            f"operation ('{op}'). Wrap the update in no_grad()."
        )
        self.op = op


class AliasedMutationError(RuntimeError):
    """
    Raised when an exclusive-mutation path finds other live views that share
    the tensor's version counter.
    """

    def __init__(self, op: str) -> None:
        super().__init__(
            f"'{op}' requires exclusive ownership, but the tensor shares its "
            "version counter with another live view."
        )
        self.op = op


class DeviceNotSupportedError(RuntimeError):
    """
    Raised when a tensor operation is requested on a device backend
    that is not implemented.

    Attributes
    ----------
    op : str
        The name of the operation that was attempted (e.g., "allocate", "mm").
    device : str
        String representation of the device on which the operation
        was attempted.
    """

    def __init__(self, op: str, device: str) -> None:
        super().__init__(f"{op} is not implemented for device '{device}'.")
        self.op = op
        self.device = device


class DeviceMismatchError(RuntimeError):
    """
    Raised when an operation is attempted between tensors on different devices.
    """

    def __init__(self, device_a: str, device_b: str) -> None:
        super().__init__(f"Device mismatch: '{device_a}' vs '{device_b}'.")
        self.device_a = device_a
        self.device_b = device_b
