"""
gradflow: a reverse-mode automatic differentiation engine.

Tensors are strided views over reference-counted storage. Differentiable
operations record a backward graph eagerly, and `backward` replays it with a
dependency-counting scheduler that accumulates gradients into leaf tensors.
"""

from .domain._dtype import (
    Layout,
    MemoryFormat,
    ScalarType,
    TypeMeta,
    get_default_dtype,
    set_default_dtype,
)
from .domain._errors import (
    AliasedMutationError,
    DeviceMismatchError,
    DeviceNotSupportedError,
    GradientOnNonDifferentiableInputError,
    GraphConsistencyError,
    GraphFreedError,
    InPlaceOnLeafError,
    NonResizableStorageError,
    ShapeOrDimensionError,
    StaleVersionError,
)
from .domain._reduction import Reduction
from .domain.device._device import Device, DeviceType
from .infrastructure.storage._storage import Storage
from .infrastructure.tensor._tensor import Tensor
from .infrastructure.tensor._tensor_options import TensorOptions
from .infrastructure.tensor._factories import (
    empty,
    from_numpy,
    full,
    ones,
    ones_like,
    rand,
    randn,
    tensor,
    zeros,
    zeros_like,
)
from .infrastructure.autograd._grad_mode import (
    enable_grad,
    is_grad_enabled,
    no_grad,
    set_grad_enabled,
)
from .infrastructure.autograd._backward import backward
from .infrastructure.autograd._engine import Engine, EngineConfig, get_default_engine
from .infrastructure._random import manual_seed
from .infrastructure import _functional as functional
from .infrastructure._parameter import Parameter
from .infrastructure._module import Module
from .infrastructure._linear import Linear
from .infrastructure._activations import LogSoftmax, Sigmoid
from .infrastructure import init
from .infrastructure.optimizers._sgd import SGD

float32 = TypeMeta(ScalarType.FLOAT32)
float64 = TypeMeta(ScalarType.FLOAT64)
int32 = TypeMeta(ScalarType.INT32)
int64 = TypeMeta(ScalarType.INT64)
bool_ = TypeMeta(ScalarType.BOOL)

__all__ = [
    "AliasedMutationError",
    "Device",
    "DeviceMismatchError",
    "DeviceNotSupportedError",
    "DeviceType",
    "Engine",
    "EngineConfig",
    "GradientOnNonDifferentiableInputError",
    "GraphConsistencyError",
    "GraphFreedError",
    "InPlaceOnLeafError",
    "Layout",
    "Linear",
    "LogSoftmax",
    "MemoryFormat",
    "Module",
    "NonResizableStorageError",
    "Parameter",
    "Reduction",
    "SGD",
    "ScalarType",
    "ShapeOrDimensionError",
    "Sigmoid",
    "StaleVersionError",
    "Storage",
    "Tensor",
    "TensorOptions",
    "TypeMeta",
    "backward",
    "bool_",
    "empty",
    "enable_grad",
    "float32",
    "float64",
    "from_numpy",
    "full",
    "functional",
    "get_default_dtype",
    "get_default_engine",
    "init",
    "int32",
    "int64",
    "is_grad_enabled",
    "manual_seed",
    "no_grad",
    "ones",
    "ones_like",
    "rand",
    "randn",
    "set_default_dtype",
    "set_grad_enabled",
    "tensor",
    "zeros",
    "zeros_like",
]
