"""
Mapping between domain element types and NumPy dtypes.
"""

from __future__ import annotations

from typing import Union

import numpy as np

from ...domain._dtype import ScalarType, TypeMeta


def to_numpy_dtype(dtype: Union[TypeMeta, ScalarType, str]) -> np.dtype:
    """
    Return the NumPy dtype backing a domain element type.
    """
    return np.dtype(TypeMeta.make(dtype).name)


def from_numpy_dtype(dtype) -> TypeMeta:
    """
    Return the domain element type for a NumPy dtype.

    Raises
    ------
    TypeError
        If the NumPy dtype has no supported counterpart (e.g. float16).
    """
    name = np.dtype(dtype).name
    try:
        return TypeMeta(ScalarType.from_name(name))
    except ValueError as exc:
        raise TypeError(f"Unsupported NumPy dtype: {name}") from exc
