"""
Process-wide random number generator.

Random factories (`rand`, `randn`) and weight initializers draw from one
module-level `numpy.random.Generator`, so `manual_seed` makes model
construction and random tensors reproducible.
"""

from __future__ import annotations

from typing import Optional
import threading

import numpy as np

_lock = threading.Lock()
_generator: np.random.Generator = np.random.default_rng()


def manual_seed(seed: int) -> np.random.Generator:
    """
    Reseed the default generator and return it.
    """
    global _generator
    with _lock:
        _generator = np.random.default_rng(int(seed))
        return _generator


def default_generator() -> np.random.Generator:
    return _generator


def resolve_generator(generator: Optional[np.random.Generator]) -> np.random.Generator:
    return generator if generator is not None else _generator
