"""
Loss reduction modes.
"""

from __future__ import annotations

from enum import Enum
from typing import Union


class Reduction(Enum):
    """
    How a per-element loss is collapsed into the returned value.

    Attributes
    ----------
    NONE : Reduction
        Return the unreduced per-element loss.
    MEAN : Reduction
        Return the (weighted) mean.
    SUM : Reduction
        Return the sum.
    """

    NONE = "none"
    MEAN = "mean"
    SUM = "sum"

    @classmethod
    def parse(cls, reduction: Union["Reduction", str]) -> "Reduction":
        if isinstance(reduction, Reduction):
            return reduction
        try:
            return cls(str(reduction).lower())
        except ValueError as exc:
            raise ValueError(
                f"{reduction!r} is not a valid reduction; expected 'none', 'mean' or 'sum'"
            ) from exc
