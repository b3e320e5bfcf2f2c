"""
Weight initialization public API.
"""

from ._init import (
    calculate_fan_in_and_fan_out,
    calculate_gain,
    kaiming_uniform_,
    uniform_,
    zeros_,
)

__all__ = [
    calculate_fan_in_and_fan_out.__name__,
    calculate_gain.__name__,
    kaiming_uniform_.__name__,
    uniform_.__name__,
    zeros_.__name__,
]
