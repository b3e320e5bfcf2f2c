"""
Numeric kernels.
"""
