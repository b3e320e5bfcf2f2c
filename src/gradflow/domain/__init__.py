"""
Backend-agnostic contracts: errors, device and dtype descriptors, and the
structural interfaces implemented by the infrastructure layer.
"""
