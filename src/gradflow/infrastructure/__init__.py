"""
NumPy-backed implementation of the gradflow contracts: storage, tensor
metadata, the autograd graph and engine, differentiable operations, and the
module/optimizer layer.
"""
