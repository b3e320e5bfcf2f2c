"""
Tensor metadata (`TensorImpl`, `VersionCounter`, `TensorOptions`), the
user-facing `Tensor` handle, and tensor factories.
"""
