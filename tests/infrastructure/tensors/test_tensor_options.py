from unittest import TestCase
import unittest

from src.gradflow.domain.device._device import Device
from src.gradflow.domain._dtype import (
    Layout,
    MemoryFormat,
    TypeMeta,
    get_default_dtype,
)
from src.gradflow.infrastructure.tensor._tensor_options import TensorOptions


class TestTensorOptions(TestCase):

    def test_defaults(self):
        opts = TensorOptions()
        self.assertFalse(opts.has_dtype)
        self.assertEqual(opts.dtype_or_default(), get_default_dtype())
        self.assertEqual(opts.device_or_default(), Device("cpu"))
        self.assertIs(opts.layout_or_default(), Layout.STRIDED)
        self.assertIs(opts.memory_format_or_default(), MemoryFormat.CONTIGUOUS)
        self.assertFalse(opts.requires_grad_or_default())

    def test_fields_are_normalized(self):
        opts = TensorOptions(dtype="float64", device="cpu")
        self.assertEqual(opts.dtype, TypeMeta.make("float64"))
        self.assertEqual(opts.device, Device("cpu"))

    def test_builders_return_new_objects(self):
        base = TensorOptions()
        opts = base.with_dtype("int64").with_requires_grad(True)
        self.assertIsNone(base.dtype)
        self.assertEqual(opts.dtype.name, "int64")
        self.assertTrue(opts.requires_grad)

    def test_merge_in_overrides_only_set_fields(self):
        base = TensorOptions(dtype="float64", requires_grad=True)
        merged = base.merge_in(TensorOptions(device="cpu", requires_grad=False))
        self.assertEqual(merged.dtype.name, "float64")
        self.assertEqual(merged.device, Device("cpu"))
        self.assertFalse(merged.requires_grad)
        self.assertTrue(merged.has_requires_grad)

    def test_resolve_ignores_none_keywords(self):
        base = TensorOptions(dtype="float64")
        self.assertIs(TensorOptions.resolve(base, dtype=None, device=None), base)
        resolved = TensorOptions.resolve(base, dtype="float32")
        self.assertEqual(resolved.dtype.name, "float32")
        self.assertEqual(TensorOptions.resolve(None), TensorOptions())


if __name__ == "__main__":
    unittest.main()
