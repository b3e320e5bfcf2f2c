from unittest import TestCase
import unittest

import numpy as np

from src.gradflow.domain._dtype import MemoryFormat, TypeMeta
from src.gradflow.domain._errors import ShapeOrDimensionError
from src.gradflow.infrastructure.storage._storage import Storage
from src.gradflow.infrastructure.tensor._tensor_impl import TensorImpl

F32 = TypeMeta.make("float32")


def _impl(sizes, **kwargs) -> TensorImpl:
    n = int(np.prod(sizes, dtype=np.int64)) if sizes else 1
    return TensorImpl(Storage(nbytes=max(n, 1) * 4), F32, sizes=sizes, **kwargs)


class TestTensorImplMetadata(TestCase):

    def test_default_is_empty_1d(self):
        impl = TensorImpl(Storage(nbytes=0), F32)
        self.assertEqual(impl.sizes, (0,))
        self.assertEqual(impl.strides, (1,))
        self.assertEqual(impl.numel(), 0)
        self.assertTrue(impl.is_empty())
        self.assertTrue(impl.is_contiguous)

    def test_contiguous_sizes(self):
        impl = _impl((2, 3))
        self.assertEqual(impl.strides, (3, 1))
        self.assertEqual(impl.numel(), 6)
        self.assertEqual(impl.dim(), 2)
        self.assertTrue(impl.is_contiguous)
        self.assertEqual(impl.itemsize, 4)

    def test_size_and_stride_wrap_negative_dims(self):
        impl = _impl((2, 3))
        self.assertEqual(impl.size(-1), 3)
        self.assertEqual(impl.stride(-2), 3)

    def test_size_out_of_range(self):
        impl = _impl((2, 3))
        with self.assertRaises(ShapeOrDimensionError):
            impl.size(2)
        with self.assertRaises(ShapeOrDimensionError):
            _impl(()).stride(0)

    def test_set_sizes_and_strides_length_mismatch(self):
        impl = _impl((2, 3))
        with self.assertRaises(ShapeOrDimensionError):
            impl.set_sizes_and_strides((2, 3), (1,))

    def test_non_contiguous_strides(self):
        impl = _impl((2, 3))
        impl.set_sizes_and_strides((3, 2), (1, 3))
        self.assertFalse(impl.is_contiguous)
        impl.empty_tensor_restride(MemoryFormat.CONTIGUOUS)
        self.assertEqual(impl.strides, (2, 1))
        self.assertTrue(impl.is_contiguous)

    def test_restride_other_formats_keep_strides(self):
        impl = _impl((2, 3))
        impl.set_sizes_and_strides((3, 2), (1, 3))
        impl.empty_tensor_restride(MemoryFormat.PRESERVE)
        self.assertEqual(impl.strides, (1, 3))


class TestTensorImplViews(TestCase):

    def test_data_view_aliases_storage(self):
        impl = _impl((2, 2))
        view = impl.data_view()
        view[...] = np.array([[1, 2], [3, 4]], dtype=np.float32)
        np.testing.assert_array_equal(impl.storage.data.view(np.float32), [1, 2, 3, 4])

    def test_as_strided_shares_storage_and_version_counter(self):
        impl = _impl((2, 3))
        impl.data_view()[...] = np.arange(6, dtype=np.float32).reshape(2, 3)
        view = impl.as_strided((3, 2), (1, 3))
        self.assertIs(view.storage, impl.storage)
        self.assertIs(view.version_counter, impl.version_counter)
        np.testing.assert_array_equal(
            view.data_view(), np.arange(6, dtype=np.float32).reshape(2, 3).T
        )

    def test_as_strided_with_offset(self):
        impl = _impl((4,))
        impl.data_view()[...] = np.array([10, 11, 12, 13], dtype=np.float32)
        view = impl.as_strided((2,), (1,), storage_offset=2)
        np.testing.assert_array_equal(view.data_view(), [12, 13])

    def test_shallow_copy_and_detach(self):
        impl = _impl((2,))
        impl.is_wrapped_number = True
        impl.autograd_meta = object()
        copy = impl.shallow_copy_and_detach()
        self.assertIsNot(copy, impl)
        self.assertIs(copy.storage, impl.storage)
        self.assertEqual(copy.sizes, impl.sizes)
        self.assertTrue(copy.is_wrapped_number)
        self.assertIsNone(copy.autograd_meta)
        self.assertIsNot(copy.version_counter, impl.version_counter)

    def test_shallow_copy_can_share_version_counter(self):
        impl = _impl((2,))
        copy = impl.shallow_copy_and_detach(impl.version_counter)
        copy.bump_version()
        self.assertEqual(impl.version_counter.current_version, 1)

    def test_set_version_counter_moves_holder(self):
        a = _impl((2,))
        b = _impl((2,))
        old = b.version_counter
        b.set_version_counter(a.version_counter)
        self.assertEqual(a.version_counter.use_count(), 2)
        self.assertEqual(old.use_count(), 0)


if __name__ == "__main__":
    unittest.main()
