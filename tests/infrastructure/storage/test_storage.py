from unittest import TestCase
import gc
import unittest

import numpy as np

from src.gradflow.domain.device._device import Device
from src.gradflow.domain._dtype import TypeMeta
from src.gradflow.domain._errors import (
    DeviceNotSupportedError,
    NonResizableStorageError,
)
from src.gradflow.infrastructure.storage._allocator import CPUAllocator, get_allocator
from src.gradflow.infrastructure.storage._storage import Storage, resize_bytes
from src.gradflow.infrastructure.tensor._tensor_impl import TensorImpl


class TestAllocator(TestCase):

    def test_cpu_allocator_returns_flat_bytes(self):
        buf = CPUAllocator().allocate(12)
        self.assertEqual(buf.dtype, np.uint8)
        self.assertEqual(buf.shape, (12,))

    def test_negative_allocation_rejected(self):
        with self.assertRaises(ValueError):
            CPUAllocator().allocate(-1)

    def test_cuda_allocator_not_supported(self):
        with self.assertRaises(DeviceNotSupportedError):
            get_allocator(Device("cuda:0"))


class TestStorage(TestCase):

    def test_new_storage_allocates_nbytes(self):
        s = Storage(nbytes=16)
        self.assertEqual(s.nbytes, 16)
        self.assertEqual(s.data.nbytes, 16)
        self.assertTrue(s.resizable)
        self.assertEqual(s.use_count, 0)

    def test_from_buffer_copies(self):
        arr = np.arange(4, dtype=np.float32)
        s = Storage.from_buffer(arr)
        self.assertEqual(s.nbytes, 16)
        arr[0] = 100.0
        self.assertEqual(s.data.view(np.float32)[0], 0.0)

    def test_mismatched_buffer_rejected(self):
        with self.assertRaises(ValueError):
            Storage(nbytes=8, data=np.zeros(4, dtype=np.uint8))

    def test_resize_grows_and_preserves_prefix(self):
        s = Storage.from_buffer(np.array([1.0, 2.0], dtype=np.float64))
        resize_bytes(s, 32)
        self.assertEqual(s.nbytes, 32)
        self.assertEqual(s.data.nbytes, 32)
        np.testing.assert_array_equal(s.data[:16].view(np.float64), [1.0, 2.0])

    def test_resize_shrinks_and_preserves_prefix(self):
        s = Storage.from_buffer(np.array([1.0, 2.0, 3.0], dtype=np.float64))
        resize_bytes(s, 8)
        self.assertEqual(s.nbytes, 8)
        self.assertEqual(s.data.view(np.float64)[0], 1.0)

    def test_non_resizable_storage_raises(self):
        s = Storage(nbytes=4, resizable=False)
        with self.assertRaises(NonResizableStorageError):
            resize_bytes(s, 8)
        self.assertEqual(s.nbytes, 4)

    def test_use_count_tracks_tensor_impls(self):
        s = Storage(nbytes=16)
        a = TensorImpl(s, TypeMeta.make("float32"), sizes=(4,))
        b = a.as_strided((2,), (1,))
        self.assertEqual(s.use_count, 2)
        del b
        gc.collect()
        self.assertEqual(s.use_count, 1)
        del a
        gc.collect()
        self.assertEqual(s.use_count, 0)
        self.assertEqual(s.nbytes, 0)


if __name__ == "__main__":
    unittest.main()
