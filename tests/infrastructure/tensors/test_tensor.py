from unittest import TestCase
import unittest
import warnings

import numpy as np

from src.gradflow.domain.device._device import Device
from src.gradflow.domain._dtype import MemoryFormat, TypeMeta
from src.gradflow.domain._errors import (
    DeviceNotSupportedError,
    InPlaceOnLeafError,
    ShapeOrDimensionError,
)
from src.gradflow.infrastructure.autograd._grad_mode import no_grad
from src.gradflow.infrastructure.tensor._factories import ones, tensor, zeros
from src.gradflow.infrastructure.tensor._tensor import Tensor
from src.gradflow.infrastructure.tensor._tensor_options import TensorOptions


class TestTensorConstruction(TestCase):

    def test_default_constructor(self):
        t = Tensor()
        self.assertEqual(t.shape, (0,))
        self.assertEqual(t.numel(), 0)
        self.assertEqual(t.dtype, TypeMeta.make("float32"))
        self.assertEqual(t.device, Device("cpu"))
        self.assertFalse(t.requires_grad)
        self.assertTrue(t.is_leaf)

    def test_shape_and_strides(self):
        t = Tensor((2, 3, 4), dtype="float64")
        self.assertEqual(t.shape, (2, 3, 4))
        self.assertEqual(t.size(), (2, 3, 4))
        self.assertEqual(t.size(-1), 4)
        self.assertEqual(t.strides(), (12, 4, 1))
        self.assertEqual(t.stride(0), 12)
        self.assertEqual(t.dim(), 3)
        self.assertEqual(len(t), 2)
        self.assertTrue(t.is_contiguous())
        self.assertEqual(t.storage_offset(), 0)

    def test_options_object(self):
        opts = TensorOptions(dtype="float64", requires_grad=True)
        t = Tensor((2,), options=opts)
        self.assertEqual(t.dtype.name, "float64")
        self.assertTrue(t.requires_grad)

    def test_keyword_overrides_options(self):
        t = Tensor((2,), dtype="int32", options=TensorOptions(dtype="float64"))
        self.assertEqual(t.dtype.name, "int32")

    def test_cuda_tensor_not_supported(self):
        with self.assertRaises(DeviceNotSupportedError):
            Tensor((2,), device="cuda:0")

    def test_len_of_scalar_raises(self):
        with self.assertRaises(TypeError):
            len(tensor(1.0))

    def test_item(self):
        self.assertEqual(tensor([[2.5]]).item(), 2.5)
        with self.assertRaises(RuntimeError):
            tensor([1.0, 2.0]).item()


class TestTensorAutogradState(TestCase):

    def test_requires_grad_on_integer_tensor_rejected(self):
        t = zeros((2,), dtype="int64")
        with self.assertRaises(RuntimeError):
            t.requires_grad = True

    def test_requires_grad_toggle_on_leaf(self):
        t = zeros((2,))
        t.requires_grad = True
        self.assertTrue(t.requires_grad)
        t.requires_grad = False
        self.assertFalse(t.requires_grad)

    def test_non_leaf_cannot_drop_requires_grad(self):
        x = ones((2,), requires_grad=True)
        y = x * 2.0
        self.assertFalse(y.is_leaf)
        with self.assertRaises(RuntimeError):
            y.requires_grad = False

    def test_non_leaf_grad_access_warns(self):
        x = ones((2,), requires_grad=True)
        y = x * 2.0
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            self.assertIsNone(y.grad)
        self.assertTrue(any(issubclass(w.category, UserWarning) for w in caught))

    def test_grad_setter_checks_shape(self):
        x = zeros((2, 2), requires_grad=True)
        x.grad = ones((2, 2))
        self.assertEqual(x.grad.shape, (2, 2))
        with self.assertRaises(ShapeOrDimensionError):
            x.grad = ones((3,))

    def test_zero_grad(self):
        x = zeros((2,), requires_grad=True)
        x.grad = ones((2,))
        x.zero_grad(set_to_none=False)
        np.testing.assert_array_equal(x.grad.to_numpy(), [0.0, 0.0])
        x.zero_grad()
        self.assertIsNone(x.grad)

    def test_detach_shares_storage_and_version(self):
        x = ones((3,), requires_grad=True)
        d = x.detach()
        self.assertFalse(d.requires_grad)
        self.assertIsNone(d.grad_fn)
        self.assertIs(d.impl.storage, x.impl.storage)
        d.fill_(4.0)
        np.testing.assert_array_equal(x.to_numpy(), [4.0, 4.0, 4.0])
        self.assertEqual(x.version, d.version)

    def test_clone_is_independent_leaf(self):
        x = ones((3,), requires_grad=True)
        c = (x * 2.0).clone()
        self.assertTrue(c.is_leaf)
        self.assertFalse(c.requires_grad)
        self.assertIsNot(c.impl.storage, x.impl.storage)
        np.testing.assert_array_equal(c.to_numpy(), [2.0, 2.0, 2.0])


class TestTensorInPlace(TestCase):

    def test_inplace_ops_bump_version(self):
        t = zeros((2,))
        v0 = t.version
        t.add_(1.0)
        t.mul_(3.0)
        t.sub_(ones((2,)), alpha=0.5)
        np.testing.assert_allclose(t.to_numpy(), [2.5, 2.5])
        self.assertEqual(t.version, v0 + 3)

    def test_copy_from_numpy(self):
        t = Tensor((2, 2))
        t.copy_from_numpy(np.array([[1, 2], [3, 4]], dtype=np.float32))
        np.testing.assert_array_equal(t.to_numpy(), [[1, 2], [3, 4]])
        with self.assertRaises(ShapeOrDimensionError):
            t.copy_from_numpy(np.zeros((3,)))

    def test_copy_broadcasts_source(self):
        t = zeros((2, 3))
        t.copy_(tensor([1.0, 2.0, 3.0]))
        np.testing.assert_array_equal(t.to_numpy(), [[1, 2, 3], [1, 2, 3]])

    def test_inplace_on_leaf_requiring_grad_raises(self):
        x = ones((2,), requires_grad=True)
        with self.assertRaises(InPlaceOnLeafError):
            x.add_(1.0)
        with no_grad():
            x.add_(1.0)
        np.testing.assert_array_equal(x.to_numpy(), [2.0, 2.0])

    def test_inplace_on_non_leaf_raises(self):
        x = ones((2,), requires_grad=True)
        y = x * 2.0
        with self.assertRaises(RuntimeError):
            y.mul_(2.0)

    def test_inplace_with_grad_requiring_operand_raises(self):
        t = zeros((2,))
        x = ones((2,), requires_grad=True)
        with self.assertRaises(RuntimeError):
            t.add_(x)

    def test_writes_through_transpose_view(self):
        t = tensor([[1.0, 2.0], [3.0, 4.0]])
        view = t.t()
        view.fill_(0.0)
        np.testing.assert_array_equal(t.to_numpy(), np.zeros((2, 2)))
        self.assertEqual(t.version, view.version)


class TestTensorViews(TestCase):

    def test_transpose_is_strided_view(self):
        t = tensor(np.arange(6, dtype=np.float32).reshape(2, 3))
        tt = t.transpose(0, 1)
        self.assertEqual(tt.shape, (3, 2))
        self.assertEqual(tt.strides(), (1, 3))
        self.assertFalse(tt.is_contiguous())
        self.assertIs(tt.impl.storage, t.impl.storage)
        np.testing.assert_array_equal(tt.to_numpy(), np.arange(6).reshape(2, 3).T)

    def test_t_of_1d_is_identity_view(self):
        t = tensor([1.0, 2.0])
        self.assertEqual(t.t().shape, (2,))

    def test_t_rejects_3d(self):
        with self.assertRaises(ShapeOrDimensionError):
            Tensor((2, 2, 2)).t()

    def test_transpose_in_place(self):
        t = tensor(np.arange(6, dtype=np.float32).reshape(2, 3))
        v0 = t.version
        out = t.transpose_(0, -1)
        self.assertIs(out, t)
        self.assertEqual(t.shape, (3, 2))
        self.assertEqual(t.strides(), (1, 3))
        self.assertEqual(t.version, v0)
        np.testing.assert_array_equal(t.to_numpy(), np.arange(6).reshape(2, 3).T)

    def test_transpose_in_place_on_grad_leaf(self):
        x = ones((2, 3), requires_grad=True)
        with self.assertRaises(InPlaceOnLeafError):
            x.transpose_(0, 1)
        with no_grad():
            x.transpose_(0, 1)
        self.assertEqual(x.shape, (3, 2))

    def test_argmax(self):
        t = tensor([[1.0, 5.0, 5.0], [7.0, 0.0, 2.0]])
        flat = t.argmax()
        self.assertEqual(flat.shape, ())
        self.assertEqual(flat.item(), 3)
        self.assertFalse(flat.dtype.is_floating_point)
        np.testing.assert_array_equal(t.argmax(dim=1).to_numpy(), [1, 0])
        self.assertEqual(t.argmax(dim=0, keepdim=True).shape, (1, 3))
        self.assertEqual(t.argmax(keepdim=True).shape, (1, 1))

    def test_argmax_does_not_record_history(self):
        x = ones((3,), requires_grad=True)
        idx = x.argmax()
        self.assertFalse(idx.requires_grad)
        self.assertIsNone(idx.grad_fn)

    def test_argmax_rejects_bad_input(self):
        with self.assertRaises(ShapeOrDimensionError):
            tensor([1.0, 2.0]).argmax(dim=1)
        with self.assertRaises(ShapeOrDimensionError):
            zeros((0,)).argmax()

    def test_memory_format_option(self):
        t = Tensor((2, 3), options=TensorOptions(memory_format=MemoryFormat.CONTIGUOUS))
        self.assertEqual(t.strides(), (3, 1))

    def test_repr_mentions_grad_fn(self):
        x = ones((2,), requires_grad=True)
        self.assertIn("requires_grad=True", repr(x))
        self.assertIn("grad_fn=<MulBackward1>", repr(x * 2.0))


if __name__ == "__main__":
    unittest.main()
