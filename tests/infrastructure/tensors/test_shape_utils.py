from unittest import TestCase
import unittest

from src.gradflow.domain._errors import ShapeOrDimensionError
from src.gradflow.infrastructure.tensor._shape_utils import (
    compute_contiguous,
    contiguous_strides,
    is_expandable_to,
    maybe_wrap_dim,
    normalize_shape,
    sum_to_shape_axes,
)


class TestShapeUtils(TestCase):

    def test_normalize_shape(self):
        self.assertEqual(normalize_shape(3), (3,))
        self.assertEqual(normalize_shape([2, 3]), (2, 3))
        self.assertEqual(normalize_shape(()), ())
        with self.assertRaises(ShapeOrDimensionError):
            normalize_shape((2, -1))

    def test_contiguous_strides(self):
        self.assertEqual(contiguous_strides((2, 3, 4)), (12, 4, 1))
        self.assertEqual(contiguous_strides(()), ())

    def test_contiguous_strides_with_zero_size(self):
        """Zero-sized dimensions count as 1 so strides never collapse."""
        self.assertEqual(contiguous_strides((2, 0, 3)), (3, 3, 1))

    def test_compute_contiguous_skips_size_one_dims(self):
        self.assertTrue(compute_contiguous((2, 1, 3), (3, 99, 1)))
        self.assertFalse(compute_contiguous((2, 3), (1, 2)))

    def test_empty_tensor_is_contiguous(self):
        self.assertTrue(compute_contiguous((0, 3), (1, 5)))

    def test_maybe_wrap_dim(self):
        self.assertEqual(maybe_wrap_dim(-1, 3), 2)
        self.assertEqual(maybe_wrap_dim(1, 3), 1)
        self.assertEqual(maybe_wrap_dim(-1, 0), 0)

    def test_maybe_wrap_dim_out_of_range(self):
        with self.assertRaises(ShapeOrDimensionError) as ctx:
            maybe_wrap_dim(3, 3)
        self.assertEqual(ctx.exception.dim, 3)
        self.assertEqual(ctx.exception.rank, 3)
        with self.assertRaises(ShapeOrDimensionError):
            maybe_wrap_dim(-4, 3)

    def test_scalar_wrap_can_be_disabled(self):
        with self.assertRaises(ShapeOrDimensionError):
            maybe_wrap_dim(0, 0, wrap_scalar=False)

    def test_is_expandable_to(self):
        self.assertTrue(is_expandable_to((3,), (2, 3)))
        self.assertTrue(is_expandable_to((1, 3), (4, 3)))
        self.assertFalse(is_expandable_to((2,), (2, 3)))
        self.assertFalse(is_expandable_to((1, 2, 3), (2, 3)))

    def test_sum_to_shape_axes(self):
        axes, lead = sum_to_shape_axes((4, 2, 3), (1, 3))
        self.assertEqual(lead, 1)
        self.assertEqual(axes, (0, 1))
        with self.assertRaises(ShapeOrDimensionError):
            sum_to_shape_axes((2, 3), (2,))


if __name__ == "__main__":
    unittest.main()
