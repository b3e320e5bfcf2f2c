from unittest import TestCase
import unittest

from src.gradflow.domain._errors import (
    GraphConsistencyError,
    NonResizableStorageError,
    ShapeOrDimensionError,
    StaleVersionError,
)
from src.gradflow.domain._reduction import Reduction


class TestErrors(TestCase):

    def test_out_of_range_carries_dim_and_rank(self):
        err = ShapeOrDimensionError.out_of_range(3, 2)
        self.assertIsInstance(err, IndexError)
        self.assertEqual(err.dim, 3)
        self.assertEqual(err.rank, 2)
        self.assertIn("[-2, 1]", str(err))

    def test_out_of_range_for_scalar(self):
        err = ShapeOrDimensionError.out_of_range(1, 0)
        self.assertIn("[-1, 0]", str(err))

    def test_runtime_error_hierarchy(self):
        self.assertTrue(issubclass(GraphConsistencyError, RuntimeError))
        self.assertTrue(issubclass(StaleVersionError, RuntimeError))
        self.assertTrue(issubclass(NonResizableStorageError, RuntimeError))

    def test_stale_version_message_mentions_versions(self):
        err = StaleVersionError("MulBackward0", 0, 1)
        msg = str(err)
        self.assertIn("MulBackward0", msg)
        self.assertIn("0", msg)
        self.assertIn("1", msg)


class TestReduction(TestCase):

    def test_parse(self):
        self.assertIs(Reduction.parse("mean"), Reduction.MEAN)
        self.assertIs(Reduction.parse(Reduction.SUM), Reduction.SUM)
        self.assertIs(Reduction.parse("none"), Reduction.NONE)

    def test_parse_rejects_unknown(self):
        with self.assertRaises(ValueError):
            Reduction.parse("max")


if __name__ == "__main__":
    unittest.main()
