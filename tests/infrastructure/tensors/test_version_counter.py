from unittest import TestCase
import gc
import unittest

from src.gradflow.infrastructure.tensor._version_counter import VersionCounter


class _Holder:
    pass


class TestVersionCounter(TestCase):

    def test_bump_increments(self):
        vc = VersionCounter()
        self.assertEqual(vc.current_version, 0)
        self.assertEqual(vc.bump(), 1)
        self.assertEqual(vc.bump(), 2)
        self.assertEqual(vc.current_version, 2)

    def test_initial_version(self):
        self.assertEqual(VersionCounter(5).current_version, 5)

    def test_unique_with_single_holder(self):
        vc = VersionCounter()
        a = _Holder()
        vc.attach(a)
        self.assertTrue(vc.unique())
        b = _Holder()
        vc.attach(b)
        self.assertFalse(vc.unique())
        vc.detach(b)
        self.assertTrue(vc.unique())

    def test_holders_are_weak(self):
        vc = VersionCounter()
        a = _Holder()
        b = _Holder()
        vc.attach(a)
        vc.attach(b)
        self.assertEqual(vc.use_count(), 2)
        del b
        gc.collect()
        self.assertEqual(vc.use_count(), 1)
        self.assertTrue(vc.unique())


if __name__ == "__main__":
    unittest.main()
