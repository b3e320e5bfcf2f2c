from unittest import TestCase
import threading
import unittest

import numpy as np

from src.gradflow.infrastructure.autograd._grad_mode import (
    AutoGradMode,
    GradMode,
    enable_grad,
    is_grad_enabled,
    no_grad,
    set_grad_enabled,
)
from src.gradflow.infrastructure._parameter import Parameter
from src.gradflow.infrastructure.optimizers import SGD
from src.gradflow.infrastructure.tensor._factories import ones


class TestGradMode(TestCase):

    def tearDown(self):
        GradMode.set_enabled(True)

    def test_enabled_by_default(self):
        self.assertTrue(is_grad_enabled())

    def test_no_grad_context(self):
        with no_grad():
            self.assertFalse(is_grad_enabled())
        self.assertTrue(is_grad_enabled())

    def test_no_grad_restores_after_exception(self):
        with self.assertRaises(ValueError):
            with no_grad():
                raise ValueError("boom")
        self.assertTrue(is_grad_enabled())

    def test_nested_guards(self):
        with no_grad():
            with enable_grad():
                self.assertTrue(is_grad_enabled())
            self.assertFalse(is_grad_enabled())
        self.assertTrue(is_grad_enabled())

    def test_no_grad_decorator(self):
        @no_grad()
        def f():
            return is_grad_enabled()

        self.assertFalse(f())
        self.assertTrue(is_grad_enabled())

    def test_set_grad_enabled_as_call_and_context(self):
        set_grad_enabled(False)
        self.assertFalse(is_grad_enabled())
        set_grad_enabled(True)
        with set_grad_enabled(False):
            self.assertFalse(is_grad_enabled())
        self.assertTrue(is_grad_enabled())

    def test_auto_grad_mode(self):
        with AutoGradMode(False):
            self.assertFalse(is_grad_enabled())
            with AutoGradMode(True):
                self.assertTrue(is_grad_enabled())
        self.assertTrue(is_grad_enabled())

    def test_mode_is_thread_local(self):
        seen = []

        def worker():
            seen.append(is_grad_enabled())

        with no_grad():
            th = threading.Thread(target=worker)
            th.start()
            th.join()
        self.assertEqual(seen, [True])

    def test_recursive_decorated_call_restores_mode(self):
        @no_grad()
        def descend(depth):
            self.assertFalse(is_grad_enabled())
            if depth:
                descend(depth - 1)
            self.assertFalse(is_grad_enabled())

        descend(3)
        self.assertTrue(is_grad_enabled())

    def test_recursive_enable_grad_inside_no_grad(self):
        @enable_grad()
        def descend(depth):
            if depth:
                descend(depth - 1)
            return is_grad_enabled()

        with no_grad():
            self.assertTrue(descend(2))
            self.assertFalse(is_grad_enabled())
        self.assertTrue(is_grad_enabled())

    def test_set_grad_enabled_decorator_restores_per_call(self):
        deco = set_grad_enabled(False)
        GradMode.set_enabled(True)

        @deco
        def f(depth):
            if depth:
                f(depth - 1)
            return is_grad_enabled()

        self.assertFalse(f(2))
        self.assertTrue(is_grad_enabled())

    def test_shared_decorator_across_threads(self):
        guard = no_grad()
        entered = threading.Barrier(2)
        results = {}

        @guard
        def body():
            entered.wait(timeout=5)
            entered.wait(timeout=5)

        def worker(name, mode):
            GradMode.set_enabled(mode)
            body()
            results[name] = is_grad_enabled()

        threads = [
            threading.Thread(target=worker, args=("a", True)),
            threading.Thread(target=worker, args=("b", False)),
        ]
        for th in threads:
            th.start()
        for th in threads:
            th.join()
        self.assertEqual(results, {"a": True, "b": False})

    def test_concurrent_sgd_steps_keep_each_threads_mode(self):
        results = {}
        start = threading.Barrier(2)

        optimizers = {}
        for name in ("a", "b"):
            p = Parameter.from_numpy(np.array([1.0, 2.0], dtype=np.float32))
            (p * 2.0).sum().backward()
            optimizers[name] = SGD([p], lr=1e-3)

        def worker(name, mode):
            opt = optimizers[name]
            GradMode.set_enabled(mode)
            start.wait(timeout=5)
            ok = True
            for _ in range(200):
                opt.step()
                ok = ok and is_grad_enabled() == mode
            results[name] = ok

        threads = [
            threading.Thread(target=worker, args=("a", True)),
            threading.Thread(target=worker, args=("b", False)),
        ]
        for th in threads:
            th.start()
        for th in threads:
            th.join()
        self.assertEqual(results, {"a": True, "b": True})

    def test_no_grad_suppresses_recording(self):
        x = ones((2,), requires_grad=True)
        with no_grad():
            y = x * 3.0
        self.assertFalse(y.requires_grad)
        self.assertIsNone(y.grad_fn)


if __name__ == "__main__":
    unittest.main()
