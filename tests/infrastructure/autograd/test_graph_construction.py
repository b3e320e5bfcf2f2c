from unittest import TestCase
import gc
import unittest

from src.gradflow.domain._errors import GradientOnNonDifferentiableInputError
from src.gradflow.infrastructure.autograd._functions import NODE_REGISTRY, register_node
from src.gradflow.infrastructure.autograd._node import AccumulateGrad, Edge, Node
from src.gradflow.infrastructure.autograd._util import (
    check_no_requires_grad,
    collect_next_edges,
    compute_requires_grad,
    grad_accumulator,
    gradient_edge,
)
from src.gradflow.infrastructure.autograd._grad_mode import no_grad
from src.gradflow.infrastructure.tensor._factories import ones, zeros


class TestGraphConstruction(TestCase):

    def test_compute_requires_grad(self):
        a = ones((2,), requires_grad=True)
        b = ones((2,))
        self.assertTrue(compute_requires_grad(a, b, 3.0, None))
        self.assertFalse(compute_requires_grad(b, 3.0))
        with no_grad():
            self.assertFalse(compute_requires_grad(a))

    def test_grad_accumulator_is_memoized(self):
        x = ones((2,), requires_grad=True)
        acc1 = grad_accumulator(x)
        acc2 = grad_accumulator(x)
        self.assertIsInstance(acc1, AccumulateGrad)
        self.assertIs(acc1, acc2)
        self.assertIs(acc1.variable, x)

    def test_grad_accumulator_recreated_after_release(self):
        x = ones((2,), requires_grad=True)
        self.assertIsNotNone(grad_accumulator(x))
        gc.collect()
        self.assertIsNone(x.impl.autograd_meta.grad_accumulator())
        self.assertIsNotNone(grad_accumulator(x))

    def test_grad_accumulator_on_non_leaf_raises(self):
        x = ones((2,), requires_grad=True)
        y = x * 2.0
        with self.assertRaises(RuntimeError):
            grad_accumulator(y)

    def test_grad_accumulator_without_requires_grad(self):
        self.assertIsNone(grad_accumulator(ones((2,))))

    def test_gradient_edge(self):
        x = ones((2,), requires_grad=True)
        y = x * 2.0
        leaf_edge = gradient_edge(x)
        self.assertIsInstance(leaf_edge.function, AccumulateGrad)
        self.assertEqual(leaf_edge.input_nr, 0)
        edge = gradient_edge(y)
        self.assertIs(edge.function, y.grad_fn)
        self.assertEqual(edge.input_nr, y.output_nr)
        self.assertFalse(gradient_edge(ones((2,))).is_valid())

    def test_collect_next_edges(self):
        x = ones((2,), requires_grad=True)
        edges = collect_next_edges(x, None, ones((2,)))
        self.assertEqual(len(edges), 3)
        self.assertTrue(edges[0].is_valid())
        self.assertFalse(edges[1].is_valid())
        self.assertFalse(edges[2].is_valid())

    def test_recorded_node_wiring(self):
        x = ones((2,), requires_grad=True)
        w = zeros((2,))
        y = x * w
        fn = y.grad_fn
        self.assertEqual(fn.name(), "MulBackward0")
        self.assertEqual(fn.num_inputs(), 1)
        self.assertEqual(fn.num_outputs(), 2)
        self.assertTrue(fn.should_compute_output(0))
        self.assertFalse(fn.should_compute_output(1))
        self.assertEqual(fn.input_metadata[0].shape, (2,))

    def test_sequence_numbers_increase(self):
        x = ones((2,), requires_grad=True)
        a = x * 2.0
        b = a * 2.0
        self.assertGreater(b.grad_fn.sequence_nr, a.grad_fn.sequence_nr)

    def test_check_no_requires_grad(self):
        check_no_requires_grad(None, "weight", "op")
        check_no_requires_grad(ones((2,)), "weight", "op")
        with self.assertRaises(GradientOnNonDifferentiableInputError):
            check_no_requires_grad(ones((2,), requires_grad=True), "target", "op")

    def test_node_registry(self):
        self.assertIn("MulBackward0", NODE_REGISTRY)
        self.assertIn("NllLossBackward", NODE_REGISTRY)

        class MulBackward0(Node):
            def apply(self, grads):
                return grads

        with self.assertRaises(ValueError):
            register_node(MulBackward0)

    def test_invalid_edge(self):
        self.assertFalse(Edge().is_valid())


if __name__ == "__main__":
    unittest.main()
