from unittest import TestCase
import math
import unittest

import numpy as np

from src.gradflow.domain._errors import ShapeOrDimensionError
from src.gradflow.infrastructure._activations import LogSoftmax, Sigmoid
from src.gradflow.infrastructure._linear import Linear
from src.gradflow.infrastructure._module import Module
from src.gradflow.infrastructure._parameter import Parameter
from src.gradflow.infrastructure._random import manual_seed
from src.gradflow.infrastructure.tensor._factories import randn, tensor


class _TwoLayer(Module):
    def __init__(self) -> None:
        super().__init__()
        self.fc1 = Linear(4, 3)
        self.act = Sigmoid()
        self.fc2 = Linear(3, 2, bias=False)
        self.scale = Parameter((1,))

    def forward(self, x):
        return self.fc2(self.act(self.fc1(x)))


class TestModule(TestCase):

    def test_parameters_are_registered_recursively(self):
        model = _TwoLayer()
        params = list(model.parameters())
        self.assertEqual(len(params), 4)
        self.assertIs(params[0], model.scale)
        names = [name for name, _ in model.named_parameters()]
        self.assertEqual(names, ["scale", "fc1.weight", "fc1.bias", "fc2.weight"])

    def test_named_parameters_prefix(self):
        names = [n for n, _ in Linear(2, 2).named_parameters("head")]
        self.assertEqual(names, ["head.weight", "head.bias"])

    def test_children(self):
        model = _TwoLayer()
        self.assertEqual(set(model.children()), {"fc1", "act", "fc2"})

    def test_assigning_none_unregisters(self):
        layer = Linear(2, 2)
        layer.bias = None
        self.assertEqual(len(list(layer.parameters())), 1)

    def test_explicit_registration(self):
        m = Module()
        p = Parameter((2,))
        m.register_parameter("w", p)
        m.register_module("sub", Linear(1, 1))
        m.register_parameter("ignored", None)
        self.assertIs(m.w, p)
        self.assertEqual(len(list(m.parameters())), 3)

    def test_base_forward_not_implemented(self):
        with self.assertRaises(NotImplementedError):
            Module()(1)

    def test_zero_grad(self):
        model = _TwoLayer()
        model(randn((5, 4))).sum().backward()
        self.assertIsNotNone(model.fc1.weight.grad)
        model.zero_grad()
        self.assertTrue(all(p.grad is None for p in model.parameters()))


class TestLinear(TestCase):

    def test_shapes(self):
        layer = Linear(4, 3)
        self.assertEqual(layer.weight.shape, (3, 4))
        self.assertEqual(layer.bias.shape, (3,))
        self.assertEqual(layer(randn((2, 4))).shape, (2, 3))
        self.assertIsNone(Linear(4, 3, bias=False).bias)

    def test_invalid_sizes(self):
        with self.assertRaises(ValueError):
            Linear(0, 3)

    def test_forward_matches_affine_map(self):
        layer = Linear(3, 2)
        x = np.arange(6, dtype=np.float32).reshape(2, 3)
        w = layer.weight.to_numpy()
        b = layer.bias.to_numpy()
        np.testing.assert_allclose(layer(tensor(x)).to_numpy(), x @ w.T + b, rtol=1e-6)

    def test_initialization_bounds(self):
        layer = Linear(16, 8)
        bound = 1.0 / math.sqrt(16)
        self.assertTrue(np.all(np.abs(layer.weight.to_numpy()) <= bound + 1e-7))
        self.assertTrue(np.all(np.abs(layer.bias.to_numpy()) <= bound + 1e-7))

    def test_initialization_is_seeded(self):
        manual_seed(42)
        a = Linear(5, 4)
        manual_seed(42)
        b = Linear(5, 4)
        np.testing.assert_array_equal(a.weight.to_numpy(), b.weight.to_numpy())
        np.testing.assert_array_equal(a.bias.to_numpy(), b.bias.to_numpy())

    def test_rejects_non_2d_input(self):
        with self.assertRaises(ShapeOrDimensionError):
            Linear(3, 2)(tensor([1.0, 2.0, 3.0]))

    def test_gradients_reach_parameters(self):
        layer = Linear(4, 3)
        x = randn((2, 4), requires_grad=True)
        layer(x).sum().backward()
        self.assertEqual(layer.weight.grad.shape, (3, 4))
        self.assertEqual(layer.bias.grad.shape, (3,))
        np.testing.assert_allclose(layer.bias.grad.to_numpy(), [2.0, 2.0, 2.0])
        np.testing.assert_allclose(
            x.grad.to_numpy(),
            np.tile(layer.weight.to_numpy().sum(axis=0), (2, 1)),
            rtol=1e-6,
        )

    def test_repr(self):
        self.assertEqual(
            repr(Linear(2, 3, bias=False)),
            "Linear(in_features=2, out_features=3, bias=False)",
        )


class TestActivations(TestCase):

    def test_sigmoid_module(self):
        out = Sigmoid()(tensor([0.0]))
        self.assertAlmostEqual(out.item(), 0.5)

    def test_log_softmax_module(self):
        out = LogSoftmax(dim=1)(tensor([[1.0, 1.0]])).to_numpy()
        np.testing.assert_allclose(out, np.log([[0.5, 0.5]]), rtol=1e-6)
        self.assertEqual(repr(LogSoftmax()), "LogSoftmax(dim=-1)")


if __name__ == "__main__":
    unittest.main()
