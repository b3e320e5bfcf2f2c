from unittest import TestCase
import unittest

import numpy as np

import src.gradflow as gf
from src.gradflow import functional as F


class TestEndToEnd(TestCase):

    def test_linear_sigmoid_mean_backward(self):
        gf.manual_seed(0)
        layer = gf.Linear(4, 3)
        x = gf.randn((2, 4), requires_grad=True)
        loss = F.mean(F.sigmoid(layer(x)))
        task = gf.backward(loss)

        self.assertEqual(task.outstanding_tasks, 0)
        self.assertEqual(x.grad.shape, (2, 4))
        self.assertEqual(layer.weight.grad.shape, (3, 4))
        self.assertEqual(layer.bias.grad.shape, (3,))

        # reference gradient in numpy
        w = layer.weight.to_numpy().astype(np.float64)
        b = layer.bias.to_numpy().astype(np.float64)
        xv = x.to_numpy().astype(np.float64)
        s = 1.0 / (1.0 + np.exp(-(xv @ w.T + b)))
        g = s * (1.0 - s) / s.size
        np.testing.assert_allclose(x.grad.to_numpy(), g @ w, rtol=1e-4, atol=1e-6)
        np.testing.assert_allclose(layer.weight.grad.to_numpy(), g.T @ xv, rtol=1e-4, atol=1e-6)
        np.testing.assert_allclose(layer.bias.grad.to_numpy(), g.sum(axis=0), rtol=1e-4, atol=1e-6)

    def test_xor_training_with_bce(self):
        gf.manual_seed(3)
        hidden = gf.Linear(2, 8)
        out = gf.Linear(8, 1)
        params = list(hidden.parameters()) + list(out.parameters())
        opt = gf.SGD(params, lr=1.0)

        x = gf.tensor([[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]])
        y = gf.tensor([[0.0], [1.0], [1.0], [0.0]])

        def forward():
            return F.sigmoid(out(F.sigmoid(hidden(x))))

        first = F.binary_cross_entropy(forward(), y).item()
        for _ in range(300):
            opt.zero_grad()
            loss = F.binary_cross_entropy(forward(), y)
            loss.backward()
            opt.step()
        self.assertLess(loss.item(), first)

    def test_classifier_with_nll_loss(self):
        gf.manual_seed(1)
        layer = gf.Linear(3, 4)
        log_probs = gf.LogSoftmax(dim=1)
        opt = gf.SGD(layer.parameters(), lr=0.5)
        x = gf.randn((6, 3))
        target = gf.tensor([0, 1, 2, 3, 0, 1])

        losses = []
        for _ in range(20):
            opt.zero_grad()
            loss = F.nll_loss(log_probs(layer(x)), target)
            loss.backward()
            opt.step()
            losses.append(loss.item())
        self.assertLess(losses[-1], losses[0])

    def test_no_grad_evaluation_builds_no_graph(self):
        layer = gf.Linear(2, 2)
        with gf.no_grad():
            y = layer(gf.randn((1, 2)))
        self.assertFalse(y.requires_grad)
        self.assertIsNone(y.grad_fn)


class TestPublicApi(TestCase):

    def test_exports(self):
        for name in gf.__all__:
            self.assertTrue(hasattr(gf, name), name)

    def test_dtype_constants(self):
        self.assertEqual(gf.zeros((1,), dtype=gf.float64).dtype, gf.float64)
        self.assertFalse(gf.int64.is_floating_point)


if __name__ == "__main__":
    unittest.main()
