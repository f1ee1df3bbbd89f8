import numpy as np
import pytest

from batchnorm.autofunc import (Gradient, Variable, add, add_scaler, concat, mul, pool, power,
                                repeat, scale, slice_vector, square)
from gradcheck import check_gradients


def test_variable_constant_unless_in_gradient():
    a = Variable([1.0, 2.0])
    b = Variable([3.0, 4.0])
    grad = Gradient.zeros([a])
    assert not a.constant(grad)
    assert b.constant(grad)

    a.propagate_gradient(np.array([1.0, 1.0]), grad)
    a.propagate_gradient(np.array([0.5, 2.0]), grad)
    b.propagate_gradient(np.array([1.0, 1.0]), grad)
    np.testing.assert_allclose(grad[a], [1.5, 3.0])
    assert b not in grad


def test_generic_ops_gradients(rng):
    a = Variable(rng.standard_normal(6))
    b = Variable(rng.standard_normal(6))
    c = Variable(rng.random(3) + 0.5)

    def fn():
        x = mul(add(a, b), scale(square(a), -0.7))
        y = power(add_scaler(c, 0.1), -0.5)
        z = add(slice_vector(x, 0, 3), y)
        return concat(z, repeat(y, 2), x)

    check_gradients(fn, [a, b, c], rng)


def test_shared_operand_gets_both_contributions():
    a = Variable([1.0, 2.0, 3.0])
    grad = Gradient.zeros([a])
    add(a, a).propagate_gradient(np.ones(3), grad)
    np.testing.assert_allclose(grad[a], [2.0, 2.0, 2.0])


def test_mismatched_sizes_raise():
    with pytest.raises(ValueError):
        add(Variable([1.0, 2.0]), Variable([1.0]))
    with pytest.raises(ValueError):
        mul(Variable([1.0, 2.0]), Variable([1.0, 2.0, 3.0]))
    with pytest.raises(ValueError):
        slice_vector(Variable([1.0, 2.0]), 1, 3)


class _CountingVariable(Variable):
    def __init__(self, vector):
        super().__init__(vector)
        self.calls = 0

    def propagate_gradient(self, upstream, grad):
        self.calls += 1
        super().propagate_gradient(upstream, grad)


def test_pool_propagates_once_with_all_consumers(rng):
    x = _CountingVariable(rng.standard_normal(4))
    result = pool(x, lambda p: add(mul(p, p), scale(p, 3.0)))

    np.testing.assert_allclose(result.output, x.vector ** 2 + 3 * x.vector)

    grad = Gradient.zeros([x])
    upstream = rng.standard_normal(4)
    result.propagate_gradient(upstream.copy(), grad)
    assert x.calls == 1
    np.testing.assert_allclose(grad[x], upstream * (2 * x.vector + 3))
    assert set(grad) == {x}


def test_pool_of_constant_input_skips_it():
    x = _CountingVariable([1.0, 2.0])
    w = Variable([0.5, 0.5])
    result = pool(x, lambda p: mul(p, w))
    grad = Gradient.zeros([w])
    assert not result.constant(grad)
    result.propagate_gradient(np.ones(2), grad)
    assert x.calls == 0
    np.testing.assert_allclose(grad[w], [1.0, 2.0])
