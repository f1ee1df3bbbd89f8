import numpy as np
import pytest

from batchnorm.arithmetic import add_mul, mul_add
from batchnorm.autofunc import Gradient, Variable, add, mul, repeat
from gradcheck import check_equivalence


def _vars(rng, in_size, channels):
    input = Variable(rng.standard_normal(in_size))
    bias = Variable(rng.standard_normal(channels))
    scale = Variable(rng.standard_normal(channels))
    return input, bias, scale


def test_add_mul_matches_composition(rng):
    input, bias, scale = _vars(rng, 30, 6)
    actual = add_mul(input, bias, scale, 5)
    expected = mul(add(input, repeat(bias, 5)), repeat(scale, 5))
    check_equivalence(actual, expected, [input, bias, scale], rng)


def test_mul_add_matches_composition(rng):
    input, bias, scale = _vars(rng, 30, 6)
    actual = mul_add(input, scale, bias, 5)
    expected = add(mul(input, repeat(scale, 5)), repeat(bias, 5))
    check_equivalence(actual, expected, [input, bias, scale], rng)


@pytest.mark.parametrize("subset", [[0], [1], [2], [0, 2], [1, 2]])
def test_partial_gradients_match_composition(rng, subset):
    vars_ = _vars(rng, 12, 4)
    input, bias, scale = vars_
    params = [vars_[i] for i in subset]
    check_equivalence(add_mul(input, bias, scale, 3),
                      mul(add(input, repeat(bias, 3)), repeat(scale, 3)), params, rng)
    check_equivalence(mul_add(input, scale, bias, 3),
                      add(mul(input, repeat(scale, 3)), repeat(bias, 3)), params, rng)


def test_constant_operands_receive_nothing(rng):
    input, bias, scale = _vars(rng, 8, 4)
    grad = Gradient.zeros([bias])
    result = add_mul(input, bias, scale, 2)
    result.propagate_gradient(np.ones(8), grad)
    assert set(grad) == {bias}
    np.testing.assert_allclose(grad[bias], 2 * scale.vector)

    assert add_mul(input, bias, scale, 2).constant(Gradient())
    assert mul_add(input, scale, bias, 2).constant(Gradient())


def test_input_left_unchanged(rng):
    input, bias, scale = _vars(rng, 8, 4)
    before = input.vector.copy()
    add_mul(input, bias, scale, 2)
    mul_add(input, scale, bias, 2)
    np.testing.assert_array_equal(input.vector, before)


@pytest.mark.parametrize("in_size,bias_size,scale_size,n", [
    (10, 2, 3, 5),
    (10, 2, 2, 4),
    (9, 2, 2, 5),
    (0, 2, 2, 0),
])
def test_shape_violations_raise(in_size, bias_size, scale_size, n):
    input = Variable(np.zeros(in_size))
    bias = Variable(np.zeros(bias_size))
    scale = Variable(np.zeros(scale_size))
    with pytest.raises(ValueError):
        add_mul(input, bias, scale, n)
    with pytest.raises(ValueError):
        mul_add(input, scale, bias, n)
