import numpy as np
import pytest

from poromat import Evaluation, as_evaluation, value_of


def test_constant_and_variable():
    constant = Evaluation.constant(3.0, size=2)
    variable = Evaluation.variable(4.0, index=1, size=2)
    assert constant.value == 3.0
    np.testing.assert_array_equal(constant.derivatives, [0.0, 0.0])
    np.testing.assert_array_equal(variable.derivatives, [0.0, 1.0])
    assert variable.size == 2


def test_product_and_quotient_rules():
    x = Evaluation.variable(3.0, index=0, size=2)
    y = Evaluation.variable(4.0, index=1, size=2)

    product = x * y
    assert product.value == 12.0
    np.testing.assert_allclose(product.derivatives, [4.0, 3.0])

    quotient = x / y
    assert quotient.value == pytest.approx(0.75)
    np.testing.assert_allclose(quotient.derivatives, [0.25, -3.0 / 16.0])


def test_mixed_arithmetic_with_numbers():
    x = Evaluation.variable(2.0, index=0, size=1)

    assert (1.0 - x).value == -1.0
    assert (1.0 - x).derivatives[0] == -1.0
    assert (x - 1.0).derivatives[0] == 1.0
    assert (3.0 + x).value == 5.0
    assert (-x).derivatives[0] == -1.0
    assert (2.0 / x).derivatives[0] == pytest.approx(-0.5)
    assert (x / 4.0).derivatives[0] == pytest.approx(0.25)


def test_numpy_scalars_defer_to_evaluation():
    x = Evaluation.variable(2.0, index=0, size=1)
    result = np.float64(3.0) * x
    assert isinstance(result, Evaluation)
    assert result.value == 6.0
    assert result.derivatives[0] == 3.0

    result = np.float32(1.0) - x
    assert isinstance(result, Evaluation)
    assert result.derivatives[0] == -1.0


def test_explicit_helpers_match_operators():
    x = Evaluation.variable(2.0, index=0, size=2)
    y = Evaluation.variable(5.0, index=1, size=2)
    for helper, operator in [
        (x.add(y), x + y),
        (x.subtract(y), x - y),
        (x.multiply(y), x * y),
        (x.divide(y), x / y),
        (x.scale(3.0), 3.0 * x),
    ]:
        assert helper.value == operator.value
        np.testing.assert_array_equal(helper.derivatives, operator.derivatives)


def test_derivatives_are_copied():
    derivatives = np.array([1.0, 0.0])
    x = Evaluation(1.0, derivatives)
    derivatives[0] = 5.0
    assert x.derivatives[0] == 1.0


def test_mismatched_sizes_assert():
    x = Evaluation.variable(1.0, index=0, size=1)
    y = Evaluation.variable(1.0, index=0, size=2)
    with pytest.raises(AssertionError):
        x + y
    with pytest.raises(AssertionError):
        as_evaluation(y, size=1)


def test_value_of_and_as_evaluation():
    x = Evaluation.variable(1.5, index=0, size=1)
    assert value_of(x) == 1.5
    assert value_of(2) == 2.0
    assert as_evaluation(x, size=1) is x
    promoted = as_evaluation(0.5, size=3)
    assert promoted.value == 0.5
    np.testing.assert_array_equal(promoted.derivatives, np.zeros(3))
    assert float(x) == 1.5
