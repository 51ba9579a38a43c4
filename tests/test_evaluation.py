import numpy as np
import pytest
from scipy.interpolate import RegularGridInterpolator

from poromat import (
    Evaluation,
    NumericalIssue,
    UniformXTabulated2DField,
    ValidationError,
    build_uniform_x_field,
    with_config,
)


def test_center_of_unit_square_is_corner_average(unit_square_table):
    assert unit_square_table.evaluate(0.5, 0.5) == pytest.approx(1.5)
    assert unit_square_table(0.5, 0.5) == pytest.approx(1.5)
    assert isinstance(unit_square_table(0.5, 0.5), float)


def test_exact_at_nodes(jagged_table):
    for point in jagged_table.sample_points():
        assert jagged_table.evaluate(point.x, point.y) == pytest.approx(
            point.value, abs=1e-12
        )


def test_continuous_across_column_boundary(jagged_table):
    epsilon = 1e-9
    for y in np.linspace(0.0, 1.0, 11):
        left = jagged_table.evaluate(1.0 - epsilon, y)
        right = jagged_table.evaluate(1.0 + epsilon, y)
        at = jagged_table.evaluate(1.0, y)
        assert left == pytest.approx(at, abs=1e-6)
        assert right == pytest.approx(at, abs=1e-6)


def test_y_bracket_is_searched_per_column(jagged_table):
    # Column 0 is linear 0 -> 10 over y in [0, 1].
    # Column 1 is 1 -> 2 over [0, 0.5] and 2 -> 5 over [0.5, 2].
    s_1 = 10.0 * 0.75
    s_2 = 2.0 + 3.0 * (0.75 - 0.5) / 1.5
    assert jagged_table.evaluate(0.25, 0.75) == pytest.approx(0.75 * s_1 + 0.25 * s_2)


def test_matches_scipy_on_rectangular_grid():
    rng = np.random.default_rng(seed=7)
    x_positions = np.array([0.0, 1.0, 3.0, 3.5])
    y_positions = np.array([-2.0, 0.0, 2.0, 5.0, 6.0])
    values = rng.uniform(-1.0, 1.0, size=(x_positions.size, y_positions.size))
    table = build_uniform_x_field(
        x_positions, [y_positions] * x_positions.size, values
    )
    reference = RegularGridInterpolator((x_positions, y_positions), values)

    points = np.column_stack(
        [rng.uniform(0.0, 3.5, size=50), rng.uniform(-2.0, 6.0, size=50)]
    )
    expected = reference(points)
    actual = [table.evaluate(x, y) for x, y in points]
    np.testing.assert_allclose(actual, expected, rtol=1e-12, atol=1e-12)


def test_checked_mode_rejects_points_outside_domain(unit_square_table):
    with pytest.raises(NumericalIssue):
        unit_square_table.evaluate(2.0, 0.5, extrapolate=False, mode="checked")
    with pytest.raises(NumericalIssue):
        unit_square_table.evaluate(0.5, -1.0)


def test_extrapolation_is_linear_in_outermost_cell(unit_square_table):
    # f(x, y) = 2x + y
    assert unit_square_table.evaluate(2.0, 0.5, extrapolate=True) == pytest.approx(4.5)
    assert unit_square_table.evaluate(-1.0, 2.0, extrapolate=True) == pytest.approx(0.0)


def test_unchecked_mode_silently_extrapolates(unit_square_table):
    assert unit_square_table.evaluate(
        2.0, 0.5, extrapolate=False, mode="unchecked"
    ) == pytest.approx(4.5)


def test_mode_follows_active_config(unit_square_table):
    with with_config(evaluation_mode="unchecked"):
        assert unit_square_table(2.0, 0.5) == pytest.approx(4.5)
        with pytest.raises(NumericalIssue):
            unit_square_table(2.0, 0.5, mode="checked")

    with with_config(extrapolate=True):
        assert unit_square_table(2.0, 0.5) == pytest.approx(4.5)

    with pytest.raises(NumericalIssue):
        unit_square_table(2.0, 0.5)


def test_invalid_mode_is_rejected(unit_square_table):
    with pytest.raises(ValidationError):
        unit_square_table.evaluate(0.5, 0.5, mode="lenient")


def test_incomplete_table_cannot_be_evaluated():
    table = UniformXTabulated2DField()
    for x in (0.0, 1.0):
        i = table.append_x_pos(x)
        table.append_sample_point(i, 0.0, 0.0)
    table.append_sample_point(0, 1.0, 1.0)
    with pytest.raises(AssertionError):
        table.evaluate(0.5, 0.0, extrapolate=True)


def test_derivative_matches_finite_difference(unit_square_table):
    x = Evaluation(0.5, [1.0])
    y = Evaluation(0.5, [0.0])
    result = unit_square_table.evaluate(x, y)

    epsilon = 1e-6
    finite_difference = (
        unit_square_table.evaluate(0.5 + epsilon, 0.5)
        - unit_square_table.evaluate(0.5, 0.5)
    ) / epsilon
    assert isinstance(result, Evaluation)
    assert result.value == pytest.approx(1.5)
    assert result.derivatives[0] == pytest.approx(finite_difference, abs=1e-4)
    assert result.derivatives[0] == pytest.approx(2.0)


@pytest.mark.parametrize("x, y", [(0.7, 0.3), (1.4, 1.2), (0.2, 0.05), (1.9, -0.2)])
def test_partial_derivatives_on_jagged_table(jagged_table, x, y):
    pressure = Evaluation.variable(x, index=0, size=2)
    saturation = Evaluation.variable(y, index=1, size=2)
    result = jagged_table.evaluate(pressure, saturation, extrapolate=True)

    epsilon = 1e-6
    d_dx = (
        jagged_table.evaluate(x + epsilon, y, extrapolate=True)
        - jagged_table.evaluate(x - epsilon, y, extrapolate=True)
    ) / (2 * epsilon)
    d_dy = (
        jagged_table.evaluate(x, y + epsilon, extrapolate=True)
        - jagged_table.evaluate(x, y - epsilon, extrapolate=True)
    ) / (2 * epsilon)

    assert result.value == pytest.approx(
        jagged_table.evaluate(x, y, extrapolate=True), abs=1e-12
    )
    assert result.derivatives[0] == pytest.approx(d_dx, abs=1e-6)
    assert result.derivatives[1] == pytest.approx(d_dy, abs=1e-6)


def test_chain_rule_through_query_coordinates(unit_square_table):
    # x = 0.25 t and y = 0.5 t with t = 1, so df/dt = 2 * 0.25 + 0.5
    t = Evaluation.variable(1.0, index=0, size=1)
    result = unit_square_table.evaluate(0.25 * t, t * 0.5)
    assert result.value == pytest.approx(1.0)
    assert result.derivatives[0] == pytest.approx(1.0)


def test_plain_coordinate_is_treated_as_constant(unit_square_table):
    y = Evaluation.variable(0.5, index=1, size=3)
    result = unit_square_table.evaluate(0.5, y)
    np.testing.assert_allclose(result.derivatives, [0.0, 1.0, 0.0])


def test_mismatched_derivative_sizes_assert(unit_square_table):
    x = Evaluation.variable(0.5, index=0, size=2)
    y = Evaluation.variable(0.5, index=0, size=3)
    with pytest.raises(AssertionError):
        unit_square_table.evaluate(x, y)


def test_derivative_evaluation_respects_checked_mode(unit_square_table):
    x = Evaluation.variable(1.5, index=0, size=1)
    with pytest.raises(NumericalIssue):
        unit_square_table.evaluate(x, 0.5)
    result = unit_square_table.evaluate(x, 0.5, mode="unchecked")
    assert result.value == pytest.approx(3.5)
    assert result.derivatives[0] == pytest.approx(2.0)


@pytest.mark.parametrize("frozen", [False, True])
def test_evaluate_many_matches_scalar_evaluation(jagged_table, frozen):
    if frozen:
        jagged_table.freeze()
    xs, ys = np.meshgrid(np.linspace(-0.5, 2.5, 13), np.linspace(-1.5, 3.5, 11))
    result = jagged_table.evaluate_many(xs, ys, extrapolate=True)

    expected = np.array(
        [
            jagged_table.evaluate(x, y, extrapolate=True)
            for x, y in zip(xs.ravel(), ys.ravel())
        ]
    ).reshape(xs.shape)
    assert result.shape == xs.shape
    np.testing.assert_allclose(result, expected, rtol=1e-12, atol=1e-12)


def test_evaluate_many_broadcasts(unit_square_table):
    x = np.array([[0.0], [0.5], [1.0]])
    y = np.array([0.0, 0.25, 0.5, 1.0])
    result = unit_square_table.evaluate_many(x, y)
    assert result.shape == (3, 4)
    np.testing.assert_allclose(result, 2.0 * x + y)


def test_evaluate_many_scalar_returns_float(unit_square_table):
    result = unit_square_table.evaluate_many(0.5, 0.5)
    assert isinstance(result, float)
    assert result == pytest.approx(1.5)


def test_evaluate_many_checked_mode(unit_square_table):
    with pytest.raises(NumericalIssue, match="1 of 3 points"):
        unit_square_table.evaluate_many([0.5, 1.5, 0.2], [0.5, 0.5, 0.1])
    result = unit_square_table.evaluate_many(
        [0.5, 1.5, 0.2], [0.5, 0.5, 0.1], mode="unchecked"
    )
    np.testing.assert_allclose(result, [1.5, 3.5, 0.5])


def test_evaluation_does_not_modify_table(jagged_table):
    before = list(jagged_table.sample_points())
    jagged_table.evaluate(0.3, 0.4)
    jagged_table.evaluate(Evaluation.variable(0.3, 0, 1), 0.4)
    jagged_table.evaluate_many([0.3, 1.2], [0.4, 0.1])
    assert list(jagged_table.sample_points()) == before
    assert not jagged_table.frozen


@pytest.fixture
def float32_table():
    return build_uniform_x_field(
        [0.1, 0.3, 0.7],
        [[0.1, 0.7], [0.2, 0.45, 0.9], [0.15, 0.6]],
        [[0.1, 0.7], [0.3, 0.55, 1.1], [0.25, 0.95]],
        dtype=np.float32,
    )


def test_float32_table_is_exact_at_appended_nodes(float32_table):
    x_positions = [0.1, 0.3, 0.7]
    y_positions = [[0.1, 0.7], [0.2, 0.45, 0.9], [0.15, 0.6]]
    values = [[0.1, 0.7], [0.3, 0.55, 1.1], [0.25, 0.95]]
    for x, column_y, column_values in zip(x_positions, y_positions, values):
        for y, value in zip(column_y, column_values):
            assert float32_table.applies(x, y)
            assert float32_table.evaluate(x, y) == pytest.approx(value, rel=1e-6)

    xs = np.repeat(x_positions, [len(column) for column in y_positions])
    ys = np.concatenate(y_positions)
    result = float32_table.evaluate_many(xs, ys)
    np.testing.assert_allclose(result, np.concatenate(values), rtol=1e-6)


def test_float32_evaluate_many_matches_scalar_evaluation(float32_table):
    result = float32_table.evaluate_many(0.123456789, 0.123456789, extrapolate=True)
    expected = float32_table.evaluate(0.123456789, 0.123456789, extrapolate=True)
    assert result == pytest.approx(expected, rel=1e-12)

    xs, ys = np.meshgrid(np.linspace(0.1, 0.7, 7), np.linspace(0.2, 0.6, 5))
    result = float32_table.evaluate_many(xs, ys)
    assert result.dtype == np.float64
    expected = np.array(
        [float32_table.evaluate(x, y) for x, y in zip(xs.ravel(), ys.ravel())]
    ).reshape(xs.shape)
    np.testing.assert_allclose(result, expected, rtol=1e-12, atol=1e-12)
