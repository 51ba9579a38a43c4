import pytest

from poromat import UniformXTabulated2DField, build_uniform_x_field


@pytest.fixture
def unit_square_table() -> UniformXTabulated2DField:
    """Two columns at x = 0 and x = 1, f(x, y) = 2x + y."""
    table = UniformXTabulated2DField()
    for x, values in ((0.0, (0.0, 1.0)), (1.0, (2.0, 3.0))):
        i = table.append_x_pos(x)
        table.append_sample_point(i, 0.0, values[0])
        table.append_sample_point(i, 1.0, values[1])
    return table


@pytest.fixture
def jagged_table() -> UniformXTabulated2DField:
    """Three columns with different y-extents and sample counts."""
    return build_uniform_x_field(
        x_positions=[0.0, 1.0, 2.0],
        y_positions=[[0.0, 1.0], [0.0, 0.5, 2.0], [-1.0, 1.0, 3.0]],
        values=[[0.0, 10.0], [1.0, 2.0, 5.0], [0.0, 4.0, 8.0]],
    )
