import numba
import numpy as np
import numpy.typing as npt


__all__ = [
    "clip_index",
    "locate_segment",
    "halve_interval",
    "interpolate_bilinear_packed",
]


@numba.njit(cache=True)
def clip_index(index: int, min_index: int, max_index: int) -> int:
    if index < min_index:
        return min_index
    elif index > max_index:
        return max_index
    return index


@numba.njit(cache=True)
def locate_segment(positions: npt.NDArray, value: float) -> float:
    """
    Continuous position of `value` along a strictly ascending sequence.

    The first and last segments are resolved without searching, so values
    beyond either end fall into the outermost segment and yield a position
    below 0 or above `len(positions) - 1`.

    :param positions: Strictly ascending positions, at least two.
    :param value: The coordinate to locate.
    :return: Segment index plus the fractional offset within the segment.
    """
    n = positions.shape[0]
    if not value > positions[1]:
        segment = 0
    elif value >= positions[n - 2]:
        segment = n - 2
    else:
        # positions[segment] <= value < positions[upper]
        segment = 1
        upper = n - 2
        while segment + 1 < upper:
            pivot = (segment + upper) // 2
            if value < positions[pivot]:
                upper = pivot
            else:
                segment = pivot

    lower_position = positions[segment]
    upper_position = positions[segment + 1]
    return segment + (value - lower_position) / (upper_position - lower_position)


@numba.njit(cache=True)
def halve_interval(positions: npt.NDArray, value: float) -> float:
    """
    Continuous position of `value` along a strictly ascending sequence by interval halving.

    :param positions: Strictly ascending positions, at least two.
    :param value: The coordinate to locate.
    :return: Lower index of the bracketing interval plus the fractional offset.
    """
    lower = 0
    upper = positions.shape[0] - 1
    pivot = (lower + upper) // 2
    while lower + 1 < upper:
        if value < positions[pivot]:
            upper = pivot
        else:
            lower = pivot
        pivot = (lower + upper) // 2

    lower_position = positions[lower]
    upper_position = positions[lower + 1]
    return lower + (value - lower_position) / (upper_position - lower_position)


@numba.njit(cache=True)
def interpolate_bilinear_packed(
    x_positions: npt.NDArray,
    offsets: npt.NDArray,
    y_positions: npt.NDArray,
    values: npt.NDArray,
    x: npt.NDArray,
    y: npt.NDArray,
    out: npt.NDArray,
) -> None:
    """
    Bilinear interpolation of many points on a table packed into flat arrays (in-place).

    Column `i` occupies `y_positions[offsets[i]:offsets[i + 1]]` and the same
    slice of `values`.

    :param x_positions: Ascending x-positions of the columns
    :param offsets: Start of each column in the flat arrays, plus the total length
    :param y_positions: Ascending y-positions of all columns, concatenated
    :param values: Tabulated values of all columns, concatenated
    :param x: 1D array of query x-coordinates
    :param y: 1D array of query y-coordinates, same length as `x`
    :param out: 1D output array, same length as `x`
    """
    num_x = x_positions.shape[0]
    for k in range(x.shape[0]):
        alpha = locate_segment(x_positions, x[k])
        i = clip_index(int(alpha), 0, num_x - 2)
        alpha -= i

        start_1, stop_1 = offsets[i], offsets[i + 1]
        start_2, stop_2 = offsets[i + 1], offsets[i + 2]

        beta_1 = halve_interval(y_positions[start_1:stop_1], y[k])
        beta_2 = halve_interval(y_positions[start_2:stop_2], y[k])
        j_1 = clip_index(int(beta_1), 0, stop_1 - start_1 - 2)
        j_2 = clip_index(int(beta_2), 0, stop_2 - start_2 - 2)
        beta_1 -= j_1
        beta_2 -= j_2

        s_1 = values[start_1 + j_1] * (1.0 - beta_1) + values[start_1 + j_1 + 1] * beta_1
        s_2 = values[start_2 + j_2] * (1.0 - beta_2) + values[start_2 + j_2 + 1] * beta_2
        out[k] = s_1 * (1.0 - alpha) + s_2 * alpha
