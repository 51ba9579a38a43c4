"""Two-variable relations tabulated column by column."""

import logging
import math
import typing

import attrs
import numpy as np
import numpy.typing as npt

from poromat._precision import get_dtype
from poromat.config import get_config
from poromat.errors import ConstructionError, NumericalIssue, ValidationError
from poromat.evaluation import Evaluation, as_evaluation, value_of
from poromat.tables.columns import Column, SampleBuffer
from poromat.types import (
    EvaluationMode,
    FloatOrArray,
    Numeric,
    OneDimensionalGrid,
    SamplePoint,
)
from poromat.utils import (
    clip_index,
    halve_interval,
    interpolate_bilinear_packed,
    locate_segment,
)

logger = logging.getLogger(__name__)

__all__ = ["UniformXTabulated2DField", "build_uniform_x_field"]

Quantity = typing.Union[Evaluation, Numeric]
_EVALUATION_MODES = ("checked", "unchecked")


class _Cell(typing.NamedTuple):
    """Bracketing cell of a query point and the fractional offsets within it."""

    i: int
    alpha: float
    j_1: int
    beta_1: float
    j_2: int
    beta_2: float


@attrs.frozen
class _PackedTable:
    """Flat copy of a table's columns for compiled batch evaluation."""

    x_positions: OneDimensionalGrid
    offsets: npt.NDArray[np.int64]
    y_positions: OneDimensionalGrid
    values: OneDimensionalGrid
    y_min: OneDimensionalGrid
    y_max: OneDimensionalGrid


def _blend_bilinear(
    corners: typing.Tuple[float, float, float, float],
    alpha: typing.Any,
    beta_1: typing.Any,
    beta_2: typing.Any,
) -> typing.Any:
    """
    Bilinear blend of the four corner values of a cell.

    Works for plain floats and for `Evaluation` offsets alike.

    :param corners: Values at (i, j_1), (i, j_1 + 1), (i + 1, j_2), (i + 1, j_2 + 1)
    :param alpha: Fractional offset between the two columns
    :param beta_1: Fractional offset within the first column
    :param beta_2: Fractional offset within the second column
    """
    value_11, value_12, value_21, value_22 = corners
    s_1 = value_11 * (1.0 - beta_1) + value_12 * beta_1
    s_2 = value_21 * (1.0 - beta_2) + value_22 * beta_2
    return s_1 * (1.0 - alpha) + s_2 * alpha


class UniformXTabulated2DField:
    """
    Scalar function of two variables, sampled along a set of vertical lines (columns).

    Every column sits at one x-position and holds its own, independently
    sized and spaced, set of y-positions. The x-positions, and the y-positions
    within each column, are strictly monotonic. Values between samples are
    obtained by bilinear interpolation over the cell spanned by two neighbouring
    columns, with the y-bracket searched separately in each of the two columns.
    The sampled surface is therefore ruled, not rectangular.

    Tables are built by appending columns (`append_x_pos`) and samples
    (`append_sample_point`) at either end of the respective axis, in ascending
    or in descending order. Once at least two columns with at least two samples
    each exist, the table can be queried with plain numbers, which returns a
    float, or with `Evaluation` objects, which also returns the exact partial
    derivatives of the interpolant with respect to the query's independent
    variables.

    Querying never mutates the table, so a fully built table can be shared
    between concurrent readers. Appending while other threads read is not safe.
    Call `freeze()` to rule out further appends.

    Example:
    ```python
    table = UniformXTabulated2DField()
    for pressure in (100.0, 200.0):
        i = table.append_x_pos(pressure)
        table.append_sample_point(i, 0.2, 0.0)
        table.append_sample_point(i, 0.8, pressure / 200.0)

    krw = table(150.0, 0.5)  # 0.375
    ```
    """

    def __init__(self, dtype: typing.Optional[npt.DTypeLike] = None) -> None:
        """
        :param dtype: Storage data type of the samples. Defaults to `get_dtype()`.
        """
        self._dtype = np.dtype(dtype if dtype is not None else get_dtype())
        self._x_positions = SampleBuffer(self._dtype)
        self._columns: typing.List[Column] = []
        self._packed: typing.Optional[_PackedTable] = None

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(num_x={self.num_x}, samples={len(self)}, "
            f"frozen={self.frozen})"
        )

    def __len__(self) -> int:
        """Total number of sample points in the table."""
        return sum(len(column) for column in self._columns)

    @property
    def dtype(self) -> np.dtype:
        """Storage data type of the samples."""
        return self._dtype

    @property
    def frozen(self) -> bool:
        """Whether the table has been frozen against further appends."""
        return self._packed is not None

    @property
    def is_complete(self) -> bool:
        """Whether the table has at least two columns, each with at least two samples."""
        return len(self._columns) >= 2 and all(
            len(column) >= 2 for column in self._columns
        )

    @property
    def num_x(self) -> int:
        """Number of columns."""
        return len(self._columns)

    @property
    def x_min(self) -> float:
        """Smallest x-position."""
        return self._x_positions.first()

    @property
    def x_max(self) -> float:
        """Largest x-position."""
        return self._x_positions.last()

    @property
    def x_positions(self) -> OneDimensionalGrid:
        """Copy of the ascending x-positions of the columns."""
        return self._x_positions.view.copy()

    def num_y(self, i: int) -> int:
        """Number of samples in column `i`."""
        return len(self._columns[i])

    def y_min(self, i: int) -> float:
        """Smallest y-position of column `i`."""
        return self._columns[i].y_positions.first()

    def y_max(self, i: int) -> float:
        """Largest y-position of column `i`."""
        return self._columns[i].y_positions.last()

    def x_at(self, i: int) -> float:
        """x-position of column `i`."""
        assert 0 <= i < self.num_x
        return float(self._x_positions.view[i])

    def y_at(self, i: int, j: int) -> float:
        """y-position of sample `j` of column `i`."""
        assert 0 <= i < self.num_x
        assert 0 <= j < self.num_y(i)
        return float(self._columns[i].y_positions.view[j])

    def value_at(self, i: int, j: int) -> float:
        """Value of sample `j` of column `i`."""
        assert 0 <= i < self.num_x
        assert 0 <= j < self.num_y(i)
        return float(self._columns[i].values.view[j])

    def sample_point(self, i: int, j: int) -> SamplePoint:
        """Sample `j` of column `i`."""
        return SamplePoint(x=self.x_at(i), y=self.y_at(i, j), value=self.value_at(i, j))

    def sample_points(self) -> typing.Iterator[SamplePoint]:
        """Iterate over all samples, column by column, in ascending x then y order."""
        for i in range(self.num_x):
            for j in range(self.num_y(i)):
                yield self.sample_point(i, j)

    def column(self, i: int) -> typing.Tuple[OneDimensionalGrid, OneDimensionalGrid]:
        """
        Copies of the y-positions and values of column `i`.

        :return: A tuple of (ascending y-positions, values).
        """
        column = self._columns[i]
        return column.y_positions.view.copy(), column.values.view.copy()

    def _to_coordinate(self, value: Numeric, axis: str) -> float:
        coordinate = self._dtype.type(value)
        if not np.isfinite(coordinate):
            raise ConstructionError(f"{axis}-position must be finite, got {value}")
        return float(coordinate)

    def _to_storage(self, value: float) -> float:
        """Round a query coordinate the way appended coordinates are stored."""
        return float(self._dtype.type(value))

    def _ensure_mutable(self) -> None:
        if self.frozen:
            raise ConstructionError("Cannot append to a frozen table")

    def append_x_pos(self, x: Numeric) -> int:
        """
        Add a new, empty column at x-position `x`.

        The column is added after the last column if `x` is larger than all
        existing x-positions, or before the first column if it is smaller. In
        the latter case all existing column indices shift up by one.

        :param x: x-position of the new column.
        :return: Index of the new column.
        :raises ConstructionError: If `x` does not extend the x-axis at either end,
            is not finite, or the table is frozen.
        """
        self._ensure_mutable()
        x = self._to_coordinate(x, axis="x")
        if not self._columns or self._x_positions.last() < x:
            self._x_positions.append(x)
            self._columns.append(Column.empty(x, self._dtype))
            return len(self._columns) - 1
        elif self._x_positions.first() > x:
            self._x_positions.prepend(x)
            self._columns.insert(0, Column.empty(x, self._dtype))
            logger.debug(f"Inserted column at x={x} before {len(self._columns) - 1} columns")
            return 0

        raise ConstructionError(
            f"Cannot add column at x={x} within the existing range "
            f"[{self.x_min}, {self.x_max}]. Sampling points should be specified "
            "either monotonically ascending or descending."
        )

    def append_sample_point(self, i: int, y: Numeric, value: Numeric) -> int:
        """
        Add a sample to column `i`.

        The sample is added after the last sample of the column if `y` is
        larger than all its y-positions, or before the first sample if it is
        smaller.

        :param i: Index of the column.
        :param y: y-position of the sample.
        :param value: Tabulated value at (x_i, y).
        :return: Index of the new sample within the column.
        :raises ConstructionError: If `y` does not extend the column at either end,
            is not finite, or the table is frozen.
        """
        self._ensure_mutable()
        assert 0 <= i < self.num_x, f"Column index {i} out of range [0, {self.num_x})"

        y = self._to_coordinate(y, axis="y")
        column = self._columns[i]
        j = column.add(y, float(value))
        if j is None:
            raise ConstructionError(
                f"Cannot add sample at y={y} within the existing range "
                f"[{self.y_min(i)}, {self.y_max(i)}] of column {i} (x={column.x}). "
                "Sampling points should be specified either monotonically "
                "ascending or descending."
            )
        return j

    def freeze(self) -> "UniformXTabulated2DField":
        """
        Rule out further appends and prepare the table for batch evaluation.

        Freezing an already frozen table has no effect.

        :return: The table itself.
        :raises ValidationError: If the table is not complete (see `is_complete`).
        """
        if self.frozen:
            return self
        if not self.is_complete:
            raise ValidationError(
                "Cannot freeze an incomplete table. At least 2 columns with at "
                f"least 2 sample points each are required, got {self.num_x} columns "
                f"with {[len(column) for column in self._columns]} sample points"
            )
        self._packed = self._pack()
        logger.info(
            f"Froze tabulated field with {self.num_x} columns and {len(self)} sample points "
            f"over x ∈ [{self.x_min}, {self.x_max}]"
        )
        return self

    def _pack(self) -> _PackedTable:
        offsets = np.zeros(self.num_x + 1, dtype=np.int64)
        offsets[1:] = np.cumsum([len(column) for column in self._columns])
        return _PackedTable(
            x_positions=self._x_positions.view.copy(),
            offsets=offsets,
            y_positions=np.concatenate(
                [column.y_positions.view for column in self._columns]
            ),
            values=np.concatenate([column.values.view for column in self._columns]),
            y_min=np.array([column.y_positions.first() for column in self._columns]),
            y_max=np.array([column.y_positions.last() for column in self._columns]),
        )

    def x_to_i(self, x: float, extrapolate: bool = False) -> float:
        """
        Continuous column position of a point on the x-axis.

        The integer part is the index of the bracketing column interval, the
        remainder the position of `x` between its two columns. Below the first
        or above the last column the result lies outside [0, num_x - 1].

        :param x: The x-coordinate.
        :param extrapolate: Whether `x` may lie outside [x_min, x_max].
        """
        assert self.num_x >= 2, "At least 2 columns are required"
        assert extrapolate or (self.x_min <= x <= self.x_max)
        return float(locate_segment(self._x_positions.view, float(x)))

    def y_to_j(self, i: int, y: float, extrapolate: bool = False) -> float:
        """
        Continuous sample position of a point on the y-axis of column `i`.

        :param i: Index of the column.
        :param y: The y-coordinate.
        :param extrapolate: Whether `y` may lie outside the column's y-range.
        """
        assert 0 <= i < self.num_x
        column = self._columns[i]
        assert len(column) >= 2, f"Column {i} needs at least 2 sample points"
        assert extrapolate or (self.y_min(i) <= y <= self.y_max(i))
        return float(halve_interval(column.y_positions.view, float(y)))

    def applies(self, x: Quantity, y: Quantity) -> bool:
        """
        Whether a point lies in the tabulated domain.

        The y-range at `x` is approximated by linearly blending the y-ranges of
        the two bracketing columns, so the test is exact at the columns and
        approximate in between.

        :param x: The x-coordinate (plain number or `Evaluation`).
        :param y: The y-coordinate (plain number or `Evaluation`).
        """
        x = self._to_storage(value_of(x))
        y = self._to_storage(value_of(y))
        if not (self.x_min <= x <= self.x_max):
            return False

        alpha = self.x_to_i(x)
        i = clip_index(int(alpha), 0, self.num_x - 2)
        alpha -= i

        y_min = self.y_min(i) * (1.0 - alpha) + self.y_min(i + 1) * alpha
        y_max = self.y_max(i) * (1.0 - alpha) + self.y_max(i + 1) * alpha
        return y_min <= y <= y_max

    def _resolve_policy(
        self, extrapolate: typing.Optional[bool], mode: typing.Optional[EvaluationMode]
    ) -> typing.Tuple[bool, EvaluationMode]:
        if extrapolate is None or mode is None:
            config = get_config()
            if extrapolate is None:
                extrapolate = config.extrapolate
            if mode is None:
                mode = config.evaluation_mode
        if mode not in _EVALUATION_MODES:
            raise ValidationError(
                f"Evaluation mode must be one of {_EVALUATION_MODES}, got {mode!r}"
            )
        return extrapolate, mode

    def _locate_cell(self, x: float, y: float) -> _Cell:
        assert self.is_complete, (
            "At least 2 columns with at least 2 sample points each are required"
        )
        assert math.isfinite(x) and math.isfinite(y), (
            f"Cannot evaluate table at non-finite point ({x}, {y})"
        )
        x = self._to_storage(x)
        y = self._to_storage(y)
        alpha = self.x_to_i(x, extrapolate=True)
        i = clip_index(int(alpha), 0, self.num_x - 2)
        alpha -= i

        # The y-bracket is searched independently in both columns
        beta_1 = self.y_to_j(i, y, extrapolate=True)
        beta_2 = self.y_to_j(i + 1, y, extrapolate=True)
        j_1 = clip_index(int(beta_1), 0, self.num_y(i) - 2)
        j_2 = clip_index(int(beta_2), 0, self.num_y(i + 1) - 2)
        return _Cell(i, alpha, j_1, beta_1 - j_1, j_2, beta_2 - j_2)

    def _corners(self, cell: _Cell) -> typing.Tuple[float, float, float, float]:
        values_1 = self._columns[cell.i].values.view
        values_2 = self._columns[cell.i + 1].values.view
        return (
            float(values_1[cell.j_1]),
            float(values_1[cell.j_1 + 1]),
            float(values_2[cell.j_2]),
            float(values_2[cell.j_2 + 1]),
        )

    def evaluate(
        self,
        x: Quantity,
        y: Quantity,
        extrapolate: typing.Optional[bool] = None,
        mode: typing.Optional[EvaluationMode] = None,
    ) -> typing.Union[float, Evaluation]:
        """
        Evaluate the tabulated relation at (x, y) by bilinear interpolation.

        If `x` or `y` is an `Evaluation`, the result is an `Evaluation` carrying
        the exact derivatives of the interpolant with respect to the same
        independent variables. A plain number passed alongside an `Evaluation`
        is treated as a constant. Otherwise the result is a float.

        :param x: The x-coordinate.
        :param y: The y-coordinate.
        :param extrapolate: Whether to extrapolate outside the tabulated domain.
            Defaults to the active `Config.extrapolate`.
        :param mode: 'checked' to raise on out-of-domain queries that are not
            extrapolated, 'unchecked' to skip the test and always extrapolate.
            Defaults to the active `Config.evaluation_mode`.
        :return: The interpolated value.
        :raises NumericalIssue: In 'checked' mode, if (x, y) lies outside the
            tabulated domain and `extrapolate` is False.
        """
        extrapolate, mode = self._resolve_policy(extrapolate, mode)
        if mode == "checked" and not extrapolate and not self.applies(x, y):
            raise NumericalIssue(
                f"Attempt to get tabulated value for ({value_of(x)}, {value_of(y)}) "
                f"outside of the table's domain, x ∈ [{self.x_min}, {self.x_max}]"
            )

        if isinstance(x, Evaluation) or isinstance(y, Evaluation):
            return self._evaluate_with_derivatives(x, y)

        cell = self._locate_cell(float(x), float(y))
        return float(
            _blend_bilinear(self._corners(cell), cell.alpha, cell.beta_1, cell.beta_2)
        )

    def _evaluate_with_derivatives(self, x: Quantity, y: Quantity) -> Evaluation:
        size = x.size if isinstance(x, Evaluation) else y.size  # type: ignore[union-attr]
        x = as_evaluation(x, size)
        y = as_evaluation(y, size)

        cell = self._locate_cell(x.value, y.value)
        i, j_1, j_2 = cell.i, cell.j_1, cell.j_2

        # Offsets are linear in the query coordinates within a cell
        alpha = Evaluation(
            cell.alpha, x.derivatives / (self.x_at(i + 1) - self.x_at(i))
        )
        beta_1 = Evaluation(
            cell.beta_1, y.derivatives / (self.y_at(i, j_1 + 1) - self.y_at(i, j_1))
        )
        beta_2 = Evaluation(
            cell.beta_2,
            y.derivatives / (self.y_at(i + 1, j_2 + 1) - self.y_at(i + 1, j_2)),
        )
        return _blend_bilinear(self._corners(cell), alpha, beta_1, beta_2)

    def __call__(
        self, x: Quantity, y: Quantity, **kwargs: typing.Any
    ) -> typing.Union[float, Evaluation]:
        """
        Evaluate the tabulated relation at (x, y).

        :param kwargs: `extrapolate` and `mode`, as for `evaluate`.
        """
        return self.evaluate(x, y, **kwargs)

    def evaluate_many(
        self,
        x: FloatOrArray,
        y: FloatOrArray,
        extrapolate: typing.Optional[bool] = None,
        mode: typing.Optional[EvaluationMode] = None,
    ) -> FloatOrArray:
        """
        Evaluate the tabulated relation at many points at once.

        `x` and `y` are broadcast against each other. Evaluation of frozen tables
        reuses the flat copy made by `freeze()`, otherwise a flat copy is made
        for each call.

        :param x: x-coordinate(s), scalar or array.
        :param y: y-coordinate(s), scalar or array.
        :param extrapolate: As for `evaluate`.
        :param mode: As for `evaluate`.
        :return: Interpolated values with the broadcast shape of `x` and `y`,
            or a float if both are scalars.
        :raises NumericalIssue: In 'checked' mode, if any point lies outside the
            tabulated domain and `extrapolate` is False.
        """
        extrapolate, mode = self._resolve_policy(extrapolate, mode)
        assert self.is_complete, (
            "At least 2 columns with at least 2 sample points each are required"
        )
        x_array, y_array = np.broadcast_arrays(
            np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64)
        )
        is_scalar = x_array.ndim == 0
        original_shape = x_array.shape
        # Queries are rounded the way appended coordinates are stored
        x_flat = np.ascontiguousarray(
            x_array.ravel().astype(self._dtype), dtype=np.float64
        )
        y_flat = np.ascontiguousarray(
            y_array.ravel().astype(self._dtype), dtype=np.float64
        )

        packed = self._packed if self._packed is not None else self._pack()
        if mode == "checked" and not extrapolate:
            # Same blended y-range as `applies`, for all points at once
            y_lower = np.interp(x_flat, packed.x_positions, packed.y_min)
            y_upper = np.interp(x_flat, packed.x_positions, packed.y_max)
            inside = (
                (x_flat >= packed.x_positions[0])
                & (x_flat <= packed.x_positions[-1])
                & (y_flat >= y_lower)
                & (y_flat <= y_upper)
            )
            if not np.all(inside):
                raise NumericalIssue(
                    f"Attempt to get tabulated values for {np.count_nonzero(~inside)} "
                    f"of {inside.size} points outside of the table's domain, "
                    f"x ∈ [{self.x_min}, {self.x_max}]"
                )

        assert np.all(np.isfinite(x_flat)) and np.all(np.isfinite(y_flat)), (
            "Cannot evaluate table at non-finite points"
        )
        result = np.empty(x_flat.shape[0], dtype=np.float64)
        interpolate_bilinear_packed(
            packed.x_positions,
            packed.offsets,
            packed.y_positions,
            packed.values,
            x_flat,
            y_flat,
            result,
        )
        if is_scalar:
            return float(result[0])
        return result.reshape(original_shape)


def build_uniform_x_field(
    x_positions: typing.Sequence[Numeric],
    y_positions: typing.Sequence[typing.Sequence[Numeric]],
    values: typing.Sequence[typing.Sequence[Numeric]],
    freeze: bool = False,
    dtype: typing.Optional[npt.DTypeLike] = None,
) -> UniformXTabulated2DField:
    """
    Build a tabulated field from in-memory columns.

    Columns, and the samples within each column, may be given in ascending or
    descending order.

    :param x_positions: x-position of each column.
    :param y_positions: y-positions of the samples of each column.
    :param values: Tabulated values of each column, parallel to `y_positions`.
    :param freeze: Whether to freeze the table once built.
    :param dtype: Storage data type. Defaults to `get_dtype()`.
    :return: The built table.
    :raises ValidationError: If the inputs have inconsistent lengths or too few samples.
    :raises ConstructionError: If positions are not strictly monotonic.
    """
    if not (len(x_positions) == len(y_positions) == len(values)):
        raise ValidationError(
            "x-positions, y-positions and values must have the same number of columns. "
            f"Got {len(x_positions)}, {len(y_positions)} and {len(values)}"
        )
    if len(x_positions) < 2:
        raise ValidationError(
            f"At least 2 columns required for interpolation, got {len(x_positions)}"
        )
    for column_y, column_values in zip(y_positions, values):
        if len(column_y) != len(column_values):
            raise ValidationError(
                f"y-positions and values of a column must have the same length. "
                f"Got {len(column_y)} vs {len(column_values)}"
            )
        if len(column_y) < 2:
            raise ValidationError(
                f"At least 2 sample points per column required, got {len(column_y)}"
            )

    table = UniformXTabulated2DField(dtype=dtype)
    for x, column_y, column_values in zip(x_positions, y_positions, values):
        i = table.append_x_pos(x)
        for y, value in zip(column_y, column_values):
            table.append_sample_point(i, y, value)

    logger.debug(
        f"Built tabulated field with {table.num_x} columns and {len(table)} sample points"
    )
    if freeze:
        table.freeze()
    return table
