import typing

import attrs
import numpy as np
import numpy.typing as npt

from poromat.types import OneDimensionalGrid


__all__ = ["SampleBuffer", "Column"]

_INITIAL_CAPACITY = 8


class SampleBuffer:
    """
    Contiguous, growable buffer of floats that can be extended at either end.

    Appending is amortised O(1) (capacity doubles when full). Prepending shifts
    the stored values and is O(n).
    """

    __slots__ = ("_data", "_size")

    def __init__(
        self, dtype: npt.DTypeLike, capacity: int = _INITIAL_CAPACITY
    ) -> None:
        self._data = np.empty(max(capacity, 2), dtype=dtype)
        self._size = 0

    def __len__(self) -> int:
        return self._size

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    @property
    def view(self) -> OneDimensionalGrid:
        """View of the stored values. Invalidated by the next append or prepend."""
        return self._data[: self._size]

    def first(self) -> float:
        assert self._size > 0
        return float(self._data[0])

    def last(self) -> float:
        assert self._size > 0
        return float(self._data[self._size - 1])

    def _reserve(self, capacity: int) -> None:
        if capacity <= self._data.shape[0]:
            return
        new_capacity = max(capacity, 2 * self._data.shape[0])
        data = np.empty(new_capacity, dtype=self._data.dtype)
        data[: self._size] = self._data[: self._size]
        self._data = data

    def append(self, value: float) -> None:
        self._reserve(self._size + 1)
        self._data[self._size] = value
        self._size += 1

    def prepend(self, value: float) -> None:
        self._reserve(self._size + 1)
        self._data[1 : self._size + 1] = self._data[: self._size]
        self._data[0] = value
        self._size += 1


@attrs.define(slots=True)
class Column:
    """Samples sharing one x-position, stored ascending by y."""

    x: float
    """Position of the column on the x-axis."""
    y_positions: SampleBuffer
    """Ascending y-positions of the samples."""
    values: SampleBuffer
    """Tabulated values, parallel to `y_positions`."""

    @classmethod
    def empty(cls, x: float, dtype: npt.DTypeLike) -> "Column":
        return cls(x=x, y_positions=SampleBuffer(dtype), values=SampleBuffer(dtype))

    def __len__(self) -> int:
        return len(self.y_positions)

    def add(self, y: float, value: float) -> typing.Optional[int]:
        """
        Add a sample at whichever end of the column `y` extends.

        :return: Index of the new sample, or None if `y` does not extend the column.
        """
        size = len(self.y_positions)
        if size == 0 or self.y_positions.last() < y:
            self.y_positions.append(y)
            self.values.append(value)
            return size
        elif self.y_positions.first() > y:
            self.y_positions.prepend(y)
            self.values.prepend(value)
            return 0
        return None
