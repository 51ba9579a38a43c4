"""Forward-mode automatic differentiation values."""

import typing

import attrs
import numpy as np
import numpy.typing as npt

from poromat.types import Numeric


__all__ = ["Evaluation", "value_of", "as_evaluation"]


def _as_derivatives(value: typing.Any) -> npt.NDArray[np.float64]:
    derivatives = np.array(value, dtype=np.float64, copy=True).ravel()
    return derivatives


@attrs.define(slots=True, eq=False)
class Evaluation:
    """
    A value carrying its partial derivatives with respect to a fixed set of
    independent variables.

    Arithmetic follows the chain rule, so any expression built from
    `Evaluation` objects and plain numbers yields the exact analytic
    derivatives of the expression alongside its value.

    The explicit helpers (`add`, `subtract`, `scale`, `multiply`, `divide`)
    are what the arithmetic operators delegate to. Operands must have the same
    number of derivatives.

    Example:
    ```python
    pressure = Evaluation.variable(250.0, index=0, size=2)
    saturation = Evaluation.variable(0.3, index=1, size=2)
    result = pressure * saturation
    result.derivatives  # array([0.3, 250.0])
    ```
    """

    value: float = attrs.field(converter=float)
    """The value of the quantity."""
    derivatives: npt.NDArray[np.float64] = attrs.field(converter=_as_derivatives)
    """Partial derivatives of the value with respect to each independent variable."""

    # Makes numpy scalars defer to the reflected operators below
    __array_ufunc__ = None

    @classmethod
    def constant(cls, value: Numeric, size: int) -> "Evaluation":
        """
        Create a quantity that does not depend on any independent variable.

        :param value: The value.
        :param size: Number of independent variables.
        """
        return cls(value, np.zeros(size))

    @classmethod
    def variable(cls, value: Numeric, index: int, size: int) -> "Evaluation":
        """
        Create the independent variable with position `index`.

        :param value: The value of the variable.
        :param index: Index of the variable among the independent variables.
        :param size: Number of independent variables.
        """
        assert 0 <= index < size
        derivatives = np.zeros(size)
        derivatives[index] = 1.0
        return cls(value, derivatives)

    @property
    def size(self) -> int:
        """Number of independent variables."""
        return self.derivatives.shape[0]

    def _coerce(self, other: typing.Any) -> "Evaluation":
        if isinstance(other, Evaluation):
            assert other.size == self.size, (
                f"Mismatched derivative lengths: {self.size} vs {other.size}"
            )
            return other
        return Evaluation.constant(other, self.size)

    def add(self, other: typing.Union["Evaluation", Numeric]) -> "Evaluation":
        other = self._coerce(other)
        return Evaluation(self.value + other.value, self.derivatives + other.derivatives)

    def subtract(self, other: typing.Union["Evaluation", Numeric]) -> "Evaluation":
        other = self._coerce(other)
        return Evaluation(self.value - other.value, self.derivatives - other.derivatives)

    def scale(self, factor: Numeric) -> "Evaluation":
        """Multiply by a constant."""
        factor = float(factor)
        return Evaluation(self.value * factor, self.derivatives * factor)

    def multiply(self, other: typing.Union["Evaluation", Numeric]) -> "Evaluation":
        if not isinstance(other, Evaluation):
            return self.scale(other)
        other = self._coerce(other)
        return Evaluation(
            self.value * other.value,
            self.derivatives * other.value + other.derivatives * self.value,
        )

    def divide(self, other: typing.Union["Evaluation", Numeric]) -> "Evaluation":
        if not isinstance(other, Evaluation):
            return self.scale(1.0 / float(other))
        other = self._coerce(other)
        return Evaluation(
            self.value / other.value,
            (self.derivatives * other.value - other.derivatives * self.value)
            / (other.value * other.value),
        )

    def __add__(self, other: typing.Any) -> "Evaluation":
        return self.add(other)

    def __radd__(self, other: typing.Any) -> "Evaluation":
        return self.add(other)

    def __sub__(self, other: typing.Any) -> "Evaluation":
        return self.subtract(other)

    def __rsub__(self, other: typing.Any) -> "Evaluation":
        return self._coerce(other).subtract(self)

    def __mul__(self, other: typing.Any) -> "Evaluation":
        return self.multiply(other)

    def __rmul__(self, other: typing.Any) -> "Evaluation":
        return self.multiply(other)

    def __truediv__(self, other: typing.Any) -> "Evaluation":
        return self.divide(other)

    def __rtruediv__(self, other: typing.Any) -> "Evaluation":
        return self._coerce(other).divide(self)

    def __neg__(self) -> "Evaluation":
        return self.scale(-1.0)

    def __float__(self) -> float:
        return self.value

    def __repr__(self) -> str:
        return f"Evaluation(value={self.value!r}, derivatives={self.derivatives.tolist()!r})"


def value_of(quantity: typing.Union[Evaluation, Numeric]) -> float:
    """Return the plain value of a number or an `Evaluation`."""
    if isinstance(quantity, Evaluation):
        return quantity.value
    return float(quantity)


def as_evaluation(
    quantity: typing.Union[Evaluation, Numeric], size: int
) -> Evaluation:
    """
    Promote a plain number to a constant `Evaluation` with `size` derivatives.

    `Evaluation` inputs are returned unchanged after checking their size.
    """
    if isinstance(quantity, Evaluation):
        assert quantity.size == size, (
            f"Mismatched derivative lengths: {quantity.size} vs {size}"
        )
        return quantity
    return Evaluation.constant(quantity, size)
