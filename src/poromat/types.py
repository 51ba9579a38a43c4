import typing

import attrs
import numpy as np
import numpy.typing as npt
from typing_extensions import TypeAlias


__all__ = [
    "Numeric",
    "FloatOrArray",
    "OneDimensionalGrid",
    "EvaluationMode",
    "SamplePoint",
    "TabulatedField",
]

OneDimension: TypeAlias = typing.Tuple[int]
"""1D index"""

Numeric = typing.Union[int, float, np.floating, np.integer]
FloatOrArray = typing.Union[float, npt.NDArray[np.floating]]
OneDimensionalGrid = np.ndarray[OneDimension, np.dtype[np.floating]]
"""1D grid of floats, e.g. the x-positions or the y-positions of one column"""

EvaluationMode = typing.Literal["checked", "unchecked"]
"""
Domain checking policy for table evaluation

- "checked": Querying outside the tabulated domain without extrapolation raises `NumericalIssue`
- "unchecked": The domain is not tested and out-of-domain queries are silently extrapolated
"""


@attrs.frozen(slots=True)
class SamplePoint:
    """A single tabulated sample of a two-variable relation."""

    x: float
    """Position of the sample's column on the x-axis."""
    y: float
    """Position of the sample on the y-axis."""
    value: float
    """Tabulated value f(x, y)."""


@typing.runtime_checkable
class TabulatedField(typing.Protocol):
    """
    Protocol for a relation tabulated over two independent variables.

    Material laws depend on this rather than on a concrete table type.
    """

    def applies(self, x: float, y: float) -> bool:
        """Returns True if (x, y) lies in the tabulated domain."""
        ...

    def evaluate(
        self,
        x: typing.Any,
        y: typing.Any,
        extrapolate: typing.Optional[bool] = None,
        mode: typing.Optional[EvaluationMode] = None,
    ) -> typing.Any:
        """Evaluates the relation at (x, y)."""
        ...

    def __call__(self, x: typing.Any, y: typing.Any, **kwargs: typing.Any) -> typing.Any:
        """Evaluates the relation at (x, y)."""
        ...
