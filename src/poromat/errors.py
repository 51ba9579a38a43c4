class PoromatError(Exception):
    """Base class for all poromat-related errors."""

    pass


class ValidationError(PoromatError, ValueError):
    """Raised when input data fails validation checks."""

    pass


class ConstructionError(PoromatError, ValueError):
    """
    Raised when appending a column or sample point would break the
    strictly monotonic ordering of a table axis.

    The table is left in the state it had before the failed append.
    """

    pass


class NumericalIssue(PoromatError, ArithmeticError):
    """Raised when a table is queried outside of its tabulated domain."""

    pass
