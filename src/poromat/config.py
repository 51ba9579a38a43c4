from contextlib import contextmanager
from contextvars import ContextVar
import typing

import attrs

from poromat.types import EvaluationMode

__all__ = ["Config", "get_config", "set_config", "with_config"]


@attrs.frozen
class Config:
    """Evaluation policy applied to table queries that do not specify their own."""

    evaluation_mode: EvaluationMode = attrs.field(
        default="checked",
        validator=attrs.validators.in_(("checked", "unchecked")),
    )
    """
    Whether out-of-domain queries are detected ('checked') or silently extrapolated ('unchecked').

    'unchecked' skips the membership test on every call. Only use it in production
    runs where the inputs are known to stay within the tabulated domain, since
    extrapolated values are returned without any warning.
    """
    extrapolate: bool = attrs.field(
        default=False, validator=attrs.validators.instance_of(bool)
    )
    """Whether queries extrapolate beyond the tabulated domain by default."""


_poromat_config: ContextVar[Config] = ContextVar(
    "_poromat_config", default=Config()
)


def get_config() -> Config:
    """
    Get the evaluation configuration active in the current context.

    :return: The active configuration.
    """
    return _poromat_config.get()


def set_config(config: Config) -> None:
    """
    Set the evaluation configuration for the current context.

    :param config: The configuration to activate.
    """
    _poromat_config.set(config)


@contextmanager
def with_config(**overrides: typing.Any):
    """
    Context manager to temporarily override fields of the active configuration.

    Example:
    ```python
    with with_config(evaluation_mode="unchecked"):
        kr = table(0.3, 250.0)
    ```

    :param overrides: `Config` field values to override within the context.
    """
    token = _poromat_config.set(attrs.evolve(get_config(), **overrides))
    try:
        yield
    finally:
        _poromat_config.reset(token)
