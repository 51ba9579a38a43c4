"""Tabulated material-property relations."""

from .uniform_x import *  # noqa
