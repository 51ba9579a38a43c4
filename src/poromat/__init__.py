"""
*poromat*

Tabulated material-property relations for porous-media flow simulation.
"""

from ._precision import *  # noqa
from .config import *  # noqa
from .errors import *  # noqa
from .evaluation import *  # noqa
from .types import *  # noqa
from .tables import *  # noqa

__version__ = "0.1.0"
