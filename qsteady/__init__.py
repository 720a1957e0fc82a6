"""
qsteady: steady states of open quantum systems from a vectorised Lindblad
Liouvillian, and the populations of the subsystems in that state.
"""
import qsteady.settings
from qsteady.settings import settings
import qsteady.version
from qsteady.version import version as __version__

from .core import *
from .solver import *
