from .options import *
from .result import *
from .populations import *
from .steadystate import *
from . import linalg
