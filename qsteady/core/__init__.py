from .options import *
from .parallel import *
from .distributed import *
from .subsystem import *
from .superoperator import *
from .fileio import *
