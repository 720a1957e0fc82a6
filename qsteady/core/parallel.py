"""
This module provides the communicators used by the distributed matrix and
vector classes.  Every distributed operation in qsteady goes through one of
them, either the in-process :class:`SerialCommunicator` or a wrapper around an
``mpi4py`` communicator.

All methods except :attr:`rank`, :attr:`size` and :attr:`is_coordinator` are
collective: every process must call them, in the same order.
"""
__all__ = ['SerialCommunicator', 'MPICommunicator', 'get_communicator']

import numpy as np


class SerialCommunicator:
    """
    Communicator for a single process.  It is the default communicator and
    the one to inject in tests: it is always the coordinating process.
    """
    name = "serial"

    def __init__(self, is_coordinator=True):
        # is_coordinator=False is only useful to exercise the code paths
        # taken by the other processes of a distributed run.
        self._is_coordinator = is_coordinator

    @property
    def rank(self):
        return 0

    @property
    def size(self):
        return 1

    @property
    def is_coordinator(self):
        """Whether this process is the designated aggregator."""
        return self._is_coordinator

    def allgather(self, obj):
        return [obj]

    def alltoall(self, objs):
        if len(objs) != 1:
            raise ValueError("alltoall expects one item per process.")
        return list(objs)

    def reduce_sum(self, array, root=None):
        """
        Element-wise sum of ``array`` over all processes.  The result is only
        meaningful on ``root``; other processes receive ``None``.
        """
        if not self._is_coordinator:
            return None
        return np.array(array, copy=True)

    def abort(self, errorcode=1):
        raise SystemExit(errorcode)

    def __repr__(self):
        return f"<{self.__class__.__name__} rank={self.rank} size=1>"


class MPICommunicator:
    """
    Wrapper around an ``mpi4py`` communicator, ``MPI.COMM_WORLD`` by default.

    Parameters
    ----------
    comm : mpi4py.MPI.Comm, optional
        Communicator to wrap.
    root : int, default: 0
        Rank of the coordinating process.
    """
    name = "mpi"

    def __init__(self, comm=None, root=0):
        from mpi4py import MPI
        self._MPI = MPI
        self.comm = MPI.COMM_WORLD if comm is None else comm
        self.root = root

    @property
    def rank(self):
        return self.comm.Get_rank()

    @property
    def size(self):
        return self.comm.Get_size()

    @property
    def is_coordinator(self):
        """Whether this process is the designated aggregator."""
        return self.rank == self.root

    def allgather(self, obj):
        return self.comm.allgather(obj)

    def alltoall(self, objs):
        return self.comm.alltoall(objs)

    def reduce_sum(self, array, root=None):
        """
        Element-wise sum of ``array`` over all processes.  The result is only
        meaningful on ``root``; other processes receive ``None``.
        """
        root = self.root if root is None else root
        array = np.ascontiguousarray(array, dtype=np.float64)
        if self.rank == root:
            out = np.empty_like(array)
            self.comm.Reduce(array, out, op=self._MPI.SUM, root=root)
            return out
        self.comm.Reduce(array, None, op=self._MPI.SUM, root=root)
        return None

    def abort(self, errorcode=1):
        self.comm.Abort(errorcode)

    def __repr__(self):
        return (f"<{self.__class__.__name__} "
                f"rank={self.rank} size={self.size}>")


def get_communicator(comm=None):
    """
    Return a communicator usable by the distributed classes.

    Parameters
    ----------
    comm : None, str, communicator or mpi4py.MPI.Comm
        - ``None`` or ``"serial"``: single process communicator.
        - ``"mpi"``: wrap ``mpi4py.MPI.COMM_WORLD``.
        - An ``mpi4py`` communicator is wrapped in :class:`MPICommunicator`.
        - Any other object is taken as a communicator providing the
          interface of :class:`SerialCommunicator` and returned unchanged.
    """
    if comm is None:
        return SerialCommunicator()
    if isinstance(comm, str):
        if comm == "serial":
            return SerialCommunicator()
        if comm == "mpi":
            return MPICommunicator()
        raise ValueError(f"Unknown communicator {comm!r}, "
                         "use 'serial' or 'mpi'.")
    if hasattr(comm, "Get_rank"):
        return MPICommunicator(comm)
    return comm
