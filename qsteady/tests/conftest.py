import os
import tempfile
import threading

import numpy as np
import pytest

import qsteady
from qsteady.solver.options import SteadyStateOptions


@pytest.fixture
def in_temporary_directory():
    """
    Creates a temporary directory for the lifetime of the fixture and changes
    into it.  All relative paths used will be in the temporary directory, and
    everything will automatically be cleaned up at the end of the fixture's
    life.
    """
    previous_dir = os.getcwd()
    with tempfile.TemporaryDirectory() as temporary_dir:
        os.chdir(temporary_dir)
        yield
        # pytest should catch exceptions occuring in functions using the
        # fixture, so this should always be called.  We want it here rather
        # than outside to prevent the case of the directory failing to be
        # removed because it is 'busy'.
        os.chdir(previous_dir)


@pytest.fixture(autouse=True)
def restore_steadystate_options():
    """
    Tests are free to modify ``qsteady.settings.steadystate``, the defaults
    are put back afterwards.
    """
    backup = qsteady.settings.steadystate
    qsteady.settings.steadystate = SteadyStateOptions()
    yield
    qsteady.settings.steadystate = backup


class _Exchange:
    def __init__(self, size):
        self.size = size
        self.barrier = threading.Barrier(size, timeout=60)
        self.slots = [None] * size


class ThreadCommunicator:
    """
    Communicator between threads of the same process, with the interface of
    ``qsteady.core.parallel.SerialCommunicator``.  Each thread plays one MPI
    process, which exercises the collective code paths without mpi4py.
    """
    name = "thread"

    def __init__(self, exchange, rank):
        self._exchange_data = exchange
        self._rank = rank

    @property
    def rank(self):
        return self._rank

    @property
    def size(self):
        return self._exchange_data.size

    @property
    def is_coordinator(self):
        return self._rank == 0

    def _exchange(self, obj):
        data = self._exchange_data
        data.slots[self._rank] = obj
        data.barrier.wait()
        out = list(data.slots)
        data.barrier.wait()
        return out

    def allgather(self, obj):
        return self._exchange(obj)

    def alltoall(self, objs):
        sent = self._exchange(list(objs))
        return [sent[source][self._rank] for source in range(self.size)]

    def reduce_sum(self, array, root=None):
        gathered = self._exchange(np.asarray(array, dtype=np.float64))
        if self._rank != (root or 0):
            return None
        return np.sum(gathered, axis=0)

    def abort(self, errorcode=1):
        self._exchange_data.barrier.abort()
        raise SystemExit(errorcode)


def _run_parallel(nprocs, func, *args, **kwargs):
    """
    Call ``func(comm, *args, **kwargs)`` in ``nprocs`` threads, each with its
    own :class:`ThreadCommunicator`, and return the list of results ordered
    by rank.
    """
    exchange = _Exchange(nprocs)
    results = [None] * nprocs
    errors = [None] * nprocs

    def target(rank):
        try:
            results[rank] = func(ThreadCommunicator(exchange, rank),
                                 *args, **kwargs)
        except BaseException as err:
            errors[rank] = err
            exchange.barrier.abort()

    threads = [
        threading.Thread(target=target, args=(rank,))
        for rank in range(nprocs)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    for err in errors:
        if err is not None and not isinstance(err,
                                              threading.BrokenBarrierError):
            raise err
    for err in errors:
        if err is not None:
            raise err
    return results


@pytest.fixture
def run_parallel():
    """
    Run a function as if on several MPI processes, see ``_run_parallel``.
    """
    return _run_parallel
