"""
Row-distributed sparse matrix and dense vector.

Each process owns a contiguous range of rows.  Insertions can target any row;
they are queued and only become visible after the collective ``assemble``,
which routes them to the owning process.
"""

__all__ = ['ownership_range', 'DistributedMatrix', 'DistributedVector']

import numpy as np
import scipy.sparse

from .parallel import get_communicator


def ownership_range(size, rank, nprocs):
    """
    Rows ``[start, end)`` owned by process ``rank`` when ``size`` rows are
    split over ``nprocs`` processes.  The first ``size % nprocs`` processes
    own one extra row.
    """
    if nprocs < 1:
        raise ValueError("nprocs must be a positive integer")
    if not 0 <= rank < nprocs:
        raise ValueError(f"rank {rank} out of range for {nprocs} processes")
    base, extra = divmod(size, nprocs)
    start = rank * base + min(rank, extra)
    end = start + base + (1 if rank < extra else 0)
    return start, end


def _owner(index, size, nprocs):
    """Rank owning row ``index``, inverse of :func:`ownership_range`."""
    base, extra = divmod(size, nprocs)
    boundary = extra * (base + 1)
    if index < boundary:
        return index // (base + 1)
    return extra + (index - boundary) // base


def _route(pending, size, comm):
    """
    Send each ``(index, ...)`` entry of ``pending`` to the process owning
    ``index``.  Collective.
    """
    nprocs = comm.size
    outgoing = [[] for _ in range(nprocs)]
    for entry in pending:
        outgoing[_owner(entry[0], size, nprocs)].append(entry)
    incoming = comm.alltoall(outgoing)
    return [entry for chunk in incoming for entry in chunk]


class DistributedMatrix:
    """
    Square sparse matrix distributed by row blocks.

    Parameters
    ----------
    local_rows : scipy.sparse matrix
        Rows ``[row_start, row_start + local_rows.shape[0])`` of the global
        matrix, with the global number of columns.
    row_start : int
        First global row owned by this process.
    shape : tuple of int
        Global shape.
    comm : communicator, optional
        See :func:`qsteady.core.parallel.get_communicator`.

    Attributes
    ----------
    solver_state : object or None
        Set by :class:`~qsteady.solver.steadystate.SteadyStateSolver`, which
        modifies the matrix in place, to record what was already done to it.
    """
    def __init__(self, local_rows, row_start, shape, comm=None):
        self.comm = get_communicator(comm)
        if shape[0] != shape[1]:
            raise ValueError(f"Matrix must be square, got shape {shape}")
        self.shape = tuple(shape)
        expected = ownership_range(shape[0], self.comm.rank, self.comm.size)
        local_rows = scipy.sparse.csr_matrix(local_rows, dtype=np.complex128)
        if (
            row_start != expected[0]
            or local_rows.shape != (expected[1] - expected[0], shape[1])
        ):
            raise ValueError(
                f"Local block of shape {local_rows.shape} starting at row "
                f"{row_start} does not match the owned rows {expected}"
            )
        self._local = local_rows
        self._row_start, self._row_end = expected
        self._pending = []
        self.assembled = True
        self.solver_state = None

    @classmethod
    def from_global(cls, matrix, comm=None):
        """
        Build the distributed matrix from a full matrix known by every
        process; each process keeps only its own rows.
        """
        comm = get_communicator(comm)
        matrix = scipy.sparse.csr_matrix(matrix)
        start, end = ownership_range(matrix.shape[0], comm.rank, comm.size)
        return cls(matrix[start:end], start, matrix.shape, comm=comm)

    @property
    def local(self):
        """Owned rows as a ``scipy.sparse.csr_matrix``."""
        return self._local

    def ownership_range(self):
        return self._row_start, self._row_end

    def add_value(self, row, col, value):
        """
        Queue ``value`` to be added at ``(row, col)``.  The row may belong to
        another process.  Entries are applied by :meth:`assemble`.
        """
        if not (0 <= row < self.shape[0] and 0 <= col < self.shape[1]):
            raise IndexError(
                f"Entry ({row}, {col}) out of range for shape {self.shape}"
            )
        self._pending.append((int(row), int(col), complex(value)))
        self.assembled = False

    def assemble(self):
        """
        Apply every queued insertion on the owning process.  Collective.

        Explicit zeros are kept, so adding ``0`` allocates the entry in the
        sparsity structure.
        """
        received = _route(self._pending, self.shape[0], self.comm)
        self._pending = []
        if received:
            rows, cols, vals = zip(*received)
            coo = self._local.tocoo()
            data = np.concatenate([coo.data, np.array(vals)])
            row_idx = np.concatenate(
                [coo.row, np.array(rows) - self._row_start]
            )
            col_idx = np.concatenate([coo.col, np.array(cols)])
            merged = scipy.sparse.coo_matrix(
                (data, (row_idx, col_idx)), shape=self._local.shape
            ).tocsr()
            merged.sum_duplicates()
            self._local = merged
        self.assembled = True

    def _check_assembled(self):
        if not self.assembled:
            raise RuntimeError(
                "Matrix has pending insertions, call assemble() first."
            )

    def has_diagonal_entries(self):
        """
        Whether every owned diagonal position has an entry in the sparsity
        structure, even a zero one.
        """
        local = self._local.tocoo()
        on_diag = local.row + self._row_start == local.col
        present = np.unique(local.row[on_diag])
        return present.size == self._local.shape[0]

    def diagonal(self):
        """Owned part of the diagonal."""
        self._check_assembled()
        return self._local[:, self._row_start:self._row_end].diagonal()

    def diagonal_block(self):
        """Square block of the owned rows and the matching columns."""
        self._check_assembled()
        return self._local[:, self._row_start:self._row_end]

    def matvec(self, x):
        """
        Product with the full vector ``x``, the result is returned in full on
        every process.  Collective.
        """
        self._check_assembled()
        y_local = self._local @ np.asarray(x)
        return np.concatenate(self.comm.allgather(y_local))

    def to_global(self):
        """Gather the full matrix on every process.  Collective."""
        self._check_assembled()
        return scipy.sparse.vstack(
            self.comm.allgather(self._local), format="csr"
        )

    def __repr__(self):
        return (f"<{self.__class__.__name__} shape={self.shape} "
                f"rows=[{self._row_start}, {self._row_end}) "
                f"nnz={self._local.nnz}>")


class DistributedVector:
    """
    Dense complex vector with the same row partition as
    :class:`DistributedMatrix`.  Created filled with zeros.
    """
    def __init__(self, size, comm=None):
        self.comm = get_communicator(comm)
        self.size = size
        self._start, self._end = ownership_range(
            size, self.comm.rank, self.comm.size
        )
        self.local = np.zeros(self._end - self._start, dtype=np.complex128)
        self._pending = []

    def ownership_range(self):
        return self._start, self._end

    def set(self, value):
        """Set every owned entry to ``value``."""
        self.local[:] = value

    def set_value(self, index, value):
        """Queue ``value`` to be inserted at ``index``."""
        if not 0 <= index < self.size:
            raise IndexError(f"Index {index} out of range for size "
                             f"{self.size}")
        self._pending.append((int(index), complex(value)))

    def assemble(self):
        """Apply every queued insertion on the owning process.  Collective."""
        for index, value in _route(self._pending, self.size, self.comm):
            self.local[index - self._start] = value
        self._pending = []

    def gather(self):
        """Full vector on every process.  Collective."""
        return np.concatenate(self.comm.allgather(self.local))

    def duplicate(self):
        """New zero vector with the same layout."""
        return DistributedVector(self.size, comm=self.comm)

    def __repr__(self):
        return (f"<{self.__class__.__name__} size={self.size} "
                f"rows=[{self._start}, {self._end})>")
