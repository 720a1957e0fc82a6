import numpy as np
import pytest
import scipy.sparse

from qsteady import (
    DistributedMatrix, DistributedVector, SerialCommunicator,
    ownership_range, get_communicator,
)
from qsteady.core.distributed import _owner


def _random_sparse(n, density=0.3, seed=1):
    rng = np.random.default_rng(seed)
    real = scipy.sparse.random(n, n, density=density, random_state=rng)
    imag = scipy.sparse.random(n, n, density=density, random_state=rng)
    return (real + 1j * imag).tocsr()


@pytest.mark.parametrize(['size', 'nprocs'], [
    (10, 1), (10, 3), (16, 4), (3, 5), (0, 2),
])
def test_ownership_range_partition(size, nprocs):
    ranges = [ownership_range(size, rank, nprocs) for rank in range(nprocs)]
    assert ranges[0][0] == 0
    assert ranges[-1][1] == size
    for (_, end), (start, _) in zip(ranges[:-1], ranges[1:]):
        assert end == start
    lengths = [end - start for start, end in ranges]
    assert max(lengths) - min(lengths) <= 1
    for rank, (start, end) in enumerate(ranges):
        for index in range(start, end):
            assert _owner(index, size, nprocs) == rank


def test_ownership_range_invalid():
    with pytest.raises(ValueError):
        ownership_range(4, 2, 2)
    with pytest.raises(ValueError):
        ownership_range(4, 0, 0)


class TestCommunicator:
    def test_default_is_serial(self):
        comm = get_communicator()
        assert isinstance(comm, SerialCommunicator)
        assert comm.rank == 0
        assert comm.size == 1
        assert comm.is_coordinator

    def test_passthrough(self):
        comm = SerialCommunicator(is_coordinator=False)
        assert get_communicator(comm) is comm
        assert get_communicator("serial").is_coordinator

    def test_unknown_name(self):
        with pytest.raises(ValueError):
            get_communicator("openmp")

    def test_non_coordinator_reduce(self):
        comm = SerialCommunicator(is_coordinator=False)
        assert comm.reduce_sum(np.ones(3)) is None

    def test_collectives(self):
        comm = SerialCommunicator()
        collectives = {name for name in dir(comm)
                       if not name.startswith("_")
                       and callable(getattr(comm, name))}
        assert collectives == {"allgather", "alltoall", "reduce_sum",
                               "abort"}
        assert comm.allgather(3) == [3]
        assert comm.alltoall([[1, 2]]) == [[1, 2]]
        with pytest.raises(ValueError):
            comm.alltoall([[], []])
        with pytest.raises(SystemExit):
            comm.abort(1)

    def test_mpi_world(self):
        pytest.importorskip("mpi4py")
        comm = get_communicator("mpi")
        assert comm.size >= 1
        total = comm.reduce_sum(np.ones(2))
        if comm.is_coordinator:
            np.testing.assert_allclose(total, [comm.size, comm.size])


class TestDistributedMatrix:
    def test_from_global_serial(self):
        A = _random_sparse(6)
        D = DistributedMatrix.from_global(A)
        assert D.shape == (6, 6)
        assert D.ownership_range() == (0, 6)
        np.testing.assert_allclose(D.to_global().toarray(), A.toarray())

    def test_not_square(self):
        with pytest.raises(ValueError):
            DistributedMatrix.from_global(np.ones((2, 3)))

    def test_wrong_block(self):
        with pytest.raises(ValueError):
            DistributedMatrix(np.ones((2, 4)), 0, (4, 4))

    def test_add_value(self):
        A = _random_sparse(5)
        D = DistributedMatrix.from_global(A)
        D.add_value(0, 3, 2.0)
        D.add_value(0, 3, 1.0 + 1j)
        D.add_value(4, 4, -1.0)
        assert not D.assembled
        D.assemble()
        assert D.assembled
        expected = A.toarray()
        expected[0, 3] += 3.0 + 1j
        expected[4, 4] += -1.0
        np.testing.assert_allclose(D.to_global().toarray(), expected)

    def test_add_value_out_of_range(self):
        D = DistributedMatrix.from_global(_random_sparse(3))
        with pytest.raises(IndexError):
            D.add_value(3, 0, 1.0)

    def test_pending_insertions_block_use(self):
        D = DistributedMatrix.from_global(_random_sparse(3))
        D.add_value(0, 0, 1.0)
        with pytest.raises(RuntimeError):
            D.matvec(np.ones(3))

    def test_explicit_zero_diagonal_kept(self):
        A = scipy.sparse.csr_matrix(np.array([[0, 1], [1, 0]],
                                             dtype=complex))
        D = DistributedMatrix.from_global(A)
        assert not D.has_diagonal_entries()
        for i in range(*D.ownership_range()):
            D.add_value(i, i, 0.0)
        D.assemble()
        assert D.has_diagonal_entries()
        assert D.local.nnz == 4
        np.testing.assert_allclose(D.to_global().toarray(), A.toarray())

    def test_matvec(self):
        A = _random_sparse(7)
        x = np.arange(7) + 1j
        D = DistributedMatrix.from_global(A)
        np.testing.assert_allclose(D.matvec(x), A @ x)

    def test_parallel_assembly(self, run_parallel):
        A = _random_sparse(9)

        def task(comm):
            D = DistributedMatrix.from_global(A, comm=comm)
            # Every process writes in the rows of the others.
            D.add_value(8, comm.rank, 1.0)
            D.add_value(0, 8, 1.0j)
            D.assemble()
            return D.to_global().toarray(), D.matvec(np.ones(9))

        results = run_parallel(3, task)
        expected = A.toarray()
        expected[8, :3] += 1.0
        expected[0, 8] += 3.0j
        for full, product in results:
            np.testing.assert_allclose(full, expected)
            np.testing.assert_allclose(product, expected @ np.ones(9))


class TestDistributedVector:
    def test_zero_initialised(self):
        v = DistributedVector(5)
        np.testing.assert_array_equal(v.gather(), np.zeros(5))
        assert v.duplicate().size == 5

    def test_set_value(self):
        v = DistributedVector(4)
        v.set_value(2, 1.5)
        v.set_value(2, 2.5)
        v.assemble()
        np.testing.assert_array_equal(v.gather(), [0, 0, 2.5, 0])

    def test_set(self):
        v = DistributedVector(3)
        v.set(1.0)
        np.testing.assert_array_equal(v.gather(), [1, 1, 1])

    def test_out_of_range(self):
        with pytest.raises(IndexError):
            DistributedVector(3).set_value(3, 1.0)

    def test_parallel_set_value(self, run_parallel):
        def task(comm):
            v = DistributedVector(7, comm=comm)
            if comm.is_coordinator:
                v.set_value(6, 1.0)
                v.set_value(0, 2.0)
            v.assemble()
            return v.ownership_range(), v.gather()

        results = run_parallel(2, task)
        assert [r[0] for r in results] == [(0, 4), (4, 7)]
        for _, full in results:
            np.testing.assert_array_equal(full, [2, 0, 0, 0, 0, 0, 1])
