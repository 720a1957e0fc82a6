import numpy as np
import pytest
import scipy.sparse

from qsteady import DistributedMatrix, DistributedVector
from qsteady.solver import linalg


def _system(n=12, seed=3):
    rng = np.random.default_rng(seed)
    A = scipy.sparse.random(n, n, density=0.2, random_state=rng)
    A = A + scipy.sparse.diags(n + rng.random(n))
    b = rng.random(n) + 1j * rng.random(n)
    return scipy.sparse.csr_matrix(A, dtype=complex), b


def _vectors(b, comm=None):
    bv = DistributedVector(b.size, comm=comm)
    start, end = bv.ownership_range()
    bv.local[:] = b[start:end]
    return bv, bv.duplicate()


@pytest.mark.parametrize("method", ["gmres", "lgmres", "bicgstab"])
@pytest.mark.parametrize("precond", ["bjacobi", "jacobi", "none"])
def test_solve(method, precond):
    A, b = _system()
    bv, xv = _vectors(b)
    x, info, iterations = linalg.solve(
        DistributedMatrix.from_global(A), bv, xv,
        method=method, precond=precond, rtol=1e-12,
    )
    assert x is xv
    assert info == 0
    if method == "gmres":
        assert iterations >= 1
    np.testing.assert_allclose(A @ x.gather(), b, atol=1e-9)


def test_initial_guess_independence():
    A, b = _system()
    D = DistributedMatrix.from_global(A)
    solutions = []
    for seed in range(3):
        bv, xv = _vectors(b)
        xv.local[:] = np.random.default_rng(seed).random(b.size)
        x, info, _ = linalg.solve(D, bv, xv, rtol=1e-12)
        assert info == 0
        solutions.append(x.gather())
    for solution in solutions[1:]:
        np.testing.assert_allclose(solution, solutions[0], atol=1e-9)


def test_not_converged():
    A, b = _system(40)
    bv, xv = _vectors(b)
    _, info, iterations = linalg.solve(
        DistributedMatrix.from_global(A), bv, xv,
        precond="none", rtol=1e-15, restart=1, maxiter=1,
    )
    assert info > 0
    assert iterations >= 1


def test_unknown_names():
    A, b = _system()
    D = DistributedMatrix.from_global(A)
    with pytest.raises(ValueError):
        linalg.solve(D, *_vectors(b), method="cg")
    with pytest.raises(ValueError):
        linalg.build_preconditioner(D, "ilu")


def test_jacobi_zero_diagonal():
    A = scipy.sparse.csr_matrix(np.array([[0, 2], [3, 4]], dtype=complex))
    M = linalg.build_preconditioner(DistributedMatrix.from_global(A),
                                    "jacobi")
    np.testing.assert_allclose(M @ np.array([1.0, 8.0]), [1.0, 2.0])


def test_parallel_solve(run_parallel):
    A, b = _system(15)

    def task(comm):
        bv, xv = _vectors(b, comm=comm)
        x, info, _ = linalg.solve(
            DistributedMatrix.from_global(A, comm=comm), bv, xv, rtol=1e-12
        )
        return info, x.gather()

    for info, x in run_parallel(3, task):
        assert info == 0
        np.testing.assert_allclose(A @ x, b, atol=1e-9)
