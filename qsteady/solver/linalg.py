"""
Iterative solution of a linear system defined by a
:class:`~qsteady.core.distributed.DistributedMatrix`.

Every process runs the same Krylov iteration from ``scipy.sparse.linalg`` on
full length vectors.  The matrix-vector product and the preconditioner only
touch the rows owned by the process and exchange the results with
``allgather``, so the iterates are identical on every process.  These calls
are collective.
"""

__all__ = ['solve', 'build_preconditioner']

import numpy as np
import scipy.sparse.linalg
from scipy.sparse.linalg import LinearOperator, gmres, lgmres, bicgstab

from ..logging_utils import get_logger

logger = get_logger(__name__)


def _bjacobi(A, drop_tol=1e-4, fill_factor=10):
    """
    Block Jacobi: each process factorises, with an incomplete LU, the square
    block of its own rows and columns.
    """
    start, end = A.ownership_range()
    block = A.diagonal_block().tocsc()
    if block.shape[0]:
        ilu = scipy.sparse.linalg.spilu(
            block, drop_tol=drop_tol, fill_factor=fill_factor
        )
        local_solve = ilu.solve
    else:
        def local_solve(rhs):
            return rhs

    def apply(x):
        x = np.asarray(x).reshape(-1)
        y_local = local_solve(x[start:end])
        return np.concatenate(A.comm.allgather(y_local))

    return apply


def _jacobi(A, **_):
    """
    Point Jacobi.  Zero diagonal entries are replaced by 1.
    """
    start, end = A.ownership_range()
    diag = np.array(A.diagonal(), dtype=np.complex128)
    zeros = diag == 0
    if np.any(zeros):
        logger.debug("Zero detected in the diagonal of the matrix, "
                     "using 1 at %d locations.", np.count_nonzero(zeros))
        diag[zeros] = 1.0
    inv_diag = 1.0 / diag

    def apply(x):
        x = np.asarray(x).reshape(-1)
        return np.concatenate(A.comm.allgather(inv_diag * x[start:end]))

    return apply


_preconditioners = {
    "bjacobi": _bjacobi,
    "jacobi": _jacobi,
}


def build_preconditioner(A, precond="bjacobi", **kwargs):
    """
    Build the preconditioner of ``A`` as a ``LinearOperator``.  Collective.

    Parameters
    ----------
    A : DistributedMatrix
        Assembled matrix.
    precond : str {"bjacobi", "jacobi", "none"}
        Preconditioner family.
    **kwargs :
        ``drop_tol`` and ``fill_factor`` for the incomplete LU of "bjacobi".

    Returns
    -------
    M : scipy.sparse.linalg.LinearOperator or None
        ``None`` when ``precond`` is "none".
    """
    if precond == "none":
        return None
    try:
        factory = _preconditioners[precond]
    except KeyError:
        raise ValueError(f"Unknown preconditioner {precond!r}") from None
    apply = factory(A, **kwargs)
    return LinearOperator(A.shape, matvec=apply, dtype=np.complex128)


def solve(A, b, x0, *, method="gmres", precond="bjacobi", rtol=1e-11,
          atol=0.0, restart=100, maxiter=None, drop_tol=1e-4,
          fill_factor=10):
    """
    Solve ``A x = b`` with a preconditioned iterative method.  Collective.

    Parameters
    ----------
    A : DistributedMatrix
        Assembled matrix.
    b, x0 : DistributedVector
        Right hand side and initial guess.  ``x0`` is overwritten with the
        solution.
    method : str {"gmres", "lgmres", "bicgstab"}
        Iterative solver from ``scipy.sparse.linalg``.
    precond : str {"bjacobi", "jacobi", "none"}
        Preconditioner, see :func:`build_preconditioner`.
    rtol, atol : float
        Relative and absolute residual tolerances.
    restart : int
        Restart length of GMRES.
    maxiter : int, optional
        Maximum number of iterations.

    Returns
    -------
    x : DistributedVector
        ``x0``, holding the solution.
    info : int
        0 on convergence, otherwise the number of iterations done by the
        solver without reaching the tolerance.
    iterations : int
        Number of iterations.
    """
    operator = LinearOperator(A.shape, matvec=A.matvec, dtype=np.complex128)
    M = build_preconditioner(
        A, precond, drop_tol=drop_tol, fill_factor=fill_factor
    )
    b_full = b.gather()
    x_full = x0.gather()

    iterations = 0

    def count(_):
        nonlocal iterations
        iterations += 1

    kwargs = {"x0": x_full, "rtol": rtol, "atol": atol, "M": M,
              "callback": count}
    if maxiter is not None:
        kwargs["maxiter"] = maxiter
    logger.debug("Solving system of size %d with %s, preconditioner %s, "
                 "rtol=%g", A.shape[0], method, precond, rtol)
    if method == "gmres":
        x_full, info = gmres(operator, b_full, restart=restart,
                             callback_type="pr_norm", **kwargs)
    elif method == "lgmres":
        x_full, info = lgmres(operator, b_full, **kwargs)
    elif method == "bicgstab":
        x_full, info = bicgstab(operator, b_full, **kwargs)
    else:
        raise ValueError(f"Unknown iterative method {method!r}")

    if info < 0:
        raise RuntimeError(
            f"Iterative solver {method} failed: illegal input or breakdown "
            f"(info={info})."
        )
    start, end = x0.ownership_range()
    x0.local[:] = x_full[start:end]
    return x0, info, iterations
