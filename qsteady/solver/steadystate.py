"""
Steady state of a Liouvillian by an iterative linear solve, and populations
of the subsystems in that state.
"""

__all__ = [
    'steadystate', 'SteadyStateSolver', 'SolverState',
    'SteadyStateConvergenceError',
]

import math
import warnings
from time import time

import numpy as np

from ..core.distributed import DistributedMatrix, DistributedVector
from ..core.fileio import write_dense_matrix
from ..core.parallel import get_communicator
from ..core.subsystem import check_subsystems
from ..logging_utils import get_logger
from . import linalg
from .options import _read_options
from .populations import get_populations, population_offsets
from .result import SteadyStateResult

logger = get_logger(__name__)


class SteadyStateConvergenceError(RuntimeError):
    """
    The iterative solver did not reach the tolerance and the
    ``convergence_policy`` option is "raise".
    """


class SolverState:
    """
    State of a Liouvillian modified by :class:`SteadyStateSolver`.  It is
    attached to the :class:`DistributedMatrix` itself, so every solver and
    every call of :func:`steadystate` on that matrix sees it.

    Attributes
    ----------
    regularized : bool
        Whether the trace condition was already added to the first row of
        the Liouvillian.  Adding it twice would corrupt the matrix.
    weight : float or None
        Value used for the trace condition.
    runs : int
        Number of completed runs on the matrix.
    """
    def __init__(self):
        self.regularized = False
        self.weight = None
        self.runs = 0

    def claim_regularization(self, weight):
        """
        Mark the matrix as regularized.  Return ``True`` only for the first
        call, which must then add the trace condition.
        """
        if self.regularized:
            return False
        self.regularized = True
        self.weight = weight
        return True

    def __repr__(self):
        return (f"<SolverState regularized={self.regularized}, "
                f"runs={self.runs}>")


class SteadyStateSolver:
    """
    Solver for the steady state of a Lindblad master equation given its
    Liouvillian, reporting the populations of each subsystem.

    The Liouvillian is singular: the trace is conserved.  On the first run,
    the first row is replaced by ``L[0, :] + weight * Tr``, ``Tr`` being the
    vectorised trace, and the right hand side is ``weight`` at index 0 and
    zero elsewhere, which makes the system non singular and selects the
    state of unit trace.

    Parameters
    ----------
    L : DistributedMatrix, scipy.sparse matrix or array_like
        Liouvillian acting on row-major flattened density matrices, of shape
        ``(N**2, N**2)``.  A ``DistributedMatrix`` is modified in place; other
        inputs are first partitioned with
        :meth:`DistributedMatrix.from_global`.  The trace condition is added
        to a given matrix only once, however many solvers use it.

    subsystems : list of :class:`~qsteady.core.subsystem.Subsystem`
        Registry of the subsystems, identical on every process, whose levels
        multiply to ``N``.

    comm : communicator, optional
        Communicator, see :func:`~qsteady.core.parallel.get_communicator`.
        Ignored when ``L`` is a ``DistributedMatrix``, whose communicator is
        used.

    options : dict, optional
        Options of the solver, see :class:`SteadyStateOptions`.  Missing keys
        take their value from ``qsteady.settings.steadystate``.

    hamiltonian : array_like, optional
        Hamiltonian used to build ``L``, only used by the ``print_dense_ham``
        option.
    """
    name = "steadystate"

    def __init__(self, L, subsystems, *, comm=None, options=None,
                 hamiltonian=None):
        if isinstance(L, DistributedMatrix):
            self.L = L
            self.comm = L.comm
        else:
            self.comm = get_communicator(comm)
            self.L = DistributedMatrix.from_global(L, comm=self.comm)
        dim = self.L.shape[0]
        if dim == 0:
            raise ValueError("Cannot compute the steady state of an empty "
                             "Liouvillian.")
        total_levels = math.isqrt(dim)
        if total_levels * total_levels != dim:
            raise ValueError(
                f"The Liouvillian dimension {dim} is not the square of the "
                "Hilbert space dimension."
            )
        check_subsystems(subsystems, total_levels)
        self.total_levels = total_levels
        self.subsystems = list(subsystems)
        self.hamiltonian = hamiltonian
        self.options = options
        if self.L.solver_state is None:
            self.L.solver_state = SolverState()
        self.state = self.L.solver_state

    @property
    def options(self):
        """
        Options of the solver, see :class:`SteadyStateOptions`.  They can be
        changed between runs.
        """
        return self._options

    @options.setter
    def options(self, new_options):
        self._options = _read_options(new_options)

    def _regularize(self):
        """
        Add the trace condition to the first row.  Only the coordinating
        process inserts the values; they reach the owner of row 0 when the
        matrix is assembled.
        """
        N = self.total_levels
        weight = self.state.weight
        if not self.comm.is_coordinator:
            return
        logger.debug("Adding the trace condition to row 0, weight %g",
                     weight)
        for i in range(N):
            self.L.add_value(0, i * (N + 1), weight)
        if self._options["print_dense_ham"]:
            if self.hamiltonian is None:
                warnings.warn("print_dense_ham is set but no Hamiltonian "
                              "was given to the solver.", RuntimeWarning)
            else:
                write_dense_matrix(self.hamiltonian,
                                   self._options["dense_ham_path"],
                                   comm=self.comm)

    def _setup(self):
        """
        Regularize (once) and assemble the matrix, build the right hand side
        and the initial guess.  Collective.
        """
        if self.state.claim_regularization(self._options["weight"]):
            self._regularize()

        # Every diagonal entry must exist in the sparsity structure of the
        # assembled matrix, even when it is zero.
        start, end = self.L.ownership_range()
        for i in range(start, end):
            self.L.add_value(i, i, 0.0)
        self.L.assemble()

        dim = self.L.shape[0]
        b = DistributedVector(dim, comm=self.comm)
        x = b.duplicate()
        if self.comm.is_coordinator:
            x.set_value(0, 1.0)
            b.set_value(0, self.state.weight)
        x.assemble()
        b.assemble()
        return b, x

    def _check_convergence(self, converged, iterations, residual_norm):
        if converged:
            return
        policy = self._options["convergence_policy"]
        msg = (f"The {self._options['method']} solver did not converge "
               f"after {iterations} iterations, residual norm "
               f"{residual_norm:e}.")
        if policy == "raise":
            raise SteadyStateConvergenceError(msg)
        if policy == "warn":
            logger.warning(msg)
            if self.comm.is_coordinator:
                warnings.warn(msg, RuntimeWarning)

    def _run(self):
        opt = self._options
        verbose = opt["verbose"] and self.comm.is_coordinator
        if verbose:
            print("Solving for steady state...")

        _time_start = time()
        b, x = self._setup()
        preparation_time = time() - _time_start

        _time_start = time()
        x, info, iterations = linalg.solve(
            self.L, b, x,
            method=opt["method"],
            precond=opt["precond"],
            rtol=opt["rtol"],
            atol=opt["atol"],
            restart=opt["restart"],
            maxiter=opt["maxiter"],
            drop_tol=opt["drop_tol"],
            fill_factor=opt["fill_factor"],
        )
        run_time = time() - _time_start

        if verbose:
            print(f"Iterations {iterations}")
        logger.info("Steady state solve done in %d iterations.", iterations)

        x_full = x.gather()
        residual_norm = float(
            np.linalg.norm(b.gather() - self.L.matvec(x_full))
        )
        converged = info == 0
        self._check_convergence(converged, iterations, residual_norm)

        populations = get_populations(
            x, self.subsystems, self.total_levels, comm=self.comm,
            verbose=verbose,
        )
        offsets, _ = population_offsets(self.subsystems)
        self.state.runs += 1

        stats = {
            "solver": self.name,
            "method": opt["method"],
            "preconditioner": opt["precond"],
            "iterations": iterations,
            "preparation time": preparation_time,
            "run time": run_time,
        }
        return SteadyStateResult(
            self.subsystems, offsets, populations, iterations, converged,
            residual_norm,
            state=x_full if opt["store_state"] else None,
            stats=stats,
        )

    def run(self):
        """
        Solve for the steady state and compute the populations.  Collective:
        every process must call it.

        With more than one process, any error other than
        :class:`SteadyStateConvergenceError` aborts the whole run, since the
        other processes would otherwise wait forever in a collective call.

        Returns
        -------
        result : :class:`SteadyStateResult`
        """
        try:
            return self._run()
        except SteadyStateConvergenceError:
            # Raised identically on every process.
            raise
        except Exception:
            if self.comm.size > 1:
                logger.critical("Fatal error on process %d, aborting.",
                                self.comm.rank, exc_info=True)
                self.comm.abort(1)
            raise


def steadystate(L, subsystems, *, comm=None, options=None, hamiltonian=None,
                **kwargs):
    """
    Steady state of the Liouvillian ``L`` and populations of the subsystems.

    The populations are printed on the coordinating process, together with
    the number of iterations used by the solver.

    Parameters
    ----------
    L : DistributedMatrix, scipy.sparse matrix or array_like
        Liouvillian, see :class:`SteadyStateSolver`.  A
        ``DistributedMatrix`` is regularized in place, only on the first
        call made with it.

    subsystems : list of :class:`~qsteady.core.subsystem.Subsystem`
        Subsystem registry.

    comm : communicator, optional
        Communicator used when ``L`` is not already distributed.

    options : dict, optional
        Solver options, see :class:`SteadyStateOptions`.

    hamiltonian : array_like, optional
        Hamiltonian written by the ``print_dense_ham`` option.

    **kwargs :
        Extra options, overriding those of ``options``.

    Returns
    -------
    result : :class:`SteadyStateResult`
    """
    options = {**(options or {}), **kwargs}
    solver = SteadyStateSolver(L, subsystems, comm=comm, options=options,
                               hamiltonian=hamiltonian)
    return solver.run()
