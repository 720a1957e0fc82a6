""" Class for steady-state solver results"""
import numpy as np

from ..core.subsystem import OperatorKind
from ..core.superoperator import vector_to_operator

__all__ = ["SteadyStateResult"]


class SteadyStateResult:
    """
    Result of :meth:`SteadyStateSolver.run`.

    Attributes
    ----------
    populations : numpy.ndarray or None
        Populations of every subsystem, in registry order.  ``None`` on the
        processes other than the coordinating one.
    offsets : numpy.ndarray
        Index of the first population of each subsystem in ``populations``.
    iterations : int
        Number of iterations used by the iterative solver.
    converged : bool
        Whether the solver reached the requested tolerance.
    residual_norm : float
        Norm of ``b - A x`` for the regularised system.
    state : numpy.ndarray or None
        Full flattened steady state, when the ``store_state`` option is set.
    stats : dict
        Solver name, preconditioner, timings.
    """
    def __init__(self, subsystems, offsets, populations, iterations,
                 converged, residual_norm, state=None, stats=None):
        self.subsystems = list(subsystems)
        self.offsets = offsets
        self.populations = populations
        self.iterations = iterations
        self.converged = converged
        self.residual_norm = residual_norm
        self.state = state
        self.stats = stats or {}

    def subsystem_populations(self, k):
        """
        Populations of subsystem ``k``: a float for ``NUMBER`` subsystems,
        an array of length ``levels`` for ``VECTOR`` subsystems.
        """
        if self.populations is None:
            raise ValueError("Populations are only available on the "
                             "coordinating process.")
        sub = self.subsystems[k]
        start = self.offsets[k]
        if sub.operator_kind is OperatorKind.NUMBER:
            return float(self.populations[start])
        return self.populations[start:start + sub.num_populations]

    def density_matrix(self):
        """
        Steady state as a dense Hermitian density matrix, ``(rho + rho^dag)/2``
        of the unflattened solution.
        """
        if self.state is None:
            raise ValueError("The state was not stored, "
                             "set the 'store_state' option.")
        rho = vector_to_operator(self.state)
        return 0.5 * (rho + rho.conj().T)

    def __str__(self):
        lines = [
            "Steady state result",
            "-------------------",
            f"Method: {self.stats.get('method', '')}"
            f" ({self.stats.get('preconditioner', '')})",
            f"Iterations: {self.iterations}",
            f"Converged: {self.converged}",
            f"Residual norm: {self.residual_norm:e}",
        ]
        if self.populations is not None:
            lines.append(f"Populations: {np.array2string(self.populations)}")
        return "\n".join(lines)

    def __repr__(self):
        return (f"<SteadyStateResult iterations={self.iterations}, "
                f"converged={self.converged}>")
