from __future__ import annotations

from typing import Any

from ..settings import settings
from ..core.options import QsteadyOptions

__all__ = ["SteadyStateOptions"]


_choices = {
    "method": {"gmres", "lgmres", "bicgstab"},
    "precond": {"bjacobi", "jacobi", "none"},
    "convergence_policy": {"warn", "raise", "ignore"},
}


class SteadyStateOptions(QsteadyOptions):
    """
    Options of the steady-state solver.

    Values can be changed in ``qsteady.settings.steadystate``, by using
    context:

        ``with SteadyStateOptions(rtol=1e-8): ...``

    or by passing a dict as ``options`` to the solver, which overrides the
    global values key by key.

    ********
    Options:
    ********

    method : str {"gmres"}
        Iterative solver: "gmres" (restarted GMRES), "lgmres" or "bicgstab".

    precond : str {"bjacobi"}
        Preconditioner: "bjacobi" (incomplete LU of the block owned by each
        process), "jacobi" (diagonal) or "none".

    rtol : float {1e-11}
        Relative residual tolerance of the iterative solver.

    atol : float {0.0}
        Absolute residual tolerance of the iterative solver.

    restart : int {100}
        Restart length of GMRES.

    maxiter : int, None {None}
        Maximum number of iterations, scipy's default when ``None``.

    drop_tol : float {1e-4}
        Drop tolerance of the incomplete LU of the "bjacobi" preconditioner.

    fill_factor : float {10}
        Fill ratio upper bound of the incomplete LU.

    weight : float {1.0}
        Value added to the first row of the Liouvillian for each diagonal
        element of the density matrix, and right hand side of that row.

    convergence_policy : str {"warn"}
        What to do when the solver does not converge: "warn" emits a
        ``RuntimeWarning`` and extracts populations anyway, "raise" raises
        :class:`SteadyStateConvergenceError` before extraction, "ignore"
        proceeds silently.

    print_dense_ham : bool {False}
        Write the dense Hamiltonian given to the solver to ``dense_ham_path``.

    dense_ham_path : str {"ham"}
        File written when ``print_dense_ham`` is set.

    store_state : bool {True}
        Gather the full steady-state vector in the result.

    verbose : bool {True}
        Print the iteration count and the populations on the coordinating
        process.
    """

    _options = {
        "method": "gmres",
        "precond": "bjacobi",
        "rtol": 1e-11,
        "atol": 0.0,
        "restart": 100,
        "maxiter": None,
        "drop_tol": 1e-4,
        "fill_factor": 10,
        "weight": 1.0,
        "convergence_policy": "warn",
        "print_dense_ham": False,
        "dense_ham_path": "ham",
        "store_state": True,
        "verbose": True,
    }
    _settings_name = "steadystate"

    def __setitem__(self, key: str, value: Any) -> None:
        if key in _choices and value not in _choices[key]:
            raise ValueError(
                f"'{key}' must be one of {sorted(_choices[key])}, "
                f"got {value!r}"
            )
        if key == "restart" and int(value) < 1:
            raise ValueError("'restart' must be a positive integer")
        super().__setitem__(key, value)


def _read_options(options=None):
    """
    Copy of the global steady-state options updated with ``options``.
    """
    out = settings.steadystate.copy()
    out.update(options or {})
    return out


# Creating the instance of steady-state options to use everywhere.
settings.steadystate = SteadyStateOptions()
