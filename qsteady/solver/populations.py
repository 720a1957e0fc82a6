"""
Populations of each subsystem from the diagonal of a flattened density
matrix.
"""

__all__ = [
    'population_offsets', 'local_populations', 'get_populations',
    'format_populations',
]

import numpy as np

from ..core.subsystem import OperatorKind, local_state
from ..core.parallel import get_communicator
from ..logging_utils import get_logger

logger = get_logger(__name__)


def population_offsets(subsystems):
    """
    Position of the first population of each subsystem in the population
    array, and the length of the array.  ``NUMBER`` subsystems take one slot,
    ``VECTOR`` subsystems take one slot per level.

    Returns
    -------
    offsets : numpy.ndarray of int
    num_pop : int
    """
    offsets = np.zeros(len(subsystems), dtype=np.int64)
    num_pop = 0
    for k, sub in enumerate(subsystems):
        offsets[k] = num_pop
        if sub.operator_kind is OperatorKind.VECTOR:
            num_pop += sub.levels
        else:
            num_pop += 1
    return offsets, num_pop


def local_populations(x_local, low, high, subsystems, total_levels):
    """
    Accumulate the populations carried by the diagonal entries of the
    density matrix found in the slice ``[low, high)`` of the flattened
    vector.

    Parameters
    ----------
    x_local : array_like
        Entries ``low`` to ``high`` of the flattened density matrix.
    low, high : int
        Range of the flattened vector held in ``x_local``.
    subsystems : list of Subsystem
        Subsystem registry.
    total_levels : int
        Dimension of the composite Hilbert space.

    Returns
    -------
    populations : numpy.ndarray
        Partial populations, to be summed over all the slices.
    """
    offsets, num_pop = population_offsets(subsystems)
    populations = np.zeros(num_pop, dtype=np.float64)
    x_local = np.asarray(x_local)

    # Basis states whose diagonal element i*N+i is in [low, high).
    states = np.arange(total_levels, dtype=np.int64)
    diag = states * (total_levels + 1)
    owned = (diag >= low) & (diag < high)
    states = states[owned]
    if not states.size:
        return populations
    weights = np.real(x_local[diag[owned] - low])

    for offset, sub in zip(offsets, subsystems):
        cur_state = local_state(states, sub.levels, sub.n_before,
                                total_levels)
        if sub.operator_kind is OperatorKind.VECTOR:
            np.add.at(populations, offset + cur_state, weights)
        else:
            populations[offset] += np.sum(weights * cur_state)
    return populations


def format_populations(populations):
    """Render the population array as printed by the solver."""
    return "Populations: " + "".join(
        f" {value:e} " for value in populations
    )


def get_populations(x, subsystems, total_levels, comm=None, verbose=True):
    """
    Populations of every subsystem for the flattened density matrix ``x``.
    Collective.

    Parameters
    ----------
    x : DistributedVector
        Flattened density matrix, of size ``total_levels**2``.
    subsystems : list of Subsystem
        Subsystem registry, identical on every process.
    total_levels : int
        Dimension of the composite Hilbert space.
    comm : communicator, optional
        Defaults to the communicator of ``x``.
    verbose : bool, default: True
        Print the populations on the coordinating process.

    Returns
    -------
    populations : numpy.ndarray or None
        Populations in subsystem order, see :func:`population_offsets`.
        Only the coordinating process receives the array, the others get
        ``None``.
    """
    comm = get_communicator(comm if comm is not None else x.comm)
    low, high = x.ownership_range()
    partial = local_populations(x.local, low, high, subsystems, total_levels)
    populations = comm.reduce_sum(partial)
    if comm.is_coordinator:
        logger.debug("Populations: %s", populations)
        if verbose:
            print(format_populations(populations))
    return populations
