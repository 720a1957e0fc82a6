"""
Registry of the subsystems composing the total Hilbert space, and the index
arithmetic mapping a composite basis index to the local basis index of each
subsystem.
"""

from __future__ import annotations

__all__ = [
    'OperatorKind', 'Subsystem', 'make_subsystems', 'check_subsystems',
    'total_levels', 'local_state', 'decompose_index',
]

import enum
from typing import NamedTuple, Sequence

import numpy as np


class OperatorKind(enum.Enum):
    """
    Observable reported for a subsystem.

    - ``NUMBER``: expectation value of the number operator, one value.
    - ``VECTOR``: occupation probability of every level, ``levels`` values.
    """
    NUMBER = "number"
    VECTOR = "vector"


class Subsystem(NamedTuple):
    """
    One factor of the tensor product.

    Attributes
    ----------
    levels : int
        Dimension of the local Hilbert space.
    n_before : int
        Product of the levels of all the subsystems placed before this one in
        the tensor product.
    operator_kind : OperatorKind
        Which populations are reported for this subsystem.
    name : str, optional
        Label used when printing.
    """
    levels: int
    n_before: int
    operator_kind: OperatorKind = OperatorKind.NUMBER
    name: str | None = None

    @property
    def num_populations(self) -> int:
        if self.operator_kind is OperatorKind.VECTOR:
            return self.levels
        return 1


def _as_kind(kind):
    if isinstance(kind, OperatorKind):
        return kind
    try:
        return OperatorKind(str(kind).lower())
    except ValueError:
        raise ValueError(
            f"Unknown operator kind {kind!r}, use 'number' or 'vector'."
        ) from None


def make_subsystems(levels, kinds=None, names=None):
    """
    Build the subsystem registry for the tensor product
    ``levels[0] x levels[1] x ...``, the first subsystem being the first
    factor of ``kron``.

    Parameters
    ----------
    levels : list of int
        Dimension of each subsystem.
    kinds : list of {OperatorKind, "number", "vector"}, optional
        Operator kind of each subsystem, ``NUMBER`` for all if not given.
    names : list of str, optional
        Label of each subsystem.

    Returns
    -------
    subsystems : list of :class:`Subsystem`
    """
    levels = [int(level) for level in levels]
    if kinds is None:
        kinds = [OperatorKind.NUMBER] * len(levels)
    if names is None:
        names = [None] * len(levels)
    if len(kinds) != len(levels) or len(names) != len(levels):
        raise ValueError("levels, kinds and names must have the same length")
    subsystems = []
    n_before = 1
    for level, kind, name in zip(levels, kinds, names):
        if level < 1:
            raise ValueError(f"Subsystem levels must be positive, got {level}")
        subsystems.append(Subsystem(level, n_before, _as_kind(kind), name))
        n_before *= level
    return subsystems


def total_levels(subsystems: Sequence[Subsystem]) -> int:
    """Dimension of the composite Hilbert space."""
    return int(np.prod([sub.levels for sub in subsystems], dtype=np.int64))


def check_subsystems(subsystems: Sequence[Subsystem], total: int) -> None:
    """
    Raise a ``ValueError`` if the registry does not describe a tensor product
    of dimension ``total``: the levels must multiply to ``total`` and, taken
    in increasing ``n_before`` order, each ``n_before`` must be the product of
    the levels of the subsystems before it.
    """
    if total == 0 and not subsystems:
        return
    for sub in subsystems:
        if sub.levels < 1 or sub.n_before < 1:
            raise ValueError(f"Invalid subsystem {sub}: levels and n_before "
                             "must be positive integers.")
    if total_levels(subsystems) != total:
        raise ValueError(
            f"The subsystem levels multiply to {total_levels(subsystems)}, "
            f"not to the total dimension {total}."
        )
    expected = 1
    # Ties only happen with levels == 1 factors.
    for sub in sorted(subsystems, key=lambda s: (s.n_before, s.levels)):
        if sub.n_before != expected:
            raise ValueError(
                f"Inconsistent tensor ordering: found n_before={sub.n_before},"
                f" expected {expected}."
            )
        expected *= sub.levels


def local_state(index, levels, n_before, total_levels):
    """
    Local basis index of a subsystem for the composite basis index ``index``.

    ``n_after = total_levels / (levels * n_before)`` composite steps
    correspond to one step of the subsystem, so the local index is
    ``(index // n_after) % (levels * n_after) % levels``.

    ``index`` can be an int or an integer numpy array.
    """
    n_after = total_levels // (levels * n_before)
    return (index // n_after) % (levels * n_after) % levels


def decompose_index(index, subsystems, total_levels):
    """Local basis index of every subsystem for the composite ``index``."""
    return tuple(
        int(local_state(index, sub.levels, sub.n_before, total_levels))
        for sub in subsystems
    )
