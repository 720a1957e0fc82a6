__all__ = [
    'liouvillian', 'lindblad_dissipator', 'operator_to_vector',
    'vector_to_operator', 'stacked_index', 'unstacked_index',
]

import numpy as np
import scipy.sparse


# Density matrices are flattened row by row: element (i, j) of an N x N
# operator sits at index i*N + j.  With this convention
#     vec(A @ rho @ B) = kron(A, B.T) @ vec(rho).


def _as_csr(op):
    op = scipy.sparse.csr_matrix(op, dtype=np.complex128)
    if op.shape[0] != op.shape[1]:
        raise TypeError(f"Expected a square operator, got shape {op.shape}")
    return op


def lindblad_dissipator(c_op):
    """
    Lindblad dissipator of a collapse operator ``c``, as a sparse
    superoperator::

        D[c] rho = c rho c^dag - 1/2 (c^dag c rho + rho c^dag c)

    Parameters
    ----------
    c_op : array_like or sparse matrix
        Collapse operator.

    Returns
    -------
    D : scipy.sparse.csr_matrix
    """
    c = _as_csr(c_op)
    identity = scipy.sparse.identity(c.shape[0], dtype=np.complex128,
                                     format="csr")
    cdc = c.conj().T @ c
    D = scipy.sparse.kron(c, c.conj(), format="csr")
    D = D - 0.5 * scipy.sparse.kron(cdc, identity, format="csr")
    D = D - 0.5 * scipy.sparse.kron(identity, cdc.T, format="csr")
    return D.tocsr()


def liouvillian(H=None, c_ops=None):
    """
    Assembles the Liouvillian superoperator from a Hamiltonian and a ``list``
    of collapse operators.

    Parameters
    ----------
    H : array_like or sparse matrix, optional
        System Hamiltonian.  Considered `0` if not given.

    c_ops : list of array_like or sparse matrix, optional
        Collapse operators.

    Returns
    -------
    L : scipy.sparse.csr_matrix
        Liouvillian acting on row-major flattened density matrices, of shape
        ``(N**2, N**2)``.
    """
    if c_ops is None:
        c_ops = []
    if not isinstance(c_ops, (list, tuple)):
        c_ops = [c_ops]
    if H is None:
        if not c_ops:
            raise ValueError("The liouvillian need an Hamiltonian"
                             " and/or c_ops")
        out = lindblad_dissipator(c_ops[0])
        for c_op in c_ops[1:]:
            out = out + lindblad_dissipator(c_op)
        return out.tocsr()

    H = _as_csr(H)
    N = H.shape[0]
    identity = scipy.sparse.identity(N, dtype=np.complex128, format="csr")
    L = -1j * scipy.sparse.kron(H, identity, format="csr")
    L = L + 1j * scipy.sparse.kron(identity, H.T, format="csr")
    for c_op in c_ops:
        c = _as_csr(c_op)
        if c.shape != H.shape:
            raise ValueError(
                f"Collapse operator of shape {c.shape} incompatible with "
                f"the Hamiltonian of shape {H.shape}"
            )
        L = L + lindblad_dissipator(c)
    return L.tocsr()


def stacked_index(size, row, col):
    """
    Convert a pair of indices of an operator of dimension ``size`` to the
    index of the flattened vector.
    """
    return row * size + col


def unstacked_index(size, index):
    """
    Convert an index of the flattened vector back to the ``(row, col)`` pair
    of the operator of dimension ``size``.
    """
    return divmod(index, size)


def operator_to_vector(op):
    """Flatten a dense square operator row by row."""
    op = np.asarray(op)
    if op.ndim != 2 or op.shape[0] != op.shape[1]:
        raise ValueError(f"Expected a square operator, got shape {op.shape}")
    return op.reshape(-1)


def vector_to_operator(vec):
    """Reshape a flattened vector of length ``N**2`` into an N x N operator."""
    vec = np.asarray(vec).reshape(-1)
    N = int(round(vec.size ** 0.5))
    if N * N != vec.size:
        raise ValueError(f"Vector of size {vec.size} is not a flattened "
                         "square operator")
    return vec.reshape(N, N)
