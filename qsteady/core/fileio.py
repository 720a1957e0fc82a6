__all__ = ['write_dense_matrix']

import numpy as np
import scipy.sparse

from .parallel import get_communicator


def write_dense_matrix(matrix, path="ham", comm=None, numformat="%e"):
    """
    Write the real part of a matrix to a plain text file, one row per line
    and whitespace separated fields.  Only the coordinating process writes.

    Parameters
    ----------
    matrix : array_like or sparse matrix
        Matrix to write, densified before writing.
    path : str or path-like, default: "ham"
        Output file, relative to the working directory.
    comm : communicator, optional
        Used to find the coordinating process.
    numformat : str, default: "%e"
        Format of each field.

    Returns
    -------
    written : bool
        Whether this process wrote the file.
    """
    comm = get_communicator(comm)
    if not comm.is_coordinator:
        return False
    if scipy.sparse.issparse(matrix):
        matrix = matrix.toarray()
    data = np.real(np.atleast_2d(np.asarray(matrix)))
    np.savetxt(path, data, fmt=numformat, delimiter=" ")
    return True
