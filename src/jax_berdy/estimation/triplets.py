"""Triplet accumulation of sparse matrices."""

from typing import List

import numpy as np
import scipy.sparse as sp


class Triplets:
    """Accumulates ``(row, column, value)`` entries of a sparse matrix.

    Exact zeros are dropped on insertion; repeated entries are summed when the
    matrix is built.
    """

    def __init__(self):
        self._rows: List[np.ndarray] = []
        self._cols: List[np.ndarray] = []
        self._values: List[np.ndarray] = []

    def add_block(self, row: int, col: int, block) -> None:
        """Add a dense block with its top-left corner at ``(row, col)``."""
        block = np.atleast_2d(np.asarray(block, dtype=float))
        rows, cols = np.nonzero(block)
        self._rows.append(rows + row)
        self._cols.append(cols + col)
        self._values.append(block[rows, cols])

    def add_identity(self, row: int, col: int, size: int, value: float = 1.0) -> None:
        """Add ``value`` times a ``size`` x ``size`` identity at ``(row, col)``."""
        if value == 0.0:
            return
        indices = np.arange(size)
        self._rows.append(indices + row)
        self._cols.append(indices + col)
        self._values.append(np.full(size, value, dtype=float))

    def to_csc(self, shape) -> sp.csc_matrix:
        """Build the column-major sparse matrix of the given shape."""
        if not self._values:
            return sp.csc_matrix(shape, dtype=float)
        values = np.concatenate(self._values)
        rows = np.concatenate(self._rows)
        cols = np.concatenate(self._cols)
        return sp.csc_matrix((values, (rows, cols)), shape=shape)
