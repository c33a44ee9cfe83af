"""Assembly and finalization of the sparse transformation matrix `D`.

`D` maps the global G1 degrees of freedom to the coefficients of the local
per-patch bases. It is assembled in two phases: a :class:`TransformBuilder`
collects coordinate triplets entity by entity, and :func:`finalize_transform`
compresses them exactly once into an immutable :class:`FinalizedTransform`.
"""
import warnings

import numpy as np
import scipy.sparse

from .classify import ZERO_TOL
from .offsets import Category, IndexRangeError


class NotFinalizedError(RuntimeError):
    """Raised when the transformation is used before it has been finalized."""
    pass


class TransformBuilder:
    """Collects the entries of a sparse matrix as coordinate triplets.

    Entries whose square does not exceed :data:`ZERO_TOL` are dropped.
    Duplicate entries are summed when the matrix is assembled.
    """
    def __init__(self, shape):
        self.shape = tuple(shape)
        self._I, self._J, self._V = [], [], []
        self.finalized = False

    @property
    def nnz(self):
        """Number of triplets inserted so far."""
        return sum(len(v) for v in self._V)

    def insert(self, rows, cols, values):
        """Insert the entries `values` at positions `(rows, cols)`."""
        if self.finalized:
            raise RuntimeError('cannot insert into a finalized transformation')
        rows, cols, values = np.broadcast_arrays(
                np.asarray(rows, dtype=int).ravel(),
                np.asarray(cols, dtype=int).ravel(),
                np.asarray(values, dtype=float).ravel())
        keep = values**2 > ZERO_TOL
        rows, cols, values = rows[keep], cols[keep], values[keep]
        if len(rows) == 0:
            return
        if rows.min() < 0 or rows.max() >= self.shape[0]:
            raise IndexRangeError('row index out of range [0, %d)' % self.shape[0])
        if cols.min() < 0 or cols.max() >= self.shape[1]:
            raise IndexRangeError('column index out of range [0, %d)' % self.shape[1])
        self._I.append(rows.copy())
        self._J.append(cols.copy())
        self._V.append(values.copy())

    def assemble(self):
        """Compress all triplets into a CSR matrix and close the builder.

        The entries are summed in a canonical order, so the result does not
        depend on the order of insertion.
        """
        if self.finalized:
            raise RuntimeError('transformation has already been finalized')
        self.finalized = True
        if not self._V:
            return scipy.sparse.csr_matrix(self.shape)
        I, J, V = (np.concatenate(X) for X in (self._I, self._J, self._V))
        self._I, self._J, self._V = [], [], []

        order = np.lexsort((V, J, I))
        I, J, V = I[order], J[order], V[order]
        # sum up duplicates
        starts = np.flatnonzero(np.concatenate(([True], (I[1:] != I[:-1]) | (J[1:] != J[:-1]))))
        V = np.add.reduceat(V, starts)
        I, J = I[starts], J[starts]

        D = scipy.sparse.csr_matrix((V, (I, J)), shape=self.shape)
        D.eliminate_zeros()
        return D


class FinalizedTransform:
    """The finalized transformation together with its boundary splitting.

    Attributes:
        D: the full transformation matrix (CSR)
        D0: rows of `D` belonging to free degrees of freedom, as ``B_free * D``
        Dboundary: rows of `D` belonging to boundary functions, as ``B_boundary * D``
        B_free: diagonal 0/1 selector of the free rows
        B_boundary: diagonal 0/1 selector of the boundary rows
        g1 (ndarray): boundary values, placed into the boundary row range of a
            vector of length ``D.shape[0]``
        layout (:class:`.DofLayout`): the offset tables which size `D`
    """
    def __init__(self, D, B_free, B_boundary, g1, layout):
        self.D = D
        self.B_free = B_free
        self.B_boundary = B_boundary
        self.D0 = (B_free @ D).tocsr()
        self.D0.eliminate_zeros()
        self.Dboundary = (B_boundary @ D).tocsr()
        self.Dboundary.eliminate_zeros()
        self.g1 = g1
        self.g1.flags.writeable = False
        self.layout = layout

    @property
    def active_rows(self):
        """Indices of the free rows which have at least one nonzero."""
        return np.flatnonzero(np.diff(self.D0.indptr))

    def empty_rows(self, category):
        """Rows of the given category without any nonzero in `D`."""
        lo, hi = self.layout.row_ranges()[Category(category)]
        return lo + np.flatnonzero(np.diff(self.D.indptr)[lo:hi] == 0)


def finalize_transform(builder, layout, interior_rows, interior_cols, g1=None):
    """Close the building phase of a transformation.

    Adds the identity entries for the interior functions, assembles `D`,
    splits it into free and boundary rows and stores the boundary values.

    Args:
        builder (:class:`TransformBuilder`): the collected entity entries
        layout (:class:`.DofLayout`): the offset tables of the system
        interior_rows, interior_cols: positions of the interior identity entries
        g1 (ndarray): boundary values of length `layout.dim_G1_Bdy`, or `None`
            for homogeneous boundary values

    Returns:
        :class:`FinalizedTransform`
    """
    lo, hi = layout.boundary_range
    g1_full = np.zeros(layout.total)
    if g1 is not None:
        g1 = np.asarray(g1, dtype=float).ravel()
        if g1.shape != (layout.dim_G1_Bdy,):
            raise ValueError('boundary values must have length %d, got %d'
                    % (layout.dim_G1_Bdy, g1.size))
        g1_full[lo:hi] = g1

    builder.insert(interior_rows, interior_cols, np.ones(len(interior_rows)))
    D = builder.assemble()

    B_free = scipy.sparse.diags(layout.free_mask(), format='csr')
    B_boundary = scipy.sparse.diags(layout.boundary_mask(), format='csr')
    T = FinalizedTransform(D, B_free, B_boundary, g1_full, layout)

    empty = sum(len(T.empty_rows(c)) for c in range(5))
    if empty:
        warnings.warn('%d G1 functions have no nonzero coefficient' % empty, RuntimeWarning)
    return T
