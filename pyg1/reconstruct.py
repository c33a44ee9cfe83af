"""Reconstruction of per-patch spline fields from a solution in G1 degrees of freedom."""
import numpy as np
import scipy.sparse

from . import utils
from .bspline import BSplineFunc
from .offsets import Category


def _check_solution(T, x):
    x = np.asarray(x, dtype=float).ravel()
    if x.shape != (T.D.shape[0],):
        raise ValueError('solution vector must have length %d, got %d' % (T.D.shape[0], x.size))
    return x

def row_weights(T, x):
    """Weights of the rows of `D` for a solution `x`: the free rows are
    weighted by `x`, the boundary rows by the stored boundary values."""
    x = _check_solution(T, x)
    lo, hi = T.layout.boundary_range
    w = x.copy()
    w[lo:hi] = T.g1[lo:hi]
    return w

def block_function(vec, layout, patch, kvs, interface_kvs=None):
    """Split a vector of local coefficients into the functions living in the
    interior basis and (if separate) the interface basis of a patch."""
    lo, hi = layout[Category.INTERIOR].range(patch)
    funcs = [BSplineFunc(kvs[patch], vec[lo:hi])]
    if not layout.isogeometric:
        lo, hi = layout[Category.INTERFACE_INTERIOR].range(patch)
        funcs.append(BSplineFunc(interface_kvs[patch], vec[lo:hi]))
    return funcs

def _entity_rows(layout):
    # row ranges of the individual interfaces, edges and vertices
    for c in range(5):
        table = layout[c]
        for e in range(len(table)):
            lo, hi = table.range(e)
            if hi > lo:
                yield (lo, hi)

def construct_solution(T, x, kvs, interface_kvs=None, progress=False):
    """Expand a solution into scaled spline contributions per patch.

    For each interface, boundary edge and vertex, and for the interior
    functions of each patch, the rows of `D` are weighted by the solution
    (free rows) or by the boundary values (boundary rows) and summed. Each
    such entity contributes one function per patch it touches.

    Args:
        T (:class:`.FinalizedTransform`): the finalized transformation
        x (ndarray): solution vector, one entry per row of `D`
        kvs (seq): the interior bases of the patches
        interface_kvs (seq): the interface bases, if they are separate
        progress (bool): show a progress bar

    Returns:
        a list with one entry per patch, each a list of :class:`.BSplineFunc`
        contributions; the last one is always the interior contribution
    """
    w = row_weights(T, x)
    layout = T.layout
    contribs = [[] for _ in range(len(kvs))]

    tqdm = utils.progress_bar(progress)
    for (lo, hi) in tqdm(list(_entity_rows(layout))):
        vec = T.D[lo:hi].T @ w[lo:hi]
        for p in range(len(kvs)):
            for f in block_function(vec, layout, p, kvs, interface_kvs):
                if np.any(f.coeffs):
                    contribs[p].append(f)

    interior = layout[Category.INTERIOR]
    for p in range(len(kvs)):
        lo, hi = interior.range(p)
        rows = slice(layout.interior_start + lo, layout.interior_start + hi)
        vec = T.D[rows].T @ w[rows]
        # interior rows only have entries in the interior basis
        contribs[p].append(BSplineFunc(kvs[p], vec[lo:hi]))
    return contribs

def sum_contributions(contribs):
    """Add up the contributions of each patch over the same basis.

    Returns:
        a list with one entry per patch: a single :class:`.BSplineFunc` if all
        contributions share one basis, otherwise a list of the sums per basis
    """
    result = []
    for funcs in contribs:
        sums = []
        for f in funcs:
            for i, g in enumerate(sums):
                if g.kvs == f.kvs:
                    sums[i] = g + f
                    break
            else:
                sums.append(f)
        result.append(sums[0] if len(sums) == 1 else sums)
    return result

def construct_sparse_solution(T, x):
    """Condensed sparse representation of a solution.

    Returns a CSR matrix whose first ``dim_G1_Dofs + dim_G1_Bdy`` rows are the
    rows of `D` scaled by the solution (free rows) or by the boundary values
    (boundary rows), followed by one row containing the interior part of `x`.
    The column sums are the local coefficients of the solution.
    """
    w = row_weights(T, x)
    n = T.layout.interior_start
    S = scipy.sparse.diags(w[:n]) @ T.D[:n]
    last = scipy.sparse.csr_matrix(w[n:].reshape((1, -1)))
    return scipy.sparse.vstack((S, last), format='csr')
