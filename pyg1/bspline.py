"""Knot vectors and tensor product spline functions.

A tensor product basis over a patch is a tuple ``(kv_v, kv_u)`` of univariate
:class:`KnotVector` instances in ZYX order, i.e., the `u` (x) direction comes
last. Local basis functions are numbered accordingly as ``j * n_u + i``.
"""

import numpy as np
import scipy.sparse
import scipy.interpolate

from .tensor import apply_tprod


class KnotVector:
    """An open B-spline knot vector together with a spline degree.

    Args:
        knots (ndarray): the knots; the first and last knot should be repeated
            `p+1` times, interior knots at most `p` times
        p (int): the spline degree

    Attributes:
        kv (ndarray): vector of knots
        p (int): spline degree
    """
    def __init__(self, knots, p):
        self.kv = np.asarray(knots, dtype=float)
        assert np.all(np.diff(self.kv) >= 0), 'knots must be nondecreasing'
        self.p = p
        self._mesh = None

    def __repr__(self):
        return 'KnotVector(%s, %s)' % (repr(self.kv), repr(self.p))

    def __eq__(self, other):
        return (self.p == other.p and self.kv.shape == other.kv.shape
                and np.allclose(self.kv, other.kv, atol=1e-8, rtol=1e-8))

    @property
    def numdofs(self):
        """Dimension of the spline space over this knot vector."""
        return self.kv.size - self.p - 1

    @property
    def numspans(self):
        """Number of nonempty knot spans."""
        return self.mesh.size - 1

    @property
    def mesh(self):
        """The breakpoints, i.e., the knots without repetitions."""
        if self._mesh is None:
            self._mesh = np.unique(self.kv)
        return self._mesh

    def support(self, j=None):
        """Parameter interval of the whole space or, if `j` is given, of the j-th B-spline."""
        if j is None:
            return (self.kv[0], self.kv[-1])
        return (self.kv[j], self.kv[j + self.p + 1])

    def multiplicity(self, index):
        """Multiplicity of the knot at position `index`."""
        return int(np.count_nonzero(self.kv == self.kv[index]))

    def refine(self, new_knots=None):
        """Insert `new_knots`; by default, bisect all knot spans."""
        if new_knots is None:
            new_knots = (self.mesh[1:] + self.mesh[:-1]) / 2
        return KnotVector(np.sort(np.concatenate((self.kv, new_knots))), self.p)


def make_knots(p, a, b, n, mult=1):
    """Open knot vector of degree `p` with `n` uniform spans over `(a,b)`.

    Interior knots are repeated `mult` times.
    """
    inner = np.linspace(a, b, n+1)[1:-1]
    kv = np.concatenate((np.repeat(a, p+1), np.repeat(inner, mult), np.repeat(b, p+1)))
    return KnotVector(kv, p)

def numdofs(kvs):
    """Dimension of a univariate (`KnotVector`) or tensor product (tuple) space."""
    if isinstance(kvs, KnotVector):
        return kvs.numdofs
    return int(np.prod([kv.numdofs for kv in kvs]))

def collocation(kv, nodes):
    """Sparse matrix of all B-splines of `kv` evaluated at `nodes`,
    with shape `(len(nodes), kv.numdofs)`."""
    return collocation_derivs(kv, nodes, derivs=0)[0]

def collocation_derivs(kv, nodes, derivs=1):
    """List of the collocation matrices of the derivatives ``0, ..., derivs``."""
    nodes = np.asarray(nodes, dtype=float).ravel()
    n = kv.numdofs
    # identity coefficients evaluate all basis functions at once
    spl = scipy.interpolate.BSpline(kv.kv, np.eye(n), kv.p)
    return [scipy.sparse.csr_matrix(spl(nodes, nu=d)) if d <= kv.p
            else scipy.sparse.csr_matrix((nodes.size, n))
            for d in range(derivs + 1)]


class BSplineFunc:
    """A scalar or vector-valued function in a tensor product spline space.

    Arguments:
        kvs (seq): the knot vectors of the tensor product basis (ZYX order)
        coeffs (ndarray): coefficients; the first `len(kvs)` axes run over the
            basis, trailing axes give the output dimension. A flat vector is
            reshaped to a scalar function.

    Used both for the patch geometries and for the local restrictions of the
    global G1 basis functions.

    Attributes:
        kvs (tuple): the knot vectors
        coeffs (ndarray): the coefficients
        sdim (int): dimension of the parameter domain
        dim (int): dimension of the output
    """
    def __init__(self, kvs, coeffs):
        if isinstance(kvs, KnotVector):
            kvs = (kvs,)
        self.kvs = tuple(kvs)
        self.sdim = len(self.kvs)

        N = tuple(kv.numdofs for kv in self.kvs)
        coeffs = np.asanyarray(coeffs)
        if coeffs.ndim == 1:
            assert coeffs.size == np.prod(N), 'wrong length of coefficient vector'
            coeffs = coeffs.reshape(N)
        assert coeffs.shape[:self.sdim] == N, 'wrong shape of coefficients'
        self.coeffs = coeffs

        out = coeffs.shape[self.sdim:]
        self.dim = out[0] if len(out) == 1 else 1

    def __call__(self, *x):
        return self.eval(*x)

    def output_shape(self):
        return self.coeffs.shape[self.sdim:]

    def is_scalar(self):
        return len(self.output_shape()) == 0

    def is_vector(self):
        return len(self.output_shape()) == 1

    @property
    def support(self):
        """The parameter domain as a tuple of `(lower,upper)` pairs (ZYX order)."""
        return tuple(kv.support() for kv in self.kvs)

    def grid_eval(self, gridaxes):
        """Evaluate over the tensor grid given by `gridaxes` (ZYX order)."""
        assert len(gridaxes) == self.sdim, 'wrong number of grid axes'
        return apply_tprod([collocation(kv, g) for (kv, g) in zip(self.kvs, gridaxes)],
                self.coeffs)

    def grid_jacobian(self, gridaxes):
        """Evaluate the Jacobian over a tensor grid.

        The trailing axis of the result holds the derivatives in XYZ order,
        so a scalar function yields its gradient.
        """
        assert len(gridaxes) == self.sdim, 'wrong number of grid axes'
        colloc = [collocation_derivs(kv, g, derivs=1) for (kv, g) in zip(self.kvs, gridaxes)]
        derivs = []
        for i in reversed(range(self.sdim)):
            ops = [C[1] if j == i else C[0] for (j, C) in enumerate(colloc)]
            derivs.append(apply_tprod(ops, self.coeffs))
        return np.stack(derivs, axis=-1)

    def _at_point(self, grid_func, x):
        # x is in XYZ order
        grid = tuple(np.array([t], dtype=float) for t in reversed(x))
        y = grid_func(grid)
        y = y.reshape(y.shape[self.sdim:])
        return y.item() if y.shape == () else y

    def eval(self, *x):
        """Value at a single point `x` of the parameter domain (XYZ order)."""
        return self._at_point(self.grid_eval, x)

    def jacobian(self, *x):
        """Jacobian at a single point (XYZ order); the columns are in XYZ order too."""
        return self._at_point(self.grid_jacobian, x)

    def bounding_box(self, grid=1):
        """Axis-aligned box `((xmin,xmax), (ymin,ymax), ...)` containing the
        image of the corner points or, for `grid > 1`, of a finer grid."""
        X = self.grid_eval([np.linspace(s[0], s[1], grid+1) for s in self.support])
        X = X.reshape((-1, self.dim))
        return tuple((X[:, d].min(), X[:, d].max()) for d in range(self.dim))

    def boundary(self, bdspec):
        """Restriction to one side of the parameter domain.

        Args:
            bdspec: tuple of `(axis, side)` pairs with `side` 0 (lower) or 1 (upper)

        Returns:
            :class:`BSplineFunc` with :attr:`sdim` reduced by the number of pairs
        """
        slices = self.sdim * [slice(None)]
        for ax, side in bdspec:
            if side not in (0, 1) or not 0 <= ax < self.sdim:
                raise ValueError('invalid boundary specification %s' % (bdspec,))
            slices[ax] = -side
        axes = set(ax for ax, _ in bdspec)
        kvs = [kv for (ax, kv) in enumerate(self.kvs) if ax not in axes]
        return BSplineFunc(kvs, self.coeffs[tuple(slices)])

    def translate(self, offset):
        """Translate by the vector `offset`."""
        return BSplineFunc(self.kvs, self.coeffs + offset)

    def as_vector(self):
        """View a scalar function as a vector-valued one with `dim == 1`."""
        if self.is_vector():
            return self
        assert self.is_scalar()
        return BSplineFunc(self.kvs, self.coeffs[..., np.newaxis])

    def __add__(self, other):
        assert self.kvs == other.kvs, 'can only add functions over the same basis'
        return BSplineFunc(self.kvs, self.coeffs + other.coeffs)
