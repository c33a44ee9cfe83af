"""Construction of simple tensor product spline patches.

All geometries are :class:`.BSplineFunc` instances; a planar patch has
`sdim == 2` and `dim == 2`.
"""
import functools

import numpy as np

from . import bspline
from .bspline import BSplineFunc


def line_segment(x0, x1, intervals=1, support=(0.0, 1.0)):
    """Linear parametrization of the segment from `x0` to `x1`.

    Args:
        x0, x1: start and end point (scalars or vectors of equal length)
        intervals (int): number of knot spans of the underlying linear spline space
        support (pair): the parameter interval
    """
    x0 = np.atleast_1d(np.asarray(x0, dtype=float)).ravel()
    x1 = np.atleast_1d(np.asarray(x1, dtype=float)).ravel()
    assert x0.shape == x1.shape, 'points must have the same dimension'
    s = np.linspace(0.0, 1.0, intervals+1)[:, None]
    return BSplineFunc(bspline.make_knots(1, support[0], support[1], intervals),
            (1 - s) * x0 + s * x1)

def tensor_product(G1, G2, *Gs):
    r"""Tensor product of two or more curves or patches.

    For :math:`G_1(y)` and :math:`G_2(x)`, the result is
    :math:`G(x,y) = (G_2(x), G_1(y))`, i.e., the outputs are concatenated in
    XY order while the parameter axes stay in ZYX order.
    """
    if Gs:
        return tensor_product(G1, tensor_product(G2, *Gs))
    G1, G2 = G1.as_vector(), G2.as_vector()
    n1, n2 = G1.coeffs.shape[:G1.sdim], G2.coeffs.shape[:G2.sdim]
    d1, d2 = G1.dim, G2.dim
    C1 = np.broadcast_to(G1.coeffs.reshape(n1 + len(n2) * (1,) + (d1,)), n1 + n2 + (d1,))
    C2 = np.broadcast_to(G2.coeffs.reshape(len(n1) * (1,) + n2 + (d2,)), n1 + n2 + (d2,))
    return BSplineFunc(G1.kvs + G2.kvs, np.concatenate((C2, C1), axis=-1))

def identity(extents, num_intervals=1):
    """Identity mapping with linear splines over the box `extents`, given in
    ZYX order as `(min,max)` pairs or as :class:`.KnotVector` instances."""
    extents = [ex.support() if isinstance(ex, bspline.KnotVector) else ex
               for ex in extents]
    return functools.reduce(tensor_product,
            (line_segment(a, b, intervals=num_intervals, support=(a, b)) for (a, b) in extents))

def unit_square(num_intervals=1):
    """The identity mapping on :math:`(0,1)^2`."""
    return identity(2 * ((0.0, 1.0),), num_intervals=num_intervals)

def quad(P):
    """Bilinear patch spanned by four corner points.

    `P` is a `dim x 4` array whose columns are the bottom-left, bottom-right,
    top-left and top-right corner, in this order.

    Returns:
        :class:`.BSplineFunc` 2D geometry over the unit square
    """
    P = np.asarray(P, dtype=float)
    assert P.ndim == 2 and P.shape[1] == 4, 'need four corner points'
    kv = bspline.make_knots(1, 0.0, 1.0, 1)
    return BSplineFunc((kv, kv), P.T.reshape((2, 2, P.shape[0])))
